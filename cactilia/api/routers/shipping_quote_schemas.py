# cactilia/api/routers/shipping_quote_schemas.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class QuoteOptionsIn(BaseModel):
    # address / items 保留原始形状（兼容历史字段），由 normalize 统一转换
    address: Dict[str, Any] = Field(default_factory=dict)
    items: List[Dict[str, Any]] = Field(default_factory=list)

    # True：每个组合内各组 option 的全部搭配；False：每个组合只给最便宜的一条
    exhaustive: bool = False


class QuoteGroupsIn(BaseModel):
    address: Optional[Dict[str, Any]] = None
    items: List[Dict[str, Any]] = Field(default_factory=list)


class IssueOut(BaseModel):
    code: str
    message: str
    product_id: Optional[str] = None
    rule_id: Optional[str] = None


class PackageOut(BaseModel):
    product_ids: List[str]
    total_weight: float
    total_item_count: int
    price: float
    is_free: bool
    exceeds_limits: bool = False
    reason: Optional[str] = None


class ZoneOptionOut(BaseModel):
    id: str
    zone_id: str
    zone_name: str
    zone_kind: str
    option_name: str
    label: str
    carrier: str
    price: float
    is_free: bool
    free_reason: Optional[str] = None
    min_days: int
    max_days: int
    delivery_estimate: str
    used_fallback_price: bool = False
    packages: List[PackageOut] = Field(default_factory=list)


class AssignmentOut(BaseModel):
    zone_id: str
    products: List[str]
    options: List[ZoneOptionOut] = Field(default_factory=list)


class CombinationOut(BaseModel):
    id: str
    zone_ids: List[str]
    total_price: float
    is_complete: bool
    excluded_product_ids: List[str] = Field(default_factory=list)
    assignments: List[AssignmentOut]


class BundlePackageOut(BaseModel):
    zone_id: str
    option_name: str
    product_ids: List[str]
    total_weight: float
    total_item_count: int
    price: float
    is_free: bool


class BundleOut(BaseModel):
    id: str
    label: str
    carrier: str
    total_cost: float
    is_free_shipping: bool
    delivery_estimate: str
    min_days: int
    max_days: int
    zone_ids: List[str]
    covered_product_ids: List[str]
    packages: List[BundlePackageOut]


class QuoteOptionsOut(BaseModel):
    ok: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    zone_count: int = 0

    bundles: List[BundleOut] = Field(default_factory=list)
    combinations: List[CombinationOut] = Field(default_factory=list)
    unshippable: List[str] = Field(default_factory=list)
    issues: List[IssueOut] = Field(default_factory=list)


class GroupOut(BaseModel):
    id: str
    rule_id: str
    rule_name: str
    product_ids: List[str]
    is_national: bool
    is_free_rule: bool
    options: List[ZoneOptionOut] = Field(default_factory=list)


class GroupChoiceOut(BaseModel):
    group_id: str
    rule_id: str
    product_ids: List[str]
    option: ZoneOptionOut


class GroupCombinationOut(BaseModel):
    id: str
    name: str
    total_cost: float
    is_free_shipping: bool
    choices: List[GroupChoiceOut]


class QuoteGroupsOut(BaseModel):
    ok: bool
    reason: Optional[str] = None
    message: Optional[str] = None

    groups: List[GroupOut] = Field(default_factory=list)
    combinations: List[GroupCombinationOut] = Field(default_factory=list)
    recommended: Optional[GroupCombinationOut] = None
    unshippable: List[str] = Field(default_factory=list)
    issues: List[IssueOut] = Field(default_factory=list)
