# cactilia/services/shipping_quote/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

NATIONAL_KEYWORDS = ("nacional", "national", "nationwide")
LOCAL_KEYWORDS = ("local",)

ZONE_KIND_LOCAL = "local"
ZONE_KIND_NATIONAL = "national"
ZONE_KIND_OTHER = "other"


@dataclass(frozen=True)
class CartItem:
    """
    购物车行（规范形状）。由边界层 normalize 生成，单次计算内不可变。
    rule_ids 为空 => 不可配送（不会被默认兜底）。
    """

    product_id: str
    quantity: int
    unit_price: float
    unit_weight: float
    rule_ids: Tuple[str, ...] = ()
    name: Optional[str] = None

    @property
    def total_weight(self) -> float:
        return float(self.unit_weight) * int(self.quantity)

    @property
    def subtotal(self) -> float:
        return float(self.unit_price) * int(self.quantity)


@dataclass(frozen=True)
class Address:
    postal_code: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None


@dataclass(frozen=True)
class MessagingOption:
    """一条规则下的一个承运/服务档位。"""

    name: str
    label: Optional[str] = None
    carrier: Optional[str] = None
    base_price: Optional[float] = None
    per_kg_extra_price: float = 0.0
    max_weight_per_package: Optional[float] = None
    max_items_per_package: Optional[int] = None
    min_delivery_days: Optional[int] = None
    max_delivery_days: Optional[int] = None
    # 超件附加：包裹内件数超过 extra_item_base_count 后，每件加 extra_item_price
    extra_item_base_count: Optional[int] = None
    extra_item_price: float = 0.0
    id: Optional[str] = None

    @property
    def display_label(self) -> str:
        return self.label or self.name


@dataclass(frozen=True)
class ShippingRule:
    """
    运费规则（= Zone）。只读输入。

    postal_codes 支持三种条目：
      - 精确邮编 "01000"
      - 区间 "44100-44999"（闭区间）
      - 州前缀 "estado_JAL"
    rule_ids：Zone 聚合的具名规则（间接层），产品的 rule id 命中其一即兼容。
    """

    id: str
    zone_name: str = ""
    is_national: bool = False
    coverage_type: Optional[str] = None
    postal_codes: Tuple[str, ...] = ()
    state_prefixes: Tuple[str, ...] = ()
    messaging_options: Tuple[MessagingOption, ...] = ()
    free_shipping: bool = False
    free_shipping_min_amount: Optional[float] = None
    base_price: Optional[float] = None
    per_kg_extra_price: float = 0.0
    max_weight_per_package: Optional[float] = None
    max_items_per_package: Optional[int] = None
    min_delivery_days: Optional[int] = None
    max_delivery_days: Optional[int] = None
    rule_ids: Tuple[str, ...] = ()
    carrier: Optional[str] = None
    active: bool = True

    @property
    def is_national_rule(self) -> bool:
        if self.is_national:
            return True
        if (self.zone_name or "").strip().lower() in NATIONAL_KEYWORDS:
            return True
        if (self.coverage_type or "").strip().lower() in NATIONAL_KEYWORDS:
            return True
        return any(str(pc).strip().lower() in NATIONAL_KEYWORDS for pc in self.postal_codes)

    @property
    def zone_kind(self) -> str:
        if self.is_national_rule:
            return ZONE_KIND_NATIONAL
        if (self.zone_name or "").strip().lower() in LOCAL_KEYWORDS:
            return ZONE_KIND_LOCAL
        if (self.coverage_type or "").strip().lower() in LOCAL_KEYWORDS:
            return ZONE_KIND_LOCAL
        return ZONE_KIND_OTHER

    @property
    def display_name(self) -> str:
        return self.zone_name or self.id


@dataclass
class Package:
    items: List[CartItem]
    total_weight: float = 0.0
    total_item_count: int = 0
    # 单件本身超限：独立成包，不拒收，交给定价做附加
    exceeds_limits: bool = False

    @property
    def product_ids(self) -> List[str]:
        return [it.product_id for it in self.items]


@dataclass(frozen=True)
class PriceResult:
    price: float
    base_price: float
    is_free: bool
    exceeds_limits: bool = False
    reason: Optional[str] = None
    free_reason: Optional[str] = None
    weight_surcharge: float = 0.0
    item_surcharge: float = 0.0
    total_weight: float = 0.0
    subtotal: float = 0.0
    item_count: int = 0
    # 价格为 0 但既非包邮、也非满额免邮 => 规则配置异常
    misconfigured: bool = False


@dataclass(frozen=True)
class PricedPackage:
    product_ids: Tuple[str, ...]
    total_weight: float
    total_item_count: int
    price: float
    is_free: bool
    exceeds_limits: bool = False
    reason: Optional[str] = None


@dataclass(frozen=True)
class ZoneOption:
    """一个 (zone, messaging option) 对一组商品的报价（可能多包裹）。"""

    id: str
    zone_id: str
    zone_name: str
    zone_kind: str
    option_name: str
    label: str
    carrier: str
    price: float
    base_price: float
    is_free: bool
    packages: Tuple[PricedPackage, ...]
    min_days: int
    max_days: int
    free_reason: Optional[str] = None
    used_fallback_price: bool = False

    @property
    def package_count(self) -> int:
        return len(self.packages)


@dataclass
class ZoneAssignment:
    zone_id: str
    products: List[str]
    options: List[ZoneOption] = field(default_factory=list)

    @property
    def cheapest(self) -> Optional[ZoneOption]:
        return self.options[0] if self.options else None


@dataclass
class ZoneCombination:
    """
    is_complete 只针对可配送商品：没有兼容 zone 的商品在搜索前已被排除，
    它们列在 excluded_product_ids（整单层面见 unshippable），不计入 assignments。
    """

    id: str
    assignments: List[ZoneAssignment]
    total_price: float
    is_complete: bool
    excluded_product_ids: List[str] = field(default_factory=list)

    @property
    def zone_ids(self) -> List[str]:
        return [a.zone_id for a in self.assignments]

    def product_zone_map(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for a in self.assignments:
            for pid in a.products:
                out[pid] = a.zone_id
        return out


@dataclass(frozen=True)
class BundlePackage:
    zone_id: str
    option_name: str
    product_ids: Tuple[str, ...]
    total_weight: float
    total_item_count: int
    price: float
    is_free: bool


@dataclass(frozen=True)
class ShippingOptionBundle:
    """对外可见的结果：一个可选的整单配送方案。"""

    id: str
    label: str
    carrier: str
    total_cost: float
    is_free_shipping: bool
    delivery_estimate: str
    covered_product_ids: Tuple[str, ...]
    packages: Tuple[BundlePackage, ...]
    zone_ids: Tuple[str, ...] = ()
    min_days: int = 0
    max_days: int = 0


def _s(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    t = str(v).strip()
    return t if t else None
