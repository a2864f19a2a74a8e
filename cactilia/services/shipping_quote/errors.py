# cactilia/services/shipping_quote/errors.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ShippingIssueCode(str, Enum):
    UNSHIPPABLE_PRODUCT = "unshippable_product"
    MISCONFIGURED_RULE = "misconfigured_rule"
    NO_COVERING_COMBINATION = "no_covering_combination"
    NO_RULES = "no_rules"
    RULE_FETCH_FAILURE = "rule_fetch_failure"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ShippingIssue:
    code: ShippingIssueCode
    message: str
    product_id: Optional[str] = None
    rule_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.product_id is not None:
            out["product_id"] = self.product_id
        if self.rule_id is not None:
            out["rule_id"] = self.rule_id
        return out


class ShippingInputError(ValueError):
    """输入形状非法（边界 normalize 阶段抛出）。"""

    code = "SHIPPING_INPUT_INVALID"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        if code:
            self.code = code
        self.message = message


class ShippingCancelled(Exception):
    pass


def unshippable(product_id: str, message: str) -> ShippingIssue:
    return ShippingIssue(ShippingIssueCode.UNSHIPPABLE_PRODUCT, message, product_id=product_id)


def misconfigured(rule_id: str, message: str) -> ShippingIssue:
    return ShippingIssue(ShippingIssueCode.MISCONFIGURED_RULE, message, rule_id=rule_id)
