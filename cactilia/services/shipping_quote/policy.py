# cactilia/services/shipping_quote/policy.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from cactilia.core.config import AppSettings, get_settings

from .errors import ShippingCancelled

# 组合搜索最多到 3 个 zone（O(Z^3)）
MAX_ZONES_CAP = 3


@dataclass(frozen=True)
class ShippingPolicy:
    """
    单次计算使用的配置快照（不可变，随调用传入，不读全局）。
    """

    fallback_base_price: float = 200.0
    default_min_days: int = 3
    default_max_days: int = 7
    max_zones_per_combination: int = MAX_ZONES_CAP
    national_fallback_rule_id: Optional[str] = None
    max_option_bundles: int = 50

    @property
    def zone_cap(self) -> int:
        return max(1, min(int(self.max_zones_per_combination), MAX_ZONES_CAP))

    @classmethod
    def from_settings(cls, settings: Optional[AppSettings] = None) -> "ShippingPolicy":
        s = settings or get_settings()
        return cls(
            fallback_base_price=float(s.SHIPPING_FALLBACK_BASE_PRICE),
            default_min_days=int(s.SHIPPING_DEFAULT_MIN_DAYS),
            default_max_days=int(s.SHIPPING_DEFAULT_MAX_DAYS),
            max_zones_per_combination=int(s.SHIPPING_MAX_ZONES_PER_COMBINATION),
            national_fallback_rule_id=(s.SHIPPING_NATIONAL_FALLBACK_RULE_ID or None),
            max_option_bundles=int(s.SHIPPING_MAX_OPTION_BUNDLES),
        )


class CancelToken:
    """协作式取消：组合搜索在各 tier 之间检查。"""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise ShippingCancelled("shipping computation cancelled")
