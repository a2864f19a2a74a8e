# cactilia/services/shipping_quote/pricing.py
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .types import CartItem, MessagingOption, PriceResult, ShippingRule
from .weight import excess_weight_kg, items_count, items_subtotal, items_weight

log = logging.getLogger("cactilia.shipping.pricing")

FREE_REASON_RULE = "rule_free_shipping"
FREE_REASON_MIN_AMOUNT = "min_amount_reached"


def _positive(v):
    if v is None or v <= 0:
        return None
    return v


def package_limits(option: Optional[MessagingOption], rule: ShippingRule) -> tuple[Optional[float], Optional[int]]:
    """
    包裹上限：option 优先，缺省回退到 rule 级配置。
    <= 0 视为未配置（与 Packager 口径一致），两级都未配置 => None（不限）。
    """
    mw = _positive(option.max_weight_per_package if option is not None else None)
    mc = _positive(option.max_items_per_package if option is not None else None)
    if mw is None:
        mw = _positive(rule.max_weight_per_package)
    if mc is None:
        mc = _positive(rule.max_items_per_package)
    return mw, mc


def _base_price(option: Optional[MessagingOption], rule: ShippingRule) -> Optional[float]:
    if option is not None and option.base_price is not None:
        return float(option.base_price)
    if rule.base_price is not None:
        return float(rule.base_price)
    return None


def free_shipping_reason(rule: ShippingRule, subtotal: float) -> Optional[str]:
    if rule.free_shipping:
        return FREE_REASON_RULE
    mn = rule.free_shipping_min_amount
    if mn is not None and float(mn) > 0 and subtotal >= float(mn):
        return FREE_REASON_MIN_AMOUNT
    return None


def price(
    items: Sequence[CartItem],
    option: Optional[MessagingOption],
    rule: ShippingRule,
) -> PriceResult:
    """
    单个包裹在 (rule, option) 下的运费。纯函数。

    1) 汇总重量 / 小计 / 件数
    2) 超出单包上限 => exceeds_limits + reason（拆包与否由调用方决定）
    3) rule.free_shipping => 0
    4) 满额免邮（free_shipping_min_amount > 0 且 subtotal >= 阈值）=> 0
    5) base + ceil(超重kg) * per_kg_extra_price + 超件附加
    6) 结果为 0 且非 3/4 => misconfigured（调用方替换兜底价，不得当作包邮）
    """
    total_weight = items_weight(items)
    subtotal = items_subtotal(items)
    count = items_count(items)

    mw, mc = package_limits(option, rule)

    reasons: List[str] = []
    if mw is not None and total_weight > float(mw):
        reasons.append(f"weight {total_weight:g}kg exceeds {float(mw):g}kg per package")
    if mc is not None and count > int(mc):
        reasons.append(f"{count} items exceed {int(mc)} items per package")
    exceeds = bool(reasons)
    reason = "; ".join(reasons) if reasons else None

    base = _base_price(option, rule)

    free_reason = free_shipping_reason(rule, subtotal)
    if free_reason is not None:
        return PriceResult(
            price=0.0,
            base_price=float(base or 0.0),
            is_free=True,
            exceeds_limits=exceeds,
            reason=reason,
            free_reason=free_reason,
            total_weight=total_weight,
            subtotal=subtotal,
            item_count=count,
        )

    per_kg = float(option.per_kg_extra_price) if option is not None else 0.0
    if not per_kg:
        per_kg = float(rule.per_kg_extra_price or 0.0)
    weight_extra = excess_weight_kg(total_weight, mw) * per_kg

    item_extra = 0.0
    if option is not None and option.extra_item_base_count is not None and option.extra_item_price:
        over = count - int(option.extra_item_base_count)
        if over > 0:
            item_extra = over * float(option.extra_item_price)

    amount = float(base or 0.0) + weight_extra + item_extra

    misconfigured = amount <= 0
    if misconfigured:
        log.warning(
            "rule %s option %s priced at 0 without free-shipping justification",
            rule.id,
            option.name if option is not None else "-",
        )

    return PriceResult(
        price=amount,
        base_price=float(base or 0.0),
        is_free=False,
        exceeds_limits=exceeds,
        reason=reason,
        weight_surcharge=weight_extra,
        item_surcharge=item_extra,
        total_weight=total_weight,
        subtotal=subtotal,
        item_count=count,
        misconfigured=misconfigured,
    )
