# cactilia/services/shipping_quote/options.py
from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from .errors import ShippingIssue, misconfigured
from .packaging import pack
from .policy import ShippingPolicy
from .pricing import free_shipping_reason, package_limits, price
from .types import CartItem, MessagingOption, PricedPackage, ShippingRule, ZoneOption
from .weight import items_subtotal

log = logging.getLogger("cactilia.shipping.options")

DEFAULT_OPTION_NAME = "standard"
DEFAULT_OPTION_LABEL = "Standard"


def delivery_window(
    option: Optional[MessagingOption],
    rule: ShippingRule,
    policy: ShippingPolicy,
) -> Tuple[int, int]:
    mn = option.min_delivery_days if option is not None else None
    mx = option.max_delivery_days if option is not None else None
    if mn is None:
        mn = rule.min_delivery_days
    if mx is None:
        mx = rule.max_delivery_days
    if mn is None:
        mn = policy.default_min_days
    if mx is None:
        mx = policy.default_max_days
    mn, mx = int(mn), int(mx)
    if mx < mn:
        mx = mn
    return mn, mx


def delivery_label(min_days: int, max_days: int) -> str:
    if min_days == max_days:
        return f"{min_days} business days"
    return f"{min_days}-{max_days} business days"


def _price_with_option(
    items: Sequence[CartItem],
    option: Optional[MessagingOption],
    rule: ShippingRule,
    policy: ShippingPolicy,
    issues: List[ShippingIssue],
) -> Optional[ZoneOption]:
    mw, mc = package_limits(option, rule)
    packages = pack(items, mw, mc)

    group_free = free_shipping_reason(rule, items_subtotal(items))

    priced: List[PricedPackage] = []
    total = 0.0
    used_fallback = False
    base_price = 0.0

    for pkg in packages:
        pr = price(pkg.items, option, rule)
        base_price = pr.base_price

        # 多行包裹仍超限说明装箱异常，这个 option 不可用；单行超限照收（附加费已计入）
        if pr.exceeds_limits and len(pkg.items) > 1:
            log.warning("rule %s option %s: package exceeds limits (%s)", rule.id, _opt_name(option), pr.reason)
            return None

        if group_free is not None:
            amount, is_free = 0.0, True
        elif pr.misconfigured:
            amount, is_free = float(policy.fallback_base_price), False
            used_fallback = True
        else:
            amount, is_free = pr.price, pr.is_free

        total += amount
        priced.append(
            PricedPackage(
                product_ids=tuple(pkg.product_ids),
                total_weight=pkg.total_weight,
                total_item_count=pkg.total_item_count,
                price=amount,
                is_free=is_free,
                exceeds_limits=pkg.exceeds_limits,
                reason=pr.reason,
            )
        )

    if used_fallback:
        issues.append(
            misconfigured(
                rule.id,
                f"rule {rule.id} option {_opt_name(option)} has no usable price; "
                f"fallback base price {policy.fallback_base_price:g} applied",
            )
        )

    mn, mx = delivery_window(option, rule, policy)
    name = option.name if option is not None else DEFAULT_OPTION_NAME
    label = option.display_label if option is not None else DEFAULT_OPTION_LABEL
    carrier = (option.carrier if option is not None else None) or rule.carrier or name

    return ZoneOption(
        id=f"{rule.id}_{(option.id if option is not None else None) or name}",
        zone_id=rule.id,
        zone_name=rule.display_name,
        zone_kind=rule.zone_kind,
        option_name=name,
        label=label,
        carrier=carrier,
        price=total,
        base_price=base_price,
        is_free=group_free is not None or (bool(priced) and all(p.is_free for p in priced)),
        packages=tuple(priced),
        min_days=mn,
        max_days=mx,
        free_reason=group_free,
        used_fallback_price=used_fallback,
    )


def _opt_name(option: Optional[MessagingOption]) -> str:
    return option.name if option is not None else DEFAULT_OPTION_NAME


def price_zone_options(
    items: Sequence[CartItem],
    rule: ShippingRule,
    policy: Optional[ShippingPolicy] = None,
) -> Tuple[List[ZoneOption], List[ShippingIssue]]:
    """
    一组商品在一个 rule/zone 下的全部报价（每个 messaging option 一条），按价格升序。

    没有 messaging option 的规则：用 rule.base_price 生成一条 standard 报价；
    连 base_price 都没有（且非包邮）=> misconfigured，替换为兜底价并记录 issue。
    """
    policy = policy or ShippingPolicy()
    issues: List[ShippingIssue] = []
    if not items:
        return [], issues

    candidates: List[Optional[MessagingOption]] = list(rule.messaging_options) or [None]

    out: List[ZoneOption] = []
    for opt in candidates:
        zo = _price_with_option(items, opt, rule, policy, issues)
        if zo is not None:
            out.append(zo)

    out.sort(key=lambda o: (o.price, o.min_days))
    return out, issues
