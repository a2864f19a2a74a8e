# cactilia/services/shipping_quote/combinations.py
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .errors import ShippingCancelled, ShippingIssue, ShippingIssueCode, unshippable
from .options import price_zone_options
from .policy import CancelToken, ShippingPolicy
from .types import (
    ZONE_KIND_LOCAL,
    ZONE_KIND_NATIONAL,
    CartItem,
    ShippingRule,
    ZoneAssignment,
    ZoneCombination,
)
from .zones import map_products_to_zones, unmapped_products

log = logging.getLogger("cactilia.shipping.combinations")


@dataclass
class CombinationSearch:
    """
    组合搜索结果。ok=False 时 reason 区分：
      - no_rules：根本没有可用规则
      - no_covering_combination：有规则，但 1~3 个 zone 都凑不齐整单
      - cancelled：被调用方取消
    """

    ok: bool
    combinations: List[ZoneCombination] = field(default_factory=list)
    reason: Optional[ShippingIssueCode] = None
    zone_count: int = 0
    product_zones: Dict[str, Set[str]] = field(default_factory=dict)
    unshippable: List[str] = field(default_factory=list)
    issues: List[ShippingIssue] = field(default_factory=list)


def _covers(combo: Sequence[ShippingRule], product_ids: Sequence[str], product_zones: Dict[str, Set[str]]) -> bool:
    ids = {z.id for z in combo}
    return all(product_zones.get(pid, set()) & ids for pid in product_ids)


def find_zone_combinations(
    product_ids: Sequence[str],
    product_zones: Dict[str, Set[str]],
    zones: Sequence[ShippingRule],
    max_zones: int = 3,
    cancel: Optional[CancelToken] = None,
) -> Tuple[List[Tuple[ShippingRule, ...]], int]:
    """
    按 zone 数量分层搜索（1 -> 2 -> 3）：某一层找到即停止，更少的配送组优先于价格。

    返回 (该层全部可行组合, 层级)；全部失败返回 ([], 0)。
    """
    if not product_ids or not zones:
        return [], 0

    # 只在至少能配送一个商品的 zone 中搜索
    useful_ids: Set[str] = set()
    for pid in product_ids:
        useful_ids |= product_zones.get(pid, set())
    useful = [z for z in zones if z.id in useful_ids]

    for size in range(1, max(1, min(int(max_zones), 3)) + 1):
        if cancel is not None:
            cancel.raise_if_cancelled()
        if size > len(useful):
            break

        found = [combo for combo in itertools.combinations(useful, size) if _covers(combo, product_ids, product_zones)]
        log.debug("tier %s: %s of %s zone subsets cover %s products", size, len(found), len(useful), len(product_ids))
        if found:
            return found, size

    return [], 0


def _pick_zone(compatible: Set[str], combo: Sequence[ShippingRule]) -> Optional[ShippingRule]:
    for kind in (ZONE_KIND_LOCAL, ZONE_KIND_NATIONAL):
        for z in combo:
            if z.zone_kind == kind and z.id in compatible:
                return z
    for z in combo:
        if z.id in compatible:
            return z
    return None


def assign_products_to_zones(
    product_ids: Sequence[str],
    combo: Sequence[ShippingRule],
    product_zones: Dict[str, Set[str]],
) -> List[ZoneAssignment]:
    """
    组合内分配：固定优先级贪心 local > national > 组合内第一个兼容 zone。
    （不是成本最优的二分匹配）
    只返回分到商品的 zone。
    """
    assignments = [ZoneAssignment(zone_id=z.id, products=[]) for z in combo]
    by_zone = {a.zone_id: a for a in assignments}

    for pid in product_ids:
        z = _pick_zone(product_zones.get(pid, set()), combo)
        if z is None:
            log.warning("product %s cannot be assigned within zones %s", pid, [c.id for c in combo])
            continue
        by_zone[z.id].products.append(pid)

    return [a for a in assignments if a.products]


def is_complete(assignments: Sequence[ZoneAssignment], product_ids: Sequence[str]) -> bool:
    seen: List[str] = []
    for a in assignments:
        seen.extend(a.products)
    return len(seen) == len(set(seen)) and set(seen) == set(product_ids)


def mapping_key(combination: ZoneCombination) -> Tuple[Tuple[str, str], ...]:
    return tuple(sorted(combination.product_zone_map().items()))


def dedupe_combinations(combinations: Sequence[ZoneCombination]) -> List[ZoneCombination]:
    """
    相同 product->zone 映射只保留最便宜的一条（保持首次出现位置）。
    """
    best: Dict[Tuple[Tuple[str, str], ...], ZoneCombination] = {}
    for c in combinations:
        k = mapping_key(c)
        prev = best.get(k)
        if prev is None or c.total_price < prev.total_price:
            best[k] = c
    return list(best.values())


def _price_combination(
    combo: Sequence[ShippingRule],
    assignments: List[ZoneAssignment],
    items_by_product: Dict[str, List[CartItem]],
    policy: ShippingPolicy,
    issues: List[ShippingIssue],
) -> Optional[float]:
    zones_by_id = {z.id: z for z in combo}
    total = 0.0
    for a in assignments:
        items = [it for pid in a.products for it in items_by_product.get(pid, [])]
        options, opt_issues = price_zone_options(items, zones_by_id[a.zone_id], policy)
        issues.extend(opt_issues)
        if not options:
            log.warning("zone %s has no valid option for products %s", a.zone_id, a.products)
            return None
        a.options = options
        total += options[0].price
    return total


def build_combinations(
    cart_items: Sequence[CartItem],
    zones: Sequence[ShippingRule],
    *,
    product_zones: Optional[Dict[str, Set[str]]] = None,
    policy: Optional[ShippingPolicy] = None,
    cancel: Optional[CancelToken] = None,
    has_rules: Optional[bool] = None,
) -> CombinationSearch:
    """
    cart + 已按地址过滤的 zones -> 覆盖整单的 zone 组合（按 total_price 升序）。

    - 商品无兼容 zone：排除并列入 unshippable，不兜底
    - tier 1 找到单 zone 覆盖时，只返回单 zone 组合（即使两 zone 更便宜）
    - 每个 assignment 计算全部 messaging option，total_price 取每组最便宜之和
    - 相同 product->zone 映射去重，留最便宜
    - has_rules：地址过滤前是否解析到过规则；为真时 zones 为空报 no_covering_combination 而不是 no_rules
    """
    policy = policy or ShippingPolicy()
    if has_rules is None:
        has_rules = bool(zones)

    if product_zones is None:
        product_zones = map_products_to_zones(cart_items, zones)

    issues: List[ShippingIssue] = []
    excluded = unmapped_products(product_zones)
    for pid in excluded:
        issues.append(unshippable(pid, f"product {pid} has no shipping zone for this address"))

    if not zones and not has_rules:
        return CombinationSearch(
            ok=False,
            reason=ShippingIssueCode.NO_RULES,
            product_zones=product_zones,
            unshippable=excluded,
            issues=issues,
        )

    product_ids = [pid for pid, zs in product_zones.items() if zs]
    if not product_ids:
        issues.append(
            ShippingIssue(
                ShippingIssueCode.NO_COVERING_COMBINATION,
                "no shipping zone covers any product of the cart for this address",
            )
        )
        return CombinationSearch(
            ok=False,
            reason=ShippingIssueCode.NO_COVERING_COMBINATION,
            product_zones=product_zones,
            unshippable=excluded,
            issues=issues,
        )

    try:
        combos, tier = find_zone_combinations(product_ids, product_zones, zones, policy.zone_cap, cancel)
    except ShippingCancelled:
        log.info("combination search cancelled")
        return CombinationSearch(
            ok=False,
            reason=ShippingIssueCode.CANCELLED,
            product_zones=product_zones,
            unshippable=excluded,
            issues=issues,
        )

    if not combos:
        log.warning("no combination of up to %s zones covers products %s", policy.zone_cap, product_ids)
        issues.append(
            ShippingIssue(
                ShippingIssueCode.NO_COVERING_COMBINATION,
                f"no combination of up to {policy.zone_cap} zones covers the cart",
            )
        )
        return CombinationSearch(
            ok=False,
            reason=ShippingIssueCode.NO_COVERING_COMBINATION,
            product_zones=product_zones,
            unshippable=excluded,
            issues=issues,
        )

    items_by_product: Dict[str, List[CartItem]] = {}
    for it in cart_items:
        items_by_product.setdefault(it.product_id, []).append(it)

    results: List[ZoneCombination] = []
    for combo in combos:
        assignments = assign_products_to_zones(product_ids, combo, product_zones)
        complete = is_complete(assignments, product_ids)
        if not complete:
            continue

        total = _price_combination(combo, assignments, items_by_product, policy, issues)
        if total is None:
            continue

        results.append(
            ZoneCombination(
                id="combo_" + "+".join(a.zone_id for a in assignments),
                assignments=assignments,
                total_price=total,
                is_complete=complete,
                excluded_product_ids=list(excluded),
            )
        )

    results = dedupe_combinations(results)
    results.sort(key=lambda c: (c.total_price, c.id))

    if not results:
        return CombinationSearch(
            ok=False,
            reason=ShippingIssueCode.NO_COVERING_COMBINATION,
            zone_count=tier,
            product_zones=product_zones,
            unshippable=excluded,
            issues=issues,
        )

    log.info("found %s combinations of %s zone(s) for %s products", len(results), tier, len(product_ids))
    return CombinationSearch(
        ok=True,
        combinations=results,
        zone_count=tier,
        product_zones=product_zones,
        unshippable=excluded,
        issues=issues,
    )
