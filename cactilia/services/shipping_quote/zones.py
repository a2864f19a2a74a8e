# cactilia/services/shipping_quote/zones.py
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Set

from .types import CartItem, ShippingRule

log = logging.getLogger("cactilia.shipping.zones")


def product_rule_ids(items: Iterable[CartItem]) -> Dict[str, List[str]]:
    """
    product_id -> 去重后的 rule ids（保持首次出现顺序；同一商品多行时合并）。
    """
    out: Dict[str, List[str]] = {}
    for it in items:
        ids = out.setdefault(it.product_id, [])
        for rid in it.rule_ids:
            if rid and rid not in ids:
                ids.append(rid)
    return out


def zone_supports_rule(zone: ShippingRule, rule_ids: Sequence[str]) -> bool:
    """
    zone 兼容条件：zone.id 直接等于某个 rule id，或 zone 聚合的规则列表里含有它。
    """
    if zone.id in rule_ids:
        return True
    return any(r in rule_ids for r in zone.rule_ids)


def map_products_to_zones(
    cart_items: Sequence[CartItem],
    zones: Sequence[ShippingRule],
) -> Dict[str, Set[str]]:
    """
    product_id -> 可配送该商品的 zone id 集合。

    没有 rule id 或没有兼容 zone 的商品返回空集合（记录告警，不兜底）。
    """
    out: Dict[str, Set[str]] = {}
    for pid, rule_ids in product_rule_ids(cart_items).items():
        if not rule_ids:
            log.warning("product %s has no shipping rules assigned", pid)
            out[pid] = set()
            continue

        compatible = {z.id for z in zones if zone_supports_rule(z, rule_ids)}
        if not compatible:
            log.warning("product %s: no compatible zone for rules %s", pid, rule_ids)
        else:
            log.debug("product %s: compatible zones %s", pid, sorted(compatible))
        out[pid] = compatible
    return out


def unmapped_products(product_zones: Dict[str, Set[str]]) -> List[str]:
    return [pid for pid, zs in product_zones.items() if not zs]
