# cactilia/services/shipping_quote/bundles.py
from __future__ import annotations

import heapq
import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .options import delivery_label
from .types import BundlePackage, ShippingOptionBundle, ZoneCombination, ZoneOption

log = logging.getLogger("cactilia.shipping.bundles")


def _join_unique(values: Sequence[str]) -> str:
    seen: List[str] = []
    for v in values:
        if v and v not in seen:
            seen.append(v)
    return " + ".join(seen)


def bundle_from_choice(combination: ZoneCombination, choice: Sequence[ZoneOption]) -> ShippingOptionBundle:
    """
    一个组合 + 每个 assignment 选定的 option -> 对外 bundle。

    choice 与 combination.assignments 一一对应。
    整单送达窗口取各组的最大值（多组并行发货，最后一组到达才算送达）。
    """
    if len(choice) != len(combination.assignments):
        raise ValueError("choice must select exactly one option per zone assignment")

    packages: List[BundlePackage] = []
    covered: List[str] = []
    for a, opt in zip(combination.assignments, choice):
        covered.extend(a.products)
        for p in opt.packages:
            packages.append(
                BundlePackage(
                    zone_id=a.zone_id,
                    option_name=opt.option_name,
                    product_ids=p.product_ids,
                    total_weight=p.total_weight,
                    total_item_count=p.total_item_count,
                    price=p.price,
                    is_free=p.is_free,
                )
            )

    mn = max(o.min_days for o in choice)
    mx = max(o.max_days for o in choice)

    return ShippingOptionBundle(
        id="+".join(o.id for o in choice),
        label=_join_unique([o.label for o in choice]),
        carrier=_join_unique([o.carrier for o in choice]),
        total_cost=sum(o.price for o in choice),
        is_free_shipping=all(o.is_free for o in choice),
        delivery_estimate=delivery_label(mn, mx),
        covered_product_ids=tuple(covered),
        packages=tuple(packages),
        zone_ids=tuple(combination.zone_ids),
        min_days=mn,
        max_days=mx,
    )


def cheapest_bundles(combinations: Sequence[ZoneCombination]) -> List[ShippingOptionBundle]:
    """
    每个组合只出一条：每组取最便宜的 option。顺序跟随 combinations（已按价格升序）。
    """
    out: List[ShippingOptionBundle] = []
    for c in combinations:
        choice = [a.cheapest for a in c.assignments]
        if any(o is None for o in choice):
            continue
        out.append(bundle_from_choice(c, choice))  # type: ignore[arg-type]
    return out


def cheapest_choices(
    pools: Sequence[Sequence[ZoneOption]],
    limit: Optional[int] = None,
) -> Iterator[Tuple[ZoneOption, ...]]:
    """
    各组 option（已按价格升序）的搭配，按总价从低到高逐个产出，最多 limit 个。

    最小堆按下标向量做 best-first：只展开被弹出的搭配的后继，
    工作量与 limit * 组数 成正比，不会构造完整笛卡尔积。
    limit 为 None / 0 时不截断（调用方自行承担组合爆炸）。
    """
    if not pools or any(not p for p in pools):
        return

    def entry(idx: Tuple[int, ...]) -> Tuple[float, str, Tuple[int, ...]]:
        choice = [p[i] for p, i in zip(pools, idx)]
        return (sum(o.price for o in choice), "+".join(o.id for o in choice), idx)

    start = tuple(0 for _ in pools)
    heap = [entry(start)]
    seen = {start}
    produced = 0

    while heap:
        _, _, idx = heapq.heappop(heap)
        yield tuple(p[i] for p, i in zip(pools, idx))
        produced += 1
        if limit and produced >= limit:
            return

        for pos, i in enumerate(idx):
            if i + 1 >= len(pools[pos]):
                continue
            nxt = idx[:pos] + (i + 1,) + idx[pos + 1 :]
            if nxt in seen:
                continue
            seen.add(nxt)
            heapq.heappush(heap, entry(nxt))


def enumerate_bundles(combinations: Sequence[ZoneCombination], limit: int = 50) -> List[ShippingOptionBundle]:
    """
    每个组合内各组 option 的搭配（best-first，每个组合最多取 limit 个），
    按 (total_cost, 送达上限, id) 排序，截断到 limit。
    """
    seen: Dict[str, ShippingOptionBundle] = {}
    for c in combinations:
        pools = [a.options for a in c.assignments]
        for choice in cheapest_choices(pools, limit):
            b = bundle_from_choice(c, choice)
            prev = seen.get(b.id)
            if prev is None or b.total_cost < prev.total_cost:
                seen[b.id] = b

    out = sorted(seen.values(), key=lambda b: (b.total_cost, b.max_days, b.id))
    if limit and len(out) > limit:
        log.info("bundle enumeration truncated: %s -> %s", len(out), limit)
        out = out[: int(limit)]
    return out
