# cactilia/services/shipping_quote/packaging.py
from __future__ import annotations

import math
from typing import List, Optional, Sequence

from .types import CartItem, Package


def _limit(v: Optional[float]) -> float:
    if v is None:
        return math.inf
    f = float(v)
    return f if f > 0 else math.inf


def pack(
    items: Sequence[CartItem],
    max_weight: Optional[float] = None,
    max_count: Optional[int] = None,
) -> List[Package]:
    """
    贪心装箱：
    - 按单件重量降序（同重保持原顺序），重的先装
    - 顺序累加，超出 max_weight / max_count 就封箱开新箱
    - 单行自身已超限：独立成包（exceeds_limits=True），不拒收、不拆分
    - 不丢行、不重复
    """
    if not items:
        return []

    mw = _limit(max_weight)
    mc = _limit(max_count)

    ordered = sorted(items, key=lambda it: -float(it.unit_weight))

    packages: List[Package] = []
    cur: Optional[Package] = None

    for it in ordered:
        w = it.total_weight
        q = int(it.quantity)

        if cur is not None and cur.items:
            if cur.total_weight + w > mw or cur.total_item_count + q > mc:
                packages.append(cur)
                cur = None

        if cur is None:
            cur = Package(items=[])

        cur.items.append(it)
        cur.total_weight += w
        cur.total_item_count += q
        if cur.total_weight > mw or cur.total_item_count > mc:
            cur.exceeds_limits = True

    if cur is not None and cur.items:
        packages.append(cur)

    return packages
