# cactilia/services/shipping_quote/weight.py
from __future__ import annotations

import math
from typing import Any, Dict, Iterable, Optional

from .types import CartItem

# 超重计费口径：不足 1kg 按 1kg
EXCESS_ROUNDING = {"mode": "ceil", "step_kg": 1.0}


def _round_weight(weight: float, rounding: Optional[Dict[str, Any]]) -> float:
    """
    rounding = {"mode":"ceil","step_kg":1.0}
    """
    if weight < 0:
        return weight
    if not rounding:
        return weight

    mode = str(rounding.get("mode") or "ceil").lower()
    step = float(rounding.get("step_kg") or 1.0)
    if step <= 0:
        step = 1.0

    q = weight / step

    # 浮点误差：5.000000001 不应进位到 6
    q = round(q, 9)

    if mode == "ceil":
        return math.ceil(q) * step
    if mode == "floor":
        return math.floor(q) * step
    if mode == "round":
        return round(q) * step
    return math.ceil(q) * step


def items_weight(items: Iterable[CartItem]) -> float:
    return sum(it.total_weight for it in items)


def items_subtotal(items: Iterable[CartItem]) -> float:
    return sum(it.subtotal for it in items)


def items_count(items: Iterable[CartItem]) -> int:
    return sum(int(it.quantity) for it in items)


def excess_weight_kg(total_weight: float, allowance: Optional[float]) -> float:
    """
    超出 allowance 的计费重量（向上取整到 kg）；无 allowance（None 或 <= 0）或未超返回 0。
    """
    if allowance is None or allowance <= 0 or total_weight <= allowance:
        return 0.0
    return _round_weight(float(total_weight) - float(allowance), EXCESS_ROUNDING)
