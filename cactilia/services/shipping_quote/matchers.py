# cactilia/services/shipping_quote/matchers.py
from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from .states import STATE_PREFIX, state_abbreviation
from .types import Address, ShippingRule, _s

COVERAGE_NATIONAL = "national"
COVERAGE_POSTAL_CODE = "postal_code"
COVERAGE_POSTAL_RANGE = "postal_range"
COVERAGE_STATE = "state"


def _parse_range(entry: str) -> Optional[Tuple[int, int]]:
    """
    "44100-44999" -> (44100, 44999)；非区间或非数字返回 None。
    """
    if "-" not in entry:
        return None
    start, _, end = entry.partition("-")
    start, end = start.strip(), end.strip()
    if not (start.isdigit() and end.isdigit()):
        return None
    return int(start), int(end)


def _state_entries(rule: ShippingRule) -> Iterable[str]:
    for pc in rule.postal_codes:
        t = str(pc).strip()
        if t.lower().startswith(STATE_PREFIX):
            yield t[len(STATE_PREFIX):]
    for sp in rule.state_prefixes:
        t = str(sp).strip()
        if t.lower().startswith(STATE_PREFIX):
            t = t[len(STATE_PREFIX):]
        if t:
            yield t


def match_coverage(rule: ShippingRule, address: Address) -> Optional[str]:
    """
    规则覆盖判定，返回命中的覆盖类型（用于 reasons 解释），不命中返回 None。

    顺序：
      1) 全国规则（is_national / zone_name / coverage_type / "nacional" 条目）
      2) 邮编精确命中
      3) 邮编闭区间 "start-end"
      4) 州 "estado_<ABBR>"（地址州名先经缩写表归一，大小写不敏感）

    没有任何覆盖数据的规则不视为全覆盖。
    """
    if rule.is_national_rule:
        return COVERAGE_NATIONAL

    pc = _s(address.postal_code)
    entries: List[str] = [str(x).strip() for x in rule.postal_codes if _s(str(x))]

    if pc and pc in entries:
        return COVERAGE_POSTAL_CODE

    if pc and pc.isdigit():
        n = int(pc)
        for e in entries:
            rng = _parse_range(e)
            if rng is None:
                continue
            lo, hi = rng
            if lo <= n <= hi:
                return COVERAGE_POSTAL_RANGE

    abbr = state_abbreviation(address.state)
    if abbr:
        for st in _state_entries(rule):
            if st.upper() == abbr:
                return COVERAGE_STATE

    return None


def is_rule_valid_for_address(rule: ShippingRule, address: Address) -> bool:
    return match_coverage(rule, address) is not None


def filter_rules_for_address(rules: Iterable[ShippingRule], address: Address) -> List[ShippingRule]:
    return [r for r in rules if r.active and is_rule_valid_for_address(r, address)]
