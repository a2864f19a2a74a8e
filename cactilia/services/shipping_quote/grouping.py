# cactilia/services/shipping_quote/grouping.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .bundles import cheapest_choices
from .errors import ShippingIssue, ShippingIssueCode, unshippable
from .options import price_zone_options
from .policy import ShippingPolicy
from .types import CartItem, ShippingRule, ZoneOption
from .zones import product_rule_ids

log = logging.getLogger("cactilia.shipping.grouping")


@dataclass
class ShippingGroup:
    id: str
    rule_id: str
    rule_name: str
    product_ids: List[str]
    items: List[CartItem] = field(default_factory=list)
    is_national: bool = False
    is_free_rule: bool = False
    options: List[ZoneOption] = field(default_factory=list)

    @property
    def cheapest(self) -> Optional[ZoneOption]:
        return self.options[0] if self.options else None


@dataclass
class GroupChoice:
    group_id: str
    rule_id: str
    product_ids: List[str]
    option: ZoneOption


@dataclass
class GroupCombination:
    id: str
    name: str
    choices: List[GroupChoice]
    total_cost: float

    @property
    def is_free_shipping(self) -> bool:
        return all(c.option.is_free for c in self.choices)


@dataclass
class GroupingResult:
    ok: bool
    groups: List[ShippingGroup] = field(default_factory=list)
    combinations: List[GroupCombination] = field(default_factory=list)
    recommended: Optional[GroupCombination] = None
    unshippable: List[str] = field(default_factory=list)
    issues: List[ShippingIssue] = field(default_factory=list)
    reason: Optional[ShippingIssueCode] = None
    message: Optional[str] = None


# (rule_id, product_ids)
_Draft = Tuple[str, List[str]]


def estimated_cost(rule: ShippingRule) -> float:
    """
    粗估：免邮规则 0；否则第一个 messaging option 的基础价，退回 rule.base_price。
    只用于比较分组方案，不是报价。
    """
    if rule.free_shipping:
        return 0.0
    for opt in rule.messaging_options:
        if opt.base_price is not None:
            return float(opt.base_price)
    return float(rule.base_price or 0.0)


def _rule_index(
    product_ids: Sequence[str],
    product_rules: Mapping[str, List[str]],
) -> Dict[str, List[str]]:
    """rule_id -> 使用它的 product_ids（保持商品顺序）。"""
    out: Dict[str, List[str]] = {}
    for pid in product_ids:
        for rid in product_rules.get(pid, []):
            out.setdefault(rid, []).append(pid)
    return out


def _sorted_rules(index: Dict[str, List[str]]) -> List[str]:
    # 覆盖商品数降序；同数保持首次出现顺序（sorted 稳定）
    return sorted(index.keys(), key=lambda rid: -len(index[rid]))


def _take_by_rules(rule_order: Sequence[str], index: Dict[str, List[str]], covered: set) -> List[_Draft]:
    drafts: List[_Draft] = []
    for rid in rule_order:
        available = [pid for pid in index.get(rid, []) if pid not in covered]
        if available:
            drafts.append((rid, available))
            covered.update(available)
    return drafts


def greedy_grouping(
    product_ids: Sequence[str],
    product_rules: Mapping[str, List[str]],
    rules: Mapping[str, ShippingRule],
) -> List[_Draft]:
    """按规则覆盖商品数从多到少，逐条规则吸收尚未分组的商品。"""
    index = _rule_index(product_ids, product_rules)
    return _take_by_rules(_sorted_rules(index), index, set())


def local_first_grouping(
    product_ids: Sequence[str],
    product_rules: Mapping[str, List[str]],
    rules: Mapping[str, ShippingRule],
) -> List[_Draft]:
    """先用非全国规则成组，剩余商品再走全国规则。"""
    index = _rule_index(product_ids, product_rules)
    ordered = _sorted_rules(index)
    local = [rid for rid in ordered if not rules[rid].is_national_rule]
    national = [rid for rid in ordered if rules[rid].is_national_rule]
    return _take_by_rules(local + national, index, set())


def compatibility_matrix(
    product_ids: Sequence[str],
    product_rules: Mapping[str, List[str]],
) -> Dict[str, set]:
    """两个商品共享至少一条规则即兼容（自身总是兼容）。"""
    out: Dict[str, set] = {}
    for a in product_ids:
        ra = set(product_rules.get(a, []))
        out[a] = {b for b in product_ids if b == a or ra & set(product_rules.get(b, []))}
    return out


def _best_seed_rule(
    seed: str,
    remaining: Sequence[str],
    product_rules: Mapping[str, List[str]],
    rules: Mapping[str, ShippingRule],
) -> Optional[str]:
    candidates = product_rules.get(seed, [])
    if not candidates:
        return None

    def key(rid: str) -> Tuple[int, float, int]:
        shared = sum(1 for pid in remaining if rid in product_rules.get(pid, []))
        return (-shared, estimated_cost(rules[rid]), 1 if rules[rid].is_national_rule else 0)

    return min(candidates, key=key)


def max_group_size_grouping(
    product_ids: Sequence[str],
    product_rules: Mapping[str, List[str]],
    rules: Mapping[str, ShippingRule],
) -> List[_Draft]:
    """
    以剩余第一个商品为种子，在与之兼容的商品中挑共享最多的规则成组；
    同数时取粗估更便宜的，再同则 local 优先。
    """
    matrix = compatibility_matrix(product_ids, product_rules)
    remaining = list(product_ids)
    drafts: List[_Draft] = []

    while remaining:
        seed = remaining[0]
        compatible = [pid for pid in remaining if pid in matrix[seed]]
        rid = _best_seed_rule(seed, compatible, product_rules, rules)
        if rid is None:
            # 调用方保证进来的商品至少有一条可用规则
            remaining.remove(seed)
            continue
        members = [pid for pid in compatible if rid in product_rules.get(pid, [])]
        drafts.append((rid, members))
        remaining = [pid for pid in remaining if pid not in members]

    return drafts


STRATEGIES: Tuple[Callable[..., List[_Draft]], ...] = (
    greedy_grouping,
    local_first_grouping,
    max_group_size_grouping,
)


def _concentration(drafts: Sequence[_Draft]) -> int:
    return sum(len(pids) ** 2 for _, pids in drafts)


def _grouping_key(drafts: Sequence[_Draft], rules: Mapping[str, ShippingRule]) -> Tuple[int, float, int]:
    cost = sum(estimated_cost(rules[rid]) for rid, _ in drafts)
    return (len(drafts), cost, -_concentration(drafts))


def choose_grouping(
    product_ids: Sequence[str],
    product_rules: Mapping[str, List[str]],
    rules: Mapping[str, ShippingRule],
) -> List[_Draft]:
    """
    三种策略各出一个方案，取最优：
      1) 组数最少
      2) 粗估成本最低
      3) 集中度（组大小平方和）最高
    """
    if not product_ids:
        return []
    candidates = [s(product_ids, product_rules, rules) for s in STRATEGIES]
    best = min(candidates, key=lambda d: _grouping_key(d, rules))
    log.debug(
        "grouping candidates: %s; picked %s groups",
        [_grouping_key(d, rules) for d in candidates],
        len(best),
    )
    return best


def _free_rule_groups(
    product_ids: Sequence[str],
    product_rules: Mapping[str, List[str]],
    rules: Mapping[str, ShippingRule],
) -> List[_Draft]:
    """
    先隔离免邮：有免邮规则的商品按同一免邮规则成组（每条免邮规则一组）。
    商品挂了多条免邮规则时，选被最多免邮商品共享的那条。
    """
    free_of: Dict[str, List[str]] = {}
    for pid in product_ids:
        free = [rid for rid in product_rules.get(pid, []) if rules[rid].free_shipping]
        if free:
            free_of[pid] = free

    if not free_of:
        return []

    counts: Dict[str, int] = {}
    for rids in free_of.values():
        for rid in rids:
            counts[rid] = counts.get(rid, 0) + 1

    drafts: Dict[str, List[str]] = {}
    for pid in product_ids:
        rids = free_of.get(pid)
        if not rids:
            continue
        rid = max(rids, key=lambda r: counts[r])
        drafts.setdefault(rid, []).append(pid)
    return list(drafts.items())


def _enumerate_combinations(groups: Sequence[ShippingGroup], limit: int) -> List[GroupCombination]:
    priced = [g for g in groups if g.options]
    if not priced:
        return []

    if len(priced) == 1:
        g = priced[0]
        return [
            GroupCombination(
                id=o.id,
                name=f"{o.label} - {g.rule_name}",
                choices=[GroupChoice(g.id, g.rule_id, list(g.product_ids), o)],
                total_cost=o.price,
            )
            for o in g.options
        ][: limit or None]

    name = " + ".join(g.rule_name for g in priced)
    out: List[GroupCombination] = []
    for choice in cheapest_choices([g.options for g in priced], limit):
        out.append(
            GroupCombination(
                id="+".join(o.id for o in choice),
                name=name,
                choices=[GroupChoice(g.id, g.rule_id, list(g.product_ids), o) for g, o in zip(priced, choice)],
                total_cost=sum(o.price for o in choice),
            )
        )
    out.sort(key=lambda c: (c.total_cost, c.id))
    return out


def _recommended(groups: Sequence[ShippingGroup]) -> Optional[GroupCombination]:
    priced = [g for g in groups if g.options]
    if not priced:
        return None
    choices = [GroupChoice(g.id, g.rule_id, list(g.product_ids), g.options[0]) for g in priced]
    return GroupCombination(
        id="recommended",
        name=" + ".join(g.rule_name for g in priced),
        choices=choices,
        total_cost=sum(c.option.price for c in choices),
    )


def group_for_shipping(
    cart_items: Sequence[CartItem],
    rules: Mapping[str, ShippingRule],
    policy: Optional[ShippingPolicy] = None,
    has_rules: Optional[bool] = None,
) -> GroupingResult:
    """
    ShippingGroupOptimizer：
      1) 只保留 rules 中能解析到的 rule id；一条都没有 => unshippable
      2) 免邮商品先按免邮规则隔离成组
      3) 其余商品三策略择优
      4) 兜底：仍未分组的商品单独成组（第一条可用规则）
      5) 每组计算全部 option（价格升序）；组合 = 各组 option 的搭配，
         按总价 best-first 取前 max_option_bundles 个；recommended = 每组最便宜

    has_rules：rules 经地址过滤前是否非空（缺省按 rules 本身判断），决定失败原因是 no_rules
    还是 no_covering_combination。
    """
    policy = policy or ShippingPolicy()
    if has_rules is None:
        has_rules = bool(rules)
    issues: List[ShippingIssue] = []

    declared = product_rule_ids(cart_items)
    product_rules: Dict[str, List[str]] = {}
    excluded: List[str] = []
    for pid, rids in declared.items():
        usable = [rid for rid in rids if rid in rules]
        if usable:
            product_rules[pid] = usable
        else:
            excluded.append(pid)
            issues.append(unshippable(pid, f"product {pid} has no resolvable shipping rule"))

    product_ids = list(product_rules.keys())
    if not product_ids:
        return GroupingResult(
            ok=False,
            unshippable=excluded,
            issues=issues,
            reason=ShippingIssueCode.NO_COVERING_COMBINATION if has_rules else ShippingIssueCode.NO_RULES,
        )

    drafts = _free_rule_groups(product_ids, product_rules, rules)
    grouped = {pid for _, pids in drafts for pid in pids}

    rest = [pid for pid in product_ids if pid not in grouped]
    drafts.extend(choose_grouping(rest, product_rules, rules))
    grouped = {pid for _, pids in drafts for pid in pids}

    for pid in product_ids:
        if pid not in grouped:
            log.warning("product %s left ungrouped; forcing singleton group", pid)
            drafts.append((product_rules[pid][0], [pid]))

    items_by_product: Dict[str, List[CartItem]] = {}
    for it in cart_items:
        items_by_product.setdefault(it.product_id, []).append(it)

    groups: List[ShippingGroup] = []
    for i, (rid, pids) in enumerate(drafts):
        rule = rules[rid]
        items = [it for pid in pids for it in items_by_product.get(pid, [])]
        options, opt_issues = price_zone_options(items, rule, policy)
        issues.extend(opt_issues)
        if not options:
            issues.append(
                ShippingIssue(
                    ShippingIssueCode.MISCONFIGURED_RULE,
                    f"rule {rid} has no usable option for products {pids}",
                    rule_id=rid,
                )
            )
        groups.append(
            ShippingGroup(
                id=f"group-{i}",
                rule_id=rid,
                rule_name=rule.display_name,
                product_ids=list(pids),
                items=items,
                is_national=rule.is_national_rule,
                is_free_rule=rule.free_shipping,
                options=options,
            )
        )

    combinations = _enumerate_combinations(groups, policy.max_option_bundles)
    recommended = _recommended(groups)

    log.info(
        "grouped %s products into %s groups (%s combinations, %s unshippable)",
        len(product_ids),
        len(groups),
        len(combinations),
        len(excluded),
    )
    reason = None
    if recommended is None:
        reason = ShippingIssueCode.NO_COVERING_COMBINATION
    elif not all(g.options for g in groups):
        reason = ShippingIssueCode.MISCONFIGURED_RULE

    return GroupingResult(
        ok=reason is None,
        groups=groups,
        combinations=combinations,
        recommended=recommended,
        unshippable=excluded,
        issues=issues,
        reason=reason,
    )
