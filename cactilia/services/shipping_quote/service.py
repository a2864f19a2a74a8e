# cactilia/services/shipping_quote/service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Tuple

from .bundles import cheapest_bundles, enumerate_bundles
from .combinations import build_combinations
from .errors import ShippingCancelled, ShippingInputError, ShippingIssue, ShippingIssueCode
from .grouping import GroupingResult, group_for_shipping
from .matchers import filter_rules_for_address, is_rule_valid_for_address
from .policy import CancelToken, ShippingPolicy
from .rules import RuleCache, load_rules
from .types import Address, CartItem, ShippingOptionBundle, ShippingRule, ZoneCombination
from .zones import map_products_to_zones, product_rule_ids

if TYPE_CHECKING:
    from cactilia.ports import RuleRepository

log = logging.getLogger("cactilia.shipping")

UNEXPECTED_MESSAGE = "unable to calculate shipping, please retry"


@dataclass
class ShippingQuote:
    ok: bool
    bundles: List[ShippingOptionBundle] = field(default_factory=list)
    combinations: List[ZoneCombination] = field(default_factory=list)
    unshippable: List[str] = field(default_factory=list)
    issues: List[ShippingIssue] = field(default_factory=list)
    reason: Optional[ShippingIssueCode] = None
    message: Optional[str] = None
    zone_count: int = 0


def apply_fallback_policy(items: Sequence[CartItem], policy: ShippingPolicy) -> List[CartItem]:
    """
    显式配置了全国兜底规则时，才给没有规则的商品挂上它；未配置 => 原样返回（后续排除并上报）。
    """
    fid = policy.national_fallback_rule_id
    if not fid:
        return list(items)

    out: List[CartItem] = []
    for it in items:
        if not it.rule_ids:
            log.info("product %s has no shipping rules; using national fallback rule %s", it.product_id, fid)
            it = replace(it, rule_ids=(fid,))
        out.append(it)
    return out


def dedupe_issues(issues: Iterable[ShippingIssue]) -> List[ShippingIssue]:
    seen = set()
    out: List[ShippingIssue] = []
    for i in issues:
        k = (i.code, i.product_id, i.rule_id, i.message)
        if k in seen:
            continue
        seen.add(k)
        out.append(i)
    return out


def _wanted_rule_ids(items: Sequence[CartItem]) -> List[str]:
    out: List[str] = []
    for rids in product_rule_ids(items).values():
        for rid in rids:
            if rid not in out:
                out.append(rid)
    return out


def _merge_zones(*groups: Iterable[ShippingRule]) -> List[ShippingRule]:
    seen = set()
    out: List[ShippingRule] = []
    for zones in groups:
        for z in zones:
            if z.id not in seen:
                seen.add(z.id)
                out.append(z)
    return out


async def zones_for_address(repo: "RuleRepository", address: Address) -> List[ShippingRule]:
    """
    当前地址可用的全部 zone：先走邮编索引查询，再补上全部启用 zone 中匹配该地址的
    （州 / 全国 / 区间无法走邮编索引）。两路结果都用 AddressMatcher 复核。
    """
    by_postal: List[ShippingRule] = []
    if address.postal_code:
        try:
            by_postal = list(await repo.fetch_zones_matching_postal_code(address.postal_code))
        except Exception as e:
            log.warning("postal code zone lookup failed for %s: %s", address.postal_code, e)

    active = list(await repo.fetch_active_zones())
    zones = _merge_zones(filter_rules_for_address(by_postal, address), filter_rules_for_address(active, address))
    log.debug("address %s: %s candidate zones", address.postal_code or address.state or "-", len(zones))
    return zones


async def resolve_zones(
    repo: "RuleRepository",
    items: Sequence[CartItem],
    address: Address,
    cache: Optional[RuleCache] = None,
) -> Tuple[List[ShippingRule], List[ShippingIssue], bool]:
    """
    1) 商品上的 rule id 并发拉取，能直接解析成规则的 -> 按地址过滤后作为 zone
    2) 有 id 解析不到时，走间接层：地址可用 zone 中 rule_ids 包含这些 id 的也算

    第三个返回值：地址过滤前是否有规则解析成功（区分 no_rules 与 no_covering_combination）。
    """
    loaded = await load_rules(repo, _wanted_rule_ids(items), cache)
    direct = [r for r in loaded.rules.values() if is_rule_valid_for_address(r, address)]

    issues = list(loaded.issues)
    indirect: List[ShippingRule] = []
    if loaded.missing:
        try:
            candidates = await zones_for_address(repo, address)
        except Exception as e:
            log.warning("active zone lookup failed: %s", e)
            candidates = []
        missing = set(loaded.missing)
        indirect = [z for z in candidates if missing & set(z.rule_ids)]
        resolved = {rid for z in indirect for rid in z.rule_ids}
        issues = [i for i in issues if i.rule_id not in resolved]

    return _merge_zones(direct, indirect), issues, bool(loaded.rules)


async def quote_cart(
    repo: "RuleRepository",
    items: Sequence[CartItem],
    address: Address,
    policy: Optional[ShippingPolicy] = None,
    cancel: Optional[CancelToken] = None,
    exhaustive: bool = False,
) -> ShippingQuote:
    """
    购物车 + 地址 -> 按价格排序的整单配送方案。

    预期内的失败（不可配送商品、没有规则、凑不齐组合、取消）都以 ok=False + reason 返回；
    输入形状非法抛 ShippingInputError；其他异常记录后返回 UNEXPECTED_MESSAGE。
    """
    policy = policy or ShippingPolicy()
    try:
        items = apply_fallback_policy(items, policy)
        if not items:
            return ShippingQuote(ok=True)

        zones, issues, has_rules = await resolve_zones(repo, items, address, RuleCache())
        if cancel is not None:
            cancel.raise_if_cancelled()

        search = build_combinations(
            items,
            zones,
            product_zones=map_products_to_zones(items, zones),
            policy=policy,
            cancel=cancel,
            has_rules=has_rules,
        )
        issues = dedupe_issues(issues + search.issues)

        if not search.ok:
            log.info("no shipping option for cart: %s", search.reason.value if search.reason else "-")
            return ShippingQuote(
                ok=False,
                combinations=[],
                unshippable=search.unshippable,
                issues=issues,
                reason=search.reason,
                zone_count=search.zone_count,
            )

        if exhaustive:
            bundles = enumerate_bundles(search.combinations, policy.max_option_bundles)
        else:
            bundles = cheapest_bundles(search.combinations)[: policy.max_option_bundles or None]

        return ShippingQuote(
            ok=True,
            bundles=bundles,
            combinations=search.combinations,
            unshippable=search.unshippable,
            issues=issues,
            zone_count=search.zone_count,
        )
    except ShippingInputError:
        raise
    except ShippingCancelled:
        log.info("shipping quote cancelled")
        return ShippingQuote(ok=False, reason=ShippingIssueCode.CANCELLED)
    except Exception:
        log.exception("shipping quote failed")
        return ShippingQuote(ok=False, message=UNEXPECTED_MESSAGE)


async def group_cart(
    repo: "RuleRepository",
    items: Sequence[CartItem],
    address: Optional[Address] = None,
    policy: Optional[ShippingPolicy] = None,
) -> GroupingResult:
    """
    ShippingGroupOptimizer 流程：并发拉取规则 ->（有地址时）按地址过滤 -> 分组 + 组合。
    """
    policy = policy or ShippingPolicy()
    try:
        items = apply_fallback_policy(items, policy)
        if not items:
            return GroupingResult(ok=True)

        loaded = await load_rules(repo, _wanted_rule_ids(items), RuleCache())
        rules: Dict[str, ShippingRule] = dict(loaded.rules)
        if address is not None:
            rules = {rid: r for rid, r in rules.items() if is_rule_valid_for_address(r, address)}

        result = group_for_shipping(items, rules, policy, has_rules=bool(loaded.rules))
        result.issues = dedupe_issues(list(loaded.issues) + result.issues)
        return result
    except ShippingInputError:
        raise
    except Exception:
        log.exception("shipping grouping failed")
        return GroupingResult(ok=False, message=UNEXPECTED_MESSAGE)
