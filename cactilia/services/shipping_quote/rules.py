# cactilia/services/shipping_quote/rules.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from .errors import ShippingIssue, ShippingIssueCode
from .types import ShippingRule

if TYPE_CHECKING:
    from cactilia.ports import RuleRepository

log = logging.getLogger("cactilia.shipping.rules")


class RuleCache:
    """
    单次计算内的规则缓存（按 rule id）。

    同一 id 的并发查询共享同一个 in-flight task；计算结束即丢弃，
    不跨请求复用（管理端改了规则后不会读到旧值）。
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, "asyncio.Future[Optional[ShippingRule]]"] = {}

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    async def get(self, repo: "RuleRepository", rule_id: str) -> Optional[ShippingRule]:
        task = self._tasks.get(rule_id)
        if task is None:
            task = asyncio.ensure_future(repo.fetch_by_id(rule_id))
            self._tasks[rule_id] = task
        return await task


@dataclass
class RuleLoad:
    rules: Dict[str, ShippingRule] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)
    issues: List[ShippingIssue] = field(default_factory=list)


def _unique(ids: Iterable[str]) -> List[str]:
    out: List[str] = []
    for rid in ids:
        if rid and rid not in out:
            out.append(rid)
    return out


async def load_rules(
    repo: "RuleRepository",
    rule_ids: Iterable[str],
    cache: Optional[RuleCache] = None,
) -> RuleLoad:
    """
    并发拉取全部 rule id，汇总成 ruleId -> rule。

    查询失败 / 未找到 / 已停用：视为该规则不存在（记 rule_fetch_failure），不重试，不中断整体计算。
    """
    cache = cache if cache is not None else RuleCache()
    ids = _unique(rule_ids)
    out = RuleLoad()
    if not ids:
        return out

    results = await asyncio.gather(*(cache.get(repo, rid) for rid in ids), return_exceptions=True)

    for rid, res in zip(ids, results):
        if isinstance(res, BaseException):
            if isinstance(res, asyncio.CancelledError):
                raise res
            log.warning("failed to fetch shipping rule %s: %s", rid, res)
            out.missing.append(rid)
            out.issues.append(
                ShippingIssue(ShippingIssueCode.RULE_FETCH_FAILURE, f"rule {rid} could not be loaded", rule_id=rid)
            )
            continue
        if res is None:
            log.warning("shipping rule %s not found", rid)
            out.missing.append(rid)
            out.issues.append(ShippingIssue(ShippingIssueCode.RULE_FETCH_FAILURE, f"rule {rid} not found", rule_id=rid))
            continue
        if not res.active:
            log.info("shipping rule %s is inactive; ignored", rid)
            out.missing.append(rid)
            out.issues.append(ShippingIssue(ShippingIssueCode.RULE_FETCH_FAILURE, f"rule {rid} is inactive", rule_id=rid))
            continue
        out.rules[rid] = res

    log.debug("loaded %s/%s shipping rules", len(out.rules), len(ids))
    return out
