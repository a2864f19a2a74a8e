# cactilia/services/shipping_rule_repo.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cactilia.models.shipping_rule import MessagingOptionRow, ShippingRuleRow
from cactilia.services.shipping_quote.matchers import (
    COVERAGE_POSTAL_CODE,
    COVERAGE_POSTAL_RANGE,
    match_coverage,
)
from cactilia.services.shipping_quote.normalize import rule_from_raw
from cactilia.services.shipping_quote.types import Address, MessagingOption, ShippingRule

log = logging.getLogger("cactilia.shipping.repo")


def _covers_postal_code(rule: ShippingRule, postal_code: str) -> bool:
    return match_coverage(rule, Address(postal_code=postal_code)) in (COVERAGE_POSTAL_CODE, COVERAGE_POSTAL_RANGE)


class InMemoryRuleRepository:
    """内存仓库：测试 / 演示用。"""

    def __init__(self, rules: Iterable[ShippingRule] = ()) -> None:
        self._rules: Dict[str, ShippingRule] = {}
        for r in rules:
            self.add(r)

    @classmethod
    def from_raw(cls, raw_rules: Iterable[Mapping[str, Any]]) -> "InMemoryRuleRepository":
        return cls(rule_from_raw(r) for r in raw_rules)

    def add(self, rule: ShippingRule) -> None:
        self._rules[rule.id] = rule

    async def fetch_by_id(self, rule_id: str) -> Optional[ShippingRule]:
        return self._rules.get(rule_id)

    async def fetch_active_zones(self) -> List[ShippingRule]:
        return [r for r in self._rules.values() if r.active]

    async def fetch_zones_matching_postal_code(self, postal_code: str) -> List[ShippingRule]:
        return [r for r in self._rules.values() if r.active and _covers_postal_code(r, postal_code)]


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


def option_from_row(row: MessagingOptionRow) -> MessagingOption:
    return MessagingOption(
        name=row.name,
        label=row.label,
        carrier=row.carrier,
        base_price=row.base_price,
        per_kg_extra_price=float(row.per_kg_extra_price or 0.0),
        max_weight_per_package=row.max_weight_per_package,
        max_items_per_package=row.max_items_per_package,
        min_delivery_days=row.min_delivery_days,
        max_delivery_days=row.max_delivery_days,
        extra_item_base_count=row.extra_item_base_count,
        extra_item_price=float(row.extra_item_price or 0.0),
        id=row.option_key,
    )


def rule_from_row(row: ShippingRuleRow) -> ShippingRule:
    return ShippingRule(
        id=row.id,
        zone_name=row.zone_name or "",
        is_national=bool(row.is_national),
        coverage_type=row.coverage_type,
        postal_codes=tuple(row.postal_codes or ()),
        state_prefixes=tuple(row.state_prefixes or ()),
        messaging_options=tuple(option_from_row(o) for o in row.messaging_options),
        free_shipping=bool(row.free_shipping),
        free_shipping_min_amount=row.free_shipping_min_amount,
        base_price=row.base_price,
        per_kg_extra_price=float(row.per_kg_extra_price or 0.0),
        max_weight_per_package=row.max_weight_per_package,
        max_items_per_package=row.max_items_per_package,
        min_delivery_days=row.min_delivery_days,
        max_delivery_days=row.max_delivery_days,
        rule_ids=tuple(row.rule_ids or ()),
        carrier=row.carrier,
        active=bool(row.active),
    )


def _apply_rule(row: ShippingRuleRow, rule: ShippingRule) -> None:
    row.zone_name = rule.zone_name
    row.is_national = rule.is_national
    row.coverage_type = rule.coverage_type
    row.postal_codes = list(rule.postal_codes)
    row.state_prefixes = list(rule.state_prefixes)
    row.rule_ids = list(rule.rule_ids)
    row.free_shipping = rule.free_shipping
    row.free_shipping_min_amount = rule.free_shipping_min_amount
    row.base_price = rule.base_price
    row.per_kg_extra_price = rule.per_kg_extra_price
    row.max_weight_per_package = rule.max_weight_per_package
    row.max_items_per_package = rule.max_items_per_package
    row.min_delivery_days = rule.min_delivery_days
    row.max_delivery_days = rule.max_delivery_days
    row.carrier = rule.carrier
    row.active = rule.active
    row.messaging_options = [
        MessagingOptionRow(
            position=i,
            option_key=o.id,
            name=o.name,
            label=o.label,
            carrier=o.carrier,
            base_price=o.base_price,
            per_kg_extra_price=o.per_kg_extra_price,
            max_weight_per_package=o.max_weight_per_package,
            max_items_per_package=o.max_items_per_package,
            min_delivery_days=o.min_delivery_days,
            max_delivery_days=o.max_delivery_days,
            extra_item_base_count=o.extra_item_base_count,
            extra_item_price=o.extra_item_price,
        )
        for i, o in enumerate(rule.messaging_options)
    ]


class SqlShippingRuleRepository:
    """
    规则仓库（AsyncSession）。只读查询 + upsert（初始化 / 后台维护用）。

    邮编索引查询：JSON 列不做跨库的包含查询，取启用规则后在内存里按精确邮编 / 区间过滤。
    同一个 AsyncSession 不允许并发操作：上层并发拉取时在这里串行化。
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._lock = asyncio.Lock()

    async def fetch_by_id(self, rule_id: str) -> Optional[ShippingRule]:
        async with self._lock:
            row = await self.session.get(ShippingRuleRow, rule_id)
            return rule_from_row(row) if row is not None else None

    async def fetch_active_zones(self) -> List[ShippingRule]:
        stmt = select(ShippingRuleRow).where(ShippingRuleRow.active.is_(True)).order_by(ShippingRuleRow.id.asc())
        async with self._lock:
            rows = (await self.session.execute(stmt)).scalars().all()
            return [rule_from_row(r) for r in rows]

    async def fetch_zones_matching_postal_code(self, postal_code: str) -> List[ShippingRule]:
        return [r for r in await self.fetch_active_zones() if _covers_postal_code(r, postal_code)]

    async def upsert(self, rule: ShippingRule) -> None:
        async with self._lock:
            row = await self.session.get(ShippingRuleRow, rule.id)
            if row is None:
                row = ShippingRuleRow(id=rule.id)
                self.session.add(row)
            _apply_rule(row, rule)
            await self.session.flush()
        log.info("shipping rule %s saved (%s options)", rule.id, len(rule.messaging_options))
