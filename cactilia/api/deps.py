# cactilia/api/deps.py
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cactilia.db.session import get_session
from cactilia.ports import RuleRepository
from cactilia.services.shipping_quote.policy import ShippingPolicy
from cactilia.services.shipping_rule_repo import SqlShippingRuleRepository


async def get_rule_repository(session: AsyncSession = Depends(get_session)) -> RuleRepository:
    return SqlShippingRuleRepository(session)


def get_shipping_policy() -> ShippingPolicy:
    # 每次请求取一次快照；测试里可 override
    return ShippingPolicy.from_settings()
