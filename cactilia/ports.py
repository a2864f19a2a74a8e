# -*- coding: utf-8 -*-
from __future__ import annotations

from typing import List, Optional, Protocol

from cactilia.services.shipping_quote.types import ShippingRule


class RuleRepository(Protocol):
    async def fetch_by_id(self, rule_id: str) -> Optional[ShippingRule]: ...

    async def fetch_active_zones(self) -> List[ShippingRule]: ...

    async def fetch_zones_matching_postal_code(self, postal_code: str) -> List[ShippingRule]: ...
