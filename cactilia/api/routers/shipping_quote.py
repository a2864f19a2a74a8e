# cactilia/api/routers/shipping_quote.py
from __future__ import annotations

from fastapi import APIRouter

from cactilia.api.routers import shipping_quote_routes_groups
from cactilia.api.routers import shipping_quote_routes_options
from cactilia.api.routers.shipping_quote_schemas import (
    QuoteGroupsIn,
    QuoteGroupsOut,
    QuoteOptionsIn,
    QuoteOptionsOut,
)

router = APIRouter(tags=["shipping-quote"])


def _register_all_routes() -> None:
    shipping_quote_routes_options.register(router)
    shipping_quote_routes_groups.register(router)


_register_all_routes()

__all__ = [
    "router",
    "QuoteOptionsIn",
    "QuoteOptionsOut",
    "QuoteGroupsIn",
    "QuoteGroupsOut",
]
