# cactilia/api/routers/shipping_quote_routes_options.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from cactilia.api.deps import get_rule_repository, get_shipping_policy
from cactilia.api.problem import raise_problem
from cactilia.ports import RuleRepository
from cactilia.services.shipping_quote.normalize import address_from_raw, cart_items_from_raw
from cactilia.services.shipping_quote.policy import ShippingPolicy
from cactilia.services.shipping_quote.service import quote_cart

from cactilia.api.routers.shipping_quote_error_codes import ShippingQuoteErrorCode
from cactilia.api.routers.shipping_quote_helpers import bundle_out, combination_out, issues_out
from cactilia.api.routers.shipping_quote_schemas import QuoteOptionsIn, QuoteOptionsOut


def register(router: APIRouter) -> None:
    @router.post(
        "/shipping-quote/options",
        response_model=QuoteOptionsOut,
        status_code=status.HTTP_200_OK,
    )
    async def shipping_quote_options(
        payload: QuoteOptionsIn,
        repo: RuleRepository = Depends(get_rule_repository),
        policy: ShippingPolicy = Depends(get_shipping_policy),
    ):
        # 形状非法 -> ShippingInputError -> 422（全局 handler）
        items = cart_items_from_raw(payload.items)
        address = address_from_raw(payload.address)

        quote = await quote_cart(repo, items, address, policy=policy, exhaustive=payload.exhaustive)

        if quote.message:
            raise_problem(
                status_code=500,
                error_code=ShippingQuoteErrorCode.FAILED,
                message=quote.message,
            )

        return QuoteOptionsOut(
            ok=quote.ok,
            reason=quote.reason.value if quote.reason else None,
            zone_count=quote.zone_count,
            bundles=[bundle_out(b) for b in quote.bundles],
            combinations=[combination_out(c) for c in quote.combinations],
            unshippable=list(quote.unshippable),
            issues=issues_out(quote.issues),
        )
