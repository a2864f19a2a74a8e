# cactilia/api/routers/shipping_quote_routes_groups.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from cactilia.api.deps import get_rule_repository, get_shipping_policy
from cactilia.api.problem import raise_problem
from cactilia.ports import RuleRepository
from cactilia.services.shipping_quote.normalize import address_from_raw, cart_items_from_raw
from cactilia.services.shipping_quote.policy import ShippingPolicy
from cactilia.services.shipping_quote.service import group_cart

from cactilia.api.routers.shipping_quote_error_codes import ShippingQuoteErrorCode
from cactilia.api.routers.shipping_quote_helpers import group_combination_out, group_out, issues_out
from cactilia.api.routers.shipping_quote_schemas import QuoteGroupsIn, QuoteGroupsOut


def register(router: APIRouter) -> None:
    @router.post(
        "/shipping-quote/groups",
        response_model=QuoteGroupsOut,
        status_code=status.HTTP_200_OK,
    )
    async def shipping_quote_groups(
        payload: QuoteGroupsIn,
        repo: RuleRepository = Depends(get_rule_repository),
        policy: ShippingPolicy = Depends(get_shipping_policy),
    ):
        items = cart_items_from_raw(payload.items)
        address = address_from_raw(payload.address) if payload.address else None

        result = await group_cart(repo, items, address, policy=policy)

        if result.message:
            raise_problem(
                status_code=500,
                error_code=ShippingQuoteErrorCode.FAILED,
                message=result.message,
            )

        combos = [group_combination_out(c) for c in result.combinations]
        return QuoteGroupsOut(
            ok=result.ok,
            reason=result.reason.value if result.reason else None,
            groups=[group_out(g) for g in result.groups],
            combinations=[c for c in combos if c is not None],
            recommended=group_combination_out(result.recommended),
            unshippable=list(result.unshippable),
            issues=issues_out(result.issues),
        )
