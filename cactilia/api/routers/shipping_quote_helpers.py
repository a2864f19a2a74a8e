# cactilia/api/routers/shipping_quote_helpers.py
from __future__ import annotations

from typing import List, Optional

from cactilia.services.shipping_quote.errors import ShippingIssue
from cactilia.services.shipping_quote.grouping import GroupCombination, ShippingGroup
from cactilia.services.shipping_quote.options import delivery_label
from cactilia.services.shipping_quote.types import ShippingOptionBundle, ZoneCombination, ZoneOption

from cactilia.api.routers.shipping_quote_schemas import (
    AssignmentOut,
    BundleOut,
    BundlePackageOut,
    CombinationOut,
    GroupChoiceOut,
    GroupCombinationOut,
    GroupOut,
    IssueOut,
    PackageOut,
    ZoneOptionOut,
)


def issues_out(issues: List[ShippingIssue]) -> List[IssueOut]:
    return [IssueOut(**i.to_dict()) for i in issues]


def option_out(o: ZoneOption) -> ZoneOptionOut:
    return ZoneOptionOut(
        id=o.id,
        zone_id=o.zone_id,
        zone_name=o.zone_name,
        zone_kind=o.zone_kind,
        option_name=o.option_name,
        label=o.label,
        carrier=o.carrier,
        price=o.price,
        is_free=o.is_free,
        free_reason=o.free_reason,
        min_days=o.min_days,
        max_days=o.max_days,
        delivery_estimate=delivery_label(o.min_days, o.max_days),
        used_fallback_price=o.used_fallback_price,
        packages=[
            PackageOut(
                product_ids=list(p.product_ids),
                total_weight=p.total_weight,
                total_item_count=p.total_item_count,
                price=p.price,
                is_free=p.is_free,
                exceeds_limits=p.exceeds_limits,
                reason=p.reason,
            )
            for p in o.packages
        ],
    )


def combination_out(c: ZoneCombination) -> CombinationOut:
    return CombinationOut(
        id=c.id,
        zone_ids=c.zone_ids,
        total_price=c.total_price,
        is_complete=c.is_complete,
        excluded_product_ids=list(c.excluded_product_ids),
        assignments=[
            AssignmentOut(zone_id=a.zone_id, products=list(a.products), options=[option_out(o) for o in a.options])
            for a in c.assignments
        ],
    )


def bundle_out(b: ShippingOptionBundle) -> BundleOut:
    return BundleOut(
        id=b.id,
        label=b.label,
        carrier=b.carrier,
        total_cost=b.total_cost,
        is_free_shipping=b.is_free_shipping,
        delivery_estimate=b.delivery_estimate,
        min_days=b.min_days,
        max_days=b.max_days,
        zone_ids=list(b.zone_ids),
        covered_product_ids=list(b.covered_product_ids),
        packages=[
            BundlePackageOut(
                zone_id=p.zone_id,
                option_name=p.option_name,
                product_ids=list(p.product_ids),
                total_weight=p.total_weight,
                total_item_count=p.total_item_count,
                price=p.price,
                is_free=p.is_free,
            )
            for p in b.packages
        ],
    )


def group_out(g: ShippingGroup) -> GroupOut:
    return GroupOut(
        id=g.id,
        rule_id=g.rule_id,
        rule_name=g.rule_name,
        product_ids=list(g.product_ids),
        is_national=g.is_national,
        is_free_rule=g.is_free_rule,
        options=[option_out(o) for o in g.options],
    )


def group_combination_out(c: Optional[GroupCombination]) -> Optional[GroupCombinationOut]:
    if c is None:
        return None
    return GroupCombinationOut(
        id=c.id,
        name=c.name,
        total_cost=c.total_cost,
        is_free_shipping=c.is_free_shipping,
        choices=[
            GroupChoiceOut(
                group_id=ch.group_id,
                rule_id=ch.rule_id,
                product_ids=list(ch.product_ids),
                option=option_out(ch.option),
            )
            for ch in c.choices
        ],
    )
