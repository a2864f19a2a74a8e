# tests/unit/test_shipping_combinations.py
from __future__ import annotations

import itertools

from cactilia.services.shipping_quote.bundles import cheapest_bundles, cheapest_choices, enumerate_bundles
from cactilia.services.shipping_quote.combinations import (
    assign_products_to_zones,
    build_combinations,
    dedupe_combinations,
    find_zone_combinations,
)
from cactilia.services.shipping_quote.errors import ShippingIssueCode
from cactilia.services.shipping_quote.options import price_zone_options
from cactilia.services.shipping_quote.policy import CancelToken, ShippingPolicy
from cactilia.services.shipping_quote.types import (
    CartItem,
    MessagingOption,
    ShippingRule,
    ZoneAssignment,
    ZoneCombination,
)


def _item(pid: str, weight: float, price: float, *rule_ids: str) -> CartItem:
    return CartItem(product_id=pid, quantity=1, unit_price=price, unit_weight=weight, rule_ids=tuple(rule_ids))


def _national(base: float = 150.0, rid: str = "national") -> ShippingRule:
    return ShippingRule(id=rid, zone_name="Nacional", is_national=True, base_price=base)


def _local(base: float = 40.0, rid: str = "local") -> ShippingRule:
    return ShippingRule(
        id=rid,
        zone_name="Local",
        postal_codes=("01000",),
        base_price=base,
        max_weight_per_package=10.0,
    )


def test_two_zone_combination_when_no_single_zone_covers_cart():
    items = [_item("A", 5, 100, "national"), _item("B", 3, 50, "local")]
    res = build_combinations(items, [_national(), _local()])

    assert res.ok is True
    assert res.zone_count == 2
    assert len(res.combinations) == 1

    combo = res.combinations[0]
    assert combo.is_complete is True
    assert combo.total_price == 190.0
    assert combo.product_zone_map() == {"A": "national", "B": "local"}


def test_single_zone_tier_wins_even_if_two_zones_are_cheaper():
    # A/B 都能走 national（300），两 zone 组合 100+100 更便宜，但单 zone 层优先
    zones = [
        _national(base=300.0),
        ShippingRule(id="za", postal_codes=("01000",), base_price=100.0),
        ShippingRule(id="zb", postal_codes=("01000",), base_price=100.0),
    ]
    items = [_item("A", 1, 10, "national", "za"), _item("B", 1, 10, "national", "zb")]

    res = build_combinations(items, zones)
    assert res.ok is True
    assert res.zone_count == 1
    assert [c.zone_ids for c in res.combinations] == [["national"]]
    assert res.combinations[0].total_price == 300.0


def test_local_preferred_over_national_within_combination():
    zones = [_national(), _local()]
    pz = {"A": {"national"}, "B": {"national", "local"}}

    assignments = assign_products_to_zones(["A", "B"], zones, pz)
    assert {a.zone_id: a.products for a in assignments} == {"national": ["A"], "local": ["B"]}


def test_combinations_sorted_by_price_and_deterministic():
    zones = [
        ShippingRule(id="z1", postal_codes=("01000",), base_price=80.0),
        ShippingRule(id="z2", postal_codes=("01000",), base_price=30.0),
        ShippingRule(id="z3", postal_codes=("01000",), base_price=55.0),
    ]
    items = [_item("A", 1, 10, "z1", "z2", "z3")]

    first = build_combinations(items, zones)
    second = build_combinations(items, zones)

    assert [c.total_price for c in first.combinations] == [30.0, 55.0, 80.0]
    assert [c.id for c in first.combinations] == [c.id for c in second.combinations]
    assert first.combinations[0].id == "combo_z2"


def test_find_zone_combinations_gives_up_beyond_three_zones():
    zones = [ShippingRule(id=f"z{i}", base_price=10.0) for i in range(4)]
    pz = {f"p{i}": {f"z{i}"} for i in range(4)}

    combos, tier = find_zone_combinations(list(pz), pz, zones, max_zones=3)
    assert combos == []
    assert tier == 0

    items = [_item(f"p{i}", 1, 10, f"z{i}") for i in range(4)]
    res = build_combinations(items, zones)
    assert res.ok is False
    assert res.reason == ShippingIssueCode.NO_COVERING_COMBINATION
    assert any(i.code == ShippingIssueCode.NO_COVERING_COMBINATION for i in res.issues)


def test_no_zones_is_no_rules():
    res = build_combinations([_item("A", 1, 10, "national")], [])
    assert res.ok is False
    assert res.reason == ShippingIssueCode.NO_RULES
    assert res.unshippable == ["A"]


def test_rules_filtered_out_by_address_is_not_no_rules():
    res = build_combinations([_item("A", 1, 10, "local")], [], has_rules=True)
    assert res.ok is False
    assert res.reason == ShippingIssueCode.NO_COVERING_COMBINATION
    assert res.unshippable == ["A"]
    assert any(i.code == ShippingIssueCode.NO_COVERING_COMBINATION for i in res.issues)


def test_unshippable_product_is_excluded_and_reported():
    items = [_item("A", 5, 100, "national"), _item("X", 1, 10)]
    res = build_combinations(items, [_national()])

    assert res.ok is True
    assert res.unshippable == ["X"]
    assert [i.product_id for i in res.issues if i.code == ShippingIssueCode.UNSHIPPABLE_PRODUCT] == ["X"]
    assert res.combinations[0].product_zone_map() == {"A": "national"}
    assert res.combinations[0].is_complete is True
    assert res.combinations[0].excluded_product_ids == ["X"]


def test_cancelled_search():
    token = CancelToken()
    token.cancel()

    res = build_combinations([_item("A", 1, 10, "national")], [_national()], cancel=token)
    assert res.ok is False
    assert res.reason == ShippingIssueCode.CANCELLED


def test_zone_cap_from_policy():
    zones = [_national(rid="n1"), _local(rid="l1")]
    items = [_item("A", 1, 10, "n1"), _item("B", 1, 10, "l1")]

    res = build_combinations(items, zones, policy=ShippingPolicy(max_zones_per_combination=1))
    assert res.ok is False
    assert res.reason == ShippingIssueCode.NO_COVERING_COMBINATION


def test_dedupe_keeps_cheapest_mapping():
    a = ZoneCombination(id="x", assignments=[ZoneAssignment("z1", ["A"])], total_price=50.0, is_complete=True)
    b = ZoneCombination(id="y", assignments=[ZoneAssignment("z1", ["A"])], total_price=20.0, is_complete=True)

    out = dedupe_combinations([a, b])
    assert [c.id for c in out] == ["y"]


def test_bundles_cheapest_and_exhaustive():
    local = ShippingRule(
        id="local",
        zone_name="Local",
        postal_codes=("01000",),
        messaging_options=(
            MessagingOption(name="moto", base_price=40.0, min_delivery_days=1, max_delivery_days=1),
            MessagingOption(name="express", base_price=90.0, min_delivery_days=1, max_delivery_days=1),
        ),
    )
    national = ShippingRule(
        id="national",
        is_national=True,
        messaging_options=(
            MessagingOption(name="ground", base_price=150.0, min_delivery_days=3, max_delivery_days=5),
            MessagingOption(name="air", base_price=250.0, min_delivery_days=1, max_delivery_days=2),
        ),
    )
    items = [_item("A", 5, 100, "national"), _item("B", 3, 50, "local")]
    res = build_combinations(items, [national, local])

    cheapest = cheapest_bundles(res.combinations)
    assert len(cheapest) == 1
    b = cheapest[0]
    assert b.total_cost == 190.0
    assert b.id == "national_ground+local_moto"
    assert b.delivery_estimate == "3-5 business days"
    assert sorted(b.covered_product_ids) == ["A", "B"]
    assert b.is_free_shipping is False

    every = enumerate_bundles(res.combinations)
    assert [x.total_cost for x in every] == [190.0, 240.0, 290.0, 340.0]
    assert len({x.id for x in every}) == 4

    assert len(enumerate_bundles(res.combinations, limit=2)) == 2


def test_cheapest_choices_matches_full_sort():
    rules = [
        ShippingRule(
            id=f"z{i}",
            messaging_options=tuple(MessagingOption(f"o{j}", base_price=float(p)) for j, p in enumerate(prices)),
        )
        for i, prices in enumerate([(5, 9, 30), (1, 2, 40), (7, 8, 8)])
    ]
    pools = [price_zone_options([_item("A", 1, 10, r.id)], r)[0] for r in rules]

    full = sorted(sum(o.price for o in combo) for combo in itertools.product(*pools))
    best = [sum(o.price for o in combo) for combo in cheapest_choices(pools, 10)]

    assert best == full[:10]
    assert len(list(cheapest_choices(pools))) == 27
    assert list(cheapest_choices([pools[0], []], 5)) == []
