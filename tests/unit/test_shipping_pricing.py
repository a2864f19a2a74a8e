# tests/unit/test_shipping_pricing.py
from __future__ import annotations

import pytest

from cactilia.services.shipping_quote.combinations import build_combinations
from cactilia.services.shipping_quote.errors import ShippingIssueCode
from cactilia.services.shipping_quote.options import delivery_label, price_zone_options
from cactilia.services.shipping_quote.policy import ShippingPolicy
from cactilia.services.shipping_quote.pricing import FREE_REASON_MIN_AMOUNT, FREE_REASON_RULE, package_limits, price
from cactilia.services.shipping_quote.types import CartItem, MessagingOption, ShippingRule
from cactilia.services.shipping_quote.weight import excess_weight_kg


def _item(pid: str, weight: float, price_: float = 10.0, qty: int = 1) -> CartItem:
    return CartItem(product_id=pid, quantity=qty, unit_price=price_, unit_weight=weight, rule_ids=("r1",))


def _opt(name: str = "std", **kw) -> MessagingOption:
    return MessagingOption(name=name, **kw)


def test_free_rule_is_zero_regardless_of_subtotal():
    rule = ShippingRule(id="r1", free_shipping=True, messaging_options=(_opt(base_price=80.0),))

    for subtotal in (1.0, 5000.0):
        r = price([_item("a", 1, price_=subtotal)], rule.messaging_options[0], rule)
        assert r.price == 0.0
        assert r.is_free is True
        assert r.free_reason == FREE_REASON_RULE


def test_min_amount_free_shipping():
    opt = _opt(base_price=99.0)
    rule = ShippingRule(id="r1", free_shipping_min_amount=500.0, messaging_options=(opt,))

    below = price([_item("a", 1, price_=499.0)], opt, rule)
    assert below.is_free is False
    assert below.price == 99.0

    reached = price([_item("a", 1, price_=250.0, qty=2)], opt, rule)
    assert reached.is_free is True
    assert reached.price == 0.0
    assert reached.free_reason == FREE_REASON_MIN_AMOUNT


def test_overweight_single_item_gets_surcharge():
    opt = _opt(base_price=100.0, per_kg_extra_price=10.0, max_weight_per_package=20.0)
    rule = ShippingRule(id="r1", messaging_options=(opt,))

    r = price([_item("heavy", 25)], opt, rule)
    assert r.exceeds_limits is True
    assert "exceeds" in (r.reason or "")
    assert r.weight_surcharge == pytest.approx(50.0)
    assert r.price == pytest.approx(150.0)


def test_rule_level_per_kg_applies_without_options():
    rule = ShippingRule(id="r1", base_price=100.0, per_kg_extra_price=8.0, max_weight_per_package=20.0)

    r = price([_item("heavy", 25)], None, rule)
    assert r.weight_surcharge == pytest.approx(40.0)
    assert r.price == pytest.approx(140.0)

    opts, issues = price_zone_options([_item("heavy", 25)], rule)
    assert issues == []
    assert len(opts) == 1
    assert len(opts[0].packages) == 1
    assert opts[0].packages[0].exceeds_limits is True
    assert opts[0].price == pytest.approx(140.0)


def test_partial_kg_rounds_up():
    assert excess_weight_kg(20.2, 20.0) == 1.0
    assert excess_weight_kg(25.0, 20.0) == 5.0
    assert excess_weight_kg(19.0, 20.0) == 0.0
    assert excess_weight_kg(19.0, None) == 0.0


def test_extra_items_surcharge():
    opt = _opt(base_price=50.0, extra_item_base_count=2, extra_item_price=5.0)
    rule = ShippingRule(id="r1", messaging_options=(opt,))

    r = price([_item("a", 1, qty=5)], opt, rule)
    assert r.item_surcharge == pytest.approx(15.0)
    assert r.price == pytest.approx(65.0)


def test_price_is_monotonic_in_weight():
    opt = _opt(base_price=60.0, per_kg_extra_price=12.0, max_weight_per_package=5.0)
    rule = ShippingRule(id="r1", messaging_options=(opt,))

    prices = [price([_item("a", w)], opt, rule).price for w in (1, 4, 5, 5.5, 7, 11, 30)]
    assert prices == sorted(prices)


def test_zero_price_is_misconfigured_and_uses_fallback():
    rule = ShippingRule(id="r1", messaging_options=(_opt(),))

    r = price([_item("a", 1)], rule.messaging_options[0], rule)
    assert r.misconfigured is True
    assert r.is_free is False

    opts, issues = price_zone_options([_item("a", 1)], rule, ShippingPolicy(fallback_base_price=200.0))
    assert len(opts) == 1
    assert opts[0].price == 200.0
    assert opts[0].is_free is False
    assert opts[0].used_fallback_price is True
    assert [i.code for i in issues] == [ShippingIssueCode.MISCONFIGURED_RULE]
    assert issues[0].rule_id == "r1"


def test_zone_options_sorted_and_labelled():
    rule = ShippingRule(
        id="zone1",
        zone_name="Local",
        messaging_options=(
            _opt("express", id="exp", base_price=120.0, min_delivery_days=1, max_delivery_days=2, carrier="DHL"),
            _opt("economy", base_price=60.0, min_delivery_days=5, max_delivery_days=8),
        ),
        carrier="Estafeta",
    )
    opts, issues = price_zone_options([_item("a", 1)], rule)

    assert issues == []
    assert [o.option_name for o in opts] == ["economy", "express"]
    assert opts[0].id == "zone1_economy"
    assert opts[0].carrier == "Estafeta"
    assert opts[1].id == "zone1_exp"
    assert opts[1].carrier == "DHL"
    assert (opts[1].min_days, opts[1].max_days) == (1, 2)


def test_group_subtotal_unlocks_free_shipping_for_all_packages():
    opt = _opt(base_price=90.0, max_weight_per_package=10.0)
    rule = ShippingRule(id="r1", free_shipping_min_amount=300.0, messaging_options=(opt,))

    # 两个包裹各自不满额，合计满额 => 整组免邮
    opts, _ = price_zone_options([_item("a", 8, price_=200.0), _item("b", 8, price_=150.0)], rule)
    assert len(opts[0].packages) == 2
    assert opts[0].price == 0.0
    assert opts[0].is_free is True
    assert all(p.is_free for p in opts[0].packages)


def test_delivery_label():
    assert delivery_label(3, 5) == "3-5 business days"
    assert delivery_label(2, 2) == "2 business days"


def test_zero_package_limits_mean_unlimited():
    opt = _opt(base_price=60.0, per_kg_extra_price=10.0, max_weight_per_package=0.0, max_items_per_package=0)
    rule = ShippingRule(id="r1", messaging_options=(opt,))
    items = [_item("A", 1), _item("B", 1)]

    assert package_limits(opt, rule) == (None, None)
    assert excess_weight_kg(5.0, 0.0) == 0.0

    r = price(items, opt, rule)
    assert r.exceeds_limits is False
    assert r.weight_surcharge == 0.0
    assert r.price == 60.0

    opts, issues = price_zone_options(items, rule)
    assert issues == []
    assert len(opts) == 1
    assert len(opts[0].packages) == 1
    assert opts[0].price == 60.0

    res = build_combinations(items, [rule])
    assert res.ok is True
    assert res.combinations[0].total_price == 60.0


def test_zero_option_limit_falls_back_to_rule_limit():
    opt = _opt(base_price=60.0, max_weight_per_package=0.0)
    rule = ShippingRule(id="r1", max_weight_per_package=10.0, messaging_options=(opt,))

    assert package_limits(opt, rule) == (10.0, None)


def test_adding_item_after_min_amount_never_raises_price():
    opt = _opt(base_price=90.0, per_kg_extra_price=15.0, max_weight_per_package=10.0)
    rule = ShippingRule(id="r1", free_shipping_min_amount=300.0, messaging_options=(opt,))

    group = [_item("a", 4, price_=200.0), _item("b", 4, price_=150.0)]
    grown = group + [_item("c", 9, price_=20.0)]

    before = price(group, opt, rule)
    after = price(grown, opt, rule)
    assert before.is_free is True
    assert after.price <= before.price
    assert after.price == 0.0

    # 按组报价（加入 c 后会拆成多包裹）同样不涨价
    opts_before, _ = price_zone_options(group, rule)
    opts_after, _ = price_zone_options(grown, rule)
    assert opts_before[0].price == 0.0
    assert len(opts_after[0].packages) == 2
    assert opts_after[0].price <= opts_before[0].price
    assert opts_after[0].is_free is True
