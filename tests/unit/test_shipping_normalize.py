# tests/unit/test_shipping_normalize.py
from __future__ import annotations

import pytest

from cactilia.services.shipping_quote.errors import ShippingInputError
from cactilia.services.shipping_quote.normalize import (
    address_from_raw,
    cart_item_from_raw,
    cart_items_from_raw,
    messaging_option_from_raw,
    rule_from_raw,
)
from cactilia.services.shipping_quote.types import Address


def test_cart_item_nested_and_flat_shapes():
    nested = cart_item_from_raw(
        {
            "product": {"id": "p1", "weight": "2.5", "price": 100, "shippingRuleIds": ["r1", "r2"]},
            "quantity": 3,
        }
    )
    assert nested.product_id == "p1"
    assert nested.quantity == 3
    assert nested.unit_weight == 2.5
    assert nested.unit_price == 100.0
    assert nested.rule_ids == ("r1", "r2")

    flat = cart_item_from_raw({"productId": "p2", "qty": 2, "peso": 1, "precio": 5, "shippingRuleId": "r9"})
    assert flat.product_id == "p2"
    assert flat.quantity == 2
    assert flat.rule_ids == ("r9",)

    objs = cart_item_from_raw({"id": "p3", "shippingRules": [{"id": "r1"}, {"id": "r1"}, {"id": "r4"}]})
    assert objs.quantity == 1
    assert objs.rule_ids == ("r1", "r4")


@pytest.mark.parametrize(
    "raw",
    [
        {"quantity": 1},
        {"id": "p1", "quantity": 0},
        {"id": "p1", "weight": "heavy"},
        {"id": "p1", "price": -1},
        {"id": "p1", "quantity": True},
        "p1",
    ],
)
def test_cart_item_invalid_shapes(raw):
    with pytest.raises(ShippingInputError):
        cart_item_from_raw(raw)


def test_cart_items_must_be_list():
    assert cart_items_from_raw(None) == []
    with pytest.raises(ShippingInputError):
        cart_items_from_raw({"id": "p1"})


def test_address_aliases():
    assert address_from_raw({"zipCode": "01000", "estado": "Jalisco"}) == Address(postal_code="01000", state="Jalisco")
    assert address_from_raw({"cp": 44100, "ciudad": "Guadalajara"}).postal_code == "44100"
    assert address_from_raw(None) == Address()
    with pytest.raises(ShippingInputError):
        address_from_raw(["01000"])


def test_messaging_option_legacy_fields():
    opt = messaging_option_from_raw(
        {
            "nombre": "Estafeta Express",
            "precio": "120",
            "tiempo_entrega": "1-3 dias",
            "configuracion_paquetes": {"peso_maximo_paquete": 10, "costo_por_kg_extra": 15},
            "producto_extra": {"cantidad_base": 3, "costo_por_producto": 10},
        }
    )
    assert opt.name == "Estafeta Express"
    assert opt.base_price == 120.0
    assert (opt.min_delivery_days, opt.max_delivery_days) == (1, 3)
    assert opt.max_weight_per_package == 10.0
    assert opt.per_kg_extra_price == 15.0
    assert opt.extra_item_base_count == 3
    assert opt.extra_item_price == 10.0

    assert messaging_option_from_raw({}, 1).name == "option-2"


def test_rule_legacy_shape():
    rule = rule_from_raw(
        {
            "id": "r-local",
            "zona": "Local",
            "zipcodes": ["01000", "01010"],
            "rangos_postales": [{"desde": "44100", "hasta": "44999"}],
            "envio_gratis": False,
            "envio_variable": {
                "aplica": True,
                "envio_gratis_monto_minimo": 999,
                "opciones_mensajeria": [{"nombre": "Moto", "precio": 40}],
            },
            "activo": True,
        }
    )
    assert rule.zone_name == "Local"
    assert rule.postal_codes == ("01000", "01010", "44100-44999")
    assert rule.free_shipping_min_amount == 999.0
    assert [o.name for o in rule.messaging_options] == ["Moto"]
    assert rule.active is True
    assert rule.is_national_rule is False


def test_rule_national_and_inactive_flags():
    nat = rule_from_raw({"id": "r-nat", "cobertura": "nacional", "precio_base": 150})
    assert nat.is_national is True
    assert nat.base_price == 150.0

    off = rule_from_raw({"id": "r-off", "status": "inactivo"})
    assert off.active is False

    skipped = rule_from_raw({"id": "r-x", "envio_variable": {"aplica": False, "opciones_mensajeria": [{"nombre": "A"}]}})
    assert skipped.messaging_options == ()

    with pytest.raises(ShippingInputError):
        rule_from_raw({"zona": "Local"})
