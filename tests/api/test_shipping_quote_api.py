# tests/api/test_shipping_quote_api.py
from __future__ import annotations

from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from cactilia.api.deps import get_rule_repository, get_shipping_policy
from cactilia.main import app
from cactilia.services.shipping_quote import ShippingPolicy
from cactilia.services.shipping_quote.service import UNEXPECTED_MESSAGE, ShippingQuote
from cactilia.services.shipping_rule_repo import InMemoryRuleRepository

RAW_RULES: List[Dict[str, Any]] = [
    {"id": "national", "zona": "Nacional", "cobertura": "nacional", "precio_base": 150},
    {
        "id": "local",
        "zona": "Local",
        "zipcodes": ["01000"],
        "precio_base": 40,
        "peso_maximo_paquete": 10,
        "envio_variable": {
            "aplica": True,
            "opciones_mensajeria": [
                {"nombre": "Moto", "precio": 40, "tiempo_entrega": "1-2 dias"},
                {"nombre": "Express", "precio": 70, "tiempo_entrega": "1-1 dias"},
            ],
        },
    },
    {"id": "regalo", "zona": "Promo", "cobertura": "nacional", "envio_gratis": True},
]


def _cart() -> List[Dict[str, Any]]:
    return [
        {"product": {"id": "A", "weight": 5, "price": 100, "shippingRuleIds": ["national"]}, "quantity": 1},
        {"product": {"id": "B", "weight": 3, "price": 50, "shippingRuleIds": ["local"]}, "quantity": 1},
    ]


@pytest.fixture
def client():
    repo = InMemoryRuleRepository.from_raw(RAW_RULES)
    app.dependency_overrides[get_rule_repository] = lambda: repo
    app.dependency_overrides[get_shipping_policy] = lambda: ShippingPolicy()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_healthz(client: TestClient) -> None:
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_options_two_zone_cart(client: TestClient) -> None:
    r = client.post("/shipping-quote/options", json={"address": {"zipCode": "01000"}, "items": _cart()})
    assert r.status_code == 200, r.text
    body = r.json()

    assert body["ok"] is True
    assert body["zone_count"] == 2
    assert body["unshippable"] == []

    best = body["bundles"][0]
    assert best["total_cost"] == 190.0
    assert best["zone_ids"] == ["national", "local"]
    assert sorted(best["covered_product_ids"]) == ["A", "B"]
    assert best["delivery_estimate"] == "3-7 business days"

    combo = body["combinations"][0]
    assert combo["is_complete"] is True
    assert combo["excluded_product_ids"] == []
    assert [a["products"] for a in combo["assignments"]] == [["A"], ["B"]]
    local_options = combo["assignments"][1]["options"]
    assert [o["option_name"] for o in local_options] == ["Moto", "Express"]


def test_options_exhaustive(client: TestClient) -> None:
    r = client.post(
        "/shipping-quote/options",
        json={"address": {"zipCode": "01000"}, "items": _cart(), "exhaustive": True},
    )
    assert r.status_code == 200, r.text
    assert [b["total_cost"] for b in r.json()["bundles"]] == [190.0, 220.0]


def test_options_unshippable_reported(client: TestClient) -> None:
    r = client.post("/shipping-quote/options", json={"address": {"zipCode": "64000"}, "items": _cart()})
    assert r.status_code == 200, r.text
    body = r.json()

    assert body["ok"] is True
    assert body["unshippable"] == ["B"]
    assert any(i["code"] == "unshippable_product" and i["product_id"] == "B" for i in body["issues"])
    assert body["combinations"][0]["is_complete"] is True
    assert body["combinations"][0]["excluded_product_ids"] == ["B"]


def test_options_no_rules(client: TestClient) -> None:
    items = [{"id": "X", "weight": 1, "price": 10}]
    r = client.post("/shipping-quote/options", json={"address": {"zipCode": "01000"}, "items": items})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["ok"] is False
    assert body["reason"] == "no_rules"
    assert body["bundles"] == []


def test_options_missing_product_id_is_422(client: TestClient) -> None:
    r = client.post("/shipping-quote/options", json={"address": {}, "items": [{"quantity": 2}]})
    assert r.status_code == 422
    body = r.json()
    assert body["error_code"] == "SHIPPING_INPUT_INVALID"
    assert body["http_status"] == 422
    assert "product id" in body["message"]


def test_options_bad_body_is_request_validation_error(client: TestClient) -> None:
    r = client.post("/shipping-quote/options", json={"items": "A"})
    assert r.status_code == 422
    assert r.json()["error_code"] == "request_validation_error"


def test_options_unexpected_failure_is_500(client: TestClient, mocker) -> None:
    mocker.patch(
        "cactilia.api.routers.shipping_quote_routes_options.quote_cart",
        return_value=ShippingQuote(ok=False, message=UNEXPECTED_MESSAGE),
    )
    r = client.post("/shipping-quote/options", json={"address": {"zipCode": "01000"}, "items": _cart()})
    assert r.status_code == 500
    body = r.json()
    assert body["error_code"] == "SHIPPING_QUOTE_FAILED"
    assert body["message"] == UNEXPECTED_MESSAGE


def test_groups_free_rule_isolated(client: TestClient) -> None:
    items = [
        {"id": "A", "weight": 1, "price": 100, "shippingRuleIds": ["regalo", "national"]},
        {"id": "B", "weight": 1, "price": 100, "shippingRuleIds": ["national"]},
    ]
    r = client.post("/shipping-quote/groups", json={"items": items})
    assert r.status_code == 200, r.text
    body = r.json()

    assert body["ok"] is True
    by_rule = {g["rule_id"]: g for g in body["groups"]}
    assert by_rule["regalo"]["product_ids"] == ["A"]
    assert by_rule["regalo"]["is_free_rule"] is True
    assert by_rule["national"]["product_ids"] == ["B"]

    rec = body["recommended"]
    assert rec["id"] == "recommended"
    assert rec["total_cost"] == 150.0
    assert rec["is_free_shipping"] is False


def test_groups_with_address(client: TestClient) -> None:
    r = client.post("/shipping-quote/groups", json={"address": {"cp": "64000"}, "items": _cart()})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["unshippable"] == ["B"]
    assert [g["rule_id"] for g in body["groups"]] == ["national"]
