# cactilia/services/shipping_quote/normalize.py
from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .errors import ShippingInputError
from .types import NATIONAL_KEYWORDS, Address, CartItem, MessagingOption, ShippingRule, _s

# 边界层：把持久化 / 历史字段形状一次性转换成规范类型。
# 核心组件只认 CartItem / Address / ShippingRule，不再嗅探字段别名。

_DAYS_RE = re.compile(r"(\d+)\s*(?:-|a|to)\s*(\d+)")


def _pick(d: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in d and d[k] is not None and d[k] != "":
            return d[k]
    return None


def _opt_float(v: Any, field: str) -> Optional[float]:
    if v is None or v == "":
        return None
    if isinstance(v, bool):
        raise ShippingInputError(f"{field} must be a number")
    try:
        return float(v)
    except (TypeError, ValueError):
        raise ShippingInputError(f"{field} must be a number, got {v!r}")


def _opt_int(v: Any, field: str) -> Optional[int]:
    f = _opt_float(v, field)
    return int(f) if f is not None else None


def _as_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "si", "sí")
    return bool(v)


def _id_list(v: Any) -> List[str]:
    """字符串 / 字符串列表 / {id: ...} 对象列表 -> 去空后的 id 列表。"""
    if v is None:
        return []
    if isinstance(v, (str, int)):
        v = [v]
    out: List[str] = []
    if not isinstance(v, Iterable) or isinstance(v, Mapping):
        v = [v]
    for x in v:
        if isinstance(x, Mapping):
            x = x.get("id")
        sid = _s(str(x)) if x is not None else None
        if sid and sid not in out:
            out.append(sid)
    return out


def _str_list(v: Any) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        v = [v]
    out: List[str] = []
    for x in v:
        sx = _s(str(x)) if x is not None else None
        if sx and sx not in out:
            out.append(sx)
    return out


# ---------------------------------------------------------------------------
# cart items
# ---------------------------------------------------------------------------


def cart_item_from_raw(raw: Any) -> CartItem:
    """
    支持两种形状：
      - {"product": {...}, "quantity": 2}
      - 扁平商品 dict（quantity 在同一层）
    """
    if not isinstance(raw, Mapping):
        raise ShippingInputError("cart item must be an object")

    product = raw.get("product") if isinstance(raw.get("product"), Mapping) else raw

    pid = _pick(product, "id", "productId", "product_id") or _pick(raw, "productId", "product_id", "id")
    pid = _s(str(pid)) if pid is not None else None
    if not pid:
        raise ShippingInputError("cart item is missing a product id")

    qty = _opt_int(_pick(raw, "quantity", "qty", "cantidad"), "quantity")
    if qty is None:
        qty = _opt_int(_pick(product, "quantity", "qty", "cantidad"), "quantity")
    if qty is None:
        qty = 1
    if qty <= 0:
        raise ShippingInputError(f"quantity must be positive for product {pid}")

    weight = _opt_float(_pick(product, "unit_weight", "unitWeight", "weight", "peso"), "weight") or 0.0
    price = _opt_float(_pick(product, "unit_price", "unitPrice", "price", "precio"), "price") or 0.0
    if weight < 0 or price < 0:
        raise ShippingInputError(f"weight and price must not be negative for product {pid}")

    rule_ids: List[str] = []
    for key in ("rule_ids", "ruleIds", "shippingRuleIds", "shippingRuleId", "shippingRules"):
        for rid in _id_list(product.get(key)):
            if rid not in rule_ids:
                rule_ids.append(rid)

    name = _pick(product, "name", "nombre")

    return CartItem(
        product_id=pid,
        quantity=qty,
        unit_price=price,
        unit_weight=weight,
        rule_ids=tuple(rule_ids),
        name=str(name) if name is not None else None,
    )


def cart_items_from_raw(raw_items: Any) -> List[CartItem]:
    if raw_items is None:
        return []
    if isinstance(raw_items, (str, bytes, Mapping)) or not isinstance(raw_items, Iterable):
        raise ShippingInputError("cart items must be a list")
    return [cart_item_from_raw(r) for r in raw_items]


# ---------------------------------------------------------------------------
# address
# ---------------------------------------------------------------------------


def address_from_raw(raw: Any) -> Address:
    if raw is None:
        return Address()
    if isinstance(raw, Address):
        return raw
    if not isinstance(raw, Mapping):
        raise ShippingInputError("address must be an object")

    pc = _pick(raw, "postal_code", "postalCode", "zipCode", "zip", "zipcode", "cp")
    state = _pick(raw, "state", "provincia", "estado")
    city = _pick(raw, "city", "ciudad")
    return Address(
        postal_code=_s(str(pc)) if pc is not None else None,
        state=_s(str(state)) if state is not None else None,
        city=_s(str(city)) if city is not None else None,
    )


# ---------------------------------------------------------------------------
# rules
# ---------------------------------------------------------------------------


def _parse_days(text: Any) -> Tuple[Optional[int], Optional[int]]:
    if not isinstance(text, str):
        return None, None
    m = _DAYS_RE.search(text)
    if not m:
        return None, None
    return int(m.group(1)), int(m.group(2))


def messaging_option_from_raw(raw: Any, index: int = 0) -> MessagingOption:
    if not isinstance(raw, Mapping):
        raise ShippingInputError("messaging option must be an object")

    pkg = raw.get("configuracion_paquetes") if isinstance(raw.get("configuracion_paquetes"), Mapping) else {}
    extra = raw.get("producto_extra") if isinstance(raw.get("producto_extra"), Mapping) else {}

    name = _pick(raw, "name", "nombre") or f"option-{index + 1}"

    mn = _opt_int(_pick(raw, "min_delivery_days", "minDeliveryDays", "minDays", "tiempo_minimo"), "min_delivery_days")
    mx = _opt_int(_pick(raw, "max_delivery_days", "maxDeliveryDays", "maxDays", "tiempo_maximo"), "max_delivery_days")
    if mn is None and mx is None:
        mn, mx = _parse_days(raw.get("tiempo_entrega"))

    return MessagingOption(
        name=str(name),
        label=_pick(raw, "label"),
        carrier=_pick(raw, "carrier", "transportista"),
        base_price=_opt_float(_pick(raw, "base_price", "basePrice", "precio", "costo_base"), "base_price"),
        per_kg_extra_price=_opt_float(
            _pick(raw, "per_kg_extra_price", "perKgExtraPrice", "costo_por_kg_extra") or _pick(pkg, "costo_por_kg_extra"),
            "per_kg_extra_price",
        )
        or 0.0,
        max_weight_per_package=_opt_float(
            _pick(raw, "max_weight_per_package", "maxWeightPerPackage") or _pick(pkg, "peso_maximo_paquete"),
            "max_weight_per_package",
        ),
        max_items_per_package=_opt_int(
            _pick(raw, "max_items_per_package", "maxItemsPerPackage") or _pick(pkg, "maximo_productos_por_paquete"),
            "max_items_per_package",
        ),
        min_delivery_days=mn,
        max_delivery_days=mx,
        extra_item_base_count=_opt_int(
            _pick(raw, "extra_item_base_count", "extraItemBaseCount") or _pick(extra, "cantidad_base"),
            "extra_item_base_count",
        ),
        extra_item_price=_opt_float(
            _pick(raw, "extra_item_price", "extraItemPrice", "costo_por_producto_extra")
            or _pick(extra, "costo_por_producto")
            or _pick(pkg, "costo_por_producto_extra"),
            "extra_item_price",
        )
        or 0.0,
        id=_pick(raw, "id"),
    )


def _postal_entries(raw: Mapping[str, Any]) -> List[str]:
    out: List[str] = []
    for key in ("postal_codes", "postalCodes", "zipcodes", "codigos_postales", "zipcode"):
        for pc in _str_list(raw.get(key)):
            if pc not in out:
                out.append(pc)

    ranges = raw.get("rangos_postales") or []
    if isinstance(ranges, Iterable) and not isinstance(ranges, (str, Mapping)):
        for r in ranges:
            if isinstance(r, Mapping):
                lo, hi = _pick(r, "desde", "inicio", "start"), _pick(r, "hasta", "fin", "end")
                if lo is not None and hi is not None:
                    out.append(f"{lo}-{hi}")
            elif r:
                out.append(str(r).strip())

    lo, hi = raw.get("codigo_postal_desde"), raw.get("codigo_postal_hasta")
    if _s(str(lo) if lo is not None else None) and _s(str(hi) if hi is not None else None):
        out.append(f"{str(lo).strip()}-{str(hi).strip()}")
    return out


def rule_from_raw(raw: Any) -> ShippingRule:
    """
    规范字段优先，兼容历史西语字段（zona / envio_gratis / envio_variable.opciones_mensajeria ...）。
    """
    if not isinstance(raw, Mapping):
        raise ShippingInputError("shipping rule must be an object")

    rid = _pick(raw, "id", "rule_id", "ruleId")
    if rid is None or not _s(str(rid)):
        raise ShippingInputError("shipping rule is missing an id")
    rid = str(rid).strip()

    variable = raw.get("envio_variable") if isinstance(raw.get("envio_variable"), Mapping) else {}

    raw_options: List[Any] = []
    for key in ("messaging_options", "messagingOptions", "opciones_mensajeria"):
        v = raw.get(key)
        if isinstance(v, list):
            raw_options.extend(v)
    if _as_bool(variable.get("aplica", True)) and isinstance(variable.get("opciones_mensajeria"), list):
        raw_options.extend(variable["opciones_mensajeria"])
    options = tuple(messaging_option_from_raw(o, i) for i, o in enumerate(raw_options) if isinstance(o, Mapping))

    coverage = _pick(raw, "coverage_type", "coverageType", "cobertura", "ambito", "tipo")
    is_national = _as_bool(_pick(raw, "is_national", "isNational") or False)
    if str(coverage or "").strip().lower() in NATIONAL_KEYWORDS:
        is_national = True

    min_amount = _pick(raw, "free_shipping_min_amount", "freeShippingMinAmount", "envio_gratis_monto_minimo")
    if min_amount is None:
        min_amount = _pick(variable, "envio_gratis_monto_minimo")

    active = _pick(raw, "active", "activo")
    status = str(raw.get("status") or "").strip().lower()

    return ShippingRule(
        id=rid,
        zone_name=str(_pick(raw, "zone_name", "zoneName", "zona", "nombre") or ""),
        is_national=is_national,
        coverage_type=str(coverage) if coverage is not None else None,
        postal_codes=tuple(_postal_entries(raw)),
        state_prefixes=tuple(_str_list(_pick(raw, "state_prefixes", "statePrefixes", "estados"))),
        messaging_options=options,
        free_shipping=_as_bool(_pick(raw, "free_shipping", "freeShipping", "envio_gratis") or False),
        free_shipping_min_amount=_opt_float(min_amount, "free_shipping_min_amount"),
        base_price=_opt_float(_pick(raw, "base_price", "basePrice", "precio_base"), "base_price"),
        per_kg_extra_price=_opt_float(
            _pick(raw, "per_kg_extra_price", "perKgExtraPrice", "costo_por_kg_extra"), "per_kg_extra_price"
        )
        or 0.0,
        max_weight_per_package=_opt_float(
            _pick(raw, "max_weight_per_package", "maxWeightPerPackage", "peso_maximo_paquete"),
            "max_weight_per_package",
        ),
        max_items_per_package=_opt_int(
            _pick(raw, "max_items_per_package", "maxItemsPerPackage", "maximo_productos_por_paquete"),
            "max_items_per_package",
        ),
        min_delivery_days=_opt_int(_pick(raw, "min_delivery_days", "minDeliveryDays", "tiempo_minimo"), "min_delivery_days"),
        max_delivery_days=_opt_int(_pick(raw, "max_delivery_days", "maxDeliveryDays", "tiempo_maximo"), "max_delivery_days"),
        rule_ids=tuple(_id_list(_pick(raw, "rule_ids", "ruleIds", "reglas"))),
        carrier=_pick(raw, "carrier", "transportista"),
        active=(_as_bool(active) if active is not None else True) and status not in ("inactive", "inactivo"),
    )
