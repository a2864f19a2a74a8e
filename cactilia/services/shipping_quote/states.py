# cactilia/services/shipping_quote/states.py
from __future__ import annotations

import unicodedata
from typing import Dict, Optional

STATE_PREFIX = "estado_"

# 州名 -> 标准缩写
STATE_ABBREVIATIONS: Dict[str, str] = {
    "Aguascalientes": "AGU",
    "Baja California": "BCN",
    "Baja California Norte": "BCN",
    "Baja California Sur": "BCS",
    "Campeche": "CAM",
    "Chiapas": "CHP",
    "Chihuahua": "CHH",
    "Ciudad de México": "CMX",
    "CDMX": "CMX",
    "Distrito Federal": "CMX",
    "Coahuila": "COA",
    "Coahuila de Zaragoza": "COA",
    "Colima": "COL",
    "Durango": "DUR",
    "Guanajuato": "GUA",
    "Guerrero": "GRO",
    "Hidalgo": "HID",
    "Jalisco": "JAL",
    "Estado de México": "MEX",
    "México": "MEX",
    "Michoacán": "MIC",
    "Michoacán de Ocampo": "MIC",
    "Morelos": "MOR",
    "Nayarit": "NAY",
    "Nuevo León": "NLE",
    "Oaxaca": "OAX",
    "Puebla": "PUE",
    "Querétaro": "QUE",
    "Quintana Roo": "ROO",
    "San Luis Potosí": "SLP",
    "Sinaloa": "SIN",
    "Sonora": "SON",
    "Tabasco": "TAB",
    "Tamaulipas": "TAM",
    "Tlaxcala": "TLA",
    "Veracruz": "VER",
    "Veracruz de Ignacio de la Llave": "VER",
    "Yucatán": "YUC",
    "Zacatecas": "ZAC",
}


def _fold(s: str) -> str:
    # 去重音 + 小写，"Querétaro" / "queretaro" 视为同名
    nk = unicodedata.normalize("NFKD", s)
    return "".join(ch for ch in nk if not unicodedata.combining(ch)).strip().lower()


_BY_FOLDED_NAME: Dict[str, str] = {_fold(k): v for k, v in STATE_ABBREVIATIONS.items()}
_ABBRS = frozenset(STATE_ABBREVIATIONS.values())


def state_abbreviation(state: Optional[str]) -> Optional[str]:
    """
    州名或缩写 -> 标准缩写；未知返回 None。
    """
    if not state:
        return None
    raw = str(state).strip()
    if not raw:
        return None
    if raw.upper() in _ABBRS:
        return raw.upper()
    return _BY_FOLDED_NAME.get(_fold(raw))


def state_identifier(state: Optional[str]) -> Optional[str]:
    abbr = state_abbreviation(state)
    if not abbr:
        return None
    return f"{STATE_PREFIX}{abbr}"
