# cactilia/api/routers/shipping_quote_error_codes.py
from __future__ import annotations


class ShippingQuoteErrorCode:
    FAILED = "SHIPPING_QUOTE_FAILED"
