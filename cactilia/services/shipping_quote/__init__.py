# cactilia/services/shipping_quote/__init__.py
from __future__ import annotations

from .errors import ShippingInputError, ShippingIssue, ShippingIssueCode
from .policy import CancelToken, ShippingPolicy
from .service import ShippingQuote, group_cart, quote_cart
from .types import Address, CartItem, MessagingOption, ShippingOptionBundle, ShippingRule

__all__ = [
    "Address",
    "CancelToken",
    "CartItem",
    "MessagingOption",
    "ShippingInputError",
    "ShippingIssue",
    "ShippingIssueCode",
    "ShippingOptionBundle",
    "ShippingPolicy",
    "ShippingQuote",
    "ShippingRule",
    "group_cart",
    "quote_cart",
]
