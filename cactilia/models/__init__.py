# cactilia/models/__init__.py
from __future__ import annotations

from .shipping_rule import MessagingOptionRow, ShippingRuleRow

__all__ = ["MessagingOptionRow", "ShippingRuleRow"]
