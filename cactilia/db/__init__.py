# cactilia/db/__init__.py
from __future__ import annotations

from .base import Base, init_models

__all__ = ["Base", "init_models"]
