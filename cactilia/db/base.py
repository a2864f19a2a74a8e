# cactilia/db/base.py
from __future__ import annotations

import importlib
import logging
import pkgutil
from typing import Iterator, List

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("cactilia.models")


class Base(DeclarativeBase):
    """全局唯一 ORM Base"""

    pass


_INITIALIZED: bool = False  # 防重复初始化


def _iter_model_modules(pkg_name: str = "cactilia.models") -> Iterator[str]:
    """发现 cactilia.models.* 下的模块（排除以下划线开头的内部模块）"""
    pkg = importlib.import_module(pkg_name)
    for _, name, _ in pkgutil.walk_packages(list(getattr(pkg, "__path__", [])), prefix=pkg_name + "."):
        if name.rsplit(".", 1)[-1].startswith("_"):
            continue
        yield name


def init_models(*, force: bool = False) -> None:
    """
    集中导入模型 + 固化关系映射（create_all 之前调用）。
    """
    global _INITIALIZED
    if _INITIALIZED and not force:
        return

    loaded: List[str] = []
    for mod in _iter_model_modules():
        importlib.import_module(mod)
        loaded.append(mod)

    configure_mappers()
    _INITIALIZED = True
    log.info("ORM models initialized & mappers configured (loaded %d modules)", len(loaded))
