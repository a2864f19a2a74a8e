# cactilia/api/__init__.py
"""
API package bootstrap.

- 这里不做任何重导出
- 路由聚合由 `cactilia.api.routers.shipping_quote` 管理
"""

__all__ = []
