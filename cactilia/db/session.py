# cactilia/db/session.py
# 异步会话工厂 + FastAPI 依赖（get_session）
from __future__ import annotations

import logging
import re
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cactilia.core.config import get_settings

from .base import Base, init_models

log = logging.getLogger("cactilia.db")


# ---- DSN 归一：把 async DSN 统一到 psycopg3 与 aiosqlite ----
def normalize_async_dsn(url: str) -> str:
    url = (url or "").strip()
    # 有些环境会把值写成 '"postgresql+psycopg://..."'，剥掉两侧引号
    if len(url) >= 2 and url[0] == url[-1] and url[0] in ("'", '"'):
        url = url[1:-1].strip()
    if not url:
        return "sqlite+aiosqlite:///./cactilia.db"
    # sqlite:/// → sqlite+aiosqlite:///
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite://" + url[len("sqlite:///") - 1 :]
    # postgres/postgresql(+*) → postgresql+psycopg
    if url.startswith("postgresql+asyncpg://") or url.startswith("postgres+asyncpg://"):
        return re.sub(r"^postgres(?:ql)?\+asyncpg://", "postgresql+psycopg://", url)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def make_engine(url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    s = get_settings()
    dsn = normalize_async_dsn(url if url is not None else s.DATABASE_URL)
    return create_async_engine(
        dsn,
        future=True,
        echo=s.SQL_ECHO if echo is None else echo,
        pool_pre_ping=not dsn.startswith("sqlite"),
    )


async_engine: AsyncEngine = make_engine()

AsyncSessionLocal: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---- FastAPI 依赖 ----
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def create_all(engine: AsyncEngine | None = None) -> None:
    """建表（无迁移；开发 / 测试用）。"""
    init_models()
    eng = engine or async_engine
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info("shipping tables ensured on %s", eng.url.render_as_string(hide_password=True))


# ---- 关闭引擎（测试/生命周期） ----
async def close_engines() -> None:
    await async_engine.dispose()
