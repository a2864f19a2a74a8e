# cactilia/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cactilia.api.routers.shipping_quote import router as shipping_quote_router
from cactilia.core.config import get_settings
from cactilia.core.logging import setup_logging
from cactilia.db.session import close_engines, create_all
from cactilia.http_problem_handlers import register_exception_handlers

settings = get_settings()
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger("cactilia")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # 无迁移：启动时确保规则表存在
    await create_all()
    logger.info("cactilia shipping service started (env=%s)", settings.ENV)
    yield
    await close_engines()


app = FastAPI(
    title="Cactilia Shipping",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(shipping_quote_router)


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
