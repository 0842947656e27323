"""FastAPI application factory.

Run with `uvicorn mail_mirror.api.main:create_app --factory`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from mail_mirror import __version__
from mail_mirror.api.deps import build_services
from mail_mirror.api.errors import register_error_handlers
from mail_mirror.api.mails import router as mails_router
from mail_mirror.api.outbound import router as outbound_router
from mail_mirror.api.sync import router as sync_router
from mail_mirror.config import Settings, get_settings
from mail_mirror.outbound import MailRelay
from mail_mirror.store import ensure_schema
from mail_mirror.utils import configure_logging

logger = structlog.get_logger()


def create_app(
    settings: Settings | None = None,
    *,
    engine: Engine | None = None,
    provider: Any | None = None,
    relay: MailRelay | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    services = build_services(settings, engine=engine, provider=provider, relay=relay)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Idempotent; existing databases pick up new tables on restart.
        ensure_schema(services.engine)
        logger.info("mail_mirror_started", version=__version__, mailbox=settings.mailbox_address)
        yield
        services.engine.dispose()

    app = FastAPI(title="Mail Mirror", version=__version__, lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(sync_router)
    app.include_router(mails_router)
    app.include_router(outbound_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app
