"""
contract_conduit.api.app

FastAPI app factory for the Contract Conduit back office.

Responsibilities:
- Build the FastAPI application and register routers/middleware.
- Initialize and dispose shared infrastructure (DB engine, HTTP clients, reminder poller).
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from contract_conduit import __version__
from contract_conduit.api.routers.agent import router as agent_router
from contract_conduit.api.routers.cmas import router as cmas_router
from contract_conduit.api.routers.coordinators import router as coordinators_router
from contract_conduit.api.routers.dev_auth import router as dev_auth_router
from contract_conduit.api.routers.health import router as health_router
from contract_conduit.api.routers.notifications import router as notifications_router
from contract_conduit.api.routers.report_templates import router as report_templates_router
from contract_conduit.api.routers.shared import router as shared_router
from contract_conduit.api.routers.transactions import router as transactions_router
from contract_conduit.clients.slack import SlackClient
from contract_conduit.db.init_db import init_db
from contract_conduit.db.session import create_engine, create_sessionmaker
from contract_conduit.observability.logging import configure_logging, get_logger
from contract_conduit.observability.middleware import RequestContextMiddleware
from contract_conduit.services.reminders import ReminderScheduler
from contract_conduit.settings import Settings

log = get_logger(__name__)


def create_app(
    *,
    settings: Settings,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    `http_transport` replaces the network for outbound Slack/email calls (tests use
    `httpx.MockTransport`).
    """

    configure_logging(service_name=settings.service_name, level=settings.log_level, env=settings.env)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        engine = create_engine(settings)
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        if settings.env in ("dev", "test"):
            # Prod uses Alembic migrations.
            await init_db(engine)

        app.state.slack_http = httpx.AsyncClient(
            base_url=settings.slack_api_base_url,
            timeout=settings.http_timeout_seconds,
            transport=http_transport,
        )
        app.state.email_http = httpx.AsyncClient(
            base_url=settings.email_api_base_url,
            timeout=settings.http_timeout_seconds,
            transport=http_transport,
        )

        scheduler = ReminderScheduler(
            settings=settings,
            session_factory=app.state.sessionmaker,
            slack=SlackClient.from_settings(settings, app.state.slack_http),
        )
        app.state.reminder_scheduler = scheduler
        if settings.env == "prod" and not settings.disable_slack_notifications:
            scheduler.start()

        try:
            yield
        finally:
            await scheduler.stop()
            await app.state.slack_http.aclose()
            await app.state.email_http.aclose()
            await engine.dispose()
            log.info("shutdown")

    app = FastAPI(
        title="Contract Conduit",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(dev_auth_router)
    app.include_router(transactions_router)
    app.include_router(coordinators_router)
    app.include_router(cmas_router)
    app.include_router(report_templates_router)
    app.include_router(shared_router)
    app.include_router(agent_router)
    app.include_router(notifications_router)
    return app


# --- Module Notes -----------------------------------------------------------
# App composition stays here; business logic lives in services and the cma package.
