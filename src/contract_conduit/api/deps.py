"""
contract_conduit.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings and DB sessions.
- Hand out integration clients bound to the app's shared HTTP clients.
- Encapsulate app.state access patterns (engine/sessionmaker/scheduler).
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contract_conduit.clients.email import EmailClient
from contract_conduit.clients.slack import SlackClient
from contract_conduit.services.reminders import ReminderScheduler
from contract_conduit.settings import Settings


def settings_dep(request: Request) -> Settings:
    # The settings instance passed to `create_app`; tests build apps with their own.
    return request.app.state.settings  # type: ignore[attr-defined]


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    # The sessionmaker is created in the lifespan of `contract_conduit.api.app.create_app`.
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # Request-scoped DB session. Routers commit explicitly after a successful change.
    async with session_factory() as session:
        yield session


def slack_client(request: Request, settings: Settings = Depends(settings_dep)) -> SlackClient:
    return SlackClient.from_settings(settings, request.app.state.slack_http)


def email_client(request: Request, settings: Settings = Depends(settings_dep)) -> EmailClient:
    return EmailClient.from_settings(settings, request.app.state.email_http)


def reminder_scheduler(request: Request) -> ReminderScheduler:
    return request.app.state.reminder_scheduler  # type: ignore[attr-defined]
