"""
tests.conftest

Shared fixtures: an app on a throwaway SQLite file with Slack and email served by
an in-process fake, plus bearer-token helpers.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from datetime import timedelta

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contract_conduit.api.app import create_app
from contract_conduit.auth.jwt import JwtConfig, issue_token
from contract_conduit.auth.models import AGENT_ROLE
from contract_conduit.clients.slack import SlackClient
from contract_conduit.db.init_db import init_db
from contract_conduit.db.session import create_engine, create_sessionmaker
from contract_conduit.settings import Settings

SLACK_BASE_URL = "https://slack.test/api"
EMAIL_BASE_URL = "https://email.test"


class FakeUpstreams:
    """
    Answers Slack Web API and email API calls and records every request.
    Set `slack_errors[method] = "error_code"` to make a Slack method fail.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.slack_errors: dict[str, str] = {}
        self.email_status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "slack.test":
            return self._slack(request)
        if request.url.host == "email.test":
            if self.email_status >= 400:
                return httpx.Response(self.email_status, json={"message": "rejected"})
            return httpx.Response(200, json={"id": "email_123"})
        return httpx.Response(404)

    def _slack(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        if method in self.slack_errors:
            return httpx.Response(200, json={"ok": False, "error": self.slack_errors[method]})
        body = json.loads(request.content or b"{}")
        if method == "conversations.create":
            return httpx.Response(
                200, json={"ok": True, "channel": {"id": "C0NEW", "name": body["name"]}}
            )
        if method == "chat.postMessage":
            return httpx.Response(200, json={"ok": True, "ts": "1700000000.000100"})
        if method == "users.lookupByEmail":
            return httpx.Response(200, json={"ok": True, "user": {"id": "U0FOUND"}})
        return httpx.Response(200, json={"ok": True})

    def slack_calls(self, method: str | None = None) -> list[dict]:
        calls = []
        for request in self.requests:
            if request.url.host != "slack.test":
                continue
            name = request.url.path.rsplit("/", 1)[-1]
            if method is None or name == method:
                calls.append({"method": name, **json.loads(request.content or b"{}")})
        return calls

    def email_calls(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.host == "email.test"]


@pytest.fixture
def upstreams() -> FakeUpstreams:
    return FakeUpstreams()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'conduit-test.db'}",
        jwt_secret="test-secret",
        slack_bot_token="xoxb-test",
        slack_api_base_url=SLACK_BASE_URL,
        email_api_key="re_test",
        email_api_base_url=EMAIL_BASE_URL,
        public_base_url="https://conduit.test",
    )


@pytest_asyncio.fixture
async def app(settings: Settings, upstreams: FakeUpstreams) -> AsyncIterator[FastAPI]:
    app = create_app(settings=settings, http_transport=httpx.MockTransport(upstreams))
    # httpx ASGITransport does not run lifespan events; drive them explicitly.
    async with app.router.lifespan_context(app):
        yield app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def auth(settings: Settings) -> Callable[..., dict[str, str]]:
    def _headers(
        subject: str = "agent-1", *roles: str, email: str | None = None
    ) -> dict[str, str]:
        token = issue_token(
            cfg=JwtConfig.from_settings(settings),
            subject=subject,
            roles=list(roles or (AGENT_ROLE,)),
            email=email,
            ttl=timedelta(minutes=5),
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def session_factory(settings: Settings) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = create_engine(settings)
    await init_db(engine)
    try:
        yield create_sessionmaker(engine)
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def slack(upstreams: FakeUpstreams) -> AsyncIterator[SlackClient]:
    async with httpx.AsyncClient(
        base_url=SLACK_BASE_URL, transport=httpx.MockTransport(upstreams)
    ) as http:
        yield SlackClient(token="xoxb-test", http=http)
