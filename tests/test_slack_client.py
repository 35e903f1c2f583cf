"""
tests.test_slack_client

Slack client behaviour against the fake Web API in `conftest.FakeUpstreams`.
"""

from __future__ import annotations

import httpx
import pytest

from contract_conduit.clients.slack import (
    SlackApiError,
    SlackClient,
    SlackNotConfiguredError,
    clean_channel_name,
)


def test_clean_channel_name() -> None:
    assert clean_channel_name("123 Main St., Austin!  TX") == "123-main-st-austin-tx"
    assert len(clean_channel_name("x" * 200)) == 80


@pytest.mark.asyncio
async def test_create_channel_sends_bearer_token(slack: SlackClient, upstreams) -> None:
    channel = await slack.create_channel("Buy 12 Oak Ln")

    assert channel == {"id": "C0NEW", "name": "buy-12-oak-ln"}
    request = upstreams.requests[-1]
    assert request.url.path == "/api/conversations.create"
    assert request.headers["Authorization"] == "Bearer xoxb-test"


@pytest.mark.asyncio
async def test_ok_false_raises(slack: SlackClient, upstreams) -> None:
    upstreams.slack_errors["chat.postMessage"] = "channel_not_found"

    with pytest.raises(SlackApiError) as excinfo:
        await slack.post_message("C404", "hello")
    assert excinfo.value.error == "channel_not_found"
    assert excinfo.value.method == "chat.postMessage"


@pytest.mark.asyncio
async def test_invite_users_dedups_and_skips_empty(slack: SlackClient, upstreams) -> None:
    await slack.invite_users("C1", [])
    assert upstreams.slack_calls() == []

    await slack.invite_users("C1", ["U1", "U2", "U1", ""])
    (call,) = upstreams.slack_calls("conversations.invite")
    assert call["users"] == "U1,U2"


@pytest.mark.asyncio
async def test_lookup_miss_returns_none(slack: SlackClient, upstreams) -> None:
    assert await slack.lookup_user_by_email("agent@example.com") == "U0FOUND"

    upstreams.slack_errors["users.lookupByEmail"] = "users_not_found"
    assert await slack.lookup_user_by_email("nobody@example.com") is None


@pytest.mark.asyncio
async def test_transport_errors_become_api_errors() -> None:
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(
        base_url="https://slack.test/api", transport=httpx.MockTransport(boom)
    ) as http:
        with pytest.raises(SlackApiError):
            await SlackClient(token="xoxb-test", http=http).post_message("C1", "hi")


@pytest.mark.asyncio
async def test_unconfigured_client_refuses_calls() -> None:
    async with httpx.AsyncClient(base_url="https://slack.test/api") as http:
        client = SlackClient(token=None, http=http)
        assert client.configured is False
        with pytest.raises(SlackNotConfiguredError):
            await client.post_message("C1", "hi")
