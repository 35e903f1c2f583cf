"""
contract_conduit.clients.slack

Slack Web API client used for deal channels and closing reminders.

Responsibilities:
- Create per-transaction channels with Slack-safe names.
- Invite agents/coordinators, post messages, resolve users by email.
- Raise `SlackApiError` on `ok: false` responses and transport failures.
"""

from __future__ import annotations

import re
from typing import Any

import httpx
import structlog

from contract_conduit.settings import Settings

log = structlog.get_logger(__name__)

MAX_CHANNEL_NAME_LENGTH = 80


class SlackNotConfiguredError(RuntimeError):
    """Raised when a Slack call is attempted without a bot token."""


class SlackApiError(RuntimeError):
    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"Slack API error ({method}): {error}")
        self.method = method
        self.error = error


def clean_channel_name(name: str) -> str:
    """
    Slack channel names: lowercase, `[a-z0-9-]` only, at most 80 characters.
    """

    cleaned = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    cleaned = re.sub(r"\s+", "-", cleaned.strip())
    return cleaned[:MAX_CHANNEL_NAME_LENGTH]


class SlackClient:
    def __init__(self, *, token: str | None, http: httpx.AsyncClient) -> None:
        self._token = token
        self._http = http

    @classmethod
    def from_settings(cls, settings: Settings, http: httpx.AsyncClient) -> SlackClient:
        return cls(token=settings.slack_bot_token, http=http)

    @property
    def configured(self) -> bool:
        return bool(self._token)

    async def _call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self._token:
            raise SlackNotConfiguredError("CONDUIT_SLACK_BOT_TOKEN is not set")
        try:
            r = await self._http.post(
                f"/{method}",
                headers={"Authorization": f"Bearer {self._token}"},
                json=payload,
            )
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SlackApiError(method, str(exc) or type(exc).__name__) from exc
        if not data.get("ok"):
            raise SlackApiError(method, str(data.get("error") or "unknown_error"))
        return data

    async def create_channel(self, name: str, *, is_private: bool = False) -> dict[str, str]:
        data = await self._call(
            "conversations.create",
            {"name": clean_channel_name(name), "is_private": is_private},
        )
        channel = data.get("channel") or {}
        log.info("slack_channel_created", channel_id=channel.get("id"), name=channel.get("name"))
        return {"id": str(channel.get("id")), "name": str(channel.get("name"))}

    async def invite_users(self, channel_id: str, user_ids: list[str]) -> None:
        # conversations.invite rejects an empty user list.
        unique_ids = list(dict.fromkeys(u for u in user_ids if u))
        if not unique_ids:
            return
        await self._call(
            "conversations.invite",
            {"channel": channel_id, "users": ",".join(unique_ids)},
        )

    async def post_message(self, channel_id: str, text: str) -> str | None:
        data = await self._call("chat.postMessage", {"channel": channel_id, "text": text})
        return data.get("ts")

    async def lookup_user_by_email(self, email: str) -> str | None:
        # A miss (users_not_found) is an expected outcome, not an error.
        try:
            data = await self._call("users.lookupByEmail", {"email": email})
        except SlackApiError as exc:
            log.info("slack_user_lookup_miss", error=exc.error)
            return None
        user = data.get("user") or {}
        return user.get("id")


# --- Module Notes -----------------------------------------------------------
# The shared `httpx.AsyncClient` is created by the app lifespan with the Slack base URL;
# this class only adds auth and Slack's `ok` envelope handling.
