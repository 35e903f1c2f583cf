"""
contract_conduit.clients.email

Transactional email client (Resend-compatible `POST /emails`).
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from contract_conduit.settings import Settings

log = structlog.get_logger(__name__)


class EmailNotConfiguredError(RuntimeError):
    pass


class EmailDeliveryError(RuntimeError):
    pass


class EmailClient:
    def __init__(self, *, api_key: str | None, from_address: str, http: httpx.AsyncClient) -> None:
        self._api_key = api_key
        self._from = from_address
        self._http = http

    @classmethod
    def from_settings(cls, settings: Settings, http: httpx.AsyncClient) -> EmailClient:
        return cls(
            api_key=settings.email_api_key,
            from_address=settings.email_from_address,
            http=http,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def send(
        self,
        *,
        to: str,
        subject: str,
        html: str,
        reply_to: str | None = None,
    ) -> str | None:
        """
        Send one HTML email. Returns the provider message id when present.
        """

        if not self._api_key:
            raise EmailNotConfiguredError("CONDUIT_EMAIL_API_KEY is not set")

        payload: dict[str, Any] = {
            "from": self._from,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if reply_to:
            payload["reply_to"] = reply_to

        try:
            r = await self._http.post(
                "/emails",
                headers={"Authorization": f"Bearer {self._api_key}"},
                json=payload,
            )
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise EmailDeliveryError(str(exc) or type(exc).__name__) from exc

        message_id = data.get("id") if isinstance(data, dict) else None
        log.info("email_sent", message_id=message_id, recipient_email=to)
        return message_id
