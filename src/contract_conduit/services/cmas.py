"""
contract_conduit.services.cmas

CMA analysis and sharing: statistics, adjustments, public links and share emails.

Responsibilities:
- Derive statistics, summary and adjustments from a CMA's stored properties.
- Issue / revoke random share tokens with an expiry.
- Resolve a share token to a CMA (unknown or expired tokens resolve to None).
- Render and send the share email, falling back to the link when email is off.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any

import structlog
from jinja2 import Environment, PackageLoader
from sqlalchemy.ext.asyncio import AsyncSession

from contract_conduit.clients.email import EmailClient
from contract_conduit.cma import extract
from contract_conduit.cma.adjustments import (
    CmaAdjustmentsData,
    CompAdjustmentResult,
    calculate_all_adjustments,
)
from contract_conduit.cma.statistics import (
    CmaSummary,
    PropertyStatistics,
    calculate_statistics,
    summarize,
)
from contract_conduit.db.models import Cma, _utcnow
from contract_conduit.db.repositories.cmas import CmaRepo
from contract_conduit.services.timeline import TimelineLogger
from contract_conduit.settings import Settings

log = structlog.get_logger(__name__)


@lru_cache(maxsize=1)
def template_env() -> Environment:
    return Environment(loader=PackageLoader("contract_conduit", "templates"), autoescape=True)


def share_url(settings: Settings, token: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/shared/cma/{token}"


@dataclass(frozen=True, slots=True)
class CmaAnalysis:
    subject: dict[str, Any] | None
    comparables: list[dict[str, Any]]
    statistics: PropertyStatistics | None
    summary: CmaSummary
    adjustment_settings: CmaAdjustmentsData
    # None when there is no subject to adjust against or adjustments are switched off.
    adjustments: list[CompAdjustmentResult] | None


def analyze_cma(cma: Cma) -> CmaAnalysis:
    subject, comparables = extract.split_subject(
        cma.properties_data or [], cma.subject_property_id
    )
    settings = CmaAdjustmentsData.model_validate(cma.adjustments or {})
    adjustments = None
    if subject is not None and settings.enabled:
        adjustments = calculate_all_adjustments(
            subject, comparables, settings.rates, settings.comp_adjustments
        )
    return CmaAnalysis(
        subject=subject,
        comparables=comparables,
        statistics=calculate_statistics(comparables),
        summary=summarize(comparables),
        adjustment_settings=settings,
        adjustments=adjustments,
    )


@dataclass(frozen=True, slots=True)
class EmailShareResult:
    email_sent: bool
    share_url: str
    message_id: str | None = None


class CmaShareService:
    def __init__(self, session: AsyncSession, *, settings: Settings) -> None:
        self._session = session
        self._settings = settings
        self._cmas = CmaRepo(session)
        self._timeline = TimelineLogger(session)

    def _link_active(self, cma: Cma, now: datetime) -> bool:
        return bool(cma.public_link) and (cma.expires_at is None or cma.expires_at > now)

    async def create_share_link(self, cma: Cma) -> Cma:
        """
        Always issues a fresh token; any previous link stops working.
        """

        token = secrets.token_urlsafe(24)
        expires_at = _utcnow() + timedelta(days=self._settings.share_link_ttl_days)
        await self._cmas.update(cma, {"public_link": token, "expires_at": expires_at})
        if cma.transaction_id:
            await self._timeline.cma_shared(cma.transaction_id)
        log.info("cma_share_link_created", cma_id=str(cma.id), expires_at=expires_at.isoformat())
        return cma

    async def ensure_share_link(self, cma: Cma) -> Cma:
        if self._link_active(cma, _utcnow()):
            return cma
        return await self.create_share_link(cma)

    async def revoke_share_link(self, cma: Cma) -> Cma:
        await self._cmas.update(cma, {"public_link": None, "expires_at": None})
        if cma.transaction_id:
            await self._timeline.cma_share_revoked(cma.transaction_id)
        log.info("cma_share_link_revoked", cma_id=str(cma.id))
        return cma

    async def resolve_token(self, token: str) -> Cma | None:
        cma = await self._cmas.get_by_share_token(token)
        if cma is None or not self._link_active(cma, _utcnow()):
            return None
        return cma

    async def email_share(
        self,
        cma: Cma,
        *,
        email: EmailClient,
        sender_name: str,
        sender_email: str,
        recipient_name: str,
        recipient_email: str,
        message: str | None,
    ) -> EmailShareResult:
        cma = await self.ensure_share_link(cma)
        url = share_url(self._settings, cma.public_link or "")

        if not email.configured:
            log.warning(
                "cma_email_share_fallback", cma_id=str(cma.id), reason="email_not_configured"
            )
            return EmailShareResult(email_sent=False, share_url=url)

        subject = f"{sender_name} shared a CMA with you: {cma.name}"
        html = template_env().get_template("cma_share_email.html").render(
            cma_name=cma.name,
            sender_name=sender_name,
            recipient_name=recipient_name,
            message=message,
            share_url=url,
            summary=analyze_cma(cma).summary.to_dict(),
            expires_at=cma.expires_at.date().isoformat() if cma.expires_at else None,
        )
        message_id = await email.send(
            to=recipient_email, subject=subject, html=html, reply_to=sender_email
        )
        if cma.transaction_id:
            await self._timeline.email_sent(cma.transaction_id, subject)
        return EmailShareResult(email_sent=True, share_url=url, message_id=message_id)
