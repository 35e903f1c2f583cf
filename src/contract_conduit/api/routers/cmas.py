"""
contract_conduit.api.routers.cmas

Comparative Market Analysis endpoints.

Responsibilities:
- CRUD for the caller's CMAs (admins see every CMA).
- Derived views: statistics, price timeline, price adjustments.
- Report config, public share links, share email, and the presentation PDF.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_502_BAD_GATEWAY,
)

from contract_conduit.api.deps import db_session, email_client, settings_dep
from contract_conduit.api.routers.report_templates import (
    ReportConfigResponse,
    ReportConfigUpdate,
    config_response,
    load_owned_cma,
)
from contract_conduit.auth.deps import get_principal, require_roles
from contract_conduit.auth.models import AGENT_ROLE, Principal
from contract_conduit.clients.email import EmailClient, EmailDeliveryError
from contract_conduit.cma.adjustments import CmaAdjustmentsData
from contract_conduit.cma.timeline import build_price_timeline
from contract_conduit.db.models import Cma, CmaReportConfig
from contract_conduit.db.repositories.agents import AgentProfileRepo
from contract_conduit.db.repositories.cmas import CmaRepo, ReportConfigRepo
from contract_conduit.db.repositories.transactions import TransactionRepo
from contract_conduit.pdf import ReportOptions, render_cma_pdf
from contract_conduit.services.cmas import CmaShareService, analyze_cma, share_url
from contract_conduit.services.timeline import TimelineLogger
from contract_conduit.settings import Settings

router = APIRouter(
    prefix="/api/cmas",
    tags=["cmas"],
    dependencies=[Depends(require_roles(AGENT_ROLE))],
)

_NULLABLE_ON_UPDATE = frozenset(
    {
        "transaction_id",
        "subject_property_id",
        "search_criteria",
        "notes",
        "brochure",
        "adjustments",
    }
)

# Anything outside this set is replaced in PDF filenames.
_FILENAME_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class CmaCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=256)
    transaction_id: uuid.UUID | None = None
    subject_property_id: str | None = Field(default=None, max_length=64)
    comparable_property_ids: list[str] = Field(default_factory=list)
    properties_data: list[dict[str, Any]] = Field(default_factory=list)
    search_criteria: dict[str, Any] | None = None
    notes: str | None = None
    brochure: dict[str, Any] | None = None
    adjustments: CmaAdjustmentsData | None = None


class CmaUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    transaction_id: uuid.UUID | None = None
    subject_property_id: str | None = Field(default=None, max_length=64)
    comparable_property_ids: list[str] | None = None
    properties_data: list[dict[str, Any]] | None = None
    search_criteria: dict[str, Any] | None = None
    notes: str | None = None
    brochure: dict[str, Any] | None = None
    adjustments: CmaAdjustmentsData | None = None

    def changes(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key in _NULLABLE_ON_UPDATE
        }


class CmaResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str | None
    transaction_id: uuid.UUID | None
    name: str
    subject_property_id: str | None
    comparable_property_ids: list[str]
    properties_data: list[dict[str, Any]]
    search_criteria: dict[str, Any] | None
    notes: str | None
    public_link: str | None
    expires_at: datetime | None
    brochure: dict[str, Any] | None
    adjustments: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class ShareLinkResponse(BaseModel):
    public_link: str
    share_url: str
    expires_at: datetime | None


class EmailShareRequest(BaseModel):
    recipient_name: str = Field(min_length=1, max_length=256)
    recipient_email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=256)
    message: str | None = Field(default=None, max_length=5000)
    sender_name: str | None = Field(default=None, max_length=256)
    sender_email: str | None = Field(default=None, max_length=256)


class EmailShareResponse(BaseModel):
    email_sent: bool
    share_url: str
    message_id: str | None = None


async def _ensure_transaction(session: AsyncSession, transaction_id: uuid.UUID | None) -> None:
    if transaction_id is not None and await TransactionRepo(session).get(transaction_id) is None:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="Transaction does not exist")


def _report_options(config: CmaReportConfig | None) -> ReportOptions:
    if config is None:
        return ReportOptions()
    return ReportOptions(
        included_sections=config.included_sections,
        section_order=config.section_order,
        cover_letter_override=config.cover_letter_override,
        layout=config.layout,
        photo_layout=config.photo_layout,
        include_agent_footer=config.include_agent_footer,
        cover_page_config=config.cover_page_config,
        custom_photo_selections=config.custom_photo_selections or {},
    )


def _pdf_filename(cma: Cma) -> str:
    stem = _FILENAME_UNSAFE.sub("-", cma.name).strip("-") or "cma"
    return f"{stem}.pdf"


@router.get("", response_model=list[CmaResponse])
async def list_cmas(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> list[Cma]:
    return await CmaRepo(session).list_for_user(None if principal.is_admin else principal.subject)


@router.post("", response_model=CmaResponse, status_code=HTTP_201_CREATED)
async def create_cma(
    body: CmaCreateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> Cma:
    await _ensure_transaction(session, body.transaction_id)
    cma = await CmaRepo(session).create(user_id=principal.subject, **body.model_dump())
    if cma.transaction_id:
        comps = analyze_cma(cma).comparables
        await TimelineLogger(session).cma_created(cma.transaction_id, len(comps))
    await session.commit()
    return cma


@router.get("/{cma_id}", response_model=CmaResponse)
async def get_cma(
    cma_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> Cma:
    return await load_owned_cma(session, principal, cma_id)


@router.patch("/{cma_id}", response_model=CmaResponse)
async def update_cma(
    cma_id: uuid.UUID,
    body: CmaUpdateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> Cma:
    cma = await load_owned_cma(session, principal, cma_id)
    changes = body.changes()
    if "transaction_id" in changes:
        await _ensure_transaction(session, changes["transaction_id"])
    await CmaRepo(session).update(cma, changes)
    if cma.transaction_id and changes:
        await TimelineLogger(session).cma_updated(cma.transaction_id)
    await session.commit()
    return cma


@router.delete("/{cma_id}")
async def delete_cma(
    cma_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> dict[str, bool]:
    cma = await load_owned_cma(session, principal, cma_id)
    await CmaRepo(session).delete(cma)
    await session.commit()
    return {"success": True}


@router.get("/{cma_id}/statistics")
async def get_statistics(
    cma_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    analysis = analyze_cma(await load_owned_cma(session, principal, cma_id))
    return {
        "statistics": analysis.statistics.to_dict() if analysis.statistics else None,
        "summary": analysis.summary.to_dict(),
    }


@router.get("/{cma_id}/timeline")
async def get_timeline(
    cma_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> list[dict[str, Any]]:
    cma = await load_owned_cma(session, principal, cma_id)
    return build_price_timeline(cma.properties_data or [])


@router.get("/{cma_id}/adjustments")
async def get_adjustments(
    cma_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    analysis = analyze_cma(await load_owned_cma(session, principal, cma_id))
    if analysis.subject is None:
        raise HTTPException(
            status_code=HTTP_400_BAD_REQUEST, detail="CMA has no subject property"
        )
    settings = analysis.adjustment_settings
    return {
        "enabled": settings.enabled,
        "rates": settings.rates.model_dump(),
        "results": [r.model_dump() for r in analysis.adjustments or []],
    }


@router.get("/{cma_id}/report-config", response_model=ReportConfigResponse)
async def get_report_config(
    cma_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> ReportConfigResponse:
    cma = await load_owned_cma(session, principal, cma_id)
    return config_response(cma, await ReportConfigRepo(session).get(cma.id))


@router.put("/{cma_id}/report-config", response_model=ReportConfigResponse)
async def put_report_config(
    cma_id: uuid.UUID,
    body: ReportConfigUpdate,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> ReportConfigResponse:
    cma = await load_owned_cma(session, principal, cma_id)
    config = await ReportConfigRepo(session).upsert(cma.id, body.model_dump())
    await session.commit()
    return config_response(cma, config)


@router.delete("/{cma_id}/report-config")
async def delete_report_config(
    cma_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> dict[str, bool]:
    cma = await load_owned_cma(session, principal, cma_id)
    deleted = await ReportConfigRepo(session).delete(cma.id)
    await session.commit()
    return {"success": True, "deleted": deleted}


@router.post("/{cma_id}/share", response_model=ShareLinkResponse)
async def create_share_link(
    cma_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> ShareLinkResponse:
    cma = await load_owned_cma(session, principal, cma_id)
    await CmaShareService(session, settings=settings).create_share_link(cma)
    await session.commit()
    token = cma.public_link or ""
    return ShareLinkResponse(
        public_link=token, share_url=share_url(settings, token), expires_at=cma.expires_at
    )


@router.delete("/{cma_id}/share")
async def revoke_share_link(
    cma_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> dict[str, bool]:
    cma = await load_owned_cma(session, principal, cma_id)
    await CmaShareService(session, settings=settings).revoke_share_link(cma)
    await session.commit()
    return {"success": True}


@router.post("/{cma_id}/email-share", response_model=EmailShareResponse)
async def email_share(
    cma_id: uuid.UUID,
    body: EmailShareRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
    email: EmailClient = Depends(email_client),
) -> EmailShareResponse:
    cma = await load_owned_cma(session, principal, cma_id)
    profile = await AgentProfileRepo(session).get(principal.subject)
    sender_name = body.sender_name or (profile.display_name if profile else None) or "Your agent"
    sender_email = (
        body.sender_email
        or (profile.email if profile else None)
        or principal.email
        or settings.email_from_address
    )
    try:
        result = await CmaShareService(session, settings=settings).email_share(
            cma,
            email=email,
            sender_name=sender_name,
            sender_email=sender_email,
            recipient_name=body.recipient_name,
            recipient_email=body.recipient_email,
            message=body.message,
        )
    except EmailDeliveryError as e:
        # The share link itself is still valid; keep it.
        await session.commit()
        raise HTTPException(status_code=HTTP_502_BAD_GATEWAY, detail=str(e)) from e
    await session.commit()
    return EmailShareResponse(
        email_sent=result.email_sent, share_url=result.share_url, message_id=result.message_id
    )


@router.get("/{cma_id}/pdf")
async def download_pdf(
    cma_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> Response:
    cma = await load_owned_cma(session, principal, cma_id)
    config = await ReportConfigRepo(session).get(cma.id)
    agent = await AgentProfileRepo(session).get(cma.user_id) if cma.user_id else None
    analysis = analyze_cma(cma)
    pdf = render_cma_pdf(
        cma,
        options=_report_options(config),
        agent=agent,
        statistics=analysis.statistics,
        adjustments=analysis.adjustments,
    )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{_pdf_filename(cma)}"'},
    )
