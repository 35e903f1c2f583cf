"""
contract_conduit.api.routers.shared

Public, token-addressed view of a shared CMA. No authentication.

Responsibilities:
- Resolve a share token; unknown or expired tokens are 404.
- Return the presentation payload (CMA, derived analysis, report config, agent card).
- List the owning agent's active resources.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_404_NOT_FOUND

from contract_conduit.api.deps import db_session, settings_dep
from contract_conduit.api.routers.agent import AgentProfileResponse, AgentResourceResponse
from contract_conduit.api.routers.report_templates import ReportConfigResponse, config_response
from contract_conduit.cma.timeline import build_price_timeline
from contract_conduit.db.models import AgentResource, Cma
from contract_conduit.db.repositories.agents import AgentProfileRepo, AgentResourceRepo
from contract_conduit.db.repositories.cmas import ReportConfigRepo
from contract_conduit.services.cmas import CmaShareService, analyze_cma
from contract_conduit.settings import Settings

router = APIRouter(prefix="/api/shared", tags=["shared"])


class SharedCma(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    subject_property_id: str | None
    comparable_property_ids: list[str]
    properties_data: list[dict[str, Any]]
    brochure: dict[str, Any] | None
    expires_at: datetime | None
    created_at: datetime
    updated_at: datetime


class SharedCmaResponse(BaseModel):
    cma: SharedCma
    statistics: dict[str, Any] | None
    summary: dict[str, Any]
    timeline: list[dict[str, Any]]
    adjustments: list[dict[str, Any]] | None
    report_config: ReportConfigResponse
    agent: AgentProfileResponse | None


async def _resolve(session: AsyncSession, settings: Settings, token: str) -> Cma:
    cma = await CmaShareService(session, settings=settings).resolve_token(token)
    if cma is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Shared CMA not found")
    return cma


@router.get("/cma/{token}", response_model=SharedCmaResponse)
async def get_shared_cma(
    token: str,
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> SharedCmaResponse:
    cma = await _resolve(session, settings, token)
    analysis = analyze_cma(cma)
    profile = await AgentProfileRepo(session).get(cma.user_id) if cma.user_id else None
    return SharedCmaResponse(
        cma=SharedCma.model_validate(cma),
        statistics=analysis.statistics.to_dict() if analysis.statistics else None,
        summary=analysis.summary.to_dict(),
        timeline=build_price_timeline(cma.properties_data or []),
        adjustments=(
            [r.model_dump() for r in analysis.adjustments]
            if analysis.adjustments is not None
            else None
        ),
        report_config=config_response(cma, await ReportConfigRepo(session).get(cma.id)),
        agent=AgentProfileResponse.model_validate(profile) if profile else None,
    )


@router.get("/cma/{token}/resources", response_model=list[AgentResourceResponse])
async def list_shared_resources(
    token: str,
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> list[AgentResource]:
    cma = await _resolve(session, settings, token)
    if not cma.user_id:
        return []
    return await AgentResourceRepo(session).list_for_user(cma.user_id, active_only=True)
