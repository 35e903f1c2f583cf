"""
contract_conduit.api.routers.report_templates

CMA report presentation settings: section catalog, per-user templates, and
applying a template to a CMA's report config.

Responsibilities:
- Expose the fixed report section catalog and layout options.
- CRUD for the caller's report templates (one default per user).
- Copy a template's settings onto a CMA's report config.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_404_NOT_FOUND

from contract_conduit.api.deps import db_session
from contract_conduit.auth.deps import ensure_owner, get_principal, require_roles
from contract_conduit.auth.models import AGENT_ROLE, Principal
from contract_conduit.cma.sections import (
    CMA_REPORT_SECTIONS,
    DEFAULT_COVER_PAGE_CONFIG,
    DEFAULT_ENABLED_SECTIONS,
    EDITABLE_SECTIONS,
    LAYOUT_OPTIONS,
    MAP_STYLE_OPTIONS,
    PHOTO_LAYOUT_OPTIONS,
    CoverBackground,
    Layout,
    MapStyle,
    PhotoLayout,
    unknown_section_ids,
)
from contract_conduit.db.models import Cma, CmaReportConfig, CmaReportTemplate
from contract_conduit.db.repositories.cmas import CmaRepo, ReportConfigRepo, ReportTemplateRepo

router = APIRouter(tags=["cma-reports"], dependencies=[Depends(require_roles(AGENT_ROLE))])

# Template columns that accept an explicit null on update.
_NULLABLE_ON_UPDATE = frozenset(
    {"included_sections", "section_order", "cover_letter_override", "cover_page_config"}
)


def _check_sections(value: list[str] | None) -> list[str] | None:
    unknown = unknown_section_ids(value)
    if unknown:
        raise ValueError(f"Unknown report sections: {', '.join(unknown)}")
    return value


class CoverPageConfig(BaseModel):
    title: str = Field(default=DEFAULT_COVER_PAGE_CONFIG["title"], max_length=200)
    subtitle: str = Field(default=DEFAULT_COVER_PAGE_CONFIG["subtitle"], max_length=200)
    show_date: bool = True
    show_agent_photo: bool = True
    background: CoverBackground = "none"


class ReportLayoutFields(BaseModel):
    included_sections: list[str] | None = None
    section_order: list[str] | None = None
    cover_letter_override: str | None = None
    layout: Layout = "two_photos"
    theme: str = Field(default="spyglass", max_length=64)
    photo_layout: PhotoLayout = "first_dozen"
    map_style: MapStyle = "streets"
    show_map_polygon: bool = True
    include_agent_footer: bool = True
    cover_page_config: CoverPageConfig | None = None

    @field_validator("included_sections", "section_order")
    @classmethod
    def known_sections(cls, value: list[str] | None) -> list[str] | None:
        return _check_sections(value)


class ReportConfigUpdate(ReportLayoutFields):
    template: str = Field(default="default", max_length=64)
    custom_photo_selections: dict[str, list[str]] | None = None


class ReportConfigResponse(ReportConfigUpdate):
    model_config = ConfigDict(from_attributes=True)

    cma_id: uuid.UUID
    # True when nothing is stored and the defaults are shown.
    is_default: bool = False
    updated_at: datetime | None = None


class TemplateCreateRequest(ReportLayoutFields):
    name: str = Field(min_length=1, max_length=256)
    is_default: bool = False


class TemplateUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    is_default: bool | None = None
    included_sections: list[str] | None = None
    section_order: list[str] | None = None
    cover_letter_override: str | None = None
    layout: Layout | None = None
    theme: str | None = Field(default=None, max_length=64)
    photo_layout: PhotoLayout | None = None
    map_style: MapStyle | None = None
    show_map_polygon: bool | None = None
    include_agent_footer: bool | None = None
    cover_page_config: CoverPageConfig | None = None

    @field_validator("included_sections", "section_order")
    @classmethod
    def known_sections(cls, value: list[str] | None) -> list[str] | None:
        return _check_sections(value)

    def changes(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key in _NULLABLE_ON_UPDATE
        }


class TemplateResponse(ReportLayoutFields):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    is_default: bool
    created_at: datetime
    updated_at: datetime


def config_response(cma: Cma, config: CmaReportConfig | None) -> ReportConfigResponse:
    if config is None:
        return ReportConfigResponse(cma_id=cma.id, is_default=True)
    return ReportConfigResponse.model_validate(config)


async def load_owned_cma(session: AsyncSession, principal: Principal, cma_id: uuid.UUID) -> Cma:
    cma = await CmaRepo(session).get(cma_id)
    if cma is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="CMA not found")
    ensure_owner(principal, cma.user_id, what="CMA")
    return cma


async def _load_template(
    session: AsyncSession, principal: Principal, template_id: uuid.UUID
) -> CmaReportTemplate:
    template = await ReportTemplateRepo(session).get(template_id)
    if template is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Template not found")
    ensure_owner(principal, template.user_id, what="Template")
    return template


@router.get("/api/cma-sections")
async def list_sections() -> dict[str, Any]:
    return {
        "sections": [
            {
                "id": s.id,
                "name": s.name,
                "category": s.category,
                "default_enabled": s.default_enabled,
                "editable": s.editable,
            }
            for s in CMA_REPORT_SECTIONS
        ],
        "default_enabled": list(DEFAULT_ENABLED_SECTIONS),
        "editable": list(EDITABLE_SECTIONS),
        "layout_options": list(LAYOUT_OPTIONS),
        "photo_layout_options": list(PHOTO_LAYOUT_OPTIONS),
        "map_style_options": list(MAP_STYLE_OPTIONS),
        "default_cover_page_config": dict(DEFAULT_COVER_PAGE_CONFIG),
    }


@router.get("/api/cma-report-templates", response_model=list[TemplateResponse])
async def list_templates(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> list[CmaReportTemplate]:
    return await ReportTemplateRepo(session).list_for_user(principal.subject)


@router.post(
    "/api/cma-report-templates", response_model=TemplateResponse, status_code=HTTP_201_CREATED
)
async def create_template(
    body: TemplateCreateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> CmaReportTemplate:
    template = await ReportTemplateRepo(session).create(
        user_id=principal.subject, **body.model_dump()
    )
    await session.commit()
    return template


@router.patch("/api/cma-report-templates/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: uuid.UUID,
    body: TemplateUpdateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> CmaReportTemplate:
    template = await _load_template(session, principal, template_id)
    await ReportTemplateRepo(session).update(template, body.changes())
    await session.commit()
    return template


@router.delete("/api/cma-report-templates/{template_id}")
async def delete_template(
    template_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> dict[str, bool]:
    template = await _load_template(session, principal, template_id)
    await ReportTemplateRepo(session).delete(template)
    await session.commit()
    return {"success": True}


@router.post(
    "/api/cmas/{cma_id}/report-config/apply-template/{template_id}",
    response_model=ReportConfigResponse,
)
async def apply_template(
    cma_id: uuid.UUID,
    template_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> ReportConfigResponse:
    cma = await load_owned_cma(session, principal, cma_id)
    template = await _load_template(session, principal, template_id)
    # Photo selections belong to the CMA and survive a template switch.
    fields = ReportLayoutFields.model_validate(template, from_attributes=True).model_dump()
    config = await ReportConfigRepo(session).upsert(cma.id, fields)
    await session.commit()
    return config_response(cma, config)
