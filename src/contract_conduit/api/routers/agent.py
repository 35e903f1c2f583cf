"""
contract_conduit.api.routers.agent

The calling agent's profile and the resources shown on shared CMAs.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_404_NOT_FOUND

from contract_conduit.api.deps import db_session
from contract_conduit.auth.deps import ensure_owner, get_principal, require_roles
from contract_conduit.auth.models import AGENT_ROLE, Principal
from contract_conduit.db.models import AgentProfile, AgentResource
from contract_conduit.db.repositories.agents import AgentProfileRepo, AgentResourceRepo

router = APIRouter(
    prefix="/api/agent",
    tags=["agent"],
    dependencies=[Depends(require_roles(AGENT_ROLE))],
)

ResourceType = Literal["link", "file"]


class AgentProfileFields(BaseModel):
    display_name: str | None = Field(default=None, max_length=256)
    email: str | None = Field(default=None, max_length=256)
    phone: str | None = Field(default=None, max_length=64)
    slack_user_id: str | None = Field(default=None, max_length=64)
    title: str | None = Field(default=None, max_length=128)
    headshot_url: str | None = None
    bio: str | None = None
    default_cover_letter: str | None = None
    facebook_url: str | None = None
    instagram_url: str | None = None
    linkedin_url: str | None = None
    twitter_url: str | None = None
    website_url: str | None = None
    marketing_company: str | None = Field(default=None, max_length=256)


class AgentProfileResponse(AgentProfileFields):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    updated_at: datetime | None = None


class ResourceCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=256)
    type: ResourceType
    url: str | None = None
    file_name: str | None = Field(default=None, max_length=256)
    file_mime_type: str | None = Field(default=None, max_length=128)
    is_active: bool = True

    @model_validator(mode="after")
    def target_matches_type(self) -> ResourceCreateRequest:
        if self.type == "link" and not self.url:
            raise ValueError("Link resources require a url")
        if self.type == "file" and not self.file_name:
            raise ValueError("File resources require a file_name")
        return self


class ResourceUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    url: str | None = None
    file_name: str | None = Field(default=None, max_length=256)
    file_mime_type: str | None = Field(default=None, max_length=128)
    is_active: bool | None = None


class ReorderRequest(BaseModel):
    resource_ids: list[uuid.UUID]


class AgentResourceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    type: str
    url: str | None
    file_name: str | None
    file_mime_type: str | None
    is_active: bool
    display_order: int
    created_at: datetime


@router.get("/profile", response_model=AgentProfileResponse)
async def get_profile(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> AgentProfile | AgentProfileResponse:
    profile = await AgentProfileRepo(session).get(principal.subject)
    # An agent who never saved a profile gets an empty one.
    return profile or AgentProfileResponse(user_id=principal.subject)


@router.put("/profile", response_model=AgentProfileResponse)
async def put_profile(
    body: AgentProfileFields,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> AgentProfile:
    profile = await AgentProfileRepo(session).upsert(
        principal.subject, body.model_dump(exclude_unset=True)
    )
    await session.commit()
    return profile


async def _load_resource(
    session: AsyncSession, principal: Principal, resource_id: uuid.UUID
) -> AgentResource:
    resource = await AgentResourceRepo(session).get(resource_id)
    if resource is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Resource not found")
    ensure_owner(principal, resource.user_id, what="Resource")
    return resource


@router.get("/resources", response_model=list[AgentResourceResponse])
async def list_resources(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> list[AgentResource]:
    return await AgentResourceRepo(session).list_for_user(principal.subject)


@router.post("/resources", response_model=AgentResourceResponse, status_code=HTTP_201_CREATED)
async def create_resource(
    body: ResourceCreateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> AgentResource:
    resource = await AgentResourceRepo(session).create(
        user_id=principal.subject, **body.model_dump()
    )
    await session.commit()
    return resource


@router.post("/resources/reorder")
async def reorder_resources(
    body: ReorderRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> dict[str, bool]:
    await AgentResourceRepo(session).reorder(principal.subject, body.resource_ids)
    await session.commit()
    return {"success": True}


@router.patch("/resources/{resource_id}", response_model=AgentResourceResponse)
async def update_resource(
    resource_id: uuid.UUID,
    body: ResourceUpdateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> AgentResource:
    resource = await _load_resource(session, principal, resource_id)
    # Nulls are ignored so a link never loses its url or a file its name.
    changes: dict[str, Any] = body.model_dump(exclude_unset=True, exclude_none=True)
    await AgentResourceRepo(session).update(resource, changes)
    await session.commit()
    return resource


@router.delete("/resources/{resource_id}")
async def delete_resource(
    resource_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> dict[str, bool]:
    resource = await _load_resource(session, principal, resource_id)
    await AgentResourceRepo(session).delete(resource)
    await session.commit()
    return {"success": True}
