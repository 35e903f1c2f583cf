from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_404_NOT_FOUND

from contract_conduit.api.deps import db_session
from contract_conduit.auth.deps import require_roles
from contract_conduit.auth.models import AGENT_ROLE
from contract_conduit.db.models import Coordinator
from contract_conduit.db.repositories.coordinators import CoordinatorRepo

router = APIRouter(
    prefix="/api/coordinators",
    tags=["coordinators"],
    dependencies=[Depends(require_roles(AGENT_ROLE))],
)


class CoordinatorCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=256)
    email: str = Field(min_length=3, max_length=256)
    phone: str | None = Field(default=None, max_length=64)
    slack_user_id: str | None = Field(default=None, max_length=64)
    avatar_url: str | None = None
    is_active: bool = True


class CoordinatorUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    email: str | None = Field(default=None, min_length=3, max_length=256)
    phone: str | None = Field(default=None, max_length=64)
    slack_user_id: str | None = Field(default=None, max_length=64)
    avatar_url: str | None = None
    is_active: bool | None = None


class CoordinatorResponse(CoordinatorCreateRequest):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID


async def _load(session: AsyncSession, coordinator_id: uuid.UUID) -> Coordinator:
    coordinator = await CoordinatorRepo(session).get(coordinator_id)
    if coordinator is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Coordinator not found")
    return coordinator


@router.get("", response_model=list[CoordinatorResponse])
async def list_coordinators(
    active_only: bool = True,
    session: AsyncSession = Depends(db_session),
) -> list[Coordinator]:
    return await CoordinatorRepo(session).list_all(active_only=active_only)


@router.post("", response_model=CoordinatorResponse, status_code=HTTP_201_CREATED)
async def create_coordinator(
    body: CoordinatorCreateRequest,
    session: AsyncSession = Depends(db_session),
) -> Coordinator:
    coordinator = await CoordinatorRepo(session).create(**body.model_dump())
    await session.commit()
    return coordinator


@router.patch("/{coordinator_id}", response_model=CoordinatorResponse)
async def update_coordinator(
    coordinator_id: uuid.UUID,
    body: CoordinatorUpdateRequest,
    session: AsyncSession = Depends(db_session),
) -> Coordinator:
    coordinator = await _load(session, coordinator_id)
    changes = body.model_dump(exclude_unset=True)
    # name/email/is_active are NOT NULL; an explicit null leaves them untouched.
    for key in ("name", "email", "is_active"):
        if changes.get(key, ...) is None:
            changes.pop(key)
    await CoordinatorRepo(session).update(coordinator, changes)
    await session.commit()
    return coordinator


@router.delete("/{coordinator_id}")
async def delete_coordinator(
    coordinator_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> dict[str, bool]:
    coordinator = await _load(session, coordinator_id)
    await CoordinatorRepo(session).delete(coordinator)
    await session.commit()
    return {"success": True}
