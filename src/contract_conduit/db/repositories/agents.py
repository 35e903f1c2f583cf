from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from contract_conduit.db.models import AgentProfile, AgentResource, _utcnow


class AgentProfileRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str) -> AgentProfile | None:
        stmt = select(AgentProfile).where(AgentProfile.user_id == user_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def upsert(self, user_id: str, fields: dict[str, Any]) -> AgentProfile:
        profile = await self.get(user_id)
        if profile is None:
            profile = AgentProfile(user_id=user_id, **fields)
            self._session.add(profile)
        else:
            for key, value in fields.items():
                setattr(profile, key, value)
            profile.updated_at = _utcnow()
        await self._session.flush()
        return profile


class AgentResourceRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_for_user(self, user_id: str, *, active_only: bool = False) -> list[AgentResource]:
        stmt = (
            select(AgentResource)
            .where(AgentResource.user_id == user_id)
            .order_by(AgentResource.display_order, AgentResource.created_at)
        )
        if active_only:
            stmt = stmt.where(AgentResource.is_active.is_(True))
        return list((await self._session.execute(stmt)).scalars().all())

    async def get(self, resource_id: uuid.UUID) -> AgentResource | None:
        return await self._session.get(AgentResource, resource_id)

    async def create(self, *, user_id: str, **fields: Any) -> AgentResource:
        # New resources go to the end of the user's list.
        stmt = select(func.max(AgentResource.display_order)).where(
            AgentResource.user_id == user_id
        )
        current_max = (await self._session.execute(stmt)).scalar_one_or_none()
        resource = AgentResource(
            user_id=user_id,
            display_order=(current_max + 1) if current_max is not None else 0,
            **fields,
        )
        self._session.add(resource)
        await self._session.flush()
        return resource

    async def update(self, resource: AgentResource, fields: dict[str, Any]) -> AgentResource:
        for key, value in fields.items():
            setattr(resource, key, value)
        resource.updated_at = _utcnow()
        await self._session.flush()
        return resource

    async def delete(self, resource: AgentResource) -> None:
        await self._session.delete(resource)
        await self._session.flush()

    async def reorder(self, user_id: str, ordered_ids: list[uuid.UUID]) -> None:
        # Ids owned by another user are ignored.
        for position, resource_id in enumerate(ordered_ids):
            resource = await self._session.get(AgentResource, resource_id)
            if resource is None or resource.user_id != user_id:
                continue
            resource.display_order = position
            resource.updated_at = _utcnow()
        await self._session.flush()
