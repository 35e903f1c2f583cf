from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from contract_conduit.db.models import Coordinator


class CoordinatorRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, **fields: Any) -> Coordinator:
        coordinator = Coordinator(**fields)
        self._session.add(coordinator)
        await self._session.flush()
        return coordinator

    async def get(self, coordinator_id: uuid.UUID) -> Coordinator | None:
        return await self._session.get(Coordinator, coordinator_id)

    async def list_all(self, *, active_only: bool = True) -> list[Coordinator]:
        stmt = select(Coordinator).order_by(Coordinator.name)
        if active_only:
            stmt = stmt.where(Coordinator.is_active.is_(True))
        return list((await self._session.execute(stmt)).scalars().all())

    async def get_many(self, ids: Iterable[str]) -> list[Coordinator]:
        # Coordinator ids on transactions are stored as strings; skip any that are malformed.
        parsed: list[uuid.UUID] = []
        for raw in ids:
            try:
                parsed.append(uuid.UUID(str(raw)))
            except ValueError:
                continue
        if not parsed:
            return []
        stmt = select(Coordinator).where(Coordinator.id.in_(parsed))
        return list((await self._session.execute(stmt)).scalars().all())

    async def update(self, coordinator: Coordinator, fields: dict[str, Any]) -> Coordinator:
        for key, value in fields.items():
            setattr(coordinator, key, value)
        await self._session.flush()
        return coordinator

    async def delete(self, coordinator: Coordinator) -> None:
        await self._session.delete(coordinator)
        await self._session.flush()
