"""
contract_conduit.db.repositories.activities

Repository for `Activity` entities (transaction timeline).

Responsibilities:
- Append timeline entries.
- Query a transaction's timeline newest-first.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from contract_conduit.db.models import Activity


class ActivityRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(
        self,
        *,
        transaction_id: uuid.UUID,
        type: str,
        description: str,
        category: str = "other",
        details: dict[str, Any] | None = None,
    ) -> Activity:
        activity = Activity(
            transaction_id=transaction_id,
            type=type,
            category=category,
            description=description,
            details=details or {},
        )
        self._session.add(activity)
        await self._session.flush()
        return activity

    async def list_for_transaction(
        self, transaction_id: uuid.UUID, *, limit: int = 200
    ) -> list[Activity]:
        stmt = (
            select(Activity)
            .where(Activity.transaction_id == transaction_id)
            .order_by(desc(Activity.created_at))
            .limit(limit)
        )
        return list((await self._session.execute(stmt)).scalars().all())


# --- Module Notes -----------------------------------------------------------
# Callers go through `services.timeline` so the category is derived consistently.
