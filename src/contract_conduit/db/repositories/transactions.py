"""
contract_conduit.db.repositories.transactions

Repository for `Transaction` entities.

Responsibilities:
- CRUD for transactions.
- Select closing-reminder candidates.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from contract_conduit.db.models import TERMINAL_STATUSES, Transaction


class TransactionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, **fields: Any) -> Transaction:
        txn = Transaction(**fields)
        self._session.add(txn)
        await self._session.flush()
        return txn

    async def get(self, transaction_id: uuid.UUID) -> Transaction | None:
        return await self._session.get(Transaction, transaction_id)

    async def list_all(self, *, include_archived: bool = False) -> list[Transaction]:
        stmt = select(Transaction).order_by(desc(Transaction.created_at))
        if not include_archived:
            stmt = stmt.where(Transaction.is_archived.is_(False))
        return list((await self._session.execute(stmt)).scalars().all())

    async def update(self, txn: Transaction, fields: dict[str, Any]) -> Transaction:
        for key, value in fields.items():
            setattr(txn, key, value)
        await self._session.flush()
        return txn

    async def delete(self, txn: Transaction) -> None:
        await self._session.delete(txn)
        await self._session.flush()

    async def list_reminder_candidates(self) -> list[Transaction]:
        # Open, unarchived deals that have both a closing date and a Slack channel.
        stmt = (
            select(Transaction)
            .where(
                Transaction.closing_date.is_not(None),
                Transaction.slack_channel_id.is_not(None),
                Transaction.is_archived.is_(False),
                Transaction.status.not_in(list(TERMINAL_STATUSES)),
            )
            .order_by(Transaction.closing_date)
        )
        return list((await self._session.execute(stmt)).scalars().all())
