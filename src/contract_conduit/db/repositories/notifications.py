"""
contract_conduit.db.repositories.notifications

Repositories for notification opt-ins and sent-notification dedup records.

Responsibilities:
- Resolve effective settings: transaction-level row first, then the user's global row.
- Upsert settings per (user, transaction) pair.
- Record and query per-day sends so a reminder goes out at most once per day.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from contract_conduit.db.models import NotificationSetting, SentNotification, _utcnow


class NotificationSettingsRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_exact(
        self, user_id: str, transaction_id: uuid.UUID | None
    ) -> NotificationSetting | None:
        stmt = select(NotificationSetting).where(NotificationSetting.user_id == user_id)
        if transaction_id is None:
            stmt = stmt.where(NotificationSetting.transaction_id.is_(None))
        else:
            stmt = stmt.where(NotificationSetting.transaction_id == transaction_id)
        stmt = stmt.order_by(NotificationSetting.created_at, NotificationSetting.id).limit(1)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_effective(
        self, user_id: str, transaction_id: uuid.UUID | None = None
    ) -> NotificationSetting | None:
        if transaction_id is not None:
            specific = await self.get_exact(user_id, transaction_id)
            if specific is not None:
                return specific
        return await self.get_exact(user_id, None)

    async def upsert(
        self,
        *,
        user_id: str,
        transaction_id: uuid.UUID | None,
        fields: dict[str, Any],
    ) -> NotificationSetting:
        setting = await self.get_exact(user_id, transaction_id)
        if setting is None:
            setting = NotificationSetting(user_id=user_id, transaction_id=transaction_id, **fields)
            self._session.add(setting)
        else:
            for key, value in fields.items():
                setattr(setting, key, value)
            setting.updated_at = _utcnow()
        await self._session.flush()
        return setting

    async def list_for_transaction(self, transaction_id: uuid.UUID) -> list[NotificationSetting]:
        stmt = select(NotificationSetting).where(
            NotificationSetting.transaction_id == transaction_id
        )
        return list((await self._session.execute(stmt)).scalars().all())


class SentNotificationRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def was_sent_on(
        self,
        *,
        transaction_id: uuid.UUID,
        notification_type: str,
        channel_id: str,
        day: date,
    ) -> bool:
        stmt = (
            select(SentNotification.id)
            .where(
                SentNotification.transaction_id == transaction_id,
                SentNotification.notification_type == notification_type,
                SentNotification.channel_id == channel_id,
                SentNotification.sent_on == day,
            )
            .limit(1)
        )
        return (await self._session.execute(stmt)).first() is not None

    async def record(
        self,
        *,
        transaction_id: uuid.UUID,
        notification_type: str,
        channel_id: str,
        day: date,
        message_ts: str | None,
    ) -> SentNotification:
        sent = SentNotification(
            transaction_id=transaction_id,
            notification_type=notification_type,
            channel_id=channel_id,
            sent_on=day,
            message_ts=message_ts,
        )
        self._session.add(sent)
        await self._session.flush()
        return sent
