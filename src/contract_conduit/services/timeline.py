"""
contract_conduit.services.timeline

Activity timeline for transactions.

Responsibilities:
- Derive an activity category from its event type.
- Provide named helpers so event types and descriptions stay consistent.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from contract_conduit.db.models import Activity
from contract_conduit.db.repositories.activities import ActivityRepo

_COMMUNICATION_TYPES = frozenset(
    {"email_sent", "slack_notification", "channel_created", "closing_reminder_sent"}
)


def category_for(event_type: str) -> str:
    if event_type.startswith("transaction_") or event_type == "status_changed":
        return "transaction"
    if event_type.startswith("mls_") or event_type in {"price_changed", "photos_updated"}:
        return "mls"
    if event_type.startswith("document_"):
        return "documents"
    if any(marker in event_type for marker in ("graphic", "flyer", "asset")):
        return "marketing"
    if event_type.startswith("cma_"):
        return "cma"
    if event_type.startswith("coordinator_") or event_type == "note_added":
        return "team"
    if event_type in _COMMUNICATION_TYPES:
        return "communication"
    if "date" in event_type or event_type == "deadline_approaching":
        return "dates"
    return "other"


class TimelineLogger:
    def __init__(self, session: AsyncSession) -> None:
        self._repo = ActivityRepo(session)

    async def log(
        self,
        transaction_id: uuid.UUID,
        event_type: str,
        description: str,
        details: dict[str, Any] | None = None,
    ) -> Activity:
        return await self._repo.add(
            transaction_id=transaction_id,
            type=event_type,
            category=category_for(event_type),
            description=description,
            details=details,
        )

    async def transaction_created(self, transaction_id: uuid.UUID, address: str) -> Activity:
        description = f"Transaction created for {address}"
        return await self.log(transaction_id, "transaction_created", description)

    async def transaction_archived(self, transaction_id: uuid.UUID) -> Activity:
        return await self.log(transaction_id, "transaction_archived", "Transaction moved to archive")

    async def transaction_restored(self, transaction_id: uuid.UUID) -> Activity:
        return await self.log(
            transaction_id, "transaction_restored", "Transaction restored from archive"
        )

    async def status_changed(
        self, transaction_id: uuid.UUID, old_status: str, new_status: str
    ) -> Activity:
        return await self.log(
            transaction_id,
            "status_changed",
            f"Status changed from {old_status} to {new_status}",
            {"old_status": old_status, "new_status": new_status},
        )

    async def price_changed(
        self, transaction_id: uuid.UUID, old_price: int, new_price: int
    ) -> Activity:
        return await self.log(
            transaction_id,
            "price_changed",
            f"Price updated: ${old_price:,} to ${new_price:,}",
            {"old_price": old_price, "new_price": new_price, "change": new_price - old_price},
        )

    async def contract_date_set(self, transaction_id: uuid.UUID, value: date) -> Activity:
        return await self.log(
            transaction_id, "contract_date_set", f"Contract date set: {value.isoformat()}"
        )

    async def closing_date_set(self, transaction_id: uuid.UUID, value: date) -> Activity:
        return await self.log(
            transaction_id, "closing_date_set", f"Expected closing: {value.isoformat()}"
        )

    async def coordinator_assigned(self, transaction_id: uuid.UUID, name: str) -> Activity:
        description = f"Coordinator assigned: {name}"
        return await self.log(transaction_id, "coordinator_assigned", description)

    async def coordinator_removed(self, transaction_id: uuid.UUID, name: str) -> Activity:
        return await self.log(transaction_id, "coordinator_removed", f"Coordinator removed: {name}")

    async def note_added(self, transaction_id: uuid.UUID) -> Activity:
        return await self.log(transaction_id, "note_added", "Note added to transaction")

    async def channel_created(self, transaction_id: uuid.UUID, channel_name: str) -> Activity:
        return await self.log(
            transaction_id, "channel_created", f"Slack channel created: {channel_name}"
        )

    async def cma_created(self, transaction_id: uuid.UUID, comp_count: int) -> Activity:
        return await self.log(
            transaction_id, "cma_created", f"CMA created with {comp_count} comparables"
        )

    async def cma_updated(self, transaction_id: uuid.UUID, message: str | None = None) -> Activity:
        return await self.log(transaction_id, "cma_updated", message or "CMA updated")

    async def cma_shared(self, transaction_id: uuid.UUID) -> Activity:
        return await self.log(transaction_id, "cma_shared", "CMA share link generated")

    async def cma_share_revoked(self, transaction_id: uuid.UUID) -> Activity:
        return await self.log(transaction_id, "cma_share_revoked", "CMA share link removed")

    async def email_sent(self, transaction_id: uuid.UUID, subject: str) -> Activity:
        return await self.log(transaction_id, "email_sent", f"Email sent: {subject}")

    async def closing_reminder_sent(
        self, transaction_id: uuid.UUID, days_until: int, channel_id: str
    ) -> Activity:
        when = "today" if days_until == 0 else f"in {days_until} day{'s' if days_until != 1 else ''}"
        return await self.log(
            transaction_id,
            "closing_reminder_sent",
            f"Closing reminder sent: closing {when}",
            {"days_until": days_until, "channel_id": channel_id},
        )


# --- Module Notes -----------------------------------------------------------
# Timeline writes share the caller's session and commit with the change they describe.
