"""
contract_conduit.services.transactions

Transaction lifecycle beyond plain CRUD.

Responsibilities:
- Create transactions and optionally provision a Slack deal channel.
- Apply updates and record the timeline entries they imply.
- Archive / restore with a snapshot of transaction-level reminder settings.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from contract_conduit.clients.slack import SlackApiError, SlackClient, SlackNotConfiguredError
from contract_conduit.db.models import Transaction, TransactionStatus, _utcnow
from contract_conduit.db.repositories.agents import AgentProfileRepo
from contract_conduit.db.repositories.coordinators import CoordinatorRepo
from contract_conduit.db.repositories.notifications import NotificationSettingsRepo
from contract_conduit.db.repositories.transactions import TransactionRepo
from contract_conduit.services.timeline import TimelineLogger

log = structlog.get_logger(__name__)

_REMINDER_FIELDS = (
    "closing_reminders",
    "reminder_30_days",
    "reminder_14_days",
    "reminder_7_days",
    "reminder_3_days",
    "reminder_1_day",
    "reminder_day_of",
)


class TransactionStateError(ValueError):
    """Raised for lifecycle transitions that make no sense (e.g. restoring an active deal)."""


def generate_channel_name(address: str, transaction_type: str = "buy", agent_name: str = "") -> str:
    """
    `buy-123mainstreet-janedoe` style names from the street part of the address.
    """

    street = address.split(",")[0] or address
    clean_address = re.sub(r"[^a-z0-9]", "", street.lower())[:25]
    clean_agent = re.sub(r"[^a-z]", "", agent_name.lower())[:20]
    prefix = "sell" if transaction_type == "sell" else "buy"
    parts = [prefix, clean_address] + ([clean_agent] if clean_agent else [])
    return "-".join(parts)[:80]


def build_welcome_message(
    *,
    address: str,
    agent_mention: str,
    creator_slack_id: str | None,
    agent_slack_id: str | None,
    coordinator_slack_ids: list[str],
    closing_date: date | None,
) -> str:
    lines = [
        f"Welcome to the new channel created for *{address}*",
        "",
        f"{agent_mention} is the agent on this transaction.",
    ]
    if creator_slack_id and creator_slack_id != agent_slack_id:
        lines.append(f"Created by <@{creator_slack_id}>")
    if coordinator_slack_ids:
        mentions = ", ".join(f"<@{sid}>" for sid in coordinator_slack_ids)
        lines += ["", f":busts_in_silhouette: *Transaction Coordinators:* {mentions}"]
    if closing_date:
        lines += ["", f":calendar: Closing date: {closing_date.isoformat()}"]
    return "\n".join(lines)


class TransactionService:
    def __init__(self, session: AsyncSession, *, slack: SlackClient | None = None) -> None:
        self._session = session
        self._slack = slack
        self._transactions = TransactionRepo(session)
        self._coordinators = CoordinatorRepo(session)
        self._timeline = TimelineLogger(session)

    async def create(
        self,
        *,
        user_id: str,
        fields: dict[str, Any],
        is_under_contract: bool = True,
        create_slack_channel: bool = False,
        on_behalf_of_name: str | None = None,
        on_behalf_of_slack_id: str | None = None,
        creator_email: str | None = None,
    ) -> Transaction:
        fields = dict(fields)
        fields["status"] = (
            TransactionStatus.in_contract if is_under_contract else TransactionStatus.active
        )
        txn = await self._transactions.create(user_id=user_id, **fields)
        await self._timeline.transaction_created(txn.id, txn.property_address)
        log.info("transaction_created", transaction_id=str(txn.id), status=txn.status.value)

        if create_slack_channel:
            await self._provision_slack(
                txn,
                user_id=user_id,
                on_behalf_of_name=on_behalf_of_name,
                on_behalf_of_slack_id=on_behalf_of_slack_id,
                creator_email=creator_email,
            )
        return txn

    async def _provision_slack(
        self,
        txn: Transaction,
        *,
        user_id: str,
        on_behalf_of_name: str | None,
        on_behalf_of_slack_id: str | None,
        creator_email: str | None,
    ) -> None:
        if self._slack is None or not self._slack.configured:
            log.info(
                "slack_provisioning_skipped", transaction_id=str(txn.id), reason="not_configured"
            )
            return

        creator = await AgentProfileRepo(self._session).get(user_id)
        agent_name = (on_behalf_of_name or "").strip() or (
            (creator.display_name or "") if creator else ""
        )
        coordinators = await self._coordinators.get_many(txn.coordinator_ids or [])

        try:
            creator_slack_id = await self._slack_id_for(
                creator.slack_user_id if creator else None,
                (creator.email if creator else None) or creator_email,
            )
            agent_slack_id = on_behalf_of_slack_id or creator_slack_id
            coordinator_slack_ids = []
            for coordinator in coordinators:
                sid = await self._slack_id_for(coordinator.slack_user_id, coordinator.email)
                if sid:
                    coordinator_slack_ids.append(sid)

            channel = await self._slack.create_channel(
                generate_channel_name(txn.property_address, txn.transaction_type.value, agent_name)
            )
            # Persist the channel before invites so a later failure still leaves it linked.
            await self._transactions.update(
                txn, {"slack_channel_id": channel["id"], "slack_channel_name": channel["name"]}
            )
            await self._timeline.channel_created(txn.id, channel["name"])

            invitees = [agent_slack_id, creator_slack_id, *coordinator_slack_ids]
            await self._slack.invite_users(channel["id"], [i for i in invitees if i])

            agent_mention = f"<@{agent_slack_id}>" if agent_slack_id else (agent_name or "An agent")
            await self._slack.post_message(
                channel["id"],
                build_welcome_message(
                    address=txn.property_address,
                    agent_mention=agent_mention,
                    creator_slack_id=creator_slack_id,
                    agent_slack_id=agent_slack_id,
                    coordinator_slack_ids=coordinator_slack_ids,
                    closing_date=txn.closing_date,
                ),
            )
        except (SlackApiError, SlackNotConfiguredError) as exc:
            # Transaction creation never fails because of Slack.
            log.warning("slack_provisioning_failed", transaction_id=str(txn.id), error=str(exc))

    async def _slack_id_for(self, slack_user_id: str | None, email: str | None) -> str | None:
        if slack_user_id or not email:
            return slack_user_id
        return await self._slack.lookup_user_by_email(email)

    async def update(self, txn: Transaction, fields: dict[str, Any]) -> Transaction:
        old_status = txn.status
        old_closing = txn.closing_date
        old_contract = txn.contract_date
        old_list_price = txn.list_price
        old_coordinators = set(txn.coordinator_ids or [])
        old_notes = txn.notes

        await self._transactions.update(txn, fields)

        if "status" in fields and txn.status != old_status:
            await self._timeline.status_changed(txn.id, old_status.value, txn.status.value)
        if "closing_date" in fields and txn.closing_date and txn.closing_date != old_closing:
            await self._timeline.closing_date_set(txn.id, txn.closing_date)
        if "contract_date" in fields and txn.contract_date and txn.contract_date != old_contract:
            await self._timeline.contract_date_set(txn.id, txn.contract_date)
        if (
            "list_price" in fields
            and old_list_price is not None
            and txn.list_price is not None
            and txn.list_price != old_list_price
        ):
            await self._timeline.price_changed(txn.id, old_list_price, txn.list_price)
        if "notes" in fields and txn.notes and txn.notes != old_notes:
            await self._timeline.note_added(txn.id)
        if "coordinator_ids" in fields:
            await self._log_coordinator_changes(txn, old_coordinators)
        return txn

    async def _log_coordinator_changes(self, txn: Transaction, before: set[str]) -> None:
        after = set(txn.coordinator_ids or [])
        added = await self._coordinators.get_many(sorted(after - before))
        removed = await self._coordinators.get_many(sorted(before - after))
        for coordinator in added:
            await self._timeline.coordinator_assigned(txn.id, coordinator.name)
        for coordinator in removed:
            await self._timeline.coordinator_removed(txn.id, coordinator.name)

    async def archive(self, txn: Transaction) -> Transaction:
        if txn.is_archived:
            raise TransactionStateError("Transaction is already archived")

        settings_repo = NotificationSettingsRepo(self._session)
        snapshot: dict[str, dict[str, bool]] = {}
        for setting in await settings_repo.list_for_transaction(txn.id):
            snapshot[setting.user_id] = {f: getattr(setting, f) for f in _REMINDER_FIELDS}
            setting.closing_reminders = False

        await self._transactions.update(
            txn,
            {
                "is_archived": True,
                "archived_at": _utcnow(),
                "previous_reminder_settings": snapshot or None,
            },
        )
        await self._timeline.transaction_archived(txn.id)
        log.info(
            "transaction_archived",
            transaction_id=str(txn.id),
            settings_snapshotted=len(snapshot),
        )
        return txn

    async def restore(self, txn: Transaction) -> Transaction:
        if not txn.is_archived:
            raise TransactionStateError("Transaction is not archived")

        settings_repo = NotificationSettingsRepo(self._session)
        for user_id, values in (txn.previous_reminder_settings or {}).items():
            await settings_repo.upsert(user_id=user_id, transaction_id=txn.id, fields=values)

        await self._transactions.update(
            txn,
            {"is_archived": False, "archived_at": None, "previous_reminder_settings": None},
        )
        await self._timeline.transaction_restored(txn.id)
        log.info("transaction_restored", transaction_id=str(txn.id))
        return txn

    async def delete(self, txn: Transaction) -> None:
        transaction_id = str(txn.id)
        await self._transactions.delete(txn)
        log.info("transaction_deleted", transaction_id=transaction_id)

