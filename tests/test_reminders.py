"""
tests.test_reminders

Closing reminders: opt-in resolution, per-day dedup, the kill switch and the poller.
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from contract_conduit.db.models import NotificationSetting, Transaction, TransactionStatus
from contract_conduit.db.repositories.activities import ActivityRepo
from contract_conduit.db.repositories.notifications import (
    NotificationSettingsRepo,
    SentNotificationRepo,
)
from contract_conduit.db.repositories.transactions import TransactionRepo
from contract_conduit.services.reminders import (
    REMINDER_RULES,
    ReminderScheduler,
    apply_parent_toggle,
    format_closing_date,
    process_closing_reminders,
    reminder_message,
)
from contract_conduit.services.timeline import TimelineLogger

TODAY = date(2025, 3, 7)


async def _seed(
    session_factory,
    *,
    days_out: int = 7,
    settings_fields: dict | None = None,
    transaction_scoped: bool = False,
    **overrides,
) -> Transaction:
    async with session_factory() as session:
        fields = {
            "user_id": "agent-1",
            "property_address": "12 Oak Ln",
            "status": TransactionStatus.in_contract,
            "closing_date": TODAY + timedelta(days=days_out),
            "slack_channel_id": "C0DEAL",
            **overrides,
        }
        txn = await TransactionRepo(session).create(**fields)
        if settings_fields is not None:
            await NotificationSettingsRepo(session).upsert(
                user_id="agent-1",
                transaction_id=txn.id if transaction_scoped else None,
                fields=settings_fields,
            )
        await session.commit()
        return txn


async def _run(session_factory, slack, settings, *, today: date = TODAY, **kwargs):
    async with session_factory() as session:
        stats = await process_closing_reminders(
            session, slack=slack, settings=settings, today=today, **kwargs
        )
        await session.commit()
        return stats


def test_parent_toggle_turns_intervals_off() -> None:
    fields = apply_parent_toggle({"closing_reminders": False, "reminder_7_days": True})
    assert fields["reminder_7_days"] is False
    assert fields["reminder_day_of"] is False
    assert apply_parent_toggle({"reminder_7_days": True}) == {"reminder_7_days": True}


def test_reminder_messages() -> None:
    assert format_closing_date(date(2025, 3, 14)) == "Friday, March 14, 2025"
    seven = reminder_message(REMINDER_RULES[7], "12 Oak Ln", date(2025, 3, 14))
    assert "*12 Oak Ln* is closing in *7 days* on Friday, March 14, 2025" in seven
    assert "is closing *today*" in reminder_message(REMINDER_RULES[0], "12 Oak Ln", TODAY)


@pytest.mark.asyncio
async def test_sends_once_per_day(session_factory, slack, settings, upstreams) -> None:
    txn = await _seed(
        session_factory, settings_fields={"closing_reminders": True, "reminder_7_days": True}
    )

    stats = await _run(session_factory, slack, settings)
    assert stats.to_dict() == {"processed": 1, "sent": 1, "skipped": 0, "disabled": 0, "errors": 0}
    (call,) = upstreams.slack_calls("chat.postMessage")
    assert call["channel"] == "C0DEAL"
    assert "7 days" in call["text"]

    again = await _run(session_factory, slack, settings)
    assert (again.sent, again.skipped) == (0, 1)
    assert len(upstreams.slack_calls("chat.postMessage")) == 1

    async with session_factory() as session:
        activities = await ActivityRepo(session).list_for_transaction(txn.id)
    reminder = next(a for a in activities if a.type == "closing_reminder_sent")
    assert reminder.category == "communication"
    assert reminder.details["days_until"] == 7


@pytest.mark.asyncio
async def test_no_settings_means_no_reminders(session_factory, slack, settings, upstreams) -> None:
    await _seed(session_factory)

    stats = await _run(session_factory, slack, settings)
    assert (stats.processed, stats.disabled, stats.sent) == (1, 1, 0)
    assert upstreams.slack_calls() == []


@pytest.mark.asyncio
async def test_parent_toggle_off_disables(session_factory, slack, settings) -> None:
    await _seed(
        session_factory, settings_fields={"closing_reminders": False, "reminder_7_days": True}
    )
    stats = await _run(session_factory, slack, settings)
    assert stats.disabled == 1


@pytest.mark.asyncio
async def test_transaction_settings_override_global(session_factory, slack, settings) -> None:
    await _seed(
        session_factory,
        settings_fields={"closing_reminders": True, "reminder_7_days": False},
        transaction_scoped=True,
    )
    async with session_factory() as session:
        await NotificationSettingsRepo(session).upsert(
            user_id="agent-1",
            transaction_id=None,
            fields={"closing_reminders": True, "reminder_7_days": True},
        )
        await session.commit()

    stats = await _run(session_factory, slack, settings)
    assert stats.disabled == 1


@pytest.mark.asyncio
async def test_off_schedule_days_and_ineligible_deals(session_factory, slack, settings) -> None:
    on = {"closing_reminders": True, "reminder_7_days": True, "reminder_3_days": True}
    await _seed(session_factory, days_out=5, settings_fields=on)
    await _seed(session_factory, days_out=3, is_archived=True)
    await _seed(session_factory, days_out=3, status=TransactionStatus.closed)
    await _seed(session_factory, days_out=3, slack_channel_id=None)

    stats = await _run(session_factory, slack, settings)
    assert stats.to_dict() == {"processed": 1, "sent": 0, "skipped": 0, "disabled": 0, "errors": 0}


@pytest.mark.asyncio
async def test_slack_failure_counts_error(session_factory, slack, settings, upstreams) -> None:
    await _seed(
        session_factory, settings_fields={"closing_reminders": True, "reminder_7_days": True}
    )
    upstreams.slack_errors["chat.postMessage"] = "not_in_channel"

    stats = await _run(session_factory, slack, settings)
    assert (stats.sent, stats.errors) == (0, 1)


@pytest.mark.asyncio
async def test_kill_switch(session_factory, slack, settings) -> None:
    await _seed(
        session_factory, settings_fields={"closing_reminders": True, "reminder_7_days": True}
    )
    disabled = settings.model_copy(update={"disable_slack_notifications": True})

    stats = await _run(session_factory, slack, disabled)
    assert stats.processed == 0

    bypassed = await _run(session_factory, slack, disabled, bypass_disable=True)
    assert bypassed.sent == 1


@pytest.mark.asyncio
async def test_scheduler_runs_once_per_date(session_factory, slack, settings) -> None:
    await _seed(
        session_factory, settings_fields={"closing_reminders": True, "reminder_7_days": True}
    )
    scheduler = ReminderScheduler(settings=settings, session_factory=session_factory, slack=slack)

    first = await scheduler.tick(today=TODAY)
    assert first is not None and first.sent == 1
    assert await scheduler.tick(today=TODAY) is None

    next_day = await scheduler.tick(today=TODAY + timedelta(days=1))
    assert next_day is not None and next_day.sent == 0

    status = scheduler.status()
    assert status["last_run_date"] == (TODAY + timedelta(days=1)).isoformat()
    assert status["running"] is False


@pytest.mark.asyncio
async def test_scheduler_start_and_stop(session_factory, slack, settings) -> None:
    scheduler = ReminderScheduler(settings=settings, session_factory=session_factory, slack=slack)
    scheduler.start()
    assert scheduler.running
    await scheduler.stop()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_unexpected_failure_keeps_other_reminders(
    session_factory, slack, settings, upstreams, monkeypatch
) -> None:
    on = {"closing_reminders": True, "reminder_7_days": True, "reminder_3_days": True}
    failing = await _seed(session_factory, days_out=7, settings_fields=on)
    good = await _seed(session_factory, days_out=3, property_address="14 Oak Ln")

    original = TimelineLogger.closing_reminder_sent

    async def fail_for_seven_days(self, transaction_id, days_until, channel_id):
        if days_until == 7:
            raise RuntimeError("db hiccup")
        return await original(self, transaction_id, days_until, channel_id)

    monkeypatch.setattr(TimelineLogger, "closing_reminder_sent", fail_for_seven_days)

    stats = await _run(session_factory, slack, settings)
    assert (stats.processed, stats.sent, stats.errors) == (2, 1, 1)

    again = await _run(session_factory, slack, settings)
    assert (again.sent, again.skipped, again.errors) == (0, 1, 1)

    posts = [c["text"] for c in upstreams.slack_calls("chat.postMessage")]
    assert sum("*14 Oak Ln*" in text for text in posts) == 1

    async with session_factory() as session:
        sent_repo = SentNotificationRepo(session)
        assert await sent_repo.was_sent_on(
            transaction_id=good.id,
            notification_type="closing_3_days",
            channel_id="C0DEAL",
            day=TODAY,
        )
        assert not await sent_repo.was_sent_on(
            transaction_id=failing.id,
            notification_type="closing_7_days",
            channel_id="C0DEAL",
            day=TODAY,
        )


@pytest.mark.asyncio
async def test_one_global_settings_row_per_user(session_factory) -> None:
    async with session_factory() as session:
        session.add_all(
            [NotificationSetting(user_id="agent-1"), NotificationSetting(user_id="agent-1")]
        )
        with pytest.raises(IntegrityError):
            await session.flush()
