"""
contract_conduit.services.reminders

Slack closing-date reminders and the background poller that drives them.

Responsibilities:
- Decide, per transaction and day, whether a closing reminder is due.
- Resolve opt-in settings (transaction-level first, then the owner's global row).
- Post reminders at most once per (transaction, type, channel, local date).
- Commit each reminder separately; one failing transaction never undoes or stops the rest.
- Run an hourly poll that only does work when the local date changes.

Stats returned by a run:
- processed: candidate transactions examined
- sent: reminders posted
- skipped: reminder due but already sent today
- disabled: no settings, parent toggle off, or interval toggle off
- errors: Slack or unexpected failures
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contract_conduit.clients.slack import SlackApiError, SlackClient, SlackNotConfiguredError
from contract_conduit.db.models import NotificationSetting, Transaction
from contract_conduit.db.repositories.notifications import (
    NotificationSettingsRepo,
    SentNotificationRepo,
)
from contract_conduit.db.repositories.transactions import TransactionRepo
from contract_conduit.db.session import session_scope
from contract_conduit.services.timeline import TimelineLogger
from contract_conduit.settings import Settings

log = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ReminderRule:
    days_before: int
    notification_type: str
    setting_field: str
    label: str


REMINDER_RULES: dict[int, ReminderRule] = {
    30: ReminderRule(30, "closing_30_days", "reminder_30_days", "30 days"),
    14: ReminderRule(14, "closing_14_days", "reminder_14_days", "14 days"),
    7: ReminderRule(7, "closing_7_days", "reminder_7_days", "7 days"),
    3: ReminderRule(3, "closing_3_days", "reminder_3_days", "3 days"),
    1: ReminderRule(1, "closing_1_day", "reminder_1_day", "1 day"),
    0: ReminderRule(0, "closing_day_of", "reminder_day_of", "Day of closing"),
}

_FOLLOW_UPS = {
    30: "Now is a good time to confirm financing and inspection timelines.",
    14: "Check that the appraisal and title work are on track.",
    7: "Confirm the final walkthrough and closing appointment.",
    3: "Final preparations should be underway.",
    1: "Make sure everyone has the closing time and location.",
}


@dataclass(slots=True)
class ReminderStats:
    processed: int = 0
    sent: int = 0
    skipped: int = 0
    disabled: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ReminderCandidate:
    """
    Plain snapshot of a candidate transaction. It stays readable after a per-reminder
    rollback expires the ORM rows.
    """

    transaction_id: uuid.UUID
    user_id: str | None
    address: str
    closing_date: date
    channel_id: str

    @classmethod
    def from_transaction(cls, txn: Transaction) -> ReminderCandidate:
        return cls(
            transaction_id=txn.id,
            user_id=txn.user_id,
            address=txn.property_address,
            closing_date=txn.closing_date,
            channel_id=txn.slack_channel_id or "",
        )


def local_today(timezone: str) -> date:
    return datetime.now(ZoneInfo(timezone)).date()


def days_until_closing(closing_date: date, today: date) -> int:
    return (closing_date - today).days


def format_closing_date(value: date) -> str:
    # e.g. "Friday, March 14, 2025"
    return f"{value.strftime('%A, %B')} {value.day}, {value.year}"


def reminder_message(rule: ReminderRule, address: str, closing_date: date) -> str:
    if rule.days_before == 0:
        return (
            f":tada: *Closing Day!*\n\n*{address}* is closing *today*!\n\n"
            "Good luck with the closing!"
        )
    return (
        f":calendar: *Closing Reminder*\n\n*{address}* is closing in *{rule.label}* "
        f"on {format_closing_date(closing_date)}.\n\n{_FOLLOW_UPS[rule.days_before]}"
    )


INTERVAL_FIELDS = tuple(rule.setting_field for rule in REMINDER_RULES.values())


def apply_parent_toggle(fields: dict[str, Any]) -> dict[str, Any]:
    """
    Turning closing reminders off also turns every interval off.
    """

    if fields.get("closing_reminders") is False:
        return {**fields, **{name: False for name in INTERVAL_FIELDS}}
    return fields


def reminder_enabled(setting: NotificationSetting | None, rule: ReminderRule) -> bool:
    # Opt-in: no settings row means no reminders. The parent toggle gates every interval.
    if setting is None or not setting.closing_reminders:
        return False
    return bool(getattr(setting, rule.setting_field))


async def process_closing_reminders(
    session: AsyncSession,
    *,
    slack: SlackClient,
    settings: Settings,
    today: date,
    bypass_disable: bool = False,
) -> ReminderStats:
    stats = ReminderStats()

    if settings.disable_slack_notifications and not bypass_disable:
        log.warning("closing_reminders_disabled", reason="kill_switch")
        return stats
    if not slack.configured:
        log.warning("closing_reminders_disabled", reason="slack_not_configured")
        return stats

    active_days = set(settings.reminder_days) & set(REMINDER_RULES)
    candidates = [
        ReminderCandidate.from_transaction(txn)
        for txn in await TransactionRepo(session).list_reminder_candidates()
    ]
    log.info("closing_reminders_started", today=today.isoformat(), candidates=len(candidates))

    settings_repo = NotificationSettingsRepo(session)
    sent_repo = SentNotificationRepo(session)
    timeline = TimelineLogger(session)

    for candidate in candidates:
        stats.processed += 1
        days_until = days_until_closing(candidate.closing_date, today)
        if days_until not in active_days:
            continue
        rule = REMINDER_RULES[days_until]

        setting = (
            await settings_repo.get_effective(candidate.user_id, candidate.transaction_id)
            if candidate.user_id
            else None
        )
        if not reminder_enabled(setting, rule):
            log.info(
                "closing_reminder_disabled",
                transaction_id=str(candidate.transaction_id),
                notification_type=rule.notification_type,
                has_settings=setting is not None,
            )
            stats.disabled += 1
            continue

        # Commit per reminder: a posted message always keeps its dedup record.
        try:
            sent = await _send_once(
                candidate, rule, today, slack=slack, sent_repo=sent_repo, timeline=timeline
            )
            await session.commit()
        except (SlackApiError, SlackNotConfiguredError) as exc:
            await session.rollback()
            stats.errors += 1
            log.error(
                "closing_reminder_failed",
                transaction_id=str(candidate.transaction_id),
                notification_type=rule.notification_type,
                error=str(exc),
            )
            continue
        except Exception:
            await session.rollback()
            stats.errors += 1
            log.exception(
                "closing_reminder_failed",
                transaction_id=str(candidate.transaction_id),
                notification_type=rule.notification_type,
            )
            continue

        if sent:
            stats.sent += 1
        else:
            stats.skipped += 1

    log.info("closing_reminders_completed", **stats.to_dict())
    return stats


async def _send_once(
    candidate: ReminderCandidate,
    rule: ReminderRule,
    today: date,
    *,
    slack: SlackClient,
    sent_repo: SentNotificationRepo,
    timeline: TimelineLogger,
) -> bool:
    already = await sent_repo.was_sent_on(
        transaction_id=candidate.transaction_id,
        notification_type=rule.notification_type,
        channel_id=candidate.channel_id,
        day=today,
    )
    if already:
        log.info(
            "closing_reminder_already_sent",
            transaction_id=str(candidate.transaction_id),
            notification_type=rule.notification_type,
        )
        return False

    ts = await slack.post_message(
        candidate.channel_id,
        reminder_message(rule, candidate.address, candidate.closing_date),
    )
    await sent_repo.record(
        transaction_id=candidate.transaction_id,
        notification_type=rule.notification_type,
        channel_id=candidate.channel_id,
        day=today,
        message_ts=ts,
    )
    await timeline.closing_reminder_sent(
        candidate.transaction_id, rule.days_before, candidate.channel_id
    )
    log.info(
        "closing_reminder_sent",
        transaction_id=str(candidate.transaction_id),
        notification_type=rule.notification_type,
    )
    return True


def notification_status(settings: Settings) -> dict[str, Any]:
    return {
        "bot_configured": settings.slack_configured,
        "notifications_enabled": not settings.disable_slack_notifications,
        "environment": settings.env,
        "available_reminders": [
            REMINDER_RULES[d].label
            for d in sorted(settings.reminder_days, reverse=True)
            if d in REMINDER_RULES
        ],
    }


async def send_test_notification(
    slack: SlackClient, channel_id: str, *, now: datetime
) -> str | None:
    return await slack.post_message(
        channel_id,
        f":white_check_mark: *Test Notification*\n\nSlack bot is connected!\n\n"
        f"Time: {now.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
    )


class ReminderScheduler:
    """
    Hourly poller. A tick is a no-op unless the local date changed since the last
    completed run; overlapping runs are refused.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        slack: SlackClient,
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory
        self._slack = slack
        self._task: asyncio.Task[None] | None = None
        self._stop = asyncio.Event()
        self._processing = False
        self._last_run_date: date | None = None
        self._last_stats: ReminderStats | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="closing-reminders")
        log.info(
            "reminder_scheduler_started",
            interval_seconds=self._settings.reminder_check_interval_seconds,
            timezone=self._settings.reminder_timezone,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop.set()
        await self._task
        self._task = None
        log.info("reminder_scheduler_stopped")

    async def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                await self.tick()
            except Exception:
                # One bad run must not kill the poller.
                log.exception("reminder_tick_failed")
            try:
                await asyncio.wait_for(
                    self._stop.wait(), timeout=self._settings.reminder_check_interval_seconds
                )
            except TimeoutError:
                continue

    async def tick(self, *, today: date | None = None) -> ReminderStats | None:
        today = today or local_today(self._settings.reminder_timezone)
        if self._last_run_date == today:
            return None
        stats = await self._run(today, bypass_disable=False)
        if stats is not None:
            self._last_run_date = today
        return stats

    async def force_run(
        self, *, bypass_disable: bool = False, today: date | None = None
    ) -> ReminderStats | None:
        today = today or local_today(self._settings.reminder_timezone)
        return await self._run(today, bypass_disable=bypass_disable)

    async def _run(self, today: date, *, bypass_disable: bool) -> ReminderStats | None:
        if self._processing:
            log.warning("reminder_run_skipped", reason="already_processing")
            return None
        self._processing = True
        try:
            async with session_scope(self._session_factory) as session:
                stats = await process_closing_reminders(
                    session,
                    slack=self._slack,
                    settings=self._settings,
                    today=today,
                    bypass_disable=bypass_disable,
                )
            self._last_stats = stats
            return stats
        finally:
            self._processing = False

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "is_processing": self._processing,
            "last_run_date": self._last_run_date.isoformat() if self._last_run_date else None,
            "last_stats": self._last_stats.to_dict() if self._last_stats else None,
            "interval_seconds": self._settings.reminder_check_interval_seconds,
            "timezone": self._settings.reminder_timezone,
        }


# --- Module Notes -----------------------------------------------------------
# The scheduler is started by the app lifespan only in prod; `/api/notifications/trigger`
# calls `force_run` on the same instance so the overlap guard covers both paths.
