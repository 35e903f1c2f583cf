"""
contract_conduit.api.routers.notifications

Notification preferences and closing-reminder operations.

Responsibilities:
- Read/update the caller's global notification preferences.
- Report reminder configuration and poller status.
- Admin-only: trigger a reminder run now, send a Slack test message.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_409_CONFLICT,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from contract_conduit.api.deps import db_session, reminder_scheduler, settings_dep, slack_client
from contract_conduit.auth.deps import get_principal, require_roles
from contract_conduit.auth.models import ADMIN_ROLE, AGENT_ROLE, Principal
from contract_conduit.clients.slack import SlackApiError, SlackClient
from contract_conduit.db.models import NotificationSetting
from contract_conduit.db.repositories.notifications import NotificationSettingsRepo
from contract_conduit.services.reminders import (
    ReminderScheduler,
    apply_parent_toggle,
    notification_status,
    send_test_notification,
)
from contract_conduit.settings import Settings

router = APIRouter(tags=["notifications"], dependencies=[Depends(require_roles(AGENT_ROLE))])


class NotificationPreferences(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    document_uploads: bool = False
    closing_reminders: bool = False
    marketing_assets: bool = False
    reminder_30_days: bool = False
    reminder_14_days: bool = False
    reminder_7_days: bool = False
    reminder_3_days: bool = False
    reminder_1_day: bool = False
    reminder_day_of: bool = False


class NotificationPreferencesUpdate(BaseModel):
    document_uploads: bool | None = None
    closing_reminders: bool | None = None
    marketing_assets: bool | None = None
    reminder_30_days: bool | None = None
    reminder_14_days: bool | None = None
    reminder_7_days: bool | None = None
    reminder_3_days: bool | None = None
    reminder_1_day: bool | None = None
    reminder_day_of: bool | None = None

    def changes(self) -> dict[str, bool]:
        return apply_parent_toggle(self.model_dump(exclude_none=True))


class ScopedNotificationPreferences(NotificationPreferences):
    # transaction | global | default
    scope: str


def scoped_preferences(
    setting: NotificationSetting | None, *, transaction_scoped: bool
) -> ScopedNotificationPreferences:
    if setting is None:
        return ScopedNotificationPreferences(scope="default")
    scope = "transaction" if transaction_scoped and setting.transaction_id else "global"
    return ScopedNotificationPreferences(
        scope=scope, **NotificationPreferences.model_validate(setting).model_dump()
    )


class TriggerRequest(BaseModel):
    bypass_disable: bool = False


class TestNotificationRequest(BaseModel):
    channel_id: str = Field(min_length=1, max_length=100)


@router.get("/api/user/notification-preferences", response_model=ScopedNotificationPreferences)
async def get_preferences(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> ScopedNotificationPreferences:
    setting = await NotificationSettingsRepo(session).get_exact(principal.subject, None)
    return scoped_preferences(setting, transaction_scoped=False)


@router.put("/api/user/notification-preferences", response_model=ScopedNotificationPreferences)
async def update_preferences(
    body: NotificationPreferencesUpdate,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> ScopedNotificationPreferences:
    setting = await NotificationSettingsRepo(session).upsert(
        user_id=principal.subject, transaction_id=None, fields=body.changes()
    )
    await session.commit()
    return scoped_preferences(setting, transaction_scoped=False)


@router.get("/api/notifications/status")
async def get_status(
    settings: Settings = Depends(settings_dep),
    scheduler: ReminderScheduler = Depends(reminder_scheduler),
) -> dict[str, Any]:
    return {**notification_status(settings), "scheduler": scheduler.status()}


@router.post(
    "/api/notifications/trigger",
    dependencies=[Depends(require_roles(ADMIN_ROLE))],
)
async def trigger_reminders(
    body: TriggerRequest | None = None,
    scheduler: ReminderScheduler = Depends(reminder_scheduler),
) -> dict[str, Any]:
    bypass = body.bypass_disable if body else False
    stats = await scheduler.force_run(bypass_disable=bypass)
    if stats is None:
        raise HTTPException(status_code=HTTP_409_CONFLICT, detail="Reminder run already in progress")
    return {"success": True, "stats": stats.to_dict()}


@router.post(
    "/api/notifications/test",
    dependencies=[Depends(require_roles(ADMIN_ROLE))],
)
async def test_notification(
    body: TestNotificationRequest,
    settings: Settings = Depends(settings_dep),
    slack: SlackClient = Depends(slack_client),
) -> dict[str, Any]:
    if not slack.configured:
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE, detail="Slack bot not configured"
        )
    try:
        ts = await send_test_notification(
            slack, body.channel_id, now=datetime.now(ZoneInfo(settings.reminder_timezone))
        )
    except SlackApiError as e:
        raise HTTPException(status_code=HTTP_502_BAD_GATEWAY, detail=str(e)) from e
    return {"success": True, "ts": ts}
