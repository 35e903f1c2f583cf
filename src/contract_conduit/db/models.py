"""
contract_conduit.db.models

Persistence schema for the back office.

Responsibilities:
- Define ORM models:
  - Transaction: a buy/sell deal with its Slack channel and closing date
  - Coordinator: transaction coordinators invited into deal channels
  - Activity: per-transaction timeline entries
  - Cma / CmaReportConfig / CmaReportTemplate: CMA reports and presentation settings
  - NotificationSetting / SentNotification: reminder opt-ins and per-day dedup
  - AgentProfile / AgentResource: agent branding used in reports
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    Enum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid as SAUuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contract_conduit.db.base import Base


def _utcnow() -> datetime:
    # Naive UTC timestamps; SQLite has no tz-aware column type.
    return datetime.now(UTC).replace(tzinfo=None)


class TransactionStatus(enum.StrEnum):
    active = "active"
    in_contract = "in_contract"
    pending_inspection = "pending_inspection"
    clear_to_close = "clear_to_close"
    closed = "closed"
    cancelled = "cancelled"


# Deals in these states never receive closing reminders.
TERMINAL_STATUSES = frozenset({TransactionStatus.closed, TransactionStatus.cancelled})


class TransactionType(enum.StrEnum):
    buy = "buy"
    sell = "sell"


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # The agent who created this transaction.
    user_id: Mapped[str | None] = mapped_column(String(256), nullable=True, index=True)
    transaction_type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType), nullable=False, default=TransactionType.buy
    )
    property_address: Mapped[str] = mapped_column(Text, nullable=False)
    mls_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus), nullable=False, default=TransactionStatus.in_contract, index=True
    )

    contract_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    closing_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    go_live_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    list_price: Mapped[int | None] = mapped_column(nullable=True)
    sale_price: Mapped[int | None] = mapped_column(nullable=True)
    bedrooms: Mapped[int | None] = mapped_column(nullable=True)
    bathrooms: Mapped[float | None] = mapped_column(Float, nullable=True)
    half_baths: Mapped[int | None] = mapped_column(nullable=True)
    sqft: Mapped[int | None] = mapped_column(nullable=True)
    lot_size_acres: Mapped[float | None] = mapped_column(Float, nullable=True)
    year_built: Mapped[int | None] = mapped_column(nullable=True)
    property_type: Mapped[str | None] = mapped_column(String(64), nullable=True)

    is_company_lead: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_off_market: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_coming_soon: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    slack_channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    slack_channel_name: Mapped[str | None] = mapped_column(String(128), nullable=True)

    coordinator_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    mls_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    cma_data: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    property_images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    property_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)
    # Reminder settings captured at archive time so a restore can put them back.
    previous_reminder_settings: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)

    activities: Mapped[list[Activity]] = relationship(
        back_populates="transaction", cascade="all, delete-orphan", passive_deletes=True
    )
    notification_settings: Mapped[list[NotificationSetting]] = relationship(
        cascade="all, delete-orphan", passive_deletes=True
    )
    sent_notifications: Mapped[list[SentNotification]] = relationship(
        cascade="all, delete-orphan", passive_deletes=True
    )


class Coordinator(Base):
    __tablename__ = "coordinators"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str] = mapped_column(String(256), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    slack_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="other")
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # `metadata` is reserved on declarative classes, hence the attribute rename.
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)

    transaction: Mapped[Transaction] = relationship(back_populates="activities")

    __table_args__ = (Index("ix_activities_transaction_created", "transaction_id", "created_at"),)


class Cma(Base):
    __tablename__ = "cmas"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True),
        ForeignKey("transactions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    user_id: Mapped[str | None] = mapped_column(String(256), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)

    # MLS number of the subject property inside `properties_data`.
    subject_property_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    comparable_property_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    properties_data: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    search_criteria: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    public_link: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    brochure: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    adjustments: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)

    report_config: Mapped[CmaReportConfig | None] = relationship(
        back_populates="cma",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )


class CmaReportConfig(Base):
    __tablename__ = "cma_report_configs"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    cma_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True),
        ForeignKey("cmas.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    included_sections: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    section_order: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    cover_letter_override: Mapped[str | None] = mapped_column(Text, nullable=True)
    layout: Mapped[str] = mapped_column(String(32), nullable=False, default="two_photos")
    template: Mapped[str] = mapped_column(String(64), nullable=False, default="default")
    theme: Mapped[str] = mapped_column(String(64), nullable=False, default="spyglass")
    photo_layout: Mapped[str] = mapped_column(String(32), nullable=False, default="first_dozen")
    map_style: Mapped[str] = mapped_column(String(32), nullable=False, default="streets")
    show_map_polygon: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    include_agent_footer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    cover_page_config: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    custom_photo_selections: Mapped[dict[str, list[str]] | None] = mapped_column(
        JSON, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)

    cma: Mapped[Cma] = relationship(back_populates="report_config")


class CmaReportTemplate(Base):
    __tablename__ = "cma_report_templates"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    included_sections: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    section_order: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    cover_letter_override: Mapped[str | None] = mapped_column(Text, nullable=True)
    layout: Mapped[str] = mapped_column(String(32), nullable=False, default="two_photos")
    theme: Mapped[str] = mapped_column(String(64), nullable=False, default="spyglass")
    photo_layout: Mapped[str] = mapped_column(String(32), nullable=False, default="first_dozen")
    map_style: Mapped[str] = mapped_column(String(32), nullable=False, default="streets")
    show_map_polygon: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    include_agent_footer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    cover_page_config: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)


class NotificationSetting(Base):
    """
    Per-user notification opt-ins. `transaction_id` NULL means the user's global row.
    Every toggle defaults to False: reminders are strictly opt-in.
    """

    __tablename__ = "notification_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    document_uploads: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Parent toggle: interval toggles are ignored while this is off.
    closing_reminders: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    marketing_assets: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    reminder_30_days: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reminder_14_days: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reminder_7_days: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reminder_3_days: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reminder_1_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reminder_day_of: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        # One row per (user, transaction) and a single global row per user.
        Index(
            "uq_notification_settings_user_transaction",
            "user_id",
            "transaction_id",
            unique=True,
        ),
        Index(
            "uq_notification_settings_user_global",
            "user_id",
            unique=True,
            sqlite_where=text("transaction_id IS NULL"),
            postgresql_where=text("transaction_id IS NULL"),
        ),
    )


class SentNotification(Base):
    __tablename__ = "sent_notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    notification_type: Mapped[str] = mapped_column(String(50), nullable=False)
    channel_id: Mapped[str] = mapped_column(String(100), nullable=False)
    # Local calendar date of the send; the dedup key is per day.
    sent_on: Mapped[date] = mapped_column(Date, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    message_ts: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "transaction_id",
            "notification_type",
            "channel_id",
            "sent_on",
            name="uq_sent_notifications_dedup",
        ),
    )


class AgentProfile(Base):
    __tablename__ = "agent_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)

    display_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    slack_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    title: Mapped[str | None] = mapped_column(String(128), nullable=True)
    headshot_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_cover_letter: Mapped[str | None] = mapped_column(Text, nullable=True)

    facebook_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    instagram_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    twitter_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    website_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    marketing_company: Mapped[str | None] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)


class AgentResource(Base):
    __tablename__ = "agent_resources"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # link | file
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    file_mime_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)


# --- Module Notes -----------------------------------------------------------
# JSON columns hold MLS payloads verbatim; the cma package tolerates the field-name
# drift between MLS feeds instead of normalising at write time.
