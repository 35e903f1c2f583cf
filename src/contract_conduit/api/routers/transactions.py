"""
contract_conduit.api.routers.transactions

Transaction endpoints for agents.

Responsibilities:
- CRUD for transactions (team-visible).
- Archive / restore.
- Activity timeline and per-transaction notification settings.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_400_BAD_REQUEST, HTTP_404_NOT_FOUND

from contract_conduit.api.deps import db_session, slack_client
from contract_conduit.api.routers.notifications import (
    NotificationPreferencesUpdate,
    ScopedNotificationPreferences,
    scoped_preferences,
)
from contract_conduit.auth.deps import get_principal, require_roles
from contract_conduit.auth.models import AGENT_ROLE, Principal
from contract_conduit.clients.slack import SlackClient
from contract_conduit.db.models import Transaction, TransactionStatus, TransactionType
from contract_conduit.db.repositories.activities import ActivityRepo
from contract_conduit.db.repositories.notifications import NotificationSettingsRepo
from contract_conduit.db.repositories.transactions import TransactionRepo
from contract_conduit.services.transactions import TransactionService, TransactionStateError

router = APIRouter(
    prefix="/api/transactions",
    tags=["transactions"],
    dependencies=[Depends(require_roles(AGENT_ROLE))],
)

# Columns that accept an explicit null on update.
_NULLABLE_ON_UPDATE = frozenset(
    {
        "mls_number",
        "contract_date",
        "closing_date",
        "go_live_date",
        "list_price",
        "sale_price",
        "bedrooms",
        "bathrooms",
        "half_baths",
        "sqft",
        "lot_size_acres",
        "year_built",
        "property_type",
        "mls_data",
        "cma_data",
        "property_description",
        "notes",
    }
)


class TransactionFields(BaseModel):
    transaction_type: TransactionType = TransactionType.buy
    mls_number: str | None = Field(default=None, max_length=64)
    contract_date: date | None = None
    closing_date: date | None = None
    go_live_date: date | None = None
    list_price: int | None = Field(default=None, ge=0)
    sale_price: int | None = Field(default=None, ge=0)
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: float | None = Field(default=None, ge=0)
    half_baths: int | None = Field(default=None, ge=0)
    sqft: int | None = Field(default=None, ge=0)
    lot_size_acres: float | None = Field(default=None, ge=0)
    year_built: int | None = Field(default=None, ge=1700, le=2200)
    property_type: str | None = Field(default=None, max_length=64)
    is_company_lead: bool = False
    is_off_market: bool = False
    is_coming_soon: bool = False
    coordinator_ids: list[str] = Field(default_factory=list)
    mls_data: dict[str, Any] | None = None
    cma_data: list[dict[str, Any]] | None = None
    property_images: list[str] = Field(default_factory=list)
    property_description: str | None = None
    notes: str | None = None


class TransactionCreateRequest(TransactionFields):
    property_address: str = Field(min_length=1)
    is_under_contract: bool = True
    create_slack_channel: bool = False
    on_behalf_of_name: str | None = Field(default=None, max_length=256)
    on_behalf_of_slack_id: str | None = Field(default=None, max_length=64)

    def fields(self) -> dict[str, Any]:
        return self.model_dump(
            exclude={
                "is_under_contract",
                "create_slack_channel",
                "on_behalf_of_name",
                "on_behalf_of_slack_id",
            }
        )


class TransactionUpdateRequest(BaseModel):
    property_address: str | None = Field(default=None, min_length=1)
    status: TransactionStatus | None = None
    transaction_type: TransactionType | None = None
    mls_number: str | None = Field(default=None, max_length=64)
    contract_date: date | None = None
    closing_date: date | None = None
    go_live_date: date | None = None
    list_price: int | None = Field(default=None, ge=0)
    sale_price: int | None = Field(default=None, ge=0)
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: float | None = Field(default=None, ge=0)
    half_baths: int | None = Field(default=None, ge=0)
    sqft: int | None = Field(default=None, ge=0)
    lot_size_acres: float | None = Field(default=None, ge=0)
    year_built: int | None = Field(default=None, ge=1700, le=2200)
    property_type: str | None = Field(default=None, max_length=64)
    is_company_lead: bool | None = None
    is_off_market: bool | None = None
    is_coming_soon: bool | None = None
    coordinator_ids: list[str] | None = None
    mls_data: dict[str, Any] | None = None
    cma_data: list[dict[str, Any]] | None = None
    property_images: list[str] | None = None
    property_description: str | None = None
    notes: str | None = None

    def changes(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key in _NULLABLE_ON_UPDATE
        }


class TransactionResponse(TransactionFields):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str | None
    property_address: str
    status: TransactionStatus
    slack_channel_id: str | None
    slack_channel_name: str | None
    is_archived: bool
    archived_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    transaction_id: uuid.UUID
    type: str
    category: str
    description: str
    details: dict[str, Any] = Field(serialization_alias="metadata")
    created_at: datetime


async def _load(session: AsyncSession, transaction_id: uuid.UUID) -> Transaction:
    txn = await TransactionRepo(session).get(transaction_id)
    if txn is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Transaction not found")
    return txn


@router.get("", response_model=list[TransactionResponse])
async def list_transactions(
    include_archived: bool = False,
    session: AsyncSession = Depends(db_session),
) -> list[Transaction]:
    return await TransactionRepo(session).list_all(include_archived=include_archived)


@router.post("", response_model=TransactionResponse, status_code=HTTP_201_CREATED)
async def create_transaction(
    body: TransactionCreateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
    slack: SlackClient = Depends(slack_client),
) -> Transaction:
    service = TransactionService(session, slack=slack)
    txn = await service.create(
        user_id=principal.subject,
        fields=body.fields(),
        is_under_contract=body.is_under_contract,
        create_slack_channel=body.create_slack_channel,
        on_behalf_of_name=body.on_behalf_of_name,
        on_behalf_of_slack_id=body.on_behalf_of_slack_id,
        creator_email=principal.email,
    )
    await session.commit()
    return txn


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> Transaction:
    return await _load(session, transaction_id)


@router.patch("/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: uuid.UUID,
    body: TransactionUpdateRequest,
    session: AsyncSession = Depends(db_session),
) -> Transaction:
    txn = await _load(session, transaction_id)
    await TransactionService(session).update(txn, body.changes())
    await session.commit()
    return txn


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> dict[str, bool]:
    txn = await _load(session, transaction_id)
    await TransactionService(session).delete(txn)
    await session.commit()
    return {"success": True}


@router.post("/{transaction_id}/archive", response_model=TransactionResponse)
async def archive_transaction(
    transaction_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> Transaction:
    txn = await _load(session, transaction_id)
    try:
        await TransactionService(session).archive(txn)
    except TransactionStateError as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(e)) from e
    await session.commit()
    return txn


@router.post("/{transaction_id}/restore", response_model=TransactionResponse)
async def restore_transaction(
    transaction_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> Transaction:
    txn = await _load(session, transaction_id)
    try:
        await TransactionService(session).restore(txn)
    except TransactionStateError as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(e)) from e
    await session.commit()
    return txn


@router.get("/{transaction_id}/activities", response_model=list[ActivityResponse])
async def list_activities(
    transaction_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> list[ActivityResponse]:
    await _load(session, transaction_id)
    activities = await ActivityRepo(session).list_for_transaction(transaction_id)
    return [ActivityResponse.model_validate(a) for a in activities]


@router.get(
    "/{transaction_id}/notification-settings",
    response_model=ScopedNotificationPreferences,
)
async def get_transaction_notification_settings(
    transaction_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> ScopedNotificationPreferences:
    await _load(session, transaction_id)
    setting = await NotificationSettingsRepo(session).get_effective(
        principal.subject, transaction_id
    )
    return scoped_preferences(setting, transaction_scoped=True)


@router.put(
    "/{transaction_id}/notification-settings",
    response_model=ScopedNotificationPreferences,
)
async def update_transaction_notification_settings(
    transaction_id: uuid.UUID,
    body: NotificationPreferencesUpdate,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> ScopedNotificationPreferences:
    await _load(session, transaction_id)
    setting = await NotificationSettingsRepo(session).upsert(
        user_id=principal.subject, transaction_id=transaction_id, fields=body.changes()
    )
    await session.commit()
    return scoped_preferences(setting, transaction_scoped=True)
