"""
contract_conduit.db.repositories.cmas

Repositories for CMA reports and their presentation settings.

Responsibilities:
- CRUD for `Cma` rows, lookup by share token.
- 1:1 `CmaReportConfig` upsert keyed by CMA id.
- User-owned `CmaReportTemplate` CRUD with a single default per user.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from contract_conduit.db.models import Cma, CmaReportConfig, CmaReportTemplate, _utcnow


class CmaRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, **fields: Any) -> Cma:
        cma = Cma(**fields)
        self._session.add(cma)
        await self._session.flush()
        return cma

    async def get(self, cma_id: uuid.UUID) -> Cma | None:
        return await self._session.get(Cma, cma_id)

    async def get_by_share_token(self, token: str) -> Cma | None:
        stmt = select(Cma).where(Cma.public_link == token)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def latest_for_transaction(self, transaction_id: uuid.UUID) -> Cma | None:
        stmt = (
            select(Cma)
            .where(Cma.transaction_id == transaction_id)
            .order_by(desc(Cma.updated_at))
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def list_for_user(self, user_id: str | None) -> list[Cma]:
        stmt = select(Cma).order_by(desc(Cma.updated_at))
        if user_id is not None:
            stmt = stmt.where(Cma.user_id == user_id)
        return list((await self._session.execute(stmt)).scalars().all())

    async def update(self, cma: Cma, fields: dict[str, Any]) -> Cma:
        for key, value in fields.items():
            setattr(cma, key, value)
        cma.updated_at = _utcnow()
        await self._session.flush()
        return cma

    async def delete(self, cma: Cma) -> None:
        # Report config goes with it via the ORM cascade.
        await self._session.delete(cma)
        await self._session.flush()


class ReportConfigRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, cma_id: uuid.UUID) -> CmaReportConfig | None:
        stmt = select(CmaReportConfig).where(CmaReportConfig.cma_id == cma_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def upsert(self, cma_id: uuid.UUID, fields: dict[str, Any]) -> CmaReportConfig:
        config = await self.get(cma_id)
        if config is None:
            config = CmaReportConfig(cma_id=cma_id, **fields)
            self._session.add(config)
        else:
            for key, value in fields.items():
                setattr(config, key, value)
            config.updated_at = _utcnow()
        await self._session.flush()
        return config

    async def delete(self, cma_id: uuid.UUID) -> bool:
        config = await self.get(cma_id)
        if config is None:
            return False
        await self._session.delete(config)
        await self._session.flush()
        return True


class ReportTemplateRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_for_user(self, user_id: str) -> list[CmaReportTemplate]:
        stmt = (
            select(CmaReportTemplate)
            .where(CmaReportTemplate.user_id == user_id)
            .order_by(desc(CmaReportTemplate.is_default), CmaReportTemplate.name)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def get(self, template_id: uuid.UUID) -> CmaReportTemplate | None:
        return await self._session.get(CmaReportTemplate, template_id)

    async def create(self, *, user_id: str, **fields: Any) -> CmaReportTemplate:
        if fields.get("is_default"):
            await self._clear_default(user_id)
        template = CmaReportTemplate(user_id=user_id, **fields)
        self._session.add(template)
        await self._session.flush()
        return template

    async def update(
        self, template: CmaReportTemplate, fields: dict[str, Any]
    ) -> CmaReportTemplate:
        if fields.get("is_default"):
            await self._clear_default(template.user_id, keep=template.id)
        for key, value in fields.items():
            setattr(template, key, value)
        template.updated_at = _utcnow()
        await self._session.flush()
        return template

    async def delete(self, template: CmaReportTemplate) -> None:
        await self._session.delete(template)
        await self._session.flush()

    async def _clear_default(self, user_id: str, keep: uuid.UUID | None = None) -> None:
        stmt = (
            update(CmaReportTemplate)
            .where(CmaReportTemplate.user_id == user_id, CmaReportTemplate.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )
        if keep is not None:
            stmt = stmt.where(CmaReportTemplate.id != keep)
        await self._session.execute(stmt)
