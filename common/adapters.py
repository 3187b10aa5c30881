from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from common.models import ApiConfig, Campaign, Contribution, SystemLog


class RecordNotFound(LookupError):
    pass


def apply_changes(obj: Any, changes: dict[str, Any]) -> None:
    for key, value in changes.items():
        if not hasattr(obj, key):
            raise AttributeError(f"{type(obj).__name__} has no field {key!r}")
        setattr(obj, key, value)


class CampaignsAdapter:
    def __init__(self, session: AsyncSession):
        self.s = session

    async def all(self) -> list[Campaign]:
        res = await self.s.execute(select(Campaign).order_by(Campaign.created_at.asc()))
        return list(res.scalars().all())

    async def get(self, campaign_id: uuid.UUID) -> Optional[Campaign]:
        res = await self.s.execute(select(Campaign).where(Campaign.id == campaign_id))
        return res.scalar_one_or_none()

    async def active(self) -> Optional[Campaign]:
        res = await self.s.execute(
            select(Campaign)
            .where(Campaign.is_active.is_(True))
            .order_by(Campaign.created_at.asc())
            .limit(1)
        )
        return res.scalar_one_or_none()

    async def add(self, campaign: Campaign) -> Campaign:
        self.s.add(campaign)
        await self.s.flush()
        return campaign

    async def update(self, campaign_id: uuid.UUID, **changes) -> Campaign:
        campaign = await self.get(campaign_id)
        if campaign is None:
            raise RecordNotFound(f"campaign {campaign_id} not found")
        apply_changes(campaign, changes)
        await self.s.flush()
        return campaign


class ContributionsAdapter:
    def __init__(self, session: AsyncSession):
        self.s = session

    async def all(self, campaign_id: Optional[uuid.UUID] = None) -> list[Contribution]:
        stmt = select(Contribution).order_by(Contribution.created_at.desc())
        if campaign_id is not None:
            stmt = stmt.where(Contribution.campaign_id == campaign_id)
        res = await self.s.execute(stmt)
        return list(res.scalars().all())

    async def get(self, contribution_id: uuid.UUID) -> Optional[Contribution]:
        res = await self.s.execute(select(Contribution).where(Contribution.id == contribution_id))
        return res.scalar_one_or_none()

    async def add(self, contribution: Contribution) -> Contribution:
        self.s.add(contribution)
        await self.s.flush()
        return contribution

    async def update(self, contribution_id: uuid.UUID, **changes) -> Contribution:
        contribution = await self.get(contribution_id)
        if contribution is None:
            raise RecordNotFound(f"contribution {contribution_id} not found")
        apply_changes(contribution, changes)
        await self.s.flush()
        return contribution

    async def between(self, start: datetime, end: datetime) -> list[Contribution]:
        res = await self.s.execute(
            select(Contribution)
            .where(Contribution.date >= start, Contribution.date <= end)
            .order_by(Contribution.date.asc())
        )
        return list(res.scalars().all())


class ApiConfigsAdapter:
    def __init__(self, session: AsyncSession):
        self.s = session

    async def all(self) -> list[ApiConfig]:
        res = await self.s.execute(select(ApiConfig).order_by(ApiConfig.created_at.asc()))
        return list(res.scalars().all())

    async def get(self, config_id: uuid.UUID) -> Optional[ApiConfig]:
        res = await self.s.execute(select(ApiConfig).where(ApiConfig.id == config_id))
        return res.scalar_one_or_none()

    async def byType(self, type_: str) -> Optional[ApiConfig]:
        res = await self.s.execute(
            select(ApiConfig)
            .where(ApiConfig.type == type_)
            .order_by(ApiConfig.created_at.desc())
            .limit(1)
        )
        return res.scalar_one_or_none()

    async def add(self, config: ApiConfig) -> ApiConfig:
        self.s.add(config)
        await self.s.flush()
        return config

    async def update(self, config_id: uuid.UUID, **changes) -> ApiConfig:
        config = await self.get(config_id)
        if config is None:
            raise RecordNotFound(f"api config {config_id} not found")
        apply_changes(config, changes)
        await self.s.flush()
        return config


class SystemLogsAdapter:
    def __init__(self, session: AsyncSession):
        self.s = session

    async def recent(self, limit: int = 100) -> list[SystemLog]:
        res = await self.s.execute(
            select(SystemLog).order_by(SystemLog.timestamp.desc()).limit(limit)
        )
        return list(res.scalars().all())

    async def add(self, entry: SystemLog) -> SystemLog:
        self.s.add(entry)
        await self.s.flush()
        return entry


class DbAdapters:
    def __init__(self, session: AsyncSession):
        self.campaigns = CampaignsAdapter(session)
        self.contributions = ContributionsAdapter(session)
        self.configs = ApiConfigsAdapter(session)
        self.logs = SystemLogsAdapter(session)
        self._s = session

    async def commit(self) -> None:
        await self._s.commit()

    async def rollback(self) -> None:
        await self._s.rollback()

    async def close(self) -> None:
        await self._s.close()
