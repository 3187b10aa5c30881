from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol
import uuid

from common.adapters import RecordNotFound, apply_changes
from common.db import db_call
from common.models import ApiConfig, Campaign, Contribution, SystemLog


class Storage(Protocol):
    async def get_campaigns(self) -> list[Campaign]: ...
    async def get_campaign(self, campaign_id: uuid.UUID) -> Optional[Campaign]: ...
    async def get_active_campaign(self) -> Optional[Campaign]: ...
    async def create_campaign(self, campaign: Campaign) -> Campaign: ...
    async def update_campaign(self, campaign_id: uuid.UUID, **changes) -> Campaign: ...

    async def get_contributions(self, campaign_id: Optional[uuid.UUID] = None) -> list[Contribution]: ...
    async def get_contribution(self, contribution_id: uuid.UUID) -> Optional[Contribution]: ...
    async def create_contribution(self, contribution: Contribution) -> Contribution: ...
    async def update_contribution(self, contribution_id: uuid.UUID, **changes) -> Contribution: ...
    async def get_contributions_by_date_range(self, start: datetime, end: datetime) -> list[Contribution]: ...

    async def get_api_configs(self) -> list[ApiConfig]: ...
    async def get_api_config(self, config_id: uuid.UUID) -> Optional[ApiConfig]: ...
    async def get_api_config_by_type(self, type_: str) -> Optional[ApiConfig]: ...
    async def create_api_config(self, config: ApiConfig) -> ApiConfig: ...
    async def update_api_config(self, config_id: uuid.UUID, **changes) -> ApiConfig: ...

    async def get_system_logs(self, limit: int = 100) -> list[SystemLog]: ...
    async def create_system_log(self, entry: SystemLog) -> SystemLog: ...


class MemoryStorage:
    """Process-local storage for development and tests. Not shared between workers."""

    def __init__(self) -> None:
        self._campaigns: dict[uuid.UUID, Campaign] = {}
        self._contributions: dict[uuid.UUID, Contribution] = {}
        self._configs: dict[uuid.UUID, ApiConfig] = {}
        self._logs: list[SystemLog] = []

    # campaigns

    async def get_campaigns(self) -> list[Campaign]:
        return list(self._campaigns.values())

    async def get_campaign(self, campaign_id: uuid.UUID) -> Optional[Campaign]:
        return self._campaigns.get(campaign_id)

    async def get_active_campaign(self) -> Optional[Campaign]:
        return next((c for c in self._campaigns.values() if c.is_active), None)

    async def create_campaign(self, campaign: Campaign) -> Campaign:
        self._campaigns[campaign.id] = campaign
        return campaign

    async def update_campaign(self, campaign_id: uuid.UUID, **changes) -> Campaign:
        campaign = self._campaigns.get(campaign_id)
        if campaign is None:
            raise RecordNotFound(f"campaign {campaign_id} not found")
        apply_changes(campaign, changes)
        return campaign

    # contributions

    async def get_contributions(self, campaign_id: Optional[uuid.UUID] = None) -> list[Contribution]:
        items = sorted(self._contributions.values(), key=lambda c: c.created_at, reverse=True)
        if campaign_id is not None:
            items = [c for c in items if c.campaign_id == campaign_id]
        return items

    async def get_contribution(self, contribution_id: uuid.UUID) -> Optional[Contribution]:
        return self._contributions.get(contribution_id)

    async def create_contribution(self, contribution: Contribution) -> Contribution:
        self._contributions[contribution.id] = contribution
        return contribution

    async def update_contribution(self, contribution_id: uuid.UUID, **changes) -> Contribution:
        contribution = self._contributions.get(contribution_id)
        if contribution is None:
            raise RecordNotFound(f"contribution {contribution_id} not found")
        apply_changes(contribution, changes)
        return contribution

    async def get_contributions_by_date_range(self, start: datetime, end: datetime) -> list[Contribution]:
        items = [c for c in self._contributions.values() if start <= c.date <= end]
        return sorted(items, key=lambda c: c.date)

    # integration configs

    async def get_api_configs(self) -> list[ApiConfig]:
        return list(self._configs.values())

    async def get_api_config(self, config_id: uuid.UUID) -> Optional[ApiConfig]:
        return self._configs.get(config_id)

    async def get_api_config_by_type(self, type_: str) -> Optional[ApiConfig]:
        matches = [c for c in self._configs.values() if c.type == type_]
        return matches[-1] if matches else None

    async def create_api_config(self, config: ApiConfig) -> ApiConfig:
        self._configs[config.id] = config
        return config

    async def update_api_config(self, config_id: uuid.UUID, **changes) -> ApiConfig:
        config = self._configs.get(config_id)
        if config is None:
            raise RecordNotFound(f"api config {config_id} not found")
        apply_changes(config, changes)
        return config

    # system logs

    async def get_system_logs(self, limit: int = 100) -> list[SystemLog]:
        return list(reversed(self._logs))[:limit]

    async def create_system_log(self, entry: SystemLog) -> SystemLog:
        self._logs.append(entry)
        return entry


class DbStorage:
    """Storage backed by the SQL database configured through common.db.init_db_engine()."""

    async def get_campaigns(self) -> list[Campaign]:
        return await db_call(lambda db: db.campaigns.all())

    async def get_campaign(self, campaign_id: uuid.UUID) -> Optional[Campaign]:
        return await db_call(lambda db: db.campaigns.get(campaign_id))

    async def get_active_campaign(self) -> Optional[Campaign]:
        return await db_call(lambda db: db.campaigns.active())

    async def create_campaign(self, campaign: Campaign) -> Campaign:
        return await db_call(lambda db: db.campaigns.add(campaign))

    async def update_campaign(self, campaign_id: uuid.UUID, **changes) -> Campaign:
        return await db_call(lambda db: db.campaigns.update(campaign_id, **changes))

    async def get_contributions(self, campaign_id: Optional[uuid.UUID] = None) -> list[Contribution]:
        return await db_call(lambda db: db.contributions.all(campaign_id))

    async def get_contribution(self, contribution_id: uuid.UUID) -> Optional[Contribution]:
        return await db_call(lambda db: db.contributions.get(contribution_id))

    async def create_contribution(self, contribution: Contribution) -> Contribution:
        return await db_call(lambda db: db.contributions.add(contribution))

    async def update_contribution(self, contribution_id: uuid.UUID, **changes) -> Contribution:
        return await db_call(lambda db: db.contributions.update(contribution_id, **changes))

    async def get_contributions_by_date_range(self, start: datetime, end: datetime) -> list[Contribution]:
        return await db_call(lambda db: db.contributions.between(start, end))

    async def get_api_configs(self) -> list[ApiConfig]:
        return await db_call(lambda db: db.configs.all())

    async def get_api_config(self, config_id: uuid.UUID) -> Optional[ApiConfig]:
        return await db_call(lambda db: db.configs.get(config_id))

    async def get_api_config_by_type(self, type_: str) -> Optional[ApiConfig]:
        return await db_call(lambda db: db.configs.byType(type_))

    async def create_api_config(self, config: ApiConfig) -> ApiConfig:
        return await db_call(lambda db: db.configs.add(config))

    async def update_api_config(self, config_id: uuid.UUID, **changes) -> ApiConfig:
        return await db_call(lambda db: db.configs.update(config_id, **changes))

    async def get_system_logs(self, limit: int = 100) -> list[SystemLog]:
        return await db_call(lambda db: db.logs.recent(limit))

    async def create_system_log(self, entry: SystemLog) -> SystemLog:
        return await db_call(lambda db: db.logs.add(entry))
