import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Source(str, enum.Enum):
    SMS = "SMS"
    EMAIL = "EMAIL"
    WHATSAPP = "WHATSAPP"
    MANUAL = "MANUAL"


class LogLevel(str, enum.Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class ConfigType(str, enum.Enum):
    SMS = "SMS"
    EMAIL = "EMAIL"
    SHEETS = "SHEETS"
    WHATSAPP = "WHATSAPP"


class Campaign(SQLModel, table=True):
    __tablename__ = "campaigns"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        sa_column=Column(PG_UUID(as_uuid=True), primary_key=True),
    )

    name: str = Field(sa_column=Column(String(256), nullable=False))
    start_date: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    end_date: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    google_sheet_url: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default="true", index=True),
    )

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now(), nullable=False),
    )


class Contribution(SQLModel, table=True):
    __tablename__ = "contributions"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        sa_column=Column(PG_UUID(as_uuid=True), primary_key=True),
    )

    # nullable: manual/legacy rows may exist without a campaign
    campaign_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("campaigns.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )

    sender_name: str = Field(sa_column=Column(String(256), nullable=False))
    amount: Decimal = Field(sa_column=Column(Numeric(12, 2), nullable=False))
    member_id: str = Field(sa_column=Column(String(128), nullable=False, index=True))
    date: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False, index=True))

    source: str = Field(sa_column=Column(String(16), nullable=False))  # Source
    platform: str = Field(sa_column=Column(String(64), nullable=False))
    raw_message: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    phone_number: Optional[str] = Field(default=None, sa_column=Column(String(32), nullable=True))

    processed: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default="false"),
    )

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now(), nullable=False),
    )

    def __repr__(self) -> str:
        return (
            f"Contribution(id={self.id}, source={self.source!r}, platform={self.platform!r}, "
            f"amount={self.amount}, member_id={self.member_id!r})"
        )


class ApiConfig(SQLModel, table=True):
    __tablename__ = "api_configs"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        sa_column=Column(PG_UUID(as_uuid=True), primary_key=True),
    )

    name: str = Field(sa_column=Column(String(128), nullable=False))
    type: str = Field(sa_column=Column(String(16), nullable=False, index=True))  # ConfigType

    # opaque integration settings (spreadsheetId, accessToken, ...)
    config: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSONB, nullable=False))

    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default="true"),
    )

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now(), nullable=False),
    )


class SystemLog(SQLModel, table=True):
    __tablename__ = "system_logs"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        sa_column=Column(PG_UUID(as_uuid=True), primary_key=True),
    )

    level: str = Field(sa_column=Column(String(16), nullable=False))  # LogLevel
    service: str = Field(sa_column=Column(String(64), nullable=False))
    message: str = Field(sa_column=Column(Text, nullable=False))
    data: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSONB, nullable=True))

    timestamp: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True),
    )
