from dataclasses import dataclass
import os
from typing import Optional


def _get_str(name: str, default: str = "") -> str:
    return os.environ.get(name, "").strip() or default


def _get_int(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    return int(value)


def _get_float(name: str, default: float) -> float:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    return float(value)


def _get_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").strip().lower()
    if not value:
        return default
    return value in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class ServiceConfig:
    database_url: Optional[str]
    log_level: str
    http_timeout_seconds: float
    broadcast_send_timeout_seconds: float
    whatsapp_verify_token: str
    graph_api_version: str
    seed_campaign: bool
    seed_campaign_name: str
    logs_default_limit: int

    @property
    def uses_database(self) -> bool:
        return bool(self.database_url)


def load_config() -> ServiceConfig:
    timeout = _get_float("HTTP_TIMEOUT_SECONDS", 10.0)
    if timeout <= 0:
        raise RuntimeError("HTTP_TIMEOUT_SECONDS must be positive")

    return ServiceConfig(
        database_url=_get_str("DATABASE_URL") or None,
        log_level=_get_str("LOG_LEVEL", "INFO"),
        http_timeout_seconds=timeout,
        broadcast_send_timeout_seconds=_get_float("BROADCAST_SEND_TIMEOUT_SECONDS", 5.0),
        whatsapp_verify_token=_get_str("WHATSAPP_VERIFY_TOKEN"),
        graph_api_version=_get_str("GRAPH_API_VERSION", "v18.0"),
        seed_campaign=_get_bool("SEED_CAMPAIGN", True),
        seed_campaign_name=_get_str("SEED_CAMPAIGN_NAME", "Family Fundraiser"),
        logs_default_limit=_get_int("LOGS_DEFAULT_LIMIT", 100),
    )
