from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Iterable, Optional, Protocol
from urllib.parse import quote

import httpx

from common.logger import Logger
from common.models import ConfigType, Contribution
from ingest.storage import Storage


class ContributionExporter(Protocol):
    async def append_contribution(self, contribution: Contribution) -> bool:
        ...


class ConfirmationSender(Protocol):
    async def send_confirmation(
        self,
        phone_number: str,
        contribution: Contribution,
        campaign_name: Optional[str] = None,
    ) -> bool:
        ...


def _require(blob: dict[str, Any], key: str) -> str:
    value = str(blob.get(key) or "").strip()
    if not value:
        raise ValueError(f"{key} is required")
    return value


@dataclass(frozen=True)
class SheetsConfig:
    spreadsheet_id: str
    api_key: str
    sheet_name: str = "Sheet1"

    @classmethod
    def from_blob(cls, blob: dict[str, Any]) -> "SheetsConfig":
        spreadsheet_id = str(blob.get("spreadsheetId") or "").strip()
        if not spreadsheet_id and blob.get("spreadsheetUrl"):
            spreadsheet_id = GoogleSheetsExporter.extract_spreadsheet_id(str(blob["spreadsheetUrl"])) or ""
        if not spreadsheet_id:
            raise ValueError("spreadsheetId is required")
        return cls(
            spreadsheet_id=spreadsheet_id,
            api_key=_require(blob, "apiKey"),
            sheet_name=str(blob.get("sheetName") or "Sheet1"),
        )


class GoogleSheetsExporter:
    """
    Appends contributions to a Google Sheet through the Sheets v4 REST API.

    One row per contribution: sender, "KES <amount>", member id, DD/MM/YYYY.
    Every failure is logged and reported as False; nothing is raised.
    """

    BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"
    _SPREADSHEET_ID = re.compile(r"/spreadsheets/d/([a-zA-Z0-9\-_]+)")

    def __init__(self, cfg: SheetsConfig, *, client: httpx.AsyncClient) -> None:
        self.cfg = cfg
        self._client = client

    @staticmethod
    def contribution_row(contribution: Contribution) -> list[str]:
        return [
            contribution.sender_name,
            f"KES {contribution.amount:.2f}",
            contribution.member_id,
            contribution.date.strftime("%d/%m/%Y"),
        ]

    @classmethod
    def extract_spreadsheet_id(cls, url: str) -> Optional[str]:
        m = cls._SPREADSHEET_ID.search(url or "")
        return m.group(1) if m else None

    async def append_contribution(self, contribution: Contribution) -> bool:
        return await self._append_rows([self.contribution_row(contribution)])

    async def batch_append(self, contributions: Iterable[Contribution]) -> bool:
        rows = [self.contribution_row(c) for c in contributions]
        if not rows:
            return True
        return await self._append_rows(rows)

    async def _append_rows(self, rows: list[list[str]]) -> bool:
        url = f"{self.BASE_URL}/{self.cfg.spreadsheet_id}/values/{quote(self.cfg.sheet_name)}:append"
        try:
            r = await self._client.post(
                url,
                params={"valueInputOption": "USER_ENTERED", "key": self.cfg.api_key},
                json={"values": rows},
                headers={"Authorization": f"Bearer {self.cfg.api_key}"},
            )
        except httpx.HTTPError as e:
            Logger.warning("Google Sheets append failed: %s", e)
            return False

        if r.status_code >= 400:
            Logger.warning("Google Sheets append failed: http=%s body=%s", r.status_code, r.text[:300])
            return False
        return True


@dataclass(frozen=True)
class WhatsAppConfig:
    access_token: str
    phone_number_id: str
    verify_token: str = ""

    @classmethod
    def from_blob(cls, blob: dict[str, Any]) -> "WhatsAppConfig":
        return cls(
            access_token=_require(blob, "accessToken"),
            phone_number_id=_require(blob, "phoneNumberId"),
            verify_token=str(blob.get("verifyToken") or ""),
        )


class WhatsAppConfirmationSender:
    GRAPH_URL = "https://graph.facebook.com"

    def __init__(
        self,
        cfg: WhatsAppConfig,
        *,
        client: httpx.AsyncClient,
        api_version: str = "v18.0",
    ) -> None:
        self.cfg = cfg
        self._client = client
        self._api_version = api_version

    @staticmethod
    def format_confirmation(contribution: Contribution, campaign_name: Optional[str] = None) -> str:
        closing = (
            f"Thank you for your contribution to the {campaign_name} campaign!"
            if campaign_name
            else "Thank you for your contribution!"
        )
        return (
            "✅ Contribution Confirmed!\n\n"
            f"Amount: KES {contribution.amount:,.2f}\n"
            f"From: {contribution.sender_name}\n"
            f"Member ID: {contribution.member_id}\n"
            f"Platform: {contribution.platform}\n\n"
            f"{closing}"
        )

    async def send_confirmation(
        self,
        phone_number: str,
        contribution: Contribution,
        campaign_name: Optional[str] = None,
    ) -> bool:
        if not phone_number or not self.cfg.access_token:
            return False

        url = f"{self.GRAPH_URL}/{self._api_version}/{self.cfg.phone_number_id}/messages"
        payload = {
            "messaging_product": "whatsapp",
            "to": phone_number,
            "type": "text",
            "text": {"body": self.format_confirmation(contribution, campaign_name)},
        }
        try:
            r = await self._client.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {self.cfg.access_token}"},
            )
        except httpx.HTTPError as e:
            Logger.warning("WhatsApp confirmation to %s failed: %s", phone_number, e)
            return False

        if r.status_code >= 400:
            Logger.warning(
                "WhatsApp confirmation to %s failed: http=%s body=%s",
                phone_number,
                r.status_code,
                r.text[:300],
            )
            return False
        return True


class IntegrationRegistry:
    """
    Resolves the outbound integrations from the api_configs collection.

    Configs are read on every call so settings changes apply without a
    restart. All clients share one httpx.AsyncClient with a bounded timeout.
    """

    def __init__(
        self,
        storage: Storage,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_sec: float = 10.0,
        graph_api_version: str = "v18.0",
    ) -> None:
        self._storage = storage
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_sec)
        self._graph_api_version = graph_api_version

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def exporter(self) -> Optional[GoogleSheetsExporter]:
        row = await self._storage.get_api_config_by_type(ConfigType.SHEETS.value)
        if row is None or not row.is_active:
            return None
        try:
            cfg = SheetsConfig.from_blob(row.config or {})
        except ValueError as e:
            Logger.warning("Sheets integration %r misconfigured: %s", row.name, e)
            return None
        return GoogleSheetsExporter(cfg, client=self._client)

    async def confirmation_sender(self) -> Optional[WhatsAppConfirmationSender]:
        row = await self._storage.get_api_config_by_type(ConfigType.WHATSAPP.value)
        if row is None or not row.is_active:
            return None
        try:
            cfg = WhatsAppConfig.from_blob(row.config or {})
        except ValueError as e:
            Logger.warning("WhatsApp integration %r misconfigured: %s", row.name, e)
            return None
        return WhatsAppConfirmationSender(cfg, client=self._client, api_version=self._graph_api_version)

    async def whatsapp_verify_token(self) -> Optional[str]:
        row = await self._storage.get_api_config_by_type(ConfigType.WHATSAPP.value)
        if row is None:
            return None
        return str((row.config or {}).get("verifyToken") or "") or None
