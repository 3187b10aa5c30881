from __future__ import annotations

from datetime import datetime
import hmac
from typing import Any, Awaitable, Callable, Optional
import uuid

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from common.adapters import RecordNotFound
from common.logger import Logger
from common.models import ApiConfig, ConfigType, Contribution
from ingest.integrations import GoogleSheetsExporter, IntegrationRegistry
from ingest.service import WebhookHandler, contribution_payload
from ingest.stats import collect_stats
from ingest.storage import Storage

api_router = APIRouter()

_SECRET_MARKERS = ("key", "token", "secret", "password")


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ManualContributionIn(_CamelModel):
    sender_name: str = Field(alias="senderName")
    amount: str | float | int
    member_id: Optional[str] = Field(default=None, alias="memberId")
    platform: str = "Manual"
    date: Optional[datetime] = None
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")


class CampaignUpdateIn(_CamelModel):
    name: Optional[str] = None
    start_date: Optional[datetime] = Field(default=None, alias="startDate")
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    google_sheet_url: Optional[str] = Field(default=None, alias="googleSheetUrl")
    is_active: Optional[bool] = Field(default=None, alias="isActive")


class ApiConfigIn(_CamelModel):
    name: str
    type: ConfigType
    config: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = Field(default=True, alias="isActive")


class ApiConfigUpdateIn(_CamelModel):
    name: Optional[str] = None
    config: Optional[dict[str, Any]] = None
    is_active: Optional[bool] = Field(default=None, alias="isActive")


class SheetsSyncIn(_CamelModel):
    google_sheet_url: str = Field(alias="googleSheetUrl")
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    sheet_name: Optional[str] = Field(default=None, alias="sheetName")


def _handler(request: Request) -> WebhookHandler:
    return request.app.state.handler


def _storage(request: Request) -> Storage:
    return request.app.state.storage


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse({"status": "error", "error": error}, status_code=status_code)


def _masked(config: ApiConfig) -> dict[str, Any]:
    data = config.model_dump(mode="json")
    data["config"] = {
        k: ("***" if any(m in k.lower() for m in _SECRET_MARKERS) and v else v)
        for k, v in (config.config or {}).items()
    }
    return data


async def _ingest(
    request: Request,
    channel: str,
    run: Callable[[Any], Awaitable[Optional[Contribution]]],
) -> JSONResponse:
    try:
        payload = await request.json()
    except ValueError:
        return _error(400, "invalid JSON body")
    if not isinstance(payload, dict):
        return _error(400, "JSON object expected")

    try:
        contribution = await run(payload)
    except Exception as e:
        Logger.exception('request "%s": %s webhook failed', request.url.path, channel)
        return _error(500, str(e))

    if contribution is None:
        return JSONResponse({"status": "ignored"})
    return JSONResponse({"status": "processed", "contributionId": str(contribution.id)})


# ---------- webhooks ----------

@api_router.post("/webhooks/sms")
async def sms_webhook(request: Request) -> JSONResponse:
    return await _ingest(request, "SMS", _handler(request).handle_sms)


@api_router.post("/webhooks/email")
async def email_webhook(request: Request) -> JSONResponse:
    return await _ingest(request, "email", _handler(request).handle_email)


@api_router.post("/webhooks/whatsapp")
async def whatsapp_webhook(request: Request) -> JSONResponse:
    return await _ingest(request, "WhatsApp", _handler(request).handle_whatsapp)


@api_router.get("/webhooks/whatsapp")
async def whatsapp_subscribe(
    request: Request,
    mode: str = Query(default="", alias="hub.mode"),
    token: str = Query(default="", alias="hub.verify_token"),
    challenge: str = Query(default="", alias="hub.challenge"),
) -> Response:
    integrations: IntegrationRegistry = request.app.state.integrations
    expected = await integrations.whatsapp_verify_token() or request.app.state.config.whatsapp_verify_token
    if mode == "subscribe" and expected and hmac.compare_digest(token, expected):
        Logger.info("WhatsApp webhook subscription verified")
        return PlainTextResponse(challenge)
    Logger.warning("WhatsApp webhook verification rejected: mode=%r", mode)
    return PlainTextResponse("forbidden", status_code=403)


# ---------- contributions ----------

@api_router.get("/contributions")
async def list_contributions(request: Request, campaignId: Optional[uuid.UUID] = None) -> list[dict]:
    items = await _storage(request).get_contributions(campaignId)
    return [contribution_payload(c) for c in items]


@api_router.get("/contributions/stats")
async def contribution_stats(request: Request) -> dict:
    storage = _storage(request)
    campaign = await storage.get_active_campaign()
    items = await storage.get_contributions(campaign.id if campaign else None)
    return collect_stats(items).as_dict()


@api_router.post("/contributions", status_code=201)
async def create_contribution(request: Request, body: ManualContributionIn) -> Response:
    try:
        contribution = await _handler(request).record_manual(
            sender_name=body.sender_name,
            amount=body.amount,
            member_id=body.member_id,
            platform=body.platform,
            date=body.date,
            phone_number=body.phone_number,
        )
    except ValueError as e:
        return _error(400, str(e))
    if contribution is None:
        return _error(409, "No active campaign")
    return JSONResponse(contribution_payload(contribution), status_code=201)


@api_router.get("/contributions/{contribution_id}")
async def get_contribution(request: Request, contribution_id: uuid.UUID) -> Response:
    contribution = await _storage(request).get_contribution(contribution_id)
    if contribution is None:
        return _error(404, f"contribution {contribution_id} not found")
    return JSONResponse(contribution_payload(contribution))


# ---------- campaigns ----------

@api_router.get("/campaigns")
async def list_campaigns(request: Request) -> list[dict]:
    return [c.model_dump(mode="json") for c in await _storage(request).get_campaigns()]


@api_router.get("/campaigns/active")
async def active_campaign(request: Request) -> Response:
    campaign = await _storage(request).get_active_campaign()
    if campaign is None:
        return _error(404, "No active campaign")
    return JSONResponse(campaign.model_dump(mode="json"))


@api_router.get("/campaigns/{campaign_id}")
async def get_campaign(request: Request, campaign_id: uuid.UUID) -> Response:
    campaign = await _storage(request).get_campaign(campaign_id)
    if campaign is None:
        return _error(404, f"campaign {campaign_id} not found")
    return JSONResponse(campaign.model_dump(mode="json"))


@api_router.put("/campaigns/{campaign_id}")
async def update_campaign(request: Request, campaign_id: uuid.UUID, body: CampaignUpdateIn) -> Response:
    changes = body.model_dump(exclude_unset=True)
    try:
        campaign = await _storage(request).update_campaign(campaign_id, **changes)
    except RecordNotFound as e:
        return _error(404, str(e))
    return JSONResponse(campaign.model_dump(mode="json"))


# ---------- integration configs ----------

@api_router.get("/configs")
async def list_configs(request: Request) -> list[dict]:
    return [_masked(c) for c in await _storage(request).get_api_configs()]


@api_router.post("/configs", status_code=201)
async def create_config(request: Request, body: ApiConfigIn) -> Response:
    config = await _storage(request).create_api_config(
        ApiConfig(name=body.name, type=body.type.value, config=body.config, is_active=body.is_active)
    )
    return JSONResponse(_masked(config), status_code=201)


@api_router.get("/configs/{config_id}")
async def get_config(request: Request, config_id: uuid.UUID) -> Response:
    config = await _storage(request).get_api_config(config_id)
    if config is None:
        return _error(404, f"api config {config_id} not found")
    return JSONResponse(_masked(config))


@api_router.put("/configs/{config_id}")
async def update_config(request: Request, config_id: uuid.UUID, body: ApiConfigUpdateIn) -> Response:
    changes = body.model_dump(exclude_unset=True)
    try:
        config = await _storage(request).update_api_config(config_id, **changes)
    except RecordNotFound as e:
        return _error(404, str(e))
    return JSONResponse(_masked(config))


@api_router.post("/sheets/sync")
async def sheets_sync(request: Request, body: SheetsSyncIn) -> Response:
    storage = _storage(request)
    spreadsheet_id = GoogleSheetsExporter.extract_spreadsheet_id(body.google_sheet_url)
    if spreadsheet_id is None:
        return _error(400, "not a Google Sheets URL")

    campaign = await storage.get_active_campaign()
    if campaign is None:
        return _error(409, "No active campaign")
    await storage.update_campaign(campaign.id, google_sheet_url=body.google_sheet_url)

    existing = await storage.get_api_config_by_type(ConfigType.SHEETS.value)
    blob = dict(existing.config or {}) if existing else {}
    blob["spreadsheetId"] = spreadsheet_id
    if body.api_key:
        blob["apiKey"] = body.api_key
    if body.sheet_name:
        blob["sheetName"] = body.sheet_name
    if existing is None:
        await storage.create_api_config(ApiConfig(name="Google Sheets", type=ConfigType.SHEETS.value, config=blob))
    else:
        await storage.update_api_config(existing.id, config=blob, is_active=True)

    synced = await _handler(request).sync_unprocessed()
    return JSONResponse({"status": "ok", "spreadsheetId": spreadsheet_id, "synced": synced})


# ---------- logs ----------

@api_router.get("/logs")
async def system_logs(request: Request, limit: Optional[int] = Query(default=None, ge=1, le=1000)) -> list[dict]:
    limit = limit or request.app.state.config.logs_default_limit
    return [entry.model_dump(mode="json") for entry in await _storage(request).get_system_logs(limit)]


@api_router.get("/test")
async def api_test() -> dict:
    return {"message": "API is working!"}
