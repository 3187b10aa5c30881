from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Optional

from common.logger import Level, Logger
from common.models import Campaign, Contribution, LogLevel, Source, SystemLog
from ingest.broadcast import BroadcastHub
from ingest.email_parser import EmailParser
from ingest.extractors import clean_sender_name, parse_amount
from ingest.integrations import IntegrationRegistry
from ingest.sms_parser import SmsParser
from ingest.storage import Storage
from ingest.types import UNKNOWN_MEMBER, ParsedContribution
from ingest.whatsapp_parser import WhatsAppParser, extract_message

NEW_CONTRIBUTION = "NEW_CONTRIBUTION"

_LOGGER_LEVELS = {
    LogLevel.INFO: Level.INFO,
    LogLevel.WARNING: Level.WARNING,
    LogLevel.ERROR: Level.ERROR,
}


def contribution_payload(contribution: Contribution) -> dict[str, Any]:
    return contribution.model_dump(mode="json")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accepts datetimes, epoch seconds/millis, ISO-8601 and RFC 2822 strings."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if raw.isdigit():
        return parse_timestamp(int(raw))
    try:
        return parse_timestamp(datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except ValueError:
        pass
    try:
        return parse_timestamp(parsedate_to_datetime(raw))
    except (TypeError, ValueError):
        return None


class WebhookHandler:
    """
    Drives one inbound payload through parse, campaign check, persistence,
    export, confirmation and broadcast, logging every stage to system_logs.

    "Nothing extracted" and "no active campaign" end in a log entry and a
    None result. Anything unexpected before the record is persisted is logged
    at ERROR and re-raised for the transport layer.
    """

    def __init__(
        self,
        storage: Storage,
        hub: BroadcastHub,
        *,
        integrations: Optional[IntegrationRegistry] = None,
        sms_parser: Optional[SmsParser] = None,
        email_parser: Optional[EmailParser] = None,
        whatsapp_parser: Optional[WhatsAppParser] = None,
    ) -> None:
        self._storage = storage
        self._hub = hub
        self._integrations = integrations
        self._sms = sms_parser or SmsParser()
        self._email = email_parser or EmailParser()
        self._whatsapp = whatsapp_parser or WhatsAppParser()

    # ---------- channels ----------

    async def handle_sms(self, payload: dict[str, Any]) -> Optional[Contribution]:
        message = str(payload.get("message") or "")
        sender = payload.get("from") or "unknown"
        await self._log(
            LogLevel.INFO,
            "SMS_WEBHOOK",
            f"Received SMS from {sender}",
            {"from": sender, "timestamp": payload.get("timestamp"), "message": message},
        )
        return await self._run(
            service="SMS_WEBHOOK",
            parser_service="SMS_PARSER",
            source=Source.SMS,
            parse=lambda: self._sms.parse(message),
            failure_data={"message": message},
        )

    async def handle_email(self, payload: dict[str, Any]) -> Optional[Contribution]:
        subject = str(payload.get("subject") or "")
        body = str(payload.get("body") or "")
        sender = payload.get("from") or "unknown"
        received = parse_timestamp(payload.get("receivedDate"))
        await self._log(
            LogLevel.INFO,
            "EMAIL_WEBHOOK",
            f"Received email from {sender}",
            {"subject": subject},
        )
        return await self._run(
            service="EMAIL_WEBHOOK",
            parser_service="EMAIL_PARSER",
            source=Source.EMAIL,
            parse=lambda: self._email.parse(subject, body, received),
            failure_data={"subject": subject, "from": sender},
        )

    async def handle_whatsapp(self, envelope: Any) -> Optional[Contribution]:
        inbound = extract_message(envelope)
        if inbound is None:
            await self._log(LogLevel.INFO, "WHATSAPP_WEBHOOK", "No message found in WhatsApp webhook")
            return None

        await self._log(
            LogLevel.INFO,
            "WHATSAPP_WEBHOOK",
            f"Received WhatsApp message from {inbound.sender_phone}",
            {"messageId": inbound.message_id, "message": inbound.body},
        )
        return await self._run(
            service="WHATSAPP_WEBHOOK",
            parser_service="WHATSAPP_PARSER",
            source=Source.WHATSAPP,
            parse=lambda: self._whatsapp.parse(inbound.body, inbound.sender_phone),
            failure_data={"message": inbound.body, "from": inbound.sender_phone},
            reply_to=inbound.sender_phone,
        )

    async def record_manual(
        self,
        *,
        sender_name: str,
        amount: Decimal | str | int | float,
        member_id: Optional[str] = None,
        platform: str = "Manual",
        date: Any = None,
        phone_number: Optional[str] = None,
    ) -> Optional[Contribution]:
        value = parse_amount(str(amount))
        if value is None or value <= 0:
            raise ValueError(f"invalid amount: {amount!r}")
        name = clean_sender_name(sender_name)
        if not name:
            raise ValueError("sender name is required")

        parsed = ParsedContribution(
            sender_name=name,
            amount=value,
            member_id=(member_id or "").strip() or phone_number or UNKNOWN_MEMBER,
            date=parse_timestamp(date) or datetime.now(timezone.utc),
            platform=platform,
            raw_message="",
            phone_number=phone_number,
        )
        await self._log(LogLevel.INFO, "MANUAL_ENTRY", f"Manual contribution from {name}")
        return await self._run(
            service="MANUAL_ENTRY",
            parser_service="MANUAL_ENTRY",
            source=Source.MANUAL,
            parse=lambda: parsed,
            failure_data={},
        )

    # ---------- pipeline ----------

    async def _run(
        self,
        *,
        service: str,
        parser_service: str,
        source: Source,
        parse: Callable[[], Optional[ParsedContribution]],
        failure_data: dict[str, Any],
        reply_to: Optional[str] = None,
    ) -> Optional[Contribution]:
        try:
            parsed = parse()
            if parsed is None:
                await self._log(LogLevel.WARNING, parser_service, "Failed to parse message", failure_data)
                return None

            campaign = await self._storage.get_active_campaign()
            if campaign is None:
                await self._log(LogLevel.ERROR, service, "No active campaign found")
                return None

            contribution = await self._storage.create_contribution(
                Contribution(
                    campaign_id=campaign.id,
                    sender_name=parsed.sender_name,
                    amount=parsed.amount,
                    member_id=parsed.member_id,
                    date=parsed.date,
                    source=source.value,
                    platform=parsed.platform,
                    raw_message=parsed.raw_message,
                    phone_number=parsed.phone_number,
                    processed=False,
                )
            )
        except Exception as e:
            Logger.exception("%s failed", service)
            await self._log(LogLevel.ERROR, service, "Error processing webhook", {"error": str(e)})
            raise

        # the record exists now; finish the remaining steps even if the caller goes away
        return await asyncio.shield(self._after_persist(contribution, campaign, service, reply_to))

    async def _after_persist(
        self,
        contribution: Contribution,
        campaign: Campaign,
        service: str,
        reply_to: Optional[str],
    ) -> Contribution:
        contribution = await self._export(contribution)
        if reply_to:
            await self._confirm(reply_to, contribution, campaign, service)
        await self._broadcast(contribution, service)
        await self._log(
            LogLevel.INFO,
            service,
            "Successfully processed contribution",
            {
                "contributionId": str(contribution.id),
                "amount": str(contribution.amount),
                "sender": contribution.sender_name,
            },
        )
        return contribution

    async def _export(self, contribution: Contribution) -> Contribution:
        if self._integrations is None:
            return contribution
        try:
            exporter = await self._integrations.exporter()
            if exporter is None:
                return contribution
            if await exporter.append_contribution(contribution):
                return await self._storage.update_contribution(contribution.id, processed=True)
            await self._log(
                LogLevel.WARNING,
                "SHEETS_EXPORT",
                "Failed to export contribution",
                {"contributionId": str(contribution.id)},
            )
        except Exception as e:
            Logger.exception("Export of contribution %s failed", contribution.id)
            await self._log(
                LogLevel.WARNING,
                "SHEETS_EXPORT",
                "Error exporting contribution",
                {"contributionId": str(contribution.id), "error": str(e)},
            )
        return contribution

    async def _confirm(self, phone: str, contribution: Contribution, campaign: Campaign, service: str) -> None:
        if self._integrations is None:
            return
        try:
            sender = await self._integrations.confirmation_sender()
            if sender is None:
                return
            if await sender.send_confirmation(phone, contribution, campaign.name):
                return
            await self._log(
                LogLevel.WARNING,
                service,
                "Failed to send WhatsApp confirmation",
                {"contributionId": str(contribution.id), "to": phone},
            )
        except Exception as e:
            Logger.exception("WhatsApp confirmation for %s failed", contribution.id)
            await self._log(
                LogLevel.WARNING,
                service,
                "Error sending WhatsApp confirmation",
                {"contributionId": str(contribution.id), "error": str(e)},
            )

    async def _broadcast(self, contribution: Contribution, service: str) -> None:
        try:
            await self._hub.publish({"type": NEW_CONTRIBUTION, "data": contribution_payload(contribution)})
        except Exception as e:
            Logger.exception("Broadcast of contribution %s failed", contribution.id)
            await self._log(
                LogLevel.ERROR,
                service,
                "Error broadcasting contribution",
                {"contributionId": str(contribution.id), "error": str(e)},
            )

    # ---------- sheet sync ----------

    async def sync_unprocessed(self) -> int:
        """Push every unprocessed contribution of the active campaign to the sheet in one batch."""
        if self._integrations is None:
            return 0
        exporter = await self._integrations.exporter()
        if exporter is None:
            await self._log(LogLevel.WARNING, "SHEETS_SYNC", "Sheets integration is not configured")
            return 0
        campaign = await self._storage.get_active_campaign()
        if campaign is None:
            await self._log(LogLevel.ERROR, "SHEETS_SYNC", "No active campaign found")
            return 0

        pending = [c for c in await self._storage.get_contributions(campaign.id) if not c.processed]
        if not pending:
            return 0
        pending.sort(key=lambda c: c.created_at)
        if not await exporter.batch_append(pending):
            await self._log(LogLevel.WARNING, "SHEETS_SYNC", "Batch export failed", {"count": len(pending)})
            return 0

        for c in pending:
            await self._storage.update_contribution(c.id, processed=True)
        await self._log(LogLevel.INFO, "SHEETS_SYNC", f"Synced {len(pending)} contribution(s)")
        return len(pending)

    # ---------- logging ----------

    async def _log(
        self,
        level: LogLevel,
        service: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        if data:
            Logger.log(_LOGGER_LEVELS[level], "[%s] %s %s", service, message, data)
        else:
            Logger.log(_LOGGER_LEVELS[level], "[%s] %s", service, message)
        try:
            await self._storage.create_system_log(
                SystemLog(level=level.value, service=service, message=message, data=data or None)
            )
        except Exception:
            Logger.exception("Failed to write system log: [%s] %s", service, message)
