import unittest
import uuid
from dataclasses import replace

from fastapi.testclient import TestClient

from ingest.config import ServiceConfig
from ingest.storage import MemoryStorage
from webhook_service.app import create_app

MPESA_SMS = "XYZ1A2 Confirmed. You have received Ksh1,500.00 from JOHN DOE 07001 on 12/5/24"

CONFIG = ServiceConfig(
    database_url=None,
    log_level="CRITICAL",
    http_timeout_seconds=1.0,
    broadcast_send_timeout_seconds=1.0,
    whatsapp_verify_token="env-token",
    graph_api_version="v18.0",
    seed_campaign=True,
    seed_campaign_name="Test Campaign",
    logs_default_limit=50,
)


def whatsapp_envelope(body: str) -> dict:
    message = {"from": "254700000001", "id": "wamid.1", "type": "text", "text": {"body": body}}
    return {
        "object": "whatsapp_business_account",
        "entry": [{"changes": [{"value": {"messages": [message]}}]}],
    }


class WebhookApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self.storage = MemoryStorage()
        self.client = TestClient(create_app(CONFIG, storage=self.storage))
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)

    def test_health(self) -> None:
        r = self.client.get("/api/test")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"message": "API is working!"})

    def test_sms_webhook_creates_contribution(self) -> None:
        r = self.client.post("/api/webhooks/sms", json={"message": MPESA_SMS, "from": "MPESA"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["status"], "processed")

        listed = self.client.get("/api/contributions").json()
        self.assertEqual(len(listed), 1)
        self.assertEqual(listed[0]["id"], r.json()["contributionId"])
        self.assertEqual(listed[0]["platform"], "M-Pesa")
        self.assertEqual(listed[0]["sender_name"], "John Doe")

        stats = self.client.get("/api/contributions/stats").json()
        self.assertEqual(stats["count"], 1)
        self.assertEqual(stats["totalAmount"], "1500.00")

    def test_unparseable_sms_is_ignored(self) -> None:
        r = self.client.post("/api/webhooks/sms", json={"message": "Your OTP is 123456"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"status": "ignored"})
        self.assertEqual(self.client.get("/api/contributions").json(), [])

    def test_bad_bodies(self) -> None:
        r = self.client.post(
            "/api/webhooks/sms",
            content="not json",
            headers={"content-type": "application/json"},
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(self.client.post("/api/webhooks/email", json=["x"]).status_code, 400)

    def test_email_webhook(self) -> None:
        r = self.client.post(
            "/api/webhooks/email",
            json={
                "subject": "You've received money from Jane Smith",
                "body": "Jane Smith has sent you $250.00 with Zelle. Memo: 4821",
                "from": "alerts@zelle.example",
            },
        )
        self.assertEqual(r.json()["status"], "processed")

    def test_whatsapp_webhook(self) -> None:
        r = self.client.post("/api/webhooks/whatsapp", json=whatsapp_envelope("Payment of KES 500 received from Mary Atieno"))
        self.assertEqual(r.json()["status"], "processed")
        [item] = self.client.get("/api/contributions").json()
        self.assertEqual(item["member_id"], "254700000001")
        self.assertEqual(item["source"], "WHATSAPP")

        r = self.client.post("/api/webhooks/whatsapp", json={"object": "page"})
        self.assertEqual(r.json(), {"status": "ignored"})

    def test_whatsapp_subscription_handshake(self) -> None:
        params = {"hub.mode": "subscribe", "hub.verify_token": "env-token", "hub.challenge": "12345"}
        r = self.client.get("/api/webhooks/whatsapp", params=params)
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.text, "12345")

        r = self.client.get("/api/webhooks/whatsapp", params={**params, "hub.verify_token": "wrong"})
        self.assertEqual(r.status_code, 403)

    def test_manual_contribution(self) -> None:
        r = self.client.post("/api/contributions", json={"senderName": "grace njeri", "amount": 250, "memberId": "MBR7"})
        self.assertEqual(r.status_code, 201)
        self.assertEqual(r.json()["source"], "MANUAL")
        self.assertEqual(r.json()["sender_name"], "Grace Njeri")

        r = self.client.post("/api/contributions", json={"senderName": "Grace", "amount": "lots"})
        self.assertEqual(r.status_code, 400)

    def test_campaign_update(self) -> None:
        campaign = self.client.get("/api/campaigns/active").json()
        self.assertEqual(campaign["name"], "Test Campaign")

        url = "https://docs.google.com/spreadsheets/d/ABC/edit"
        r = self.client.put(f"/api/campaigns/{campaign['id']}", json={"googleSheetUrl": url})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["google_sheet_url"], url)

        r = self.client.put(f"/api/campaigns/{uuid.uuid4()}", json={"name": "x"})
        self.assertEqual(r.status_code, 404)

    def test_campaign_lookup(self) -> None:
        [listed] = self.client.get("/api/campaigns").json()
        self.assertEqual(listed["name"], "Test Campaign")

        r = self.client.get(f"/api/campaigns/{listed['id']}")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), listed)

        r = self.client.get(f"/api/campaigns/{uuid.uuid4()}")
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["status"], "error")

    def test_contribution_lookup(self) -> None:
        created = self.client.post("/api/webhooks/sms", json={"message": MPESA_SMS}).json()

        r = self.client.get(f"/api/contributions/{created['contributionId']}")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["id"], created["contributionId"])
        self.assertEqual(r.json()["sender_name"], "John Doe")

        self.assertEqual(self.client.get(f"/api/contributions/{uuid.uuid4()}").status_code, 404)
        self.assertEqual(self.client.get("/api/contributions/not-a-uuid").status_code, 422)

    def test_config_lookup_hides_secrets(self) -> None:
        created = self.client.post(
            "/api/configs",
            json={"name": "Sheets", "type": "SHEETS", "config": {"apiKey": "k", "spreadsheetId": "S1"}},
        ).json()

        r = self.client.get(f"/api/configs/{created['id']}")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["config"], {"apiKey": "***", "spreadsheetId": "S1"})

        self.assertEqual(self.client.get(f"/api/configs/{uuid.uuid4()}").status_code, 404)

    def test_configs_hide_secrets(self) -> None:
        r = self.client.post(
            "/api/configs",
            json={
                "name": "WhatsApp",
                "type": "WHATSAPP",
                "config": {"accessToken": "secret", "phoneNumberId": "P1", "verifyToken": "vt"},
            },
        )
        self.assertEqual(r.status_code, 201)
        config_id = r.json()["id"]

        [listed] = self.client.get("/api/configs").json()
        self.assertEqual(listed["config"], {"accessToken": "***", "phoneNumberId": "P1", "verifyToken": "***"})

        r = self.client.put(f"/api/configs/{config_id}", json={"isActive": False})
        self.assertEqual(r.status_code, 200)
        self.assertFalse(r.json()["is_active"])

        # stored verify token takes over from the environment one
        params = {"hub.mode": "subscribe", "hub.verify_token": "vt", "hub.challenge": "c"}
        self.assertEqual(self.client.get("/api/webhooks/whatsapp", params=params).status_code, 200)

    def test_sheets_sync(self) -> None:
        r = self.client.post("/api/sheets/sync", json={"googleSheetUrl": "https://example.com/nope"})
        self.assertEqual(r.status_code, 400)

        url = "https://docs.google.com/spreadsheets/d/SHEET1/edit"
        r = self.client.post("/api/sheets/sync", json={"googleSheetUrl": url, "apiKey": "k"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"status": "ok", "spreadsheetId": "SHEET1", "synced": 0})
        self.assertEqual(self.client.get("/api/campaigns/active").json()["google_sheet_url"], url)
        [config] = self.client.get("/api/configs").json()
        self.assertEqual(config["type"], "SHEETS")
        self.assertEqual(config["config"]["spreadsheetId"], "SHEET1")

    def test_logs(self) -> None:
        self.client.post("/api/webhooks/sms", json={"message": MPESA_SMS})
        logs = self.client.get("/api/logs", params={"limit": 2}).json()
        self.assertEqual(len(logs), 2)
        self.assertEqual(logs[0]["message"], "Successfully processed contribution")

    def test_live_updates(self) -> None:
        with self.client.websocket_connect("/ws") as ws:
            self.assertEqual(ws.receive_json(), {"type": "CONNECTED"})
            r = self.client.post("/api/webhooks/sms", json={"message": MPESA_SMS})
            event = ws.receive_json()

        self.assertEqual(event["type"], "NEW_CONTRIBUTION")
        self.assertEqual(event["data"]["id"], r.json()["contributionId"])


class NoCampaignApiTest(unittest.TestCase):
    def test_contributions_without_campaign(self) -> None:
        with TestClient(create_app(replace(CONFIG, seed_campaign=False), storage=MemoryStorage())) as client:
            r = client.post("/api/webhooks/sms", json={"message": MPESA_SMS})
            self.assertEqual(r.json(), {"status": "ignored"})
            self.assertEqual(client.get("/api/campaigns/active").status_code, 404)
            r = client.post("/api/contributions", json={"senderName": "Grace", "amount": 10})
            self.assertEqual(r.status_code, 409)
            logs = client.get("/api/logs").json()
            self.assertIn("No active campaign found", [e["message"] for e in logs])


if __name__ == "__main__":
    unittest.main()
