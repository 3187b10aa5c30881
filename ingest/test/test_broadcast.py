import asyncio
import json
import unittest
from decimal import Decimal

from fastapi.websockets import WebSocketState

from common.logger import Logger, Level
from ingest.broadcast import BroadcastHub


class FakeConnection:
    def __init__(self, *, open_: bool = True, delay: float = 0.0, fail: bool = False) -> None:
        state = WebSocketState.CONNECTED if open_ else WebSocketState.DISCONNECTED
        self.client_state = state
        self.application_state = state
        self.sent: list[str] = []
        self._delay = delay
        self._fail = fail

    async def send_text(self, data: str) -> None:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail:
            raise RuntimeError("socket gone")
        self.sent.append(data)


class BroadcastHubTest(unittest.IsolatedAsyncioTestCase):
    @classmethod
    def setUpClass(cls) -> None:
        Logger.configure("ingest-test", level=Level.ERROR)

    async def test_publish_reaches_every_open_connection(self) -> None:
        hub = BroadcastHub()
        a, b = FakeConnection(), FakeConnection()
        await hub.register(a)
        await hub.register(b)

        delivered = await hub.publish({"type": "NEW_CONTRIBUTION", "data": {"amount": Decimal("1.50")}})

        self.assertEqual(delivered, 2)
        self.assertEqual(a.sent, b.sent)
        self.assertEqual(json.loads(a.sent[0]), {"type": "NEW_CONTRIBUTION", "data": {"amount": "1.50"}})

    async def test_closed_connections_are_skipped(self) -> None:
        hub = BroadcastHub()
        live, closed = FakeConnection(), FakeConnection(open_=False)
        await hub.register(live)
        await hub.register(closed)

        self.assertEqual(await hub.publish({"type": "PING"}), 1)
        self.assertEqual(closed.sent, [])

    async def test_failing_or_slow_client_does_not_block_others(self) -> None:
        hub = BroadcastHub(send_timeout_sec=0.05)
        broken, slow, live = FakeConnection(fail=True), FakeConnection(delay=1.0), FakeConnection()
        for conn in (broken, slow, live):
            await hub.register(conn)

        self.assertEqual(await hub.publish({"type": "PING"}), 1)
        self.assertEqual(len(live.sent), 1)
        self.assertEqual(slow.sent, [])

    async def test_events_arrive_in_publish_order(self) -> None:
        hub = BroadcastHub()
        conn = FakeConnection(delay=0.001)
        await hub.register(conn)

        await asyncio.gather(*(hub.publish({"seq": i}) for i in range(5)))

        self.assertEqual([json.loads(m)["seq"] for m in conn.sent], [0, 1, 2, 3, 4])

    async def test_connected_block_unregisters(self) -> None:
        hub = BroadcastHub()
        conn = FakeConnection()
        async with hub.connected(conn):
            self.assertEqual(len(hub), 1)
        self.assertEqual(len(hub), 0)
        self.assertEqual(await hub.publish({"type": "PING"}), 0)


if __name__ == "__main__":
    unittest.main()
