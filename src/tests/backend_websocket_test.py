"""Tests for the backend feed client

Tests cover:
- Message dispatch and silent drop of malformed input
- Fixed-delay reconnect after errors and closed streams
- Stop and status reporting
"""

import asyncio
import json

from crypton.core.models import DepthEvent, TickerEvent
from crypton.feeds.backend_websocket import BackendFeedClient

TICKER = json.dumps({"e": "24hrTicker", "s": "BTCUSDT", "c": "100"})
DEPTH = json.dumps({"e": "depthUpdate", "s": "ETHUSDT", "b": [["1", "2"]], "a": []})


class FakeConnection:
    def __init__(self, messages):
        self._messages = list(messages)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._messages:
            raise StopAsyncIteration
        await asyncio.sleep(0)
        return self._messages.pop(0)


class FakeConnector:
    """Scripted sessions: a list of messages, or an exception to raise on connect."""

    def __init__(self, sessions, client_ref):
        self.sessions = list(sessions)
        self.client_ref = client_ref
        self.urls = []
        self.kwargs = []

    def __call__(self, url, **kwargs):
        self.urls.append(url)
        self.kwargs.append(kwargs)
        if not self.sessions:
            self.client_ref[0].stop()
            raise OSError("no more sessions")
        session = self.sessions.pop(0)
        if isinstance(session, Exception):
            raise session
        return FakeConnection(session)


def make_client(sessions, events, statuses=None):
    ref = [None]
    connector = FakeConnector(sessions, ref)
    client = BackendFeedClient(
        url="ws://test/ws",
        on_event=events.append,
        on_status=statuses.append if statuses is not None else None,
        reconnect_delay_secs=0,
        connect=connector,
    )
    ref[0] = client
    return client, connector


class TestHandleMessage:
    """Test parsing and dispatch of single messages."""

    def test_dispatches_events(self):
        events = []
        client, _ = make_client([], events)
        client.handle_message(TICKER)
        client.handle_message(DEPTH)
        assert isinstance(events[0], TickerEvent)
        assert events[0].symbol == "BTC/USDT"
        assert isinstance(events[1], DepthEvent)
        assert events[1].symbol == "ETH/USDT"

    def test_malformed_messages_dropped(self):
        events = []
        client, _ = make_client([], events)
        assert client.handle_message("{broken") is None
        assert client.handle_message(json.dumps({"e": "depthUpdate", "s": "BTCUSDT"})) is None
        assert events == []
        assert client.dropped_messages == 2

    def test_unrecognised_messages_ignored(self):
        events = []
        client, _ = make_client([], events)
        assert client.handle_message(json.dumps({"e": "aggTrade", "s": "BTCUSDT"})) is None
        assert events == []
        assert client.dropped_messages == 0

    def test_deeply_nested_message_dropped(self):
        events = []
        client, _ = make_client([], events)
        assert client.handle_message("[" * 200_000 + "]" * 200_000) is None
        assert client.dropped_messages == 1

    def test_callback_error_does_not_propagate(self):
        client = BackendFeedClient(url="ws://test", on_event=lambda e: 1 / 0)
        assert isinstance(client.handle_message(TICKER), TickerEvent)


class TestReconnect:
    """Test the reconnect loop."""

    def test_reconnects_after_errors_and_closed_streams(self):
        events, statuses = [], []
        client, connector = make_client(
            [OSError("refused"), [TICKER, "garbage"], [DEPTH]],
            events,
            statuses,
        )
        asyncio.run(client.run_forever())

        # refused, session 1, session 2, final call that stops the client
        assert len(connector.urls) == 4
        assert all(url == "ws://test/ws" for url in connector.urls)
        assert connector.kwargs[0] == {"ping_interval": 20, "ping_timeout": 10}
        assert [type(e) for e in events] == [TickerEvent, DepthEvent]
        assert statuses == [True, False, True, False]
        assert client.connected is False
        assert client.connect_count == 4

    def test_deeply_nested_message_keeps_connection(self):
        events, statuses = [], []
        nested = "[" * 200_000 + "]" * 200_000
        client, connector = make_client([[nested, TICKER]], events, statuses)
        asyncio.run(client.run_forever())

        # one session, then the call that stops the client
        assert len(connector.urls) == 2
        assert statuses == [True, False]
        assert [type(e) for e in events] == [TickerEvent]
        assert client.dropped_messages == 1

    def test_uses_fixed_delay(self, monkeypatch):
        delays = []
        real_sleep = asyncio.sleep

        async def fake_sleep(secs):
            delays.append(secs)
            await real_sleep(0)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)
        events = []
        client, _ = make_client([OSError("a"), OSError("b"), OSError("c")], events)
        client.reconnect_delay_secs = 3
        asyncio.run(client.run_forever())
        assert delays == [3, 3, 3]

    def test_stop_ends_the_session(self):
        events = []
        client, connector = make_client([[TICKER]], events)

        async def scenario():
            task = asyncio.create_task(client.run_forever())
            await asyncio.sleep(0)
            client.stop()
            await task

        asyncio.run(scenario())
        assert len(connector.urls) <= 1

    def test_second_run_is_ignored(self):
        events = []
        client, connector = make_client([], events)

        async def scenario():
            client._running = True
            await client.run_forever()

        asyncio.run(scenario())
        assert connector.urls == []
