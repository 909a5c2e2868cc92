# tests/services/test_presence_gateway.py
"""
Тесты для PresenceGateway: разбор событий и ответы клиентам.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator

import pytest
import pytest_asyncio

from presence_service.core.users.repository import InMemoryUserRecordStore
from presence_service.services.realtime_ws.gateway import PresenceGateway
from tests.helpers import FakeWebSocket, FlakyStore, drain, make_record


def location_event(username: str, latitude: float, longitude: float, ack: str | None = None) -> str:
    message: dict[str, Any] = {
        "event": "user location",
        "data": {"username": username, "location": {"latitude": latitude, "longitude": longitude}},
    }
    if ack is not None:
        message["ack"] = ack
    return json.dumps(message)


def acks(ws: FakeWebSocket) -> list[dict[str, Any]]:
    return [m["data"] for m in ws.sent if m["event"] == "ack"]


def events(ws: FakeWebSocket, name: str) -> list[Any]:
    return [m["data"] for m in ws.sent if m["event"] == name]


@pytest_asyncio.fixture
async def gateway() -> AsyncIterator[PresenceGateway]:
    """Запущенный шлюз с пользователями alice, bob, carol."""
    store = InMemoryUserRecordStore([make_record(name) for name in ("alice", "bob", "carol")])
    gw = PresenceGateway(
        store,
        radius_km=1.0,
        earth_radius_km=6371.0,
        retry_attempts=1,
        retry_delay=0.0,
        hash_iterations=1000,
    )
    await gw.start()
    yield gw
    await gw.stop()


class TestUserLocation:
    """Тесты события "user location"."""

    @pytest.mark.asyncio
    async def test_location_binds_and_acks(self, gateway: PresenceGateway) -> None:
        ws = FakeWebSocket()
        cid = await gateway.connect(ws)

        await gateway.handle_message(cid, location_event("alice", 0.0, 0.0, ack="1"))
        await drain(gateway.broadcaster)

        assert acks(ws) == [{"id": "1", "status": "ok", "error": None}]
        assert gateway.state.get("alice").connection_id == cid
        assert gateway.lifecycle.username_for(cid) == "alice"

    @pytest.mark.asyncio
    async def test_unknown_user_is_acked_ok(self, gateway: PresenceGateway) -> None:
        """Неизвестное имя игнорируется, клиент не получает ошибку."""
        ws = FakeWebSocket()
        cid = await gateway.connect(ws)

        await gateway.handle_message(cid, location_event("mallory", 0.0, 0.0, ack="1"))
        await drain(gateway.broadcaster)

        assert acks(ws) == [{"id": "1", "status": "ok", "error": None}]
        assert gateway.lifecycle.username_for(cid) is None
        assert gateway.state.get("mallory") is None

    @pytest.mark.asyncio
    async def test_persistence_failure_is_acked_error(self) -> None:
        store = FlakyStore([make_record("alice")], fail_times=10)
        gw = PresenceGateway(store, radius_km=1.0, earth_radius_km=6371.0, retry_attempts=2, retry_delay=0.0)
        await gw.start()
        ws = FakeWebSocket()
        cid = await gw.connect(ws)

        await gw.handle_message(cid, location_event("alice", 0.0, 0.0, ack="7"))
        await drain(gw.broadcaster)

        assert acks(ws) == [{"id": "7", "status": "error", "error": "persistence_failed"}]
        assert gw.state.get("alice").connected is False
        await gw.broadcaster.close_all()

    @pytest.mark.asyncio
    async def test_superseded_connection_is_notified_and_closed(self, gateway: PresenceGateway) -> None:
        """Второе соединение с тем же именем вытесняет первое."""
        old_ws, new_ws = FakeWebSocket(), FakeWebSocket()
        old_cid = await gateway.connect(old_ws)
        new_cid = await gateway.connect(new_ws)

        await gateway.handle_message(old_cid, location_event("alice", 0.0, 0.0))
        await gateway.handle_message(new_cid, location_event("alice", 0.0, 0.001))
        await drain(gateway.broadcaster)

        assert events(old_ws, "session superseded") == [{"username": "alice"}]
        assert old_ws.closed_with == 4001
        assert new_ws.closed_with is None
        assert gateway.state.get("alice").connection_id == new_cid

        # Отключение старого соединения не трогает новую сессию
        await gateway.disconnect(old_cid)
        assert gateway.state.get("alice").connected is True

    @pytest.mark.asyncio
    async def test_invalid_location_payload_dropped(self, gateway: PresenceGateway) -> None:
        ws = FakeWebSocket()
        cid = await gateway.connect(ws)
        message = json.dumps({"event": "user location", "data": {"username": "alice"}, "ack": "1"})

        await gateway.handle_message(cid, message)
        await drain(gateway.broadcaster)

        assert ws.sent == []
        assert gateway.state.get("alice").connected is False


class TestGetNearbyUsers:
    """Тесты события "get nearby users"."""

    @pytest.mark.asyncio
    async def test_nearby_result(self, gateway: PresenceGateway) -> None:
        """A и B в 0.556 км друг от друга, C в 2.2 км: A видит только B."""
        sockets = {name: FakeWebSocket() for name in ("alice", "bob", "carol")}
        cids = {name: await gateway.connect(ws) for name, ws in sockets.items()}
        await gateway.handle_message(cids["alice"], location_event("alice", 0.0, 0.0))
        await gateway.handle_message(cids["bob"], location_event("bob", 0.0, 0.005))
        await gateway.handle_message(cids["carol"], location_event("carol", 0.0, 0.02))

        await gateway.handle_message(cids["alice"], json.dumps({"event": "get nearby users", "ack": "q"}))
        await drain(gateway.broadcaster)

        [nearby] = events(sockets["alice"], "nearby users")
        assert nearby == [{
            "username": "bob",
            "location": {"latitude": 0.0, "longitude": 0.005},
            "connected": True,
        }]
        assert acks(sockets["alice"])[-1]["id"] == "q"

    @pytest.mark.asyncio
    async def test_unbound_connection_gets_empty_list(self, gateway: PresenceGateway) -> None:
        ws = FakeWebSocket()
        cid = await gateway.connect(ws)

        await gateway.handle_message(cid, json.dumps({"event": "get nearby users"}))
        await drain(gateway.broadcaster)

        assert events(ws, "nearby users") == [[]]


class TestChatMessage:
    """Тесты события "chat message"."""

    @pytest.mark.asyncio
    async def test_chat_reaches_everyone_including_sender(self, gateway: PresenceGateway) -> None:
        sockets = [FakeWebSocket() for _ in range(3)]
        cids = [await gateway.connect(ws) for ws in sockets]

        await gateway.handle_message(cids[0], json.dumps({"event": "chat message", "data": {"text": "hi"}}))
        await drain(gateway.broadcaster)

        for ws in sockets:
            assert events(ws, "chat message") == [{"text": "hi"}]

    @pytest.mark.asyncio
    async def test_chat_from_unbound_connection(self, gateway: PresenceGateway) -> None:
        """Чат не требует привязки к имени."""
        ws = FakeWebSocket()
        cid = await gateway.connect(ws)

        await gateway.handle_message(cid, json.dumps({"event": "chat message", "data": "plain text"}))
        await drain(gateway.broadcaster)

        assert events(ws, "chat message") == ["plain text"]


class TestMalformedMessages:
    """Некорректные сообщения отбрасываются без ответа."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not json", "[]", '{"data": 1}', None, '{"event": "dance"}'])
    async def test_dropped(self, gateway: PresenceGateway, raw: str | None) -> None:
        ws = FakeWebSocket()
        cid = await gateway.connect(ws)

        await gateway.handle_message(cid, raw)
        await drain(gateway.broadcaster)

        assert ws.sent == []


class TestDisconnectAndStats:
    """Тесты отключения и статистики."""

    @pytest.mark.asyncio
    async def test_disconnect_sets_offline(self, gateway: PresenceGateway) -> None:
        ws = FakeWebSocket()
        cid = await gateway.connect(ws)
        await gateway.handle_message(cid, location_event("alice", 0.0, 0.0))

        await gateway.disconnect(cid)

        record = gateway.state.get("alice")
        assert record.connected is False
        assert record.location is None
        assert gateway.broadcaster.is_registered(cid) is False

    @pytest.mark.asyncio
    async def test_stats(self, gateway: PresenceGateway) -> None:
        cid = await gateway.connect(FakeWebSocket())
        await gateway.connect(FakeWebSocket())
        await gateway.handle_message(cid, location_event("alice", 0.0, 0.0))

        stats = gateway.get_stats()

        assert stats["active_connections"] == 2
        assert stats["bound_connections"] == 1
        assert stats["registered_users"] == 3
        assert stats["online_users"] == 1
        assert stats["total_connections_ever"] == 2

    @pytest.mark.asyncio
    async def test_stop_marks_everyone_offline(self) -> None:
        store = InMemoryUserRecordStore([make_record("alice")])
        gw = PresenceGateway(store, radius_km=1.0, earth_radius_km=6371.0, retry_attempts=1, retry_delay=0.0)
        await gw.start()
        cid = await gw.connect(FakeWebSocket())
        await gw.handle_message(cid, location_event("alice", 0.0, 0.0))

        await gw.stop()

        assert store.load() == [make_record("alice")]
        assert gw.broadcaster.active_connections == 0


class TestExtremeCoordinates:
    """Огромные и нечисловые координаты не ломают соединение."""

    @pytest.mark.asyncio
    async def test_huge_coordinates_get_reply(self, gateway: PresenceGateway) -> None:
        ws_a, ws_b = FakeWebSocket(), FakeWebSocket()
        cid_a = await gateway.connect(ws_a)
        cid_b = await gateway.connect(ws_b)
        await gateway.handle_message(cid_a, location_event("alice", -1.7e308, 0.0))
        await gateway.handle_message(cid_b, location_event("bob", 1.7e308, 0.0))

        await gateway.handle_message(cid_a, json.dumps({"event": "get nearby users", "ack": "q"}))
        await drain(gateway.broadcaster)

        assert len(events(ws_a, "nearby users")) == 1
        assert acks(ws_a) == [{"id": "q", "status": "ok", "error": None}]
        assert gateway.state.get("alice").connected is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("location", [
        '{"latitude": NaN, "longitude": 0}',
        '{"latitude": 0, "longitude": Infinity}',
    ])
    async def test_non_finite_location_dropped(self, gateway: PresenceGateway, location: str) -> None:
        """Нечисловая позиция отбрасывается и не попадает в поиск."""
        ws_a, ws_b = FakeWebSocket(), FakeWebSocket()
        cid_a = await gateway.connect(ws_a)
        cid_b = await gateway.connect(ws_b)
        await gateway.handle_message(cid_a, location_event("alice", 10.0, 10.0))

        raw = '{"event": "user location", "data": {"username": "bob", "location": %s}, "ack": "b"}' % location
        await gateway.handle_message(cid_b, raw)
        await gateway.handle_message(cid_a, json.dumps({"event": "get nearby users"}))
        await drain(gateway.broadcaster)

        assert ws_b.sent == []
        assert gateway.state.get("bob").connected is False
        assert events(ws_a, "nearby users") == [[]]


class TestDisconnectPersistenceFailure:
    """Несохранённое отключение."""

    @pytest.mark.asyncio
    async def test_user_hidden_until_next_commit(self) -> None:
        store = FlakyStore([make_record("alice"), make_record("bob")])
        gw = PresenceGateway(store, radius_km=1.0, earth_radius_km=6371.0, retry_attempts=1, retry_delay=0.0)
        await gw.start()
        ws_b = FakeWebSocket()
        cid_a = await gw.connect(FakeWebSocket())
        cid_b = await gw.connect(ws_b)
        await gw.handle_message(cid_a, location_event("alice", 0.0, 0.0))
        await gw.handle_message(cid_b, location_event("bob", 0.0, 0.005))
        store.fail_times = store.attempts + 1

        await gw.disconnect(cid_a)
        await gw.handle_message(cid_b, json.dumps({"event": "get nearby users"}))
        await drain(gw.broadcaster)

        assert events(ws_b, "nearby users") == [[]]
        assert gw.get_stats()["online_users"] == 1

        await gw.handle_message(cid_b, location_event("bob", 0.0, 0.005))
        assert {r.username: r for r in store.load()}["alice"].connected is False
        await gw.stop()
