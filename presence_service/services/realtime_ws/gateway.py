# presence_service/services/realtime_ws/gateway.py
"""
Обработка событий WebSocket шлюза.

Переводит события транспорта в вызовы ядра:
- connect(connection_id)
- disconnect(connection_id)
- "user location" -> ConnectionLifecycleManager.on_location_update
- "get nearby users" -> ProximityEngine.query_nearby
- "chat message" -> Broadcaster.broadcast

Транспорт обращается к состоянию присутствия только через этот класс.
"""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from presence_service.common.constants import AckStatus, SocketEvent, SUPERSEDED_CLOSE_CODE, TypeMsg
from presence_service.common.logger import log_error, log_info, log_warning
from presence_service.core.errors import PersistenceError, UnknownUserError
from presence_service.core.presence.engine import ProximityEngine
from presence_service.core.presence.lifecycle import ConnectionLifecycleManager
from presence_service.core.presence.state import PresenceState
from presence_service.core.users.repository import UserRecordStore
from presence_service.core.users.service import UserService
from presence_service.services.realtime_ws.broadcaster import Broadcaster, OutboundSocket
from presence_service.shared.models.user import Coordinates


# === MODELS ===

class ClientEnvelope(BaseModel):
    """Сообщение клиента: {"event": ..., "data": ..., "ack": ...}."""
    event: str
    data: Any = None
    ack: str | None = Field(default=None, description="ID запроса, если клиент ждёт подтверждение")


class LocationPayload(BaseModel):
    """Данные события "user location"."""
    username: str = Field(..., min_length=1)
    location: Coordinates


def make_event(event: SocketEvent, data: Any) -> dict[str, Any]:
    """Сообщение сервера клиенту."""
    return {"event": event.value, "data": data}


class PresenceGateway:
    """
    Связка компонентов ядра с транспортом.

    Владеет общим состоянием процесса: start() загружает таблицу,
    stop() закрывает соединения и сохраняет таблицу.
    """

    def __init__(
        self,
        store: UserRecordStore,
        radius_km: float | None = None,
        earth_radius_km: float | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        hash_iterations: int | None = None,
    ) -> None:
        self.state = PresenceState(store, retry_attempts=retry_attempts, retry_delay=retry_delay)
        self.engine = ProximityEngine(self.state, radius_km=radius_km, earth_radius_km=earth_radius_km)
        self.lifecycle = ConnectionLifecycleManager(self.state, self.engine)
        self.broadcaster = Broadcaster()
        self.users = UserService(self.state, hash_iterations=hash_iterations)

    # === LIFECYCLE ===

    async def start(self) -> None:
        """Загрузить состояние из хранилища."""
        await self.state.load()

    async def stop(self) -> None:
        """Остановить рассылку и сохранить состояние."""
        await self.broadcaster.close_all()
        await self.state.shutdown()

    # === CONNECTIONS ===

    async def connect(self, websocket: OutboundSocket) -> str:
        """Зарегистрировать принятое соединение и вернуть его ID."""
        connection_id = uuid.uuid4().hex
        self.broadcaster.register(connection_id, websocket)
        await self.lifecycle.on_connect(connection_id)
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        """Снять соединение: остановить отправку и перевести пользователя в offline."""
        await self.broadcaster.unregister(connection_id)
        try:
            await self.lifecycle.on_disconnect(connection_id)
        except PersistenceError as e:
            await log_error(f"Отключение {connection_id} не сохранено, повтор со следующим коммитом: {e}")

    # === MESSAGES ===

    async def handle_message(self, connection_id: str, raw: str | bytes | None) -> None:
        """Обработать одно сообщение клиента. Некорректные сообщения отбрасываются."""
        if raw is None:
            await log_warning(f"Пустое сообщение от {connection_id}")
            return

        try:
            envelope = ClientEnvelope.model_validate_json(raw)
        except ValidationError as e:
            await log_warning(f"Некорректное сообщение от {connection_id}: {e.error_count()} ошибок")
            return

        try:
            event = SocketEvent(envelope.event)
        except ValueError:
            event = None

        if event == SocketEvent.USER_LOCATION:
            await self._on_user_location(connection_id, envelope)
        elif event == SocketEvent.GET_NEARBY_USERS:
            await self._on_get_nearby_users(connection_id, envelope)
        elif event == SocketEvent.CHAT_MESSAGE:
            await self._on_chat_message(connection_id, envelope)
        else:
            await log_warning(f"Неизвестное событие {envelope.event!r} от {connection_id}")

    async def _on_user_location(self, connection_id: str, envelope: ClientEnvelope) -> None:
        try:
            payload = LocationPayload.model_validate(envelope.data)
        except ValidationError as e:
            await log_warning(f"Некорректная геолокация от {connection_id}: {e.error_count()} ошибок")
            return

        try:
            result = await self.lifecycle.on_location_update(
                connection_id,
                payload.username,
                payload.location,
            )
        except UnknownUserError:
            await log_warning(f'Неизвестный пользователь "{payload.username}" прислал геолокацию')
            self._ack(connection_id, envelope, AckStatus.OK)
            return
        except PersistenceError as e:
            await log_error(f"Геолокация {payload.username} не сохранена: {e}")
            self._ack(connection_id, envelope, AckStatus.ERROR, "persistence_failed")
            return

        if result.superseded_connection_id is not None:
            self.broadcaster.send_personal(
                result.superseded_connection_id,
                make_event(SocketEvent.SESSION_SUPERSEDED, {"username": payload.username}),
            )
            self.broadcaster.close(result.superseded_connection_id, SUPERSEDED_CLOSE_CODE)

        self._ack(connection_id, envelope, AckStatus.OK)

    async def _on_get_nearby_users(self, connection_id: str, envelope: ClientEnvelope) -> None:
        nearby = await self.engine.query_nearby(connection_id)
        self.broadcaster.send_personal(
            connection_id,
            make_event(SocketEvent.NEARBY_USERS, [record.model_dump(mode="json") for record in nearby]),
        )
        await log_info(
            f"Соединению {connection_id} найдено соседей: {len(nearby)}",
            type_msg=TypeMsg.DEBUG,
        )
        self._ack(connection_id, envelope, AckStatus.OK)

    async def _on_chat_message(self, connection_id: str, envelope: ClientEnvelope) -> None:
        self.broadcaster.broadcast(make_event(SocketEvent.CHAT_MESSAGE, envelope.data))
        self._ack(connection_id, envelope, AckStatus.OK)

    def _ack(
        self,
        connection_id: str,
        envelope: ClientEnvelope,
        status: AckStatus,
        error: str | None = None,
    ) -> None:
        """Подтверждение, если клиент его запросил."""
        if envelope.ack is None:
            return
        self.broadcaster.send_personal(
            connection_id,
            make_event(SocketEvent.ACK, {"id": envelope.ack, "status": status.value, "error": error}),
        )

    # === STATS ===

    def get_stats(self) -> dict[str, Any]:
        """Статистика соединений и присутствия."""
        broadcaster_stats = self.broadcaster.get_stats()
        snapshot = self.state.snapshot()
        return {
            "active_connections": broadcaster_stats["active_connections"],
            "bound_connections": self.lifecycle.bound_connections,
            "registered_users": len(snapshot),
            "online_users": sum(1 for record in snapshot if record.connected and not self.state.is_stale(record)),
            "total_connections_ever": self.lifecycle.total_connections,
            "total_messages_sent": broadcaster_stats["total_messages_sent"],
        }
