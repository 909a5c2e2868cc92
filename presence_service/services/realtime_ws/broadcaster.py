# presence_service/services/realtime_ws/broadcaster.py
"""
Рассылка сообщений по WebSocket соединениям.

У каждого соединения своя очередь и своя задача-отправитель:
- порядок сообщений на одном соединении совпадает с порядком постановки;
- медленный или сломанный получатель не задерживает остальных;
- рассылка не зависит от lock состояния присутствия.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from presence_service.common.constants import TypeMsg
from presence_service.common.logger import log_info, log_warning


class OutboundSocket(Protocol):
    """То, что нужно рассыльщику от WebSocket."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


@dataclass(frozen=True)
class _CloseRequest:
    """Маркер закрытия соединения после уже поставленных сообщений."""
    code: int


@dataclass
class OutboundChannel:
    """Исходящий канал одного соединения."""
    connection_id: str
    websocket: OutboundSocket
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    task: asyncio.Task | None = None
    closed: bool = False


class Broadcaster:
    """
    Реестр исходящих каналов.

    Поддерживает:
    - Регистрацию/удаление соединений
    - Broadcast всем подключённым (включая отправителя)
    - Персональные сообщения
    - Отложенное закрытие соединения
    """

    def __init__(self) -> None:
        # connection_id -> OutboundChannel
        self._channels: dict[str, OutboundChannel] = {}

        self._total_connections: int = 0
        self._total_messages_sent: int = 0
        self._total_failed_deliveries: int = 0

    @property
    def active_connections(self) -> int:
        """Количество активных каналов."""
        return len(self._channels)

    @property
    def total_messages_sent(self) -> int:
        return self._total_messages_sent

    def is_registered(self, connection_id: str) -> bool:
        return connection_id in self._channels

    def register(self, connection_id: str, websocket: OutboundSocket) -> None:
        """Зарегистрировать соединение и запустить его отправителя."""
        if connection_id in self._channels:
            raise ValueError(f"Соединение {connection_id} уже зарегистрировано")

        channel = OutboundChannel(connection_id=connection_id, websocket=websocket)
        channel.task = asyncio.create_task(self._writer(channel))
        self._channels[connection_id] = channel
        self._total_connections += 1

    async def unregister(self, connection_id: str) -> None:
        """Удалить соединение и остановить отправителя. Неотправленное отбрасывается."""
        channel = self._channels.pop(connection_id, None)
        if channel is None:
            return

        channel.closed = True
        if channel.task and not channel.task.done() and channel.task is not asyncio.current_task():
            channel.task.cancel()
            try:
                await channel.task
            except asyncio.CancelledError:
                pass

    def broadcast(self, message: dict[str, Any]) -> int:
        """
        Поставить сообщение в очередь каждого подключённого соединения.

        Постановка выполняется без await, поэтому два broadcast не
        перемешиваются ни на одном соединении.

        Returns:
            Количество соединений, получивших сообщение в очередь
        """
        queued = 0
        for channel in self._channels.values():
            if channel.closed:
                continue
            channel.queue.put_nowait(message)
            queued += 1
        return queued

    def send_personal(self, connection_id: str, message: dict[str, Any]) -> bool:
        """
        Отправить сообщение одному соединению.

        Returns:
            True если сообщение поставлено в очередь, False если соединения нет
        """
        channel = self._channels.get(connection_id)
        if channel is None or channel.closed:
            return False

        channel.queue.put_nowait(message)
        return True

    def close(self, connection_id: str, code: int = 1000) -> bool:
        """Закрыть соединение после отправки уже поставленных сообщений."""
        channel = self._channels.get(connection_id)
        if channel is None or channel.closed:
            return False

        channel.queue.put_nowait(_CloseRequest(code=code))
        channel.closed = True
        return True

    async def close_all(self) -> None:
        """Остановить всех отправителей (завершение работы)."""
        for connection_id in list(self._channels):
            await self.unregister(connection_id)

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._channels),
            "total_connections_ever": self._total_connections,
            "total_messages_sent": self._total_messages_sent,
            "total_failed_deliveries": self._total_failed_deliveries,
        }

    async def _writer(self, channel: OutboundChannel) -> None:
        """Отправлять сообщения канала по одному, в порядке очереди."""
        while True:
            item = await channel.queue.get()
            try:
                if isinstance(item, _CloseRequest):
                    await self._close_socket(channel, item.code)
                    return

                try:
                    await channel.websocket.send_json(item)
                    self._total_messages_sent += 1
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    # Сломанный получатель не влияет на остальных
                    self._total_failed_deliveries += 1
                    channel.closed = True
                    await log_warning(f"Доставка в соединение {channel.connection_id} не удалась: {e}")
                    self._discard_pending(channel)
                    return
            finally:
                channel.queue.task_done()

    async def _close_socket(self, channel: OutboundChannel, code: int) -> None:
        """Закрыть соединение."""
        try:
            await channel.websocket.close(code=code)
        except Exception as e:
            await log_info(
                f"Соединение {channel.connection_id} уже закрыто: {e}",
                type_msg=TypeMsg.DEBUG,
            )

    @staticmethod
    def _discard_pending(channel: OutboundChannel) -> None:
        """Отбросить неотправленные сообщения канала."""
        while True:
            try:
                channel.queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            channel.queue.task_done()
