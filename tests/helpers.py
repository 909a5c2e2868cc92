# tests/helpers.py
"""
Вспомогательные объекты для тестов.
"""

from __future__ import annotations

import asyncio
from typing import Any

from presence_service.core.users.repository import InMemoryUserRecordStore
from presence_service.shared.models.user import Coordinates, UserRecord


# Точки из сценария: A и B в ~0.556 км друг от друга, C в ~2.22 км от A
POINT_A = Coordinates(latitude=0.0, longitude=0.0)
POINT_B = Coordinates(latitude=0.0, longitude=0.005)
POINT_C = Coordinates(latitude=0.0, longitude=0.02)


def make_record(username: str, **kwargs: Any) -> UserRecord:
    """Запись пользователя с фиктивным хэшем пароля."""
    return UserRecord(username=username, credential_hash=f"hash-{username}", **kwargs)


class FlakyStore(InMemoryUserRecordStore):
    """Хранилище, которое падает на первых fail_times сохранениях."""

    def __init__(self, records: list[UserRecord] | None = None, fail_times: int = 0) -> None:
        super().__init__(records)
        self.fail_times = fail_times
        self.attempts = 0

    def save(self, records: list[UserRecord]) -> None:
        self.attempts += 1
        if self.attempts <= self.fail_times:
            raise OSError("disk full")
        super().save(records)


class FakeWebSocket:
    """WebSocket-заглушка, запоминающая отправленное."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.sent: list[Any] = []
        self.closed_with: int | None = None
        self.fail = fail
        self.delay = delay

    async def send_json(self, data: Any) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionResetError("peer gone")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code


async def drain(broadcaster: Any, timeout: float = 1.0) -> None:
    """Дождаться, пока отправители разберут очереди всех каналов."""
    for channel in list(broadcaster._channels.values()):
        if channel.task is not None and not channel.task.done():
            await asyncio.wait_for(channel.queue.join(), timeout)
