# presence_service/core/presence/state.py
"""
Общее состояние присутствия процесса.

Жизненный цикл:
- load() при старте: читает таблицу из хранилища и сбрасывает
  «зависшее» присутствие (живых соединений после рестарта нет);
- commit() на каждое изменение: сохраняет таблицу и только потом
  делает её видимой;
- shutdown() при остановке: переводит всех в offline и сохраняет.

Все изменения выполняются под одним asyncio.Lock. Читатели берут снимок
без блокировки: таблица подменяется по ссылке, записи неизменяемы.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping

from presence_service.common.constants import TypeMsg
from presence_service.common.logger import log_error, log_info, log_warning
from presence_service.core.errors import PersistenceError
from presence_service.core.users.repository import UserRecordStore
from presence_service.shared.models.user import UserRecord


class PresenceState:
    """Авторитетная in-memory таблица username -> UserRecord."""

    def __init__(
        self,
        store: UserRecordStore,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        """
        Args:
            store: Хранилище пользователей
            retry_attempts: Сколько раз пытаться сохранить таблицу (из конфига, если None)
            retry_delay: Пауза между попытками, сек (из конфига, если None)
        """
        if retry_attempts is None or retry_delay is None:
            from presence_service.config import settings
            if retry_attempts is None:
                retry_attempts = settings.storage.PERSIST_RETRY_ATTEMPTS
            if retry_delay is None:
                retry_delay = settings.storage.PERSIST_RETRY_DELAY

        self._store = store
        self._retry_attempts = max(1, retry_attempts)
        self._retry_delay = retry_delay
        self._lock = asyncio.Lock()
        self._records: dict[str, UserRecord] = {}
        self._loaded = False
        # username -> connection_id: отключения, которые не удалось сохранить
        self._pending_offline: dict[str, str] = {}

    @property
    def lock(self) -> asyncio.Lock:
        """Единая точка сериализации всех изменений."""
        return self._lock

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    def snapshot(self) -> list[UserRecord]:
        """Согласованный снимок всех записей на текущий момент."""
        return list(self._records.values())

    def working_copy(self) -> dict[str, UserRecord]:
        """Копия таблицы для изменения и последующего commit()."""
        return dict(self._records)

    def get(self, username: str) -> UserRecord | None:
        return self._records.get(username)

    def find_by_connection(self, connection_id: str) -> UserRecord | None:
        """Запись, которой сейчас владеет соединение connection_id."""
        for record in self._records.values():
            if record.connection_id == connection_id:
                return record
        return None

    def __len__(self) -> int:
        return len(self._records)

    def is_stale(self, record: UserRecord) -> bool:
        """Соединение записи уже закрыто, но offline ещё не сохранён."""
        return (
            record.connection_id is not None
            and self._pending_offline.get(record.username) == record.connection_id
        )

    # =========================================================================
    # ИЗМЕНЕНИЕ
    # =========================================================================

    async def commit(self, records: Mapping[str, UserRecord]) -> None:
        """
        Сохранить новую таблицу и сделать её текущей.

        Вызывается только под self.lock. Пока сохранение не удалось,
        текущая таблица не меняется.

        Raises:
            PersistenceError: хранилище не приняло запись после всех попыток
        """
        if not self._lock.locked():
            raise RuntimeError("PresenceState.commit() вызван без захваченного lock")

        new_records = dict(records)
        released = self._apply_pending_offline(new_records)
        await self._persist(list(new_records.values()))
        self._records = new_records
        self._pending_offline.clear()

        if released:
            await log_info(f"Сохранено отложенное отключение: {', '.join(released)}")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[dict[str, UserRecord]]:
        """
        Захватить lock, выдать рабочую копию и закоммитить её на выходе.

        Исключение внутри блока отменяет изменения.
        """
        async with self._lock:
            records = self.working_copy()
            yield records
            await self.commit(records)

    def defer_offline(self, username: str, connection_id: str) -> None:
        """
        Запомнить отключение, которое не удалось сохранить.

        Запись уйдёт в offline при следующем успешном commit(), если
        к тому времени она всё ещё принадлежит connection_id.
        Вызывается только под self.lock.
        """
        if not self._lock.locked():
            raise RuntimeError("PresenceState.defer_offline() вызван без захваченного lock")
        self._pending_offline[username] = connection_id

    def _apply_pending_offline(self, records: dict[str, UserRecord]) -> list[str]:
        """Перевести в offline записи отложенных отключений. Возвращает их имена."""
        released: list[str] = []
        for username, connection_id in self._pending_offline.items():
            record = records.get(username)
            if record is not None and record.connection_id == connection_id:
                records[username] = record.offline()
                released.append(username)
        return released

    async def _persist(self, records: list[UserRecord]) -> None:
        """Сохранение в отдельном потоке с повторами."""
        last_error: Exception | None = None

        for attempt in range(1, self._retry_attempts + 1):
            try:
                await asyncio.to_thread(self._store.save, records)
                return
            except (OSError, PersistenceError) as e:
                last_error = e
                await log_warning(
                    f"Ошибка сохранения пользователей (попытка {attempt}/{self._retry_attempts}): {e}"
                )
                if attempt < self._retry_attempts and self._retry_delay > 0:
                    await asyncio.sleep(self._retry_delay)

        await log_error(f"Не удалось сохранить пользователей: {last_error}")
        raise PersistenceError(f"Не удалось сохранить пользователей: {last_error}") from last_error

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def load(self) -> None:
        """
        Загрузить таблицу из хранилища.

        Записи, оставшиеся «онлайн» после прошлого запуска, переводятся
        в offline: соединений, которые им принадлежали, уже нет.
        """
        async with self._lock:
            records = await asyncio.to_thread(self._store.load)
            self._pending_offline.clear()

            table: dict[str, UserRecord] = {}
            for record in records:
                if record.username in table:
                    await log_warning(f"Дубликат пользователя {record.username!r} в хранилище, берём последнюю запись")
                table[record.username] = record

            stale = [
                name for name, record in table.items()
                if record.connected or record.connection_id is not None or record.location is not None
            ]
            if stale:
                for name in stale:
                    table[name] = table[name].offline()
                await log_info(
                    f"Сброшено присутствие {len(stale)} пользователей после рестарта",
                    type_msg=TypeMsg.DEBUG,
                )
                await self.commit(table)
            else:
                self._records = table

            self._loaded = True

        await log_info(f"Загружено пользователей: {len(self._records)}")

    async def shutdown(self) -> None:
        """Перевести всех в offline и сохранить таблицу."""
        async with self._lock:
            table = {name: record.offline() for name, record in self._records.items()}
            try:
                await self.commit(table)
            except PersistenceError as e:
                await log_error(f"Не удалось сохранить таблицу при остановке: {e}")
                return

        await log_info("Состояние присутствия сохранено", type_msg=TypeMsg.DEBUG)
