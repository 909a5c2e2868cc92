# presence_service/core/presence/lifecycle.py
"""
Жизненный цикл соединений.

Две таблицы, которые меняются только вместе и только под PresenceState.lock:
- connection_id -> username
- username -> connection_id

Состояния пользователя:
Unregistered -> Registered(offline) -> Online(located) -> Offline.
Соединение привязывается к имени первой присланной геолокацией,
поэтому Online без позиции: лишь промежуточный шаг внутри одного коммита.
"""

from __future__ import annotations

from dataclasses import dataclass

from presence_service.common.constants import TypeMsg
from presence_service.common.logger import log_info
from presence_service.core.errors import PersistenceError
from presence_service.core.presence.engine import ProximityEngine
from presence_service.core.presence.state import PresenceState
from presence_service.shared.models.user import Coordinates, UserRecord


@dataclass(frozen=True)
class BindResult:
    """Результат привязки соединения к имени."""
    record: UserRecord
    superseded_connection_id: str | None = None
    released_username: str | None = None


class ConnectionLifecycleManager:
    """Привязка соединений к пользователям и переходы online/offline."""

    def __init__(self, state: PresenceState, engine: ProximityEngine) -> None:
        self._state = state
        self._engine = engine

        # connection_id -> username
        self._connections: dict[str, str] = {}
        # username -> connection_id
        self._bindings: dict[str, str] = {}

        self._total_connections: int = 0

    @property
    def bound_connections(self) -> int:
        return len(self._connections)

    @property
    def total_connections(self) -> int:
        return self._total_connections

    def username_for(self, connection_id: str) -> str | None:
        return self._connections.get(connection_id)

    def connection_for(self, username: str) -> str | None:
        return self._bindings.get(username)

    def _unbind(self, connection_id: str, username: str) -> None:
        self._connections.pop(connection_id, None)
        if self._bindings.get(username) == connection_id:
            del self._bindings[username]

    async def on_connect(self, connection_id: str) -> None:
        """Принять соединение. Пользователь будет известен после первой геолокации."""
        self._total_connections += 1
        await log_info(f"Соединение {connection_id} открыто", type_msg=TypeMsg.DEBUG)

    async def on_location_update(
        self,
        connection_id: str,
        username: str,
        location: Coordinates,
    ) -> BindResult:
        """
        Обновить позицию и привязать соединение к имени одним коммитом.

        Если имя было привязано к другому соединению, старая привязка
        вытесняется, а её id возвращается в superseded_connection_id.
        Если это соединение раньше принадлежало другому имени, тот
        пользователь уходит в offline.

        Raises:
            UnknownUserError: пользователь не зарегистрирован (привязки не меняются)
            PersistenceError: таблицу не удалось сохранить (привязки не меняются)
        """
        async with self._state.lock:
            records = self._state.working_copy()

            released = self.username_for(connection_id)
            if released == username:
                released = None
            if released is not None:
                previous = records.get(released)
                if previous is not None and previous.connection_id == connection_id:
                    records[released] = previous.offline()

            record = self._engine.locate(records, username, location, connection_id)

            await self._state.commit(records)

            superseded = self.connection_for(username)
            if superseded == connection_id:
                superseded = None

            if superseded is not None:
                self._connections.pop(superseded, None)
            if released is not None and self.connection_for(released) == connection_id:
                del self._bindings[released]

            self._connections[connection_id] = username
            self._bindings[username] = connection_id

        if superseded is not None:
            await log_info(
                f"Пользователь {username} перешёл на соединение {connection_id}, "
                f"соединение {superseded} вытеснено"
            )
        if released is not None:
            await log_info(
                f"Соединение {connection_id} сменило пользователя {released} на {username}",
                type_msg=TypeMsg.DEBUG,
            )

        return BindResult(
            record=record,
            superseded_connection_id=superseded,
            released_username=released,
        )

    async def on_disconnect(self, connection_id: str) -> str | None:
        """
        Закрыть соединение.

        Привязанный пользователь уходит в offline (если запись всё ещё
        принадлежит этому соединению). Без привязки: ничего не делает.

        Returns:
            Имя пользователя, ушедшего в offline, или None

        Raises:
            PersistenceError: таблицу не удалось сохранить (привязка снимается,
                offline сохранится со следующим коммитом)
        """
        async with self._state.lock:
            username = self.username_for(connection_id)
            if username is None:
                return None

            records = self._state.working_copy()
            record = records.get(username)
            went_offline = record is not None and record.connection_id == connection_id
            try:
                if went_offline:
                    records[username] = record.offline()
                    await self._state.commit(records)
            except PersistenceError:
                # Соединения уже нет: offline сохранится со следующим коммитом
                self._state.defer_offline(username, connection_id)
                raise
            finally:
                self._unbind(connection_id, username)

        if not went_offline:
            return None

        await log_info(f"Пользователь {username} отключился (соединение {connection_id})")
        return username
