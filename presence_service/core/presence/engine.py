# presence_service/core/presence/engine.py
"""
Движок поиска пользователей поблизости.
"""

from __future__ import annotations

from typing import Iterable, MutableMapping

from presence_service.common.constants import TypeMsg
from presence_service.common.logger import log_info
from presence_service.core.errors import UnknownUserError
from presence_service.core.geo.utils import haversine_distance
from presence_service.core.presence.state import PresenceState
from presence_service.shared.models.user import Coordinates, PublicUserRecord, UserRecord


class ProximityEngine:
    """
    Обновление геолокации и поиск соседей.

    Поиск: линейный проход по всем зарегистрированным пользователям,
    O(N) на запрос. При росте N сюда встраивается пространственный
    индекс (сетка, quad-tree).
    """

    def __init__(
        self,
        state: PresenceState,
        radius_km: float | None = None,
        earth_radius_km: float | None = None,
    ) -> None:
        """
        Args:
            state: Общее состояние присутствия
            radius_km: Радиус поиска (из конфига, если None)
            earth_radius_km: Радиус Земли для haversine (из конфига, если None)
        """
        if radius_km is None or earth_radius_km is None:
            from presence_service.config import settings
            if radius_km is None:
                radius_km = settings.proximity.NEARBY_RADIUS_KM
            if earth_radius_km is None:
                earth_radius_km = settings.proximity.EARTH_RADIUS_KM

        self._state = state
        self._radius_km = radius_km
        self._earth_radius_km = earth_radius_km

    @property
    def radius_km(self) -> float:
        return self._radius_km

    def distance_km(self, a: Coordinates, b: Coordinates) -> float:
        """Расстояние между точками по сфере настроенного радиуса."""
        return haversine_distance(a, b, self._earth_radius_km)

    # =========================================================================
    # ОБНОВЛЕНИЕ ЛОКАЦИИ
    # =========================================================================

    @staticmethod
    def locate(
        records: MutableMapping[str, UserRecord],
        username: str,
        location: Coordinates,
        connection_id: str,
    ) -> UserRecord:
        """
        Применить геолокацию к рабочей копии таблицы.

        Raises:
            UnknownUserError: записи с таким именем нет
        """
        record = records.get(username)
        if record is None:
            raise UnknownUserError(username)

        updated = record.located(location, connection_id)
        records[username] = updated
        return updated

    async def update_location(
        self,
        username: str,
        location: Coordinates,
        connection_id: str,
    ) -> UserRecord:
        """
        Обновить позицию пользователя и сохранить таблицу.

        Повторный вызов с теми же значениями даёт ту же запись.

        Raises:
            UnknownUserError: пользователь не зарегистрирован
            PersistenceError: таблицу не удалось сохранить
        """
        async with self._state.transaction() as records:
            return self.locate(records, username, location, connection_id)

    # =========================================================================
    # ПОИСК
    # =========================================================================

    def find_nearby(self, caller: UserRecord, records: Iterable[UserRecord]) -> list[PublicUserRecord]:
        """Все подключённые пользователи с позицией в радиусе от caller (кроме него самого)."""
        if caller.location is None:
            return []

        nearby: list[PublicUserRecord] = []
        for record in records:
            if record.username == caller.username:
                continue
            if not record.is_located or self._state.is_stale(record):
                continue
            if self.distance_km(caller.location, record.location) <= self._radius_km:
                nearby.append(record.to_public())
        return nearby

    async def query_nearby(self, connection_id: str) -> list[PublicUserRecord]:
        """
        Кто рядом с пользователем соединения connection_id.

        Неизвестное соединение или отсутствие позиции: пустой результат.
        Порядок результата не гарантируется.
        """
        snapshot = self._state.snapshot()
        caller = self._state.find_by_connection(connection_id)
        if caller is None or caller.location is None:
            await log_info(
                f"Запрос соседей от соединения {connection_id} без позиции",
                type_msg=TypeMsg.DEBUG,
            )
            return []

        return self.find_nearby(caller, snapshot)
