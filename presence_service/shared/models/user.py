# presence_service/shared/models/user.py
"""
Модели пользователя и геолокации.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class Coordinates(BaseModel):
    """
    Географические координаты в градусах.

    Диапазон не проверяется: значения вне [-90, 90] / [-180, 180]
    дают большие, но конечные расстояния. NaN и бесконечность отклоняются.
    """

    latitude: float = Field(..., allow_inf_nan=False)
    longitude: float = Field(..., allow_inf_nan=False)

    class Config:
        frozen = True


class PublicUserRecord(BaseModel):
    """Публичное представление пользователя (без учётных данных)."""

    username: str
    location: Optional[Coordinates] = None
    connected: bool = False


class UserRecord(BaseModel):
    """
    Запись пользователя в хранилище.

    Поля присутствия (connection_id, location, connected) меняются только
    ядром: ProximityEngine и ConnectionLifecycleManager.
    """

    username: str = Field(..., min_length=1, description="Уникальное имя пользователя")
    credential_hash: str = Field(..., description="Хэш пароля (ядро его не читает)")
    connection_id: Optional[str] = Field(None, description="ID текущего соединения")
    location: Optional[Coordinates] = Field(None, description="Последняя известная позиция")
    connected: bool = Field(False, description="Есть ли живое соединение")

    class Config:
        frozen = True

    @property
    def is_located(self) -> bool:
        """Подключён и прислал хотя бы одну позицию."""
        return self.connected and self.location is not None

    def located(self, location: Coordinates, connection_id: str) -> "UserRecord":
        """Копия записи: пользователь онлайн на соединении connection_id в точке location."""
        return self.model_copy(update={
            "connection_id": connection_id,
            "location": location,
            "connected": True,
        })

    def offline(self) -> "UserRecord":
        """Копия записи без полей присутствия."""
        return self.model_copy(update={
            "connection_id": None,
            "location": None,
            "connected": False,
        })

    def to_public(self) -> PublicUserRecord:
        """Публичное представление без credential_hash и connection_id."""
        return PublicUserRecord(
            username=self.username,
            location=self.location,
            connected=self.connected,
        )


class RegisterRequest(BaseModel):
    """Запрос на регистрацию."""

    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    """Запрос на вход."""

    username: str
    password: str
