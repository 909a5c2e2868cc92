# presence_service/core/errors.py
"""
Исключения доменного слоя.
"""

from __future__ import annotations


class PresenceError(Exception):
    """Базовое исключение сервиса присутствия."""


class UnknownUserError(PresenceError):
    """Геолокация пришла для имени, которого нет в хранилище."""

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"Неизвестный пользователь: {username!r}")


class PersistenceError(PresenceError):
    """Не удалось прочитать или записать хранилище пользователей."""


class UserAlreadyExistsError(PresenceError):
    """Пользователь с таким именем уже зарегистрирован."""

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"Имя пользователя уже занято: {username!r}")


class UserNotFoundError(PresenceError):
    """Пользователь не найден."""

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"Пользователь не найден: {username!r}")


class InvalidCredentialsError(PresenceError):
    """Неверный пароль."""
