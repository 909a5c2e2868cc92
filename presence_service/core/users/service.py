# presence_service/core/users/service.py
"""
Сервис регистрации и входа.
Создаёт записи пользователей и проверяет пароли. Поля присутствия
не трогает: ими владеет ядро присутствия.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import secrets
from typing import TYPE_CHECKING

from presence_service.common.logger import log_info
from presence_service.core.errors import (
    InvalidCredentialsError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from presence_service.shared.models.user import UserRecord

if TYPE_CHECKING:
    from presence_service.core.presence.state import PresenceState


HASH_ALGORITHM = "pbkdf2_sha256"


def hash_password(password: str, iterations: int, salt: bytes | None = None) -> str:
    """
    Хэширует пароль PBKDF2-HMAC-SHA256.

    Returns:
        Строка вида pbkdf2_sha256$<iterations>$<salt>$<hash> (base64)
    """
    salt = salt or secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return "$".join([
        HASH_ALGORITHM,
        str(iterations),
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(digest).decode("ascii"),
    ])


def verify_password(password: str, credential_hash: str) -> bool:
    """Проверяет пароль по строке из hash_password()."""
    try:
        algorithm, iterations, salt_b64, digest_b64 = credential_hash.split("$")
        if algorithm != HASH_ALGORITHM:
            return False
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(digest_b64)
        actual = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, int(iterations))
    except ValueError:
        return False

    return hmac.compare_digest(actual, expected)


class UserService:
    """Регистрация и проверка учётных данных."""

    def __init__(self, state: "PresenceState", hash_iterations: int | None = None) -> None:
        """
        Args:
            state: Общее состояние (регистрация пишет ту же таблицу, что и ядро)
            hash_iterations: Число итераций PBKDF2 (из конфига, если None)
        """
        if hash_iterations is None:
            from presence_service.config import settings
            hash_iterations = settings.auth.PASSWORD_HASH_ITERATIONS

        self._state = state
        self._hash_iterations = hash_iterations

    async def register(self, username: str, password: str) -> UserRecord:
        """
        Зарегистрировать пользователя.

        Raises:
            UserAlreadyExistsError: имя занято
            PersistenceError: таблицу не удалось сохранить
        """
        if self._state.get(username) is not None:
            raise UserAlreadyExistsError(username)

        # PBKDF2 считается вне lock
        credential_hash = await asyncio.to_thread(hash_password, password, self._hash_iterations)

        async with self._state.transaction() as records:
            if username in records:
                raise UserAlreadyExistsError(username)
            record = UserRecord(username=username, credential_hash=credential_hash)
            records[username] = record

        await log_info(f"Зарегистрирован пользователь {username}")
        return record

    async def login(self, username: str, password: str) -> UserRecord:
        """
        Проверить учётные данные.

        Raises:
            UserNotFoundError: пользователь не найден
            InvalidCredentialsError: неверный пароль
        """
        record = self._state.get(username)
        if record is None:
            raise UserNotFoundError(username)

        valid = await asyncio.to_thread(verify_password, password, record.credential_hash)
        if not valid:
            raise InvalidCredentialsError("Неверный пароль")

        return record
