# presence_service/core/users/__init__.py
"""
Домен пользователей: хранилище и регистрация.
"""

from presence_service.core.users.repository import (
    UserRecordStore,
    JsonFileUserRecordStore,
    InMemoryUserRecordStore,
)
from presence_service.core.users.service import UserService

__all__ = [
    "UserRecordStore",
    "JsonFileUserRecordStore",
    "InMemoryUserRecordStore",
    "UserService",
]
