# presence_service/core/users/repository.py
"""
Хранилище пользователей.
Реализует паттерн Repository с семантикой «вся таблица целиком»:
load() читает все записи, save() заменяет все записи. Частичных
обновлений нет: вызывающий код всегда делает read-modify-write.
"""

from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from presence_service.core.errors import PersistenceError
from presence_service.shared.models.user import UserRecord


_records_adapter = TypeAdapter(list[UserRecord])


class UserRecordStore(ABC):
    """Абстрактное хранилище записей пользователей."""

    @abstractmethod
    def load(self) -> list[UserRecord]:
        """
        Читает все записи.

        Raises:
            PersistenceError: хранилище повреждено или недоступно
        """

    @abstractmethod
    def save(self, records: list[UserRecord]) -> None:
        """
        Заменяет все записи.

        Raises:
            OSError: ошибка записи
        """


class JsonFileUserRecordStore(UserRecordStore):
    """
    Хранилище в JSON-файле (массив объектов).

    Запись атомарна: данные пишутся во временный файл рядом
    с целевым и подменяют его через os.replace.
    """

    def __init__(self, path: str | Path) -> None:
        """
        Args:
            path: Путь к JSON-файлу пользователей
        """
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[UserRecord]:
        if not self._path.exists():
            return []

        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Не удалось прочитать {self._path}: {e}") from e

        if not raw.strip():
            return []

        try:
            return _records_adapter.validate_json(raw)
        except ValidationError as e:
            raise PersistenceError(f"Файл {self._path} повреждён: {e}") from e

    def save(self, records: list[UserRecord]) -> None:
        payload = json.dumps(
            [record.model_dump(mode="json", exclude_none=True) for record in records],
            ensure_ascii=False,
            indent=2,
        )

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=str(self._path.parent),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise


class InMemoryUserRecordStore(UserRecordStore):
    """Хранилище в памяти процесса (тесты, временные запуски)."""

    def __init__(self, records: list[UserRecord] | None = None) -> None:
        self._records: list[UserRecord] = list(records or [])
        self.save_count = 0

    def load(self) -> list[UserRecord]:
        return list(self._records)

    def save(self, records: list[UserRecord]) -> None:
        self._records = list(records)
        self.save_count += 1
