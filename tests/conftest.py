# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from presence_service.core.presence.engine import ProximityEngine
from presence_service.core.presence.lifecycle import ConnectionLifecycleManager
from presence_service.core.presence.state import PresenceState
from presence_service.core.users.repository import InMemoryUserRecordStore, UserRecordStore
from tests.helpers import make_record


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "PROJECT_NAME": "presence_service_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "HOST": "127.0.0.1",
        "PORT": 3100,
        "CORS_ORIGINS": ["https://test.example.com"],
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "colored",
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "USERS_DB_PATH": "test_users.json",
        "PERSIST_RETRY_ATTEMPTS": 2,
        "PERSIST_RETRY_DELAY": 0.0,
        "NEARBY_RADIUS_KM": 2.5,
        "EARTH_RADIUS_KM": 6371.0,
        "PASSWORD_HASH_ITERATIONS": 1000,
    }


@pytest.fixture
def config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Временный config.json."""
    path = tmp_path / "config.json"
    path.write_text(json.dumps(mock_config), encoding="utf-8")
    return path


# =============================================================================
# ФИКСТУРЫ ЯДРА
# =============================================================================

@pytest.fixture
def usernames() -> list[str]:
    return ["alice", "bob", "carol", "dave"]


@pytest.fixture
def store(usernames: list[str]) -> InMemoryUserRecordStore:
    """Хранилище в памяти с зарегистрированными пользователями."""
    return InMemoryUserRecordStore([make_record(name) for name in usernames])


@pytest.fixture
def state(store: UserRecordStore) -> PresenceState:
    """Состояние без задержек между повторами сохранения (не загружено)."""
    return PresenceState(store, retry_attempts=2, retry_delay=0.0)


@pytest.fixture
def engine(state: PresenceState) -> ProximityEngine:
    return ProximityEngine(state, radius_km=1.0, earth_radius_km=6371.0)


@pytest.fixture
def lifecycle(state: PresenceState, engine: ProximityEngine) -> ConnectionLifecycleManager:
    return ConnectionLifecycleManager(state, engine)
