# presence_service/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Окружение (и файл .env) переопределяет значения из файла.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from presence_service.common.constants import EARTH_RADIUS_KM, NEARBY_RADIUS_KM


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (CONFIG_PATH имеет приоритет)."""
    env_path = os.getenv("CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "presence_service"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"


class ServerSettings(BaseModel):
    """Настройки HTTP/WebSocket сервера."""
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, v: str | list[str]) -> list[str]:
        """Разрешает задавать список origin строкой через запятую."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_FORMAT: str = "colored"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_MAX_BYTES: int = 10485760
    LOG_BACKUP_COUNT: int = 5


class StorageSettings(BaseModel):
    """Настройки хранилища пользователей."""
    USERS_DB_PATH: str = "users.json"
    PERSIST_RETRY_ATTEMPTS: int = Field(default=3, ge=1)
    PERSIST_RETRY_DELAY: float = Field(default=0.1, ge=0.0)

    @property
    def users_db_path(self) -> Path:
        """Абсолютный путь к файлу пользователей (относительный: от корня проекта)."""
        path = Path(self.USERS_DB_PATH)
        if path.is_absolute():
            return path
        return get_project_root() / path


class ProximitySettings(BaseModel):
    """
    Настройки поиска поблизости.

    NEARBY_RADIUS_KM: максимальное расстояние (включительно), на котором
    два подключённых пользователя считаются соседями.
    EARTH_RADIUS_KM: радиус сферы в формуле гаверсинусов; все расстояния
    масштабируются пропорционально ему.
    """
    NEARBY_RADIUS_KM: float = Field(default=NEARBY_RADIUS_KM, gt=0)
    EARTH_RADIUS_KM: float = Field(default=EARTH_RADIUS_KM, gt=0)


class AuthSettings(BaseModel):
    """Настройки хэширования паролей."""
    PASSWORD_HASH_ITERATIONS: int = Field(default=200_000, ge=1)


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Переменные окружения переопределяют значения из файла.
        """
        config_data = load_config_json()

        # Фильтруем комментарии (ключи, начинающиеся с _comment_)
        data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "presence_service"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", False),
                ENVIRONMENT=os.getenv("ENVIRONMENT", data.get("ENVIRONMENT", "development")),
            ),
            server=ServerSettings(
                HOST=os.getenv("HOST", data.get("HOST", "0.0.0.0")),
                PORT=int(os.getenv("PORT", data.get("PORT", 3000))),
                CORS_ORIGINS=os.getenv("CORS_ORIGINS", data.get("CORS_ORIGINS", ["*"])),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=os.getenv("LOG_LEVEL", data.get("LOG_LEVEL", "DEBUG")),
                LOG_FORMAT=data.get("LOG_FORMAT", "colored"),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
                LOG_BACKUP_COUNT=data.get("LOG_BACKUP_COUNT", 5),
            ),
            storage=StorageSettings(
                USERS_DB_PATH=os.getenv("USERS_DB_PATH", data.get("USERS_DB_PATH", "users.json")),
                PERSIST_RETRY_ATTEMPTS=data.get("PERSIST_RETRY_ATTEMPTS", 3),
                PERSIST_RETRY_DELAY=data.get("PERSIST_RETRY_DELAY", 0.1),
            ),
            proximity=ProximitySettings(
                NEARBY_RADIUS_KM=data.get("NEARBY_RADIUS_KM", NEARBY_RADIUS_KM),
                EARTH_RADIUS_KM=data.get("EARTH_RADIUS_KM", EARTH_RADIUS_KM),
            ),
            auth=AuthSettings(
                PASSWORD_HASH_ITERATIONS=data.get("PASSWORD_HASH_ITERATIONS", 200_000),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
