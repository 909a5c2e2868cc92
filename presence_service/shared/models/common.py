# presence_service/shared/models/common.py
"""
Общие модели для всех сервисов.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Простой ответ с текстовым сообщением."""

    message: str


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    service: str
    status: str = "healthy"  # healthy, degraded, unhealthy
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)


class StatsResponse(BaseModel):
    """Статистика соединений и присутствия."""

    active_connections: int
    bound_connections: int
    registered_users: int
    online_users: int
    total_connections_ever: int
    total_messages_sent: int
