# presence_service/shared/models/__init__.py
"""
Общие DTO и Pydantic-модели.
"""

from presence_service.shared.models.user import (
    Coordinates,
    UserRecord,
    PublicUserRecord,
    RegisterRequest,
    LoginRequest,
)
from presence_service.shared.models.common import (
    MessageResponse,
    HealthStatus,
    StatsResponse,
)

__all__ = [
    # User
    "Coordinates",
    "UserRecord",
    "PublicUserRecord",
    "RegisterRequest",
    "LoginRequest",
    # Common
    "MessageResponse",
    "HealthStatus",
    "StatsResponse",
]
