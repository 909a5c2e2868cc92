# presence_service/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


# Средний радиус Земли (сферическая модель), км
EARTH_RADIUS_KM: float = 6371.0

# Радиус поиска пользователей поблизости, км
NEARBY_RADIUS_KM: float = 1.0

# Код закрытия WebSocket для вытесненного соединения
SUPERSEDED_CLOSE_CODE: int = 4001


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class SocketEvent(str, Enum):
    """Имена событий WebSocket протокола."""
    # Клиент -> сервер
    USER_LOCATION = "user location"
    GET_NEARBY_USERS = "get nearby users"
    CHAT_MESSAGE = "chat message"

    # Сервер -> клиент
    NEARBY_USERS = "nearby users"
    SESSION_SUPERSEDED = "session superseded"
    ACK = "ack"


class AckStatus(str, Enum):
    """Статус подтверждения обработки события."""
    OK = "ok"
    ERROR = "error"
