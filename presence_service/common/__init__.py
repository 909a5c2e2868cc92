# presence_service/common/__init__.py
"""
Общие утилиты, константы и логгер.
"""

from presence_service.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from presence_service.common.constants import TypeMsg, SocketEvent

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
    "SocketEvent",
]
