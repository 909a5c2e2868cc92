#!/usr/bin/env python3
# main.py
"""
Главная точка входа Presence Service.
Запускает HTTP/WebSocket сервер.
"""

from __future__ import annotations

import uvicorn

from presence_service.config import settings
from presence_service.common.logger import setup_logging


def main() -> None:
    """Запустить сервер."""
    setup_logging()

    uvicorn.run(
        "presence_service.services.realtime_ws.app:app",
        host=settings.server.HOST,
        port=settings.server.PORT,
        reload=settings.system.DEBUG,
        log_level=settings.logging.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
