# presence_service/services/realtime_ws/app.py
"""
FastAPI приложение сервиса присутствия.

WebSocket endpoints:
- /ws: геолокация, поиск соседей, чат

REST endpoints:
- POST /api/register: регистрация
- POST /api/login: вход
- GET /health: проверка здоровья
- GET /stats: статистика соединений
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from presence_service import __version__
from presence_service.common.logger import log_info, log_warning, setup_logging
from presence_service.core.users.repository import JsonFileUserRecordStore, UserRecordStore
from presence_service.services.realtime_ws.gateway import PresenceGateway
from presence_service.services.users_service.routes import router as users_router
from presence_service.shared.models.common import HealthStatus, StatsResponse


SERVICE_NAME = "presence_service"


def create_app(
    store: UserRecordStore | None = None,
    gateway: PresenceGateway | None = None,
) -> FastAPI:
    """
    Собрать приложение.

    Args:
        store: Хранилище пользователей (JSON-файл из конфига, если None)
        gateway: Готовый шлюз (для тестов); иначе создаётся поверх store
    """
    from presence_service.config import settings

    if gateway is None:
        if store is None:
            store = JsonFileUserRecordStore(settings.storage.users_db_path)
        gateway = PresenceGateway(store)

    # === LIFESPAN ===

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Жизненный цикл приложения."""
        setup_logging()
        await gateway.start()
        await log_info("Presence service запущен")

        yield

        await gateway.stop()
        await log_info("Presence service остановлен")

    app = FastAPI(
        title="Presence Service",
        description="Присутствие пользователей и поиск соседей в радиусе.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.gateway = gateway
    app.state.user_service = gateway.users

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(users_router, prefix="/api")

    # === HEALTH CHECK ===

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(request: Request) -> HealthStatus:
        """Проверка здоровья сервиса."""
        loaded = request.app.state.gateway.state.is_loaded
        return HealthStatus(
            service=SERVICE_NAME,
            status="healthy" if loaded else "unhealthy",
            version=__version__,
            dependencies={"user_store": "healthy" if loaded else "unavailable"},
        )

    # === STATS ===

    @app.get("/stats", response_model=StatsResponse, tags=["Stats"])
    async def get_stats(request: Request) -> StatsResponse:
        """Получить статистику соединений."""
        return StatsResponse(**request.app.state.gateway.get_stats())

    # === WEBSOCKET ===

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """
        WebSocket клиента.

        Входящие сообщения:
        - {"event": "user location", "data": {"username": "...", "location": {"latitude": 0, "longitude": 0}}}
        - {"event": "get nearby users"}
        - {"event": "chat message", "data": <любой JSON>}
        Любое сообщение может содержать "ack": "<id>" для подтверждения.
        """
        gw: PresenceGateway = websocket.app.state.gateway

        await websocket.accept()
        connection_id = await gw.connect(websocket)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                await gw.handle_message(connection_id, message.get("text") or message.get("bytes"))
        except Exception as e:
            await log_warning(f"Соединение {connection_id} прервано: {e}")
        finally:
            await gw.disconnect(connection_id)

    return app


app = create_app()


# === STARTUP ===

if __name__ == "__main__":
    import uvicorn
    from presence_service.config import settings

    uvicorn.run(app, host=settings.server.HOST, port=settings.server.PORT)
