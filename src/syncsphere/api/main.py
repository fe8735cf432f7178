import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from syncsphere import __version__
from syncsphere.api.routes import router
from syncsphere.api.websocket import ConnectionHub
from syncsphere.config import Settings, configure_logging
from syncsphere.database import CacheManager, Database, Store
from syncsphere.exceptions import AppError, NotFoundError
from syncsphere.services import (
    DataRecoveryService,
    DeviceService,
    EventBus,
    NotificationService,
    UserService,
)

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, *,
               store: Optional[Store] = None,
               cache: Optional[CacheManager] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store or Store(Database(settings.database_url))
    cache = cache or CacheManager.from_config(settings.redis)
    events = EventBus()
    hub = ConnectionHub(events)

    recovery_service = DataRecoveryService(
        store, cache, events,
        max_concurrent_sessions=settings.recovery.max_concurrent_sessions,
        delay_scale=settings.recovery.delay_scale,
    )
    notification_service = NotificationService(store, events, deliver=hub.send_to_user)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.db.connect()
        hub.start()
        notification_service.start()
        logger.info("SyncSphere API started")
        try:
            yield
        finally:
            await recovery_service.shutdown()
            await notification_service.stop()
            await hub.stop()
            cache.close()
            store.close()
            logger.info("SyncSphere API stopped")

    app = FastAPI(title="SyncSphere", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.cache = cache
    app.state.events = events
    app.state.hub = hub
    app.state.user_service = UserService(store, cache)
    app.state.device_service = DeviceService(store, cache)
    app.state.recovery_service = recovery_service
    app.state.notification_service = notification_service

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        logger.warning("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/")
    def root():
        return "running"

    @app.get("/health")
    def health():
        database_ok = store.db.ping()
        return {
            "status": "ok" if database_ok else "degraded",
            "database": "healthy" if database_ok else "unhealthy",
            "cache": cache.health_check(),
            "active_recoveries": recovery_service.sessions.running_count,
            "paused_recoveries": len(recovery_service.sessions) - recovery_service.sessions.running_count,
            "websocket_clients": hub.client_count,
        }

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket, user_id: Optional[str] = None):
        if not user_id or store.find_user_by_id(user_id) is None:
            await websocket.close(code=1008)
            return

        async def owns_recovery(uid: str, recovery_id: str) -> bool:
            try:
                await recovery_service.get_recovery_session(recovery_id, uid)
            except NotFoundError:
                return False
            return True

        await hub.connect(websocket, user_id)
        try:
            while True:
                message = await websocket.receive_json()
                if isinstance(message, dict):
                    await hub.handle_message(websocket, message, authorize=owns_recovery)
        except WebSocketDisconnect:
            pass
        finally:
            hub.disconnect(websocket)

    app.include_router(router)
    return app


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
