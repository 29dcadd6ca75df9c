import os
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from .backend.rest_backend import RestBackend
from .backend.sql_backend import SqlBackend
from .config import settings
from .db import create_db_engine, create_session_factory, init_db
from .logging import setup_logging, RequestIdMiddleware
from .realtime.hub import ChangeHub
from .realtime.listener import ChangeStreamListener
from .realtime.transport import HttpStreamTransport, HubTransport
from .routes.dashboard import router as dashboard_router
from .store.store import ProjectStore


logger = structlog.get_logger(__name__)


def build_store(user_id: Optional[str] = None) -> ProjectStore:
    """Wire the default store: hosted backend when configured, else the local database."""
    if settings.backend_url:
        backend = RestBackend()
        transport = HttpStreamTransport()
        logger.info("startup.backend", kind="rest", url=settings.backend_url)
    else:
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        engine = create_db_engine()
        if settings.auto_create_db:
            init_db(engine)
        hub = ChangeHub(maxsize=settings.realtime_queue_size)
        backend = SqlBackend(create_session_factory(engine), hub)
        transport = HubTransport(hub)
        logger.info("startup.backend", kind="sql")
    return ProjectStore(backend, ChangeStreamListener(transport), user_id=user_id)


def create_app(store: Optional[ProjectStore] = None) -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)
    app.state.store = store

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(dashboard_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "environment": settings.environment}

    @app.on_event("startup")
    async def _startup():
        if app.state.store is None:
            app.state.store = build_store()
        await app.state.store.start()
        logger.info("startup.ready")

    @app.on_event("shutdown")
    async def _shutdown():
        current = app.state.store
        if current is None:
            return
        await current.close()
        await current.backend.aclose()

    return app


app = create_app()
