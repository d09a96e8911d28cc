import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import structlog

from .config import settings
from .db import Base, engine
from .errors import WorkflowError, workflow_error_handler
from .logging import setup_logging, RequestIdMiddleware
from .routes.cron import router as cron_router
from .routes.events import router as events_router
from .routes.orders import router as orders_router
from .routes.staff import router as staff_router
from .routes.tasks import router as tasks_router
from .routes.timer import router as timer_router


def create_app() -> FastAPI:
    setup_logging()
    logger = structlog.get_logger(__name__)
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(WorkflowError, workflow_error_handler)

    # Routers
    app.include_router(orders_router)
    app.include_router(timer_router)
    app.include_router(tasks_router)
    app.include_router(staff_router)
    app.include_router(events_router)
    app.include_router(cron_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.on_event("startup")
    def _startup():
        logger.info("startup", environment=settings.environment)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
            logger.info("startup_tables_verified", tables=len(Base.metadata.tables))
        if not settings.cron_secret:
            logger.warning("cron_secret_missing", detail="stale timer sweep endpoint will reject every call")

    return app


app = create_app()
