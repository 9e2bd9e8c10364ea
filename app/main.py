from fastapi import FastAPI

from app.depot.api import api_router
from app.depot.core.config import settings
from app.depot.core.logging import configure_logging
from app.depot.middleware.observability import ObservabilityMiddleware
from app.depot.middleware.trace import TraceIdMiddleware
from app.depot.core.errors import setup_exception_handlers


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
