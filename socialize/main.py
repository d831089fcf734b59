from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from socialize.api import router
from socialize.core.config import settings
from socialize.core.errors import register_exception_handlers
from socialize.db.base import load_all_models
from socialize.utils.logger import get_logger, setup_logging
from socialize.workers.producer import shutdown_producer

load_all_models()

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(level=settings.LOG_LEVEL, console=True, file=settings.LOG_TO_FILE, json_format=settings.LOG_JSON)
    logger.info(f"Starting {settings.PROJECT_NAME} API (publish mode: {settings.PUBLISH_MODE})")
    yield
    await shutdown_producer()
    logger.info("API shut down")


def create_app() -> FastAPI:
    app = FastAPI(title="Socialize API", version="1.0.0", lifespan=lifespan)

    register_exception_handlers(app)

    # Prometheus metrics
    Instrumentator().instrument(app).expose(app)

    app.include_router(router.api_router)
    return app


app = create_app()
