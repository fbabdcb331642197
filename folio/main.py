from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from .api.routes import router as api_router
from .config import settings
from .logging import setup_logging

setup_logging()
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info(
        "service_started",
        benchmark=settings.benchmark_symbol,
        cache_enabled=bool(settings.cache_enabled),
        max_workers=settings.fetch_max_workers,
    )
    yield
    log.info("service_stopped")


app = FastAPI(title="folio-service", lifespan=lifespan)
app.include_router(api_router)
