import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from anchor_api.api import api_router
from anchor_api.api.deps import (
    get_link_store,
    get_metadata_service,
    get_retry_fetcher,
    get_retry_service,
)
from anchor_api.config import settings
from anchor_api.database import dispose_engine, init_db
from anchor_api.log import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_db()
    logger.info("%s started", settings.app_name)
    yield
    await get_metadata_service().aclose()
    await get_retry_fetcher().aclose()
    get_metadata_service.cache_clear()
    get_retry_fetcher.cache_clear()
    get_retry_service.cache_clear()
    get_link_store.cache_clear()
    await dispose_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.include_router(api_router)


@app.get("/health", tags=["system"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok", "app": settings.app_name}
