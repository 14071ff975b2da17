import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from familysync.core.config import settings
from familysync.core.runtime import build_family_sync
from familysync.routers import admin_sync, family, health

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the directory sync and kick off the initial account check."""
    sync = build_family_sync(settings)
    app.state.family_sync = sync
    sync.check_account_status()
    logger.info("family directory sync started (directory_mode=%s)", settings.directory_mode)

    yield

    await sync.aclose()


app = FastAPI(
    title="Family Directory Sync API",
    version="1.0.0",
    description="Family roster reconciled against a remote member directory.",
    root_path=settings.root_path,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(family.router)
app.include_router(admin_sync.router)
