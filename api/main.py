"""
FastAPI application for the Swayamvar auth core.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.auth import router as auth_router
from auth.dependencies import get_current_user
from config import Config
from db.engine import Base, get_engine

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Validate configuration on startup
Config.validate()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown."""
    if Config.is_sqlite():
        # Local development; Postgres deployments run the Alembic migrations.
        import db.models  # noqa: F401  (registers tables on Base.metadata)

        Base.metadata.create_all(bind=get_engine())
    logger.info("Auth API started")
    yield
    logger.info("Auth API stopped")


app = FastAPI(
    title="Swayamvar Auth API",
    description="Accounts, sessions and credential flows for the Swayamvar platform",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"])


@app.get("/api/v1/session")
async def session_check(user: dict = Depends(get_current_user)) -> dict:
    """Lightweight check the client uses to decide whether to refresh."""
    return {"authenticated": True, "user_id": user["id"], "role": user.get("role")}


@app.get("/health")
async def health():
    """Health check."""
    return {"status": "healthy"}
