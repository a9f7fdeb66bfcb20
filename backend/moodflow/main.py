# moodflow backend api
# fastapi app with async mongodb, jwt identity, and the clinical visibility engine

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from moodflow.config import settings
from moodflow.services.db import db
from moodflow.services.errors import EngineError
from moodflow.routers import (
    account,
    audit,
    connections,
    dashboard,
    entries,
    exports,
    insights,
    live,
    notes,
    notifications,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """startup: connect to mongodb and ensure indexes. shutdown: close connection."""
    logger.info("Starting MoodFlow backend...")
    await db.connect()
    await db.ensure_indexes()
    logger.info("MoodFlow backend ready")
    yield
    logger.info("Shutting down MoodFlow backend...")
    await db.close()


app = FastAPI(
    title="MoodFlow API",
    description="Backend API for MoodFlow: journal visibility, clinical notes, notifications and exports",
    version="0.1.0",
    lifespan=lifespan,
)

# cors: allow frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


# register routers
app.include_router(entries.router)
app.include_router(connections.router)
app.include_router(notes.router)
app.include_router(notifications.router)
app.include_router(exports.router)
app.include_router(dashboard.router)
app.include_router(insights.router)
app.include_router(audit.router)
app.include_router(account.router)
app.include_router(live.router)


@app.get("/health")
async def health_check():
    """basic health check endpoint"""
    return {"status": "ok", "service": "moodflow-api"}
