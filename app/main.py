"""
Learn Me — College Management Backend
FastAPI entry point.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError

from app.core.config import settings
from app.core.middleware import RequestLogMiddleware
from app.core.realtime import feed, websocket_changes
from app.routers import (
    admin, assignments, auth, calendar, dashboard, live_classes, messages, records, subjects,
)
from app.utils.response import error_response

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("app")

app = FastAPI(
    title=settings.APP_NAME,
    description="College management: subjects, assignments, live classes, attendance, marks and messaging",
    version="1.0.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging
app.add_middleware(RequestLogMiddleware)


@app.exception_handler(APIError)
async def database_error_handler(request: Request, exc: APIError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=502,
        content=error_response(message="The database request failed. Please try again."),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_response(message="Something went wrong. Please try again."),
    )


# Include routers
app.include_router(auth.router)
app.include_router(admin.router)
app.include_router(subjects.router)
app.include_router(assignments.router)
app.include_router(live_classes.router)
app.include_router(records.router)
app.include_router(calendar.router)
app.include_router(messages.router)
app.include_router(dashboard.router)

# Row-change notifications
app.add_api_websocket_route("/ws/changes", websocket_changes)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "status": "running",
        "auth_mode": settings.AUTH_MODE,
    }


@app.get("/api/health")
async def health():
    return {
        "status": "healthy",
        "auth_mode": settings.AUTH_MODE,
        "realtime_subscribers": feed.subscriber_count,
    }
