"""
Request middleware and ownership scoping.
Logs every request; resolves rows that must belong to the authenticated user.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from fastapi import HTTPException

from app.core.database import get_supabase

logger = logging.getLogger("app.requests")

# Paths that are too noisy to log
QUIET_PATHS = {"/api/health", "/docs", "/redoc", "/openapi.json"}


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        # CORS preflight and health probes pass straight through
        if request.method == "OPTIONS" or path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %s (%.1f ms)", request.method, path, response.status_code, elapsed_ms)
        return response


def get_owned_row(
    table: str,
    record_id: str,
    owner_column: str,
    owner_id: str,
    columns: str = "*",
    label: str = "Record",
) -> dict:
    """
    Fetch a row by id that must belong to the given owner.
    Rows owned by someone else are reported as missing.
    """
    result = (
        get_supabase()
        .table(table)
        .select(columns)
        .eq("id", record_id)
        .eq(owner_column, owner_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return result.data[0]
