import logging

from supabase import create_client, Client
from app.core.config import settings

logger = logging.getLogger(__name__)

_supabase_client: Client | None = None


def get_supabase() -> Client:
    global _supabase_client
    if _supabase_client is None:
        logger.info("Connecting to Supabase at %s", settings.SUPABASE_URL)
        _supabase_client = create_client(
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_KEY or settings.SUPABASE_KEY,
        )
    return _supabase_client


def count_rows(table: str, **filters) -> int:
    """Exact row count for `table` filtered by equality on each keyword."""
    query = get_supabase().table(table).select("id", count="exact")
    for column, value in filters.items():
        query = query.eq(column, value)
    result = query.execute()
    if result.count is not None:
        return result.count
    return len(result.data or [])

