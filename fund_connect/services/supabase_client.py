"""
Supabase Client Factory

Creates the PostgREST/Auth client used by the service layer and the async
client used for Realtime subscriptions.
"""
import logging
from typing import Optional
from supabase import create_client, acreate_client, Client, AsyncClient

from fund_connect.config import settings

logger = logging.getLogger(__name__)

_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get the shared Supabase client.

    Uses the service role key when configured (RLS bypassed), else the anon key,
    in which case RLS policies must allow the calls this service makes.

    Raises:
        RuntimeError: If Supabase is not configured
    """
    global _client
    if _client is not None:
        return _client

    if not settings.is_supabase_configured:
        raise RuntimeError("Supabase client not initialized. Check configuration.")

    if settings.SUPABASE_SERVICE_KEY:
        logger.info("Using Supabase service role key (RLS bypassed)")
    else:
        logger.warning("Using Supabase anon key - RLS policies must permit backend access")

    _client = create_client(settings.SUPABASE_URL, settings.supabase_key)
    return _client


async def create_realtime_client() -> AsyncClient:
    """
    Create an async Supabase client for Realtime channels.

    Raises:
        RuntimeError: If Realtime is disabled or Supabase is not configured
    """
    if not settings.is_realtime_configured:
        raise RuntimeError("Supabase Realtime is not configured")

    return await acreate_client(settings.SUPABASE_URL, settings.supabase_key)
