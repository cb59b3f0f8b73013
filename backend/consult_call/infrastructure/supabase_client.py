"""
Supabase Client
Shared async client for realtime signaling and notification writes
"""
import asyncio
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from supabase import AsyncClient, acreate_client

load_dotenv()

logger = logging.getLogger(__name__)

_client: Optional[AsyncClient] = None
_lock = asyncio.Lock()


async def get_async_supabase() -> AsyncClient:
    """
    Get the process-wide async Supabase client.

    Raises:
        RuntimeError: If SUPABASE_URL or SUPABASE_SERVICE_KEY is not configured
    """
    global _client
    if _client is not None:
        return _client

    async with _lock:
        if _client is None:
            url = os.getenv("SUPABASE_URL")
            key = os.getenv("SUPABASE_SERVICE_KEY")

            if not url:
                raise RuntimeError(
                    "SUPABASE_URL is not configured. "
                    "Set SUPABASE_URL environment variable."
                )
            if not key:
                raise RuntimeError(
                    "SUPABASE_SERVICE_KEY is not configured. "
                    "Set SUPABASE_SERVICE_KEY environment variable."
                )

            _client = await acreate_client(url, key)
            logger.info("Async Supabase client created")
    return _client


def reset_async_supabase() -> None:
    """Forget the cached client (tests)"""
    global _client
    _client = None
