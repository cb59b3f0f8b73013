"""
Supabase Realtime Signaling Transport
Broadcast channels on Supabase Realtime, compatible with the browser clients
"""
import asyncio
import inspect
import logging
from typing import Any, Dict, Optional, Set

from supabase import AsyncClient

from consult_call.domain.interfaces.signaling_transport import (
    BroadcastHandler,
    SignalingChannel,
    SignalingTransport,
)
from consult_call.infrastructure.supabase_client import get_async_supabase

logger = logging.getLogger(__name__)


class SupabaseRealtimeChannel(SignalingChannel):
    """
    One Supabase Realtime broadcast channel.

    Realtime invokes callbacks synchronously with the whole broadcast
    message; coroutine handlers are scheduled on the running loop.
    """

    def __init__(self, client: AsyncClient, name: str, broadcast_self: bool = False):
        self._name = name
        self._channel = client.channel(
            name,
            {"config": {"broadcast": {"self": broadcast_self, "ack": False}}},
        )
        self._pending: Set[asyncio.Task] = set()
        self._subscribed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def raw(self):
        """Underlying realtime channel"""
        return self._channel

    def on(self, event: str, handler: BroadcastHandler) -> "SupabaseRealtimeChannel":
        def callback(message: Dict[str, Any]) -> None:
            payload = message.get("payload", message) if isinstance(message, dict) else {}
            try:
                result = handler(payload)
            except Exception as e:
                logger.error(f"Handler for '{event}' on {self._name} failed: {e}", exc_info=True)
                return
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

        self._channel.on_broadcast(event, callback)
        return self

    async def subscribe(self) -> None:
        if self._subscribed:
            return
        await self._channel.subscribe()
        self._subscribed = True
        logger.debug(f"Subscribed to {self._name}")

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        await self._channel.send_broadcast(event, payload)

    async def unsubscribe(self) -> None:
        if not self._subscribed:
            return
        self._subscribed = False
        await self._channel.unsubscribe()


class SupabaseRealtimeTransport(SignalingTransport):
    """Signaling over Supabase Realtime broadcast"""

    def __init__(self, client: Optional[AsyncClient] = None, broadcast_self: bool = False):
        self._client = client
        self._broadcast_self = broadcast_self

    @property
    def name(self) -> str:
        return "supabase"

    async def connect(self) -> None:
        if self._client is None:
            self._client = await get_async_supabase()
        logger.info("Supabase realtime transport connected")

    def channel(self, name: str) -> SupabaseRealtimeChannel:
        if self._client is None:
            raise RuntimeError("Supabase realtime transport not connected. Call connect() first.")
        return SupabaseRealtimeChannel(self._client, name, broadcast_self=self._broadcast_self)

    async def remove_channel(self, channel: SignalingChannel) -> None:
        if self._client is None or not isinstance(channel, SupabaseRealtimeChannel):
            await channel.unsubscribe()
            return
        await self._client.remove_channel(channel.raw)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.remove_all_channels()
            logger.info("Supabase realtime transport closed")
