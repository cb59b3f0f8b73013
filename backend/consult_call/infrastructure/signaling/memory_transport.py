"""
In-Memory Signaling Transport
Single-process broadcast hub for local development and two-party tests
"""
import asyncio
import copy
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from consult_call.domain.interfaces.signaling_transport import (
    BroadcastHandler,
    SignalingChannel,
    SignalingTransport,
)

logger = logging.getLogger(__name__)

# (channel name, event, payload) -> True to drop the message
DropFilter = Callable[[str, str, Dict[str, Any]], bool]


class InMemoryChannel(SignalingChannel):

    def __init__(self, hub: "InMemorySignalingHub", name: str, broadcast_self: bool = False):
        self._hub = hub
        self._name = name
        self._broadcast_self = broadcast_self
        self._handlers: Dict[str, List[BroadcastHandler]] = {}
        self.subscribed = False

    @property
    def name(self) -> str:
        return self._name

    def on(self, event: str, handler: BroadcastHandler) -> "InMemoryChannel":
        self._handlers.setdefault(event, []).append(handler)
        return self

    async def subscribe(self) -> None:
        if not self.subscribed:
            self.subscribed = True
            self._hub.attach(self)

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        self._hub.publish(self, event, payload)

    async def unsubscribe(self) -> None:
        if self.subscribed:
            self.subscribed = False
            self._hub.detach(self)

    def accepts_own(self) -> bool:
        return self._broadcast_self

    def handlers_for(self, event: str) -> List[BroadcastHandler]:
        return list(self._handlers.get(event, []))


class InMemorySignalingHub:
    """
    Delivers broadcasts to every subscribed channel with the same name.

    Delivery is asynchronous and unacknowledged, like the realtime
    service: each message becomes a task. `drop_filter` lets tests
    simulate lost messages; `sent` records everything published.
    """

    def __init__(self, drop_filter: Optional[DropFilter] = None):
        self.drop_filter = drop_filter
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []
        self._channels: Dict[str, List[InMemoryChannel]] = {}
        self._pending: Set[asyncio.Task] = set()

    def attach(self, channel: InMemoryChannel) -> None:
        self._channels.setdefault(channel.name, []).append(channel)

    def detach(self, channel: InMemoryChannel) -> None:
        subscribers = self._channels.get(channel.name, [])
        if channel in subscribers:
            subscribers.remove(channel)

    def subscriber_count(self, name: str) -> int:
        return len(self._channels.get(name, []))

    def events_on(self, name: str) -> List[str]:
        return [event for channel, event, _ in self.sent if channel == name]

    def publish(self, sender: InMemoryChannel, event: str, payload: Dict[str, Any]) -> None:
        self.sent.append((sender.name, event, payload))
        if self.drop_filter is not None and self.drop_filter(sender.name, event, payload):
            logger.debug(f"Dropped '{event}' on {sender.name}")
            return

        loop = asyncio.get_running_loop()
        for channel in list(self._channels.get(sender.name, [])):
            if channel is sender and not sender.accepts_own():
                continue
            for handler in channel.handlers_for(event):
                task = loop.create_task(self._deliver(handler, copy.deepcopy(payload)))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def _deliver(self, handler: BroadcastHandler, payload: Dict[str, Any]) -> None:
        try:
            result = handler(payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"In-memory delivery failed: {e}", exc_info=True)

    async def flush(self) -> None:
        """Wait until every in-flight delivery (and any it triggers) is done"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class InMemoryTransport(SignalingTransport):
    """One participant's view of an InMemorySignalingHub"""

    def __init__(self, hub: Optional[InMemorySignalingHub] = None, broadcast_self: bool = False):
        self.hub = hub or InMemorySignalingHub()
        self._broadcast_self = broadcast_self

    @property
    def name(self) -> str:
        return "memory"

    async def connect(self) -> None:
        logger.info("In-memory signaling transport ready")

    def channel(self, name: str) -> InMemoryChannel:
        return InMemoryChannel(self.hub, name, broadcast_self=self._broadcast_self)

    async def remove_channel(self, channel: SignalingChannel) -> None:
        await channel.unsubscribe()

    async def close(self) -> None:
        pass
