"""
Signaling Transport Interface
Named publish/subscribe channels carrying broadcast events
"""
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Union

# Handlers receive the broadcast payload (the inner `payload` dict)
BroadcastHandler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class SignalingChannel(ABC):
    """
    One named channel.

    Delivery is at-most-once and best effort: there is no
    acknowledgment and no replay.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def on(self, event: str, handler: BroadcastHandler) -> "SignalingChannel":
        """Register a handler for one broadcast event name"""
        pass

    @abstractmethod
    async def subscribe(self) -> None:
        pass

    @abstractmethod
    async def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        """Send {"type": "broadcast", "event": event, "payload": payload}"""
        pass

    @abstractmethod
    async def unsubscribe(self) -> None:
        pass


class SignalingTransport(ABC):
    """Abstract base class for signaling transports"""

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    def channel(self, name: str) -> SignalingChannel:
        """Create (not yet subscribed) channel"""
        pass

    @abstractmethod
    async def remove_channel(self, channel: SignalingChannel) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass
