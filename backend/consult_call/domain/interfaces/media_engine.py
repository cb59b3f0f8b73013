"""
Media Engine Interface
Abstract base class for media engine implementations
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class ConnectionState(str, Enum):
    """Peer connection state exposed by the engine"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


ConnectionStateListener = Callable[[ConnectionState], None]


class MediaEngine(ABC):
    """
    Abstract base class for media engine implementations.

    A media engine owns local capture (camera/microphone), the peer
    connection for a room, and the mute/video/screen-share toggles.
    ICE, SDP and codec handling stay inside the engine; the call
    session layer only drives its lifecycle and watches
    connection_state.
    """

    def __init__(self):
        self._state_listeners: List[ConnectionStateListener] = []
        # "good", "medium" or "poor" once local media is up
        self.call_quality: Optional[str] = None

    @abstractmethod
    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the engine with configuration.

        Args:
            config: Engine-specific settings
        """
        pass

    @abstractmethod
    async def initialize_media(self, video: bool = True, audio: bool = True) -> Any:
        """
        Acquire local camera/microphone.

        Returns:
            The local stream

        Raises:
            MediaAccessError: permission denied, no device, device busy...
        """
        pass

    @abstractmethod
    async def join_room(self, room_id: str) -> None:
        """
        Join the peer connection for a room (acquires media if needed).

        Raises:
            MediaAccessError: local media could not be acquired
            MediaEngineError: the room could not be joined
        """
        pass

    @abstractmethod
    async def leave_room(self) -> None:
        """
        Release every resource: tracks, peer connection, screen share.

        Must be safe to call at any time, including repeatedly.
        """
        pass

    @abstractmethod
    async def toggle_mute(self) -> bool:
        """Toggle microphone; returns is_muted"""
        pass

    @abstractmethod
    async def toggle_video(self) -> bool:
        """Toggle camera; returns is_video_enabled"""
        pass

    @abstractmethod
    async def toggle_screen_share(self) -> bool:
        """Toggle screen share; returns is_screen_sharing"""
        pass

    @abstractmethod
    async def switch_camera(self) -> None:
        """Swap camera facing mode without tearing down the session"""
        pass

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    @abstractmethod
    def connection_state(self) -> ConnectionState:
        pass

    @property
    @abstractmethod
    def local_stream(self) -> Optional[Any]:
        pass

    @property
    @abstractmethod
    def remote_stream(self) -> Optional[Any]:
        pass

    @property
    @abstractmethod
    def participants(self) -> List[Dict[str, Any]]:
        pass

    @property
    @abstractmethod
    def error(self) -> Optional[str]:
        pass

    @property
    @abstractmethod
    def is_muted(self) -> bool:
        pass

    @property
    @abstractmethod
    def is_video_enabled(self) -> bool:
        pass

    @property
    @abstractmethod
    def is_screen_sharing(self) -> bool:
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Engine name (e.g., "simulated")"""
        pass

    def add_state_listener(self, listener: ConnectionStateListener) -> None:
        """Register a callback for connection_state changes"""
        self._state_listeners.append(listener)

    def remove_state_listener(self, listener: ConnectionStateListener) -> None:
        if listener in self._state_listeners:
            self._state_listeners.remove(listener)

    def _emit_state(self, state: ConnectionState) -> None:
        for listener in list(self._state_listeners):
            listener(state)
