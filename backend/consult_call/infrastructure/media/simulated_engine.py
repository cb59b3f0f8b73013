"""
Simulated Media Engine
In-process stand-in for browser capture and the peer connection.

Models the parts the call session layer depends on: the capture quality
ladder, device errors, joining/leaving, toggles and connection-state
changes. Failures can be scripted through config for tests and demos.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from consult_call.domain.exceptions import MediaAccessError, MediaEngineError, MediaErrorReason
from consult_call.domain.interfaces.media_engine import ConnectionState, MediaEngine

logger = logging.getLogger(__name__)

# Capture presets, best first
VIDEO_QUALITIES: Dict[str, Dict[str, Any]] = {
    "high": {"width": 1920, "height": 1080, "frame_rate": 30},
    "medium": {"width": 640, "height": 480, "frame_rate": 24},
    "low": {"width": 320, "height": 240, "frame_rate": 15},
}

CALL_QUALITY = {"high": "good", "medium": "medium", "low": "poor"}

AUDIO_CONSTRAINTS = {
    "echo_cancellation": True,
    "noise_suppression": True,
    "auto_gain_control": True,
    "sample_rate": 48000,
    "channel_count": 1,
}


class SimulatedMediaEngine(MediaEngine):
    """
    Config keys:
        media_error: MediaErrorReason value raised by initialize_media
        max_quality: best preset the fake camera supports ("high")
        join_error: message raised as MediaEngineError by join_room
        switch_error: MediaErrorReason value raised by switch_camera
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__()
        self._config: Dict[str, Any] = dict(config or {})
        self._connection_state = ConnectionState.DISCONNECTED
        self._local_stream: Optional[Dict[str, Any]] = None
        self._remote_stream: Optional[Dict[str, Any]] = None
        self._participants: List[Dict[str, Any]] = []
        self._error: Optional[str] = None
        self._room_id: Optional[str] = None
        self._is_muted = False
        self._is_video_enabled = True
        self._is_screen_sharing = False
        self._facing_mode = "user"
        self.acquisitions = 0
        self.releases = 0

    async def initialize(self, config: Dict[str, Any]) -> None:
        self._config.update(config)
        logger.info(f"Simulated media engine configured: {sorted(self._config.keys())}")

    # =========================================================================
    # Capture
    # =========================================================================

    async def initialize_media(self, video: bool = True, audio: bool = True) -> Dict[str, Any]:
        if self._local_stream is not None:
            return self._local_stream

        self._error = None
        reason = self._config.get("media_error")
        if reason:
            error = MediaAccessError(MediaErrorReason(reason))
            self._error = error.message
            logger.warning(f"Media access failed: {error.message}")
            raise error

        quality = None
        if video:
            quality = self._negotiate_quality()
            if quality is None:
                error = MediaAccessError(MediaErrorReason.OVERCONSTRAINED)
                self._error = error.message
                raise error

        self._local_stream = {
            "id": uuid.uuid4().hex,
            "video": VIDEO_QUALITIES[quality] if quality else None,
            "audio": AUDIO_CONSTRAINTS if audio else None,
            "facing_mode": self._facing_mode,
        }
        self.call_quality = CALL_QUALITY.get(quality) if quality else None
        self._is_video_enabled = quality is not None
        self._is_muted = not audio
        self.acquisitions += 1
        logger.info(f"Media initialized with {quality or 'audio-only'} quality")
        return self._local_stream

    def _negotiate_quality(self) -> Optional[str]:
        """Walk the ladder until the camera accepts a preset"""
        supported = self._config.get("max_quality", "high")
        ladder = list(VIDEO_QUALITIES.keys())
        if supported not in ladder:
            return None
        for quality in ladder:
            if ladder.index(quality) >= ladder.index(supported):
                return quality
            logger.debug(f"Failed with {quality} quality, trying lower...")
        return None

    # =========================================================================
    # Room
    # =========================================================================

    async def join_room(self, room_id: str) -> None:
        if self._local_stream is None:
            await self.initialize_media()

        self._room_id = room_id
        self._set_state(ConnectionState.CONNECTING)

        join_error = self._config.get("join_error")
        if join_error:
            self._error = join_error
            self._set_state(ConnectionState.DISCONNECTED)
            raise MediaEngineError(join_error)

        self._remote_stream = {"id": uuid.uuid4().hex, "room_id": room_id}
        self._participants = [{"id": self._remote_stream["id"], "room_id": room_id}]
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"Joined room {room_id}")

    async def leave_room(self) -> None:
        had_resources = self._local_stream is not None or self._room_id is not None
        self._local_stream = None
        self._remote_stream = None
        self._participants = []
        self._room_id = None
        self._is_screen_sharing = False
        self._is_muted = False
        self._is_video_enabled = True
        self.call_quality = None
        if had_resources:
            self.releases += 1
            logger.info("Media released")
        self._set_state(ConnectionState.DISCONNECTED)

    def simulate_connection_failure(self) -> None:
        """Peer connection dropped (ICE failure)"""
        self._error = "Connection failed. Please refresh and try again."
        self._set_state(ConnectionState.FAILED)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._connection_state:
            return
        self._connection_state = state
        self._emit_state(state)

    # =========================================================================
    # Toggles
    # =========================================================================

    async def toggle_mute(self) -> bool:
        if self._local_stream is not None:
            self._is_muted = not self._is_muted
        return self._is_muted

    async def toggle_video(self) -> bool:
        if self._local_stream is not None and self._local_stream.get("video") is not None:
            self._is_video_enabled = not self._is_video_enabled
        return self._is_video_enabled

    async def toggle_screen_share(self) -> bool:
        if self._room_id is None:
            raise MediaEngineError("Not in a call")
        # stopping restores the camera track on the same connection
        self._is_screen_sharing = not self._is_screen_sharing
        return self._is_screen_sharing

    async def switch_camera(self) -> None:
        """Acquire the other camera first; the old one is kept if that fails"""
        if self._local_stream is None:
            raise MediaEngineError("No local media")
        reason = self._config.get("switch_error")
        if reason:
            raise MediaAccessError(MediaErrorReason(reason))
        self._facing_mode = "environment" if self._facing_mode == "user" else "user"
        self._local_stream = {**self._local_stream, "facing_mode": self._facing_mode}

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection_state

    @property
    def local_stream(self) -> Optional[Dict[str, Any]]:
        return self._local_stream

    @property
    def remote_stream(self) -> Optional[Dict[str, Any]]:
        return self._remote_stream

    @property
    def participants(self) -> List[Dict[str, Any]]:
        return list(self._participants)

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def is_muted(self) -> bool:
        return self._is_muted

    @property
    def is_video_enabled(self) -> bool:
        return self._is_video_enabled

    @property
    def is_screen_sharing(self) -> bool:
        return self._is_screen_sharing

    @property
    def facing_mode(self) -> str:
        return self._facing_mode

    @property
    def name(self) -> str:
        return "simulated"
