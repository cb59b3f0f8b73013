"""
Call Manager
Process-wide registry of call clients, one per local user
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from consult_call.core.config import CallSettings
from consult_call.domain.exceptions import NoActiveCallError
from consult_call.domain.interfaces.media_engine import MediaEngine
from consult_call.domain.interfaces.notification_dispatcher import NotificationDispatcher
from consult_call.domain.interfaces.signaling_transport import SignalingTransport
from consult_call.domain.models.appointment import Appointment
from consult_call.domain.models.call_session import CallSession, CallState, utc_now
from consult_call.domain.models.signaling import SignalKind, SignalingEvent
from consult_call.domain.services.call_controller import CallSessionController, CallUpdateListener
from consult_call.domain.services.media_lease import MediaLease
from consult_call.domain.services.ringtone import AudioSink
from consult_call.domain.services.signaling_orchestrator import SignalingOrchestrator

logger = logging.getLogger(__name__)

MediaEngineFactoryFn = Callable[[], MediaEngine]


class CallClient:
    """
    Everything one signed-in user needs to place and receive calls:
    their personal channel plus one controller per room.
    """

    def __init__(
        self,
        user_id: str,
        transport: SignalingTransport,
        dispatcher: NotificationDispatcher,
        media_engine_factory: MediaEngineFactoryFn,
        settings: Optional[CallSettings] = None,
        media_lease: Optional[MediaLease] = None,
        user_name: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
        ringtone_sink: Optional[AudioSink] = None,
    ):
        self.user_id = user_id
        self.user_name = user_name
        self.dispatcher = dispatcher
        self.settings = settings or CallSettings()
        self.media_lease = media_lease or MediaLease()
        self.orchestrator = SignalingOrchestrator(transport, dispatcher, self.settings)
        self._media_engine_factory = media_engine_factory
        self._clock = clock
        self._ringtone_sink = ringtone_sink
        self._controllers: Dict[str, CallSessionController] = {}
        self._listeners: List[CallUpdateListener] = []
        self._lock = asyncio.Lock()
        self._started = False

    async def start(self) -> None:
        """Listen on the personal channel"""
        if self._started:
            return
        await self.orchestrator.bind_personal(self.user_id, self._on_personal_signal)
        self._started = True
        logger.info(f"Call client started for {self.user_id}")

    def add_listener(self, listener: CallUpdateListener) -> None:
        """Receive updates from every room, current and future"""
        self._listeners.append(listener)
        for controller in self._controllers.values():
            controller.add_listener(listener)

    # =========================================================================
    # Controllers
    # =========================================================================

    def get_controller(self, room_id: str) -> Optional[CallSessionController]:
        return self._controllers.get(room_id)

    async def controller_for(self, room_id: str) -> CallSessionController:
        """Get or create the bound controller for a room"""
        async with self._lock:
            controller = self._controllers.get(room_id)
            if controller is None:
                controller = CallSessionController(
                    room_id=room_id,
                    local_user_id=self.user_id,
                    orchestrator=self.orchestrator,
                    media_engine=self._media_engine_factory(),
                    dispatcher=self.dispatcher,
                    settings=self.settings,
                    media_lease=self.media_lease,
                    local_user_name=self.user_name,
                    clock=self._clock,
                    ringtone_sink=self._ringtone_sink,
                )
                for listener in self._listeners:
                    controller.add_listener(listener)
                self._controllers[room_id] = controller
            await controller.bind()
            return controller

    def _require_controller(self, room_id: str) -> CallSessionController:
        controller = self._controllers.get(room_id)
        if controller is None:
            raise NoActiveCallError(room_id)
        return controller

    # =========================================================================
    # Intents
    # =========================================================================

    async def start_call(self, appointment: Appointment, caller_name: Optional[str] = None) -> CallSession:
        controller = await self.controller_for(appointment.room_id)
        return await controller.start_call(appointment, caller_name=caller_name or self.user_name)

    async def answer(self, room_id: str) -> CallSession:
        return await self._require_controller(room_id).answer()

    async def decline(self, room_id: str) -> CallSession:
        return await self._require_controller(room_id).decline()

    async def end_call(self, room_id: str) -> CallSession:
        return await self._require_controller(room_id).end_call()

    async def close(self, room_id: str) -> None:
        """Close the room's call UI and drop its controller"""
        controller = self._controllers.pop(room_id, None)
        if controller is not None:
            await controller.aclose()

    # =========================================================================
    # Personal channel
    # =========================================================================

    async def _on_personal_signal(self, event: SignalingEvent) -> None:
        if event.actor_id == self.user_id:
            return

        if event.kind == SignalKind.INCOMING_CALL:
            controller = await self.controller_for(event.payload.room_id)
            await controller.handle_signal(event)

        elif event.kind == SignalKind.CALL_CANCELLED:
            controller = self._controllers.get(event.payload.room_id)
            if controller is not None:
                await controller.handle_signal(event)

        elif event.kind == SignalKind.CALL_DECLINED:
            # no room on the payload: find the call waiting on that callee
            for controller in list(self._controllers.values()):
                session = controller.session
                if session is not None and session.state == CallState.CALLING \
                        and session.callee_id == event.actor_id:
                    await controller.handle_signal(event)

    # =========================================================================
    # Introspection
    # =========================================================================

    def active_sessions(self) -> List[CallSession]:
        return [c.session for c in self._controllers.values() if c.session is not None]

    async def drain(self) -> None:
        """Wait for every room's pending side effects"""
        for controller in list(self._controllers.values()):
            await controller.drain()

    async def shutdown(self) -> None:
        for room_id in list(self._controllers.keys()):
            await self.close(room_id)
        await self.orchestrator.close()
        self._started = False
        logger.info(f"Call client stopped for {self.user_id}")


class CallManager:
    """
    Singleton call manager.

    Holds the shared transport and notification dispatcher and hands out
    one CallClient per local user. Each client owns its own media lease,
    one camera per user device.
    """

    _instance: Optional["CallManager"] = None
    _lock = asyncio.Lock()

    def __init__(
        self,
        transport: SignalingTransport,
        dispatcher: NotificationDispatcher,
        media_engine_factory: MediaEngineFactoryFn,
        settings: Optional[CallSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Prefer initialize()/get_instance() outside tests"""
        self.transport = transport
        self.dispatcher = dispatcher
        self.settings = settings or CallSettings()
        self._media_engine_factory = media_engine_factory
        self._clock = clock
        self._clients: Dict[str, CallClient] = {}
        self._clients_lock = asyncio.Lock()

    @classmethod
    async def initialize(
        cls,
        transport: SignalingTransport,
        dispatcher: NotificationDispatcher,
        media_engine_factory: MediaEngineFactoryFn,
        settings: Optional[CallSettings] = None,
    ) -> "CallManager":
        """Create the singleton and connect the transport"""
        async with cls._lock:
            if cls._instance is None:
                instance = cls(transport, dispatcher, media_engine_factory, settings)
                await transport.connect()
                cls._instance = instance
                logger.info(f"CallManager initialized with transport: {transport.name}")
        return cls._instance

    @classmethod
    async def get_instance(cls) -> "CallManager":
        if cls._instance is None:
            raise RuntimeError("CallManager not initialized")
        return cls._instance

    @classmethod
    async def reset(cls) -> None:
        """Shut down and forget the singleton"""
        async with cls._lock:
            if cls._instance is not None:
                await cls._instance.shutdown()
                cls._instance = None

    async def get_client(self, user_id: str, user_name: Optional[str] = None) -> CallClient:
        """Get or start the call client for a user"""
        async with self._clients_lock:
            client = self._clients.get(user_id)
            if client is None:
                client = CallClient(
                    user_id=user_id,
                    transport=self.transport,
                    dispatcher=self.dispatcher,
                    media_engine_factory=self._media_engine_factory,
                    settings=self.settings,
                    user_name=user_name,
                    clock=self._clock,
                )
                self._clients[user_id] = client
            elif user_name and not client.user_name:
                client.user_name = user_name
        await client.start()
        return client

    def get_active_session_count(self) -> int:
        return sum(len(c.active_sessions()) for c in self._clients.values())

    async def drain(self) -> None:
        for client in list(self._clients.values()):
            await client.drain()

    def get_stats(self) -> dict:
        """Call statistics"""
        sessions = [s for c in self._clients.values() for s in c.active_sessions()]
        return {
            "clients": len(self._clients),
            "active_sessions": len(sessions),
            "room_ids": [s.room_id for s in sessions],
            "transport": self.transport.name,
            "media_holders": [c.media_lease.holder for c in self._clients.values() if c.media_lease.holder],
            "states": {
                state.value: sum(1 for s in sessions if s.state == state)
                for state in CallState
            },
        }

    async def shutdown(self) -> None:
        """Graceful shutdown: close every call and the transport"""
        logger.info("Shutting down CallManager...")
        for user_id in list(self._clients.keys()):
            client = self._clients.pop(user_id)
            await client.shutdown()
        try:
            await self.transport.close()
        except Exception as e:
            logger.error(f"Error closing transport: {e}")
        logger.info("CallManager shutdown complete")
