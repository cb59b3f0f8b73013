"""
Signaling Orchestrator
Binds room and personal channels, fans out outbound signals and turns
inbound broadcasts into typed events
"""
import inspect
import logging
from typing import Awaitable, Callable, Dict, Iterable, Optional, Union

from pydantic import ValidationError

from consult_call.core.config import CallSettings
from consult_call.domain.interfaces.notification_dispatcher import NotificationDispatcher
from consult_call.domain.interfaces.signaling_transport import SignalingChannel, SignalingTransport
from consult_call.domain.models.call_session import CallSession
from consult_call.domain.models.notification import incoming_call_alert
from consult_call.domain.models.signaling import (
    IncomingCallPayload,
    SignalKind,
    SignalPayload,
    SignalingEvent,
    parse_signal,
)

logger = logging.getLogger(__name__)

SignalHandler = Callable[[SignalingEvent], Union[None, Awaitable[None]]]

ROOM_SIGNALS = (
    SignalKind.INCOMING_CALL,
    SignalKind.CALL_ANSWERED,
    SignalKind.CALL_DECLINED,
    SignalKind.CALL_ENDED,
)

PERSONAL_SIGNALS = (
    SignalKind.INCOMING_CALL,
    SignalKind.CALL_DECLINED,
    SignalKind.CALL_CANCELLED,
)


class SignalingOrchestrator:
    """
    Channel orchestration for one local user.

    Outbound broadcasts are fire-and-forget: failures are logged and
    never raised into the call flow. Missing deliveries are covered by
    the callee's ringing timeout.
    """

    def __init__(
        self,
        transport: SignalingTransport,
        dispatcher: NotificationDispatcher,
        settings: Optional[CallSettings] = None,
    ):
        self.transport = transport
        self.dispatcher = dispatcher
        self.settings = settings or CallSettings()
        self._room_channels: Dict[str, SignalingChannel] = {}
        self._personal_channel: Optional[SignalingChannel] = None

    # =========================================================================
    # Channel names
    # =========================================================================

    def room_channel_name(self, room_id: str) -> str:
        return f"{self.settings.room_channel_prefix}{room_id}"

    def personal_channel_name(self, user_id: str) -> str:
        return f"{self.settings.personal_channel_prefix}{user_id}"

    # =========================================================================
    # Binding
    # =========================================================================

    async def bind_room(self, room_id: str, handler: SignalHandler) -> None:
        """Subscribe to the room channel (no-op if already bound)"""
        if room_id in self._room_channels:
            return
        channel = self._bind(self.room_channel_name(room_id), ROOM_SIGNALS, handler)
        self._room_channels[room_id] = channel
        await channel.subscribe()
        logger.info(f"Bound room channel {channel.name}", extra={"room_id": room_id})

    async def unbind_room(self, room_id: str) -> None:
        channel = self._room_channels.pop(room_id, None)
        if channel is None:
            return
        try:
            await self.transport.remove_channel(channel)
        except Exception as e:
            logger.error(f"Error removing channel {channel.name}: {e}")

    def is_room_bound(self, room_id: str) -> bool:
        return room_id in self._room_channels

    async def bind_personal(self, user_id: str, handler: SignalHandler) -> None:
        """Subscribe to the user's personal channel"""
        if self._personal_channel is not None:
            return
        channel = self._bind(self.personal_channel_name(user_id), PERSONAL_SIGNALS, handler)
        self._personal_channel = channel
        await channel.subscribe()
        logger.info(f"Bound personal channel {channel.name}")

    def _bind(self, name: str, kinds: Iterable[SignalKind], handler: SignalHandler) -> SignalingChannel:
        channel = self.transport.channel(name)
        for kind in kinds:
            channel.on(kind.value, self._make_dispatch(kind, name, handler))
        return channel

    def _make_dispatch(self, kind: SignalKind, channel_name: str, handler: SignalHandler):
        async def dispatch(payload):
            try:
                event = parse_signal(kind.value, payload or {}, channel=channel_name)
            except (ValueError, ValidationError) as e:
                logger.warning(f"Dropping malformed '{kind.value}' on {channel_name}: {e}")
                return
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error handling '{kind.value}' on {channel_name}: {e}", exc_info=True)
        return dispatch

    # =========================================================================
    # Outbound
    # =========================================================================

    async def notify_remote_party(self, session: CallSession, payload: IncomingCallPayload) -> None:
        """
        Deliver one incoming-call to the callee on every path:
        room channel, callee's personal channel and a push alert.
        """
        await self.send(session.room_id, SignalKind.INCOMING_CALL, payload)

        if not session.callee_id:
            logger.warning(f"No callee for room {session.room_id}; personal channel and push skipped")
            return

        await self.send_personal(session.callee_id, SignalKind.INCOMING_CALL, payload)

        alert = incoming_call_alert(
            target_user_id=session.callee_id,
            caller_name=payload.caller_name,
            room_id=session.room_id,
            caller_id=payload.caller_id,
        )
        try:
            await self.dispatcher.push_alert(alert)
        except Exception as e:
            logger.error(f"Push alert to {session.callee_id} failed: {e}")

    async def send(self, room_id: str, kind: SignalKind, payload: SignalPayload) -> bool:
        """Broadcast on the room channel"""
        channel = self._room_channels.get(room_id)
        if channel is None:
            logger.warning(f"Room {room_id} not bound; '{kind.value}' not sent")
            return False
        return await self._broadcast(channel, kind, payload)

    async def send_personal(self, user_id: str, kind: SignalKind, payload: SignalPayload) -> bool:
        """Broadcast on another user's personal channel via a short-lived channel"""
        channel = self.transport.channel(self.personal_channel_name(user_id))
        try:
            await channel.subscribe()
            return await self._broadcast(channel, kind, payload)
        except Exception as e:
            logger.error(f"Could not reach personal channel of {user_id}: {e}")
            return False
        finally:
            try:
                await self.transport.remove_channel(channel)
            except Exception as e:
                logger.error(f"Error removing channel {channel.name}: {e}")

    async def _broadcast(self, channel: SignalingChannel, kind: SignalKind, payload: SignalPayload) -> bool:
        try:
            await channel.broadcast(kind.value, payload.to_wire())
            logger.debug(f"Sent '{kind.value}' on {channel.name}")
            return True
        except Exception as e:
            logger.error(f"Could not send '{kind.value}' on {channel.name}: {e}")
            return False

    async def close(self) -> None:
        for room_id in list(self._room_channels.keys()):
            await self.unbind_room(room_id)
        if self._personal_channel is not None:
            try:
                await self.transport.remove_channel(self._personal_channel)
            except Exception as e:
                logger.error(f"Error removing personal channel: {e}")
            self._personal_channel = None
