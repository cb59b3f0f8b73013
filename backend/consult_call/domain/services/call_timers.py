"""
Call Timers
Ringing timeout and the per-session record of every live timer
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from consult_call.domain.services.ringtone import RingtonePlayer

logger = logging.getLogger(__name__)


class RingingTimer:
    """
    Bounded countdown on the callee side.

    Fires `on_expire` at most once. cancel() is synchronous, so a
    terminal action that cancels first can never race the expiry.
    """

    def __init__(self):
        self._handle: Optional[asyncio.TimerHandle] = None
        self._fired = False

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def fired(self) -> bool:
        return self._fired

    def start(self, timeout: float, on_expire: Callable[[], None]) -> None:
        if self._handle is not None or self._fired:
            return

        def _expire():
            self._handle = None
            if self._fired:
                return
            self._fired = True
            on_expire()

        self._handle = asyncio.get_running_loop().call_later(timeout, _expire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


@dataclass
class CallTimers:
    """
    Every timer owned by one call session.

    Owned by the controller, never attached to a channel object.
    """
    ringing: RingingTimer = field(default_factory=RingingTimer)
    ringtone: Optional[RingtonePlayer] = None

    def start_ringing(
        self,
        timeout: float,
        on_expire: Callable[[], None],
        ringtone: RingtonePlayer,
    ) -> None:
        self.ringtone = ringtone
        ringtone.start()
        self.ringing.start(timeout, on_expire)

    def stop_ringtone(self) -> None:
        if self.ringtone is not None:
            self.ringtone.stop()

    def teardown(self) -> None:
        """Cancel everything; idempotent"""
        self.ringing.cancel()
        self.stop_ringtone()

    @property
    def any_active(self) -> bool:
        return self.ringing.active or (self.ringtone is not None and self.ringtone.is_playing)
