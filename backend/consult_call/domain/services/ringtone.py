"""
Ringtone
Synthesizes the local ring cue and loops it while a call is ringing
"""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from consult_call.core.config import RING_INTERVAL_SECONDS
from consult_call.utils.audio_utils import calculate_audio_duration_ms, generate_silence, generate_sine_wave

logger = logging.getLogger(__name__)

RING_FREQUENCY_HZ = 880.0
RING_BURST_MS = 200.0
RING_BURST_SPACING_MS = 300.0
RING_START_GAIN = 0.3
RING_END_GAIN = 0.01

# Receives one PCM16 mono cue per ring
AudioSink = Callable[[bytes], Union[None, Awaitable[None]]]


def synthesize_ring_cue(sample_rate: int = 16000) -> bytes:
    """
    Two short 880 Hz pings, 300 ms apart, each decaying from 0.3 to 0.01.

    Returns:
        PCM16 mono bytes
    """
    burst = generate_sine_wave(
        RING_FREQUENCY_HZ,
        RING_BURST_MS,
        sample_rate=sample_rate,
        amplitude=RING_START_GAIN,
        end_amplitude=RING_END_GAIN,
    )
    gap = generate_silence(RING_BURST_SPACING_MS - RING_BURST_MS, sample_rate=sample_rate)
    return burst + gap + burst


class RingtonePlayer:
    """
    Plays the ring cue every `interval` seconds until stopped.

    The player only drives a sink the client device provides (a
    speaker, a WebRTC audio track). Without one the cue is synthesized
    and counted in `cues_played` but never rendered. A failing sink is
    logged and the loop keeps going.
    """

    def __init__(
        self,
        sink: Optional[AudioSink] = None,
        interval: float = RING_INTERVAL_SECONDS,
        sample_rate: int = 16000,
    ):
        self._sink = sink
        self._interval = interval
        self._sample_rate = sample_rate
        self._cue = synthesize_ring_cue(sample_rate)
        self._task: Optional[asyncio.Task] = None
        self.cues_played = 0

    @property
    def cue_duration_ms(self) -> float:
        return calculate_audio_duration_ms(self._cue, sample_rate=self._sample_rate)

    @property
    def is_playing(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop (no-op if already playing). Needs a running loop."""
        if self.is_playing:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Stop synchronously; safe to call repeatedly."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        try:
            while True:
                await self._play_once()
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            pass

    async def _play_once(self) -> None:
        self.cues_played += 1
        if self._sink is None:
            return
        try:
            result = self._sink(self._cue)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Ringtone sink failed: {e}")
