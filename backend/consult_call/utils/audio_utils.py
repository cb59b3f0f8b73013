"""
Audio Utilities Module
PCM helpers used to synthesize local ring cues
"""
from typing import Optional
import math
import struct
import logging

logger = logging.getLogger(__name__)


def calculate_audio_duration_ms(
    audio_data: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    bit_depth: int = 16
) -> float:
    """
    Calculate the duration of PCM audio data in milliseconds.

    Args:
        audio_data: Raw PCM audio bytes
        sample_rate: Sample rate in Hz
        channels: Number of audio channels
        bit_depth: Bit depth (8, 16, 24, or 32)

    Returns:
        Duration in milliseconds
    """
    if not audio_data:
        return 0.0

    bytes_per_sample = bit_depth // 8
    frame_size = channels * bytes_per_sample
    num_frames = len(audio_data) // frame_size

    duration_seconds = num_frames / sample_rate
    return duration_seconds * 1000


def calculate_expected_chunk_size(
    duration_ms: float,
    sample_rate: int = 16000,
    channels: int = 1,
    bit_depth: int = 16
) -> int:
    """
    Calculate expected chunk size in bytes for a given duration.

    Args:
        duration_ms: Desired duration in milliseconds
        sample_rate: Sample rate in Hz
        channels: Number of audio channels
        bit_depth: Bit depth (8, 16, 24, or 32)

    Returns:
        Expected chunk size in bytes
    """
    bytes_per_sample = bit_depth // 8
    frame_size = channels * bytes_per_sample

    duration_seconds = duration_ms / 1000
    num_frames = int(sample_rate * duration_seconds)

    return num_frames * frame_size


def generate_silence(
    duration_ms: float,
    sample_rate: int = 16000,
    channels: int = 1,
    bit_depth: int = 16
) -> bytes:
    """
    Generate silent PCM audio (all zeros).

    Used as the gap between ring bursts.
    """
    chunk_size = calculate_expected_chunk_size(
        duration_ms, sample_rate, channels, bit_depth
    )
    return bytes(chunk_size)


def generate_sine_wave(
    frequency: float,
    duration_ms: float,
    sample_rate: int = 16000,
    channels: int = 1,
    amplitude: float = 0.5,
    end_amplitude: Optional[float] = None
) -> bytes:
    """
    Generate a sine wave as 16-bit PCM.

    When end_amplitude is given the gain ramps exponentially from
    amplitude to end_amplitude over the burst (a decaying "ping").

    Args:
        frequency: Frequency in Hz (e.g., 880 for the ring cue)
        duration_ms: Duration in milliseconds
        sample_rate: Sample rate in Hz
        channels: Number of audio channels
        amplitude: Starting amplitude (0.0 to 1.0)
        end_amplitude: Optional final amplitude (must be > 0)

    Returns:
        Raw PCM audio bytes (16-bit signed, little-endian)
    """
    if end_amplitude is not None and (end_amplitude <= 0 or amplitude <= 0):
        raise ValueError("Exponential ramp requires positive amplitudes")

    duration_seconds = duration_ms / 1000
    num_samples = int(sample_rate * duration_seconds)

    samples = []
    for i in range(num_samples):
        t = i / sample_rate
        gain = amplitude
        if end_amplitude is not None and num_samples > 1:
            # Same curve as Web Audio's exponentialRampToValueAtTime
            gain = amplitude * (end_amplitude / amplitude) ** (i / (num_samples - 1))
        value = gain * math.sin(2 * math.pi * frequency * t)
        sample_value = int(value * 32767)
        sample_value = max(-32768, min(32767, sample_value))
        samples.append(sample_value)

    if channels == 2:
        stereo_samples = []
        for sample in samples:
            stereo_samples.extend([sample, sample])
        samples = stereo_samples

    return struct.pack(f'<{len(samples)}h', *samples)
