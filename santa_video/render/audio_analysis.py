"""Duration and waveform estimation for render inputs.

The worker cannot decode MP3 audio, so duration is estimated from the payload
size at a constant ~160 kbps and the waveform is a smooth synthetic curve.
Both only drive the visualization; the engine plays the real audio.
"""

import math
import random
from dataclasses import dataclass, field
from typing import Protocol

# 160 kbps / 8 bits
BYTES_PER_SECOND = 20_000
MIN_DURATION_SECONDS = 5
WAVEFORM_POINTS_PER_SECOND = 100


@dataclass
class RenderInputs:
    duration_seconds: int
    total_frames: int
    amplitudes: list[float] = field(default_factory=list)
    intro_frames: int = 0

    @property
    def audio_frames(self) -> int:
        return self.total_frames - self.intro_frames


class AudioAnalyzer(Protocol):
    def analyze(self, payload_size_bytes: int, *, fps: int, intro_seconds: int) -> RenderInputs: ...


def estimate_duration_seconds(payload_size_bytes: int) -> int:
    """Seconds at 20000 bytes/s, rounded half-up, floored at 5."""
    return max(MIN_DURATION_SECONDS, math.floor(payload_size_bytes / BYTES_PER_SECOND + 0.5))


def compute_total_frames(duration_seconds: int, fps: int, intro_seconds: int) -> int:
    return intro_seconds * fps + duration_seconds * fps


def generate_waveform(length: int, rng: random.Random | None = None) -> list[float]:
    """Synthetic amplitudes in [0.1, 1]: noisy base plus a slow sine."""
    rng = rng or random.Random()
    waveform = []
    for i in range(length):
        base = 0.3 + rng.random() * 0.4
        speech = math.sin(i * 0.1) * 0.2
        waveform.append(max(0.1, min(1.0, base + speech)))
    return waveform


class EstimatingAudioAnalyzer:
    """File-size based analyzer. ``seed`` makes the waveform reproducible."""

    def __init__(self, seed: int | None = None) -> None:
        self.seed = seed

    def analyze(self, payload_size_bytes: int, *, fps: int, intro_seconds: int) -> RenderInputs:
        duration = estimate_duration_seconds(payload_size_bytes)
        rng = random.Random(self.seed) if self.seed is not None else None
        return RenderInputs(
            duration_seconds=duration,
            total_frames=compute_total_frames(duration, fps, intro_seconds),
            amplitudes=generate_waveform(duration * WAVEFORM_POINTS_PER_SECOND, rng),
            intro_frames=intro_seconds * fps,
        )
