"""
Decoded audio held in memory.
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class AudioBuffer:
    """
    Per-channel floating-point samples plus their sample rate.

    ``samples`` has shape ``(number_of_channels, length)``; every channel
    therefore has the same length. Values are nominally in [-1.0, 1.0].
    """
    sample_rate: int
    samples: np.ndarray

    def __post_init__(self):
        if int(self.sample_rate) != self.sample_rate or self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be a positive integer, got {self.sample_rate}")
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim != 2:
            raise ValueError(f"samples must be 2-D (channels, frames), got shape {samples.shape}")
        if samples.shape[0] < 1:
            raise ValueError("an AudioBuffer needs at least one channel")
        object.__setattr__(self, "sample_rate", int(self.sample_rate))
        object.__setattr__(self, "samples", samples)

    @classmethod
    def from_channels(cls, channels, sample_rate: int) -> 'AudioBuffer':
        """Build from a sequence of equal-length per-channel sample sequences."""
        arrays = [np.asarray(c, dtype=np.float32) for c in channels]
        if not arrays:
            raise ValueError("an AudioBuffer needs at least one channel")
        lengths = {a.shape for a in arrays}
        if len(lengths) != 1 or arrays[0].ndim != 1:
            raise ValueError(f"all channels must be 1-D with equal length, got {sorted(lengths)}")
        return cls(sample_rate=sample_rate, samples=np.stack(arrays))

    @classmethod
    def silence(cls, length: int, sample_rate: int, number_of_channels: int = 2) -> 'AudioBuffer':
        return cls(sample_rate=sample_rate,
                   samples=np.zeros((number_of_channels, length), dtype=np.float32))

    @property
    def number_of_channels(self) -> int:
        return self.samples.shape[0]

    @property
    def length(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.length / self.sample_rate

    def get_channel_data(self, channel: int) -> np.ndarray:
        return self.samples[channel]

    def interleaved(self) -> np.ndarray:
        """Frame-major samples (L R L R ...), the layout PCM streams use."""
        return np.ascontiguousarray(self.samples.T).reshape(-1)
