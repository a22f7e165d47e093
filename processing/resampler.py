"""
Pitch shifting by constant-ratio resampling.

Output frame ``i`` is read from input position ``i * factor``, so a factor
below 1.0 lowers the pitch (432/440 retunes A4 from 440 Hz to 432 Hz). The
output keeps the input's length: frames whose read position falls past the
end of the input are silent.

Two interpolation strategies are available:

* ``CUBIC``: cubic convolution over the four samples around the read
  position, falling back to linear interpolation and then to the nearest
  sample where the buffer edges leave no room for the full neighbourhood.
* ``LINEAR``: linear interpolation with the same edge fallbacks.
"""

import logging
import math
import numbers
from enum import Enum

import numpy as np

from shared.constants import DEFAULT_RESAMPLE_BLOCK_SIZE, REFERENCE_PITCH_HZ, TARGET_PITCH_HZ
from .buffer import AudioBuffer

logger = logging.getLogger(__name__)


class Interpolation(Enum):
    LINEAR = "linear"
    CUBIC = "cubic"


def retune_factor(target_hz: float = TARGET_PITCH_HZ, reference_hz: float = REFERENCE_PITCH_HZ) -> float:
    """Resampling ratio that moves ``reference_hz`` to ``target_hz``."""
    if target_hz <= 0 or reference_hz <= 0:
        raise ValueError("frequencies must be positive")
    return target_hz / reference_hz


def _interpolate(x: np.ndarray, positions: np.ndarray, strategy: Interpolation) -> np.ndarray:
    """Sample every channel of ``x`` (channels, n) at fractional ``positions``."""
    n = x.shape[1]
    out = np.zeros((x.shape[0], positions.shape[0]), dtype=np.float64)
    if n == 0:
        return out

    index = np.floor(positions).astype(np.int64)
    fraction = positions - index

    if strategy is Interpolation.CUBIC:
        cubic = (index > 0) & (index < n - 2)
    else:
        cubic = np.zeros(index.shape, dtype=bool)
    linear = ~cubic & (index >= 0) & (index < n - 1)
    nearest = ~cubic & ~linear & (index >= 0) & (index < n)

    if cubic.any():
        i = index[cubic]
        f = fraction[cubic]
        y0 = x[:, i - 1]
        y1 = x[:, i]
        y2 = x[:, i + 1]
        y3 = x[:, i + 2]
        c0 = y1
        c1 = 0.5 * (y2 - y0)
        c2 = y0 - 2.5 * y1 + 2.0 * y2 - 0.5 * y3
        c3 = 0.5 * (y3 - y0) + 1.5 * (y1 - y2)
        out[:, cubic] = ((c3 * f + c2) * f + c1) * f + c0

    if linear.any():
        i = index[linear]
        f = fraction[linear]
        out[:, linear] = x[:, i] * (1.0 - f) + x[:, i + 1] * f

    if nearest.any():
        out[:, nearest] = x[:, index[nearest]]

    # Everything else reads past the end of the input and stays silent
    return out


def shift(buffer: AudioBuffer, factor: float,
          strategy: Interpolation = Interpolation.CUBIC,
          block_size: int = DEFAULT_RESAMPLE_BLOCK_SIZE) -> AudioBuffer:
    """
    Resample ``buffer`` by ``factor`` without changing its length.

    Output frames are computed ``block_size`` at a time to bound temporary
    memory; the result does not depend on the block size.

    Args:
        buffer: Decoded input audio
        factor: Read-position ratio, finite and > 0
        strategy: Interpolation strategy
        block_size: Output frames computed per step

    Returns:
        New AudioBuffer with the same sample rate, channel count and length

    Raises:
        ValueError: If ``factor`` is not a positive finite number or
            ``block_size`` is not positive
    """
    if not isinstance(factor, numbers.Real) or not math.isfinite(factor) or factor <= 0:
        raise ValueError(f"pitch factor must be a positive finite number, got {factor!r}")
    if block_size <= 0:
        raise ValueError(f"block_size must be positive, got {block_size}")
    strategy = Interpolation(strategy)

    source = buffer.samples.astype(np.float64)
    length = buffer.length
    output = np.zeros(buffer.samples.shape, dtype=np.float32)

    for start in range(0, length, block_size):
        stop = min(start + block_size, length)
        positions = np.arange(start, stop, dtype=np.float64) * float(factor)
        output[:, start:stop] = _interpolate(source, positions, strategy)

    logger.debug(
        f"Resampled {buffer.number_of_channels}ch x {length} frames "
        f"by {factor:.6f} ({strategy.value})"
    )
    return AudioBuffer(sample_rate=buffer.sample_rate, samples=output)
