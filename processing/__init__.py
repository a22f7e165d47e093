from .buffer import AudioBuffer
from .resampler import Interpolation, retune_factor, shift

__all__ = ["AudioBuffer", "Interpolation", "retune_factor", "shift"]
