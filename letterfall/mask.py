"""Occupancy mask snapshots produced by the segmentation side."""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class OccupancyMask:
    """Read-only per-pixel alpha buffer; a pixel is occupied iff alpha > 0."""

    __slots__ = ("alpha",)

    def __init__(self, alpha: np.ndarray) -> None:
        alpha = np.asarray(alpha)
        if alpha.ndim != 2:
            raise ValueError(f"alpha must be 2-D (H, W), got shape {alpha.shape}")
        if alpha.dtype != np.uint8:
            alpha = np.clip(alpha, 0, 255).astype(np.uint8)
        alpha.setflags(write=False)
        self.alpha = alpha

    @classmethod
    def from_rgba(cls, rgba: np.ndarray) -> "OccupancyMask":
        """Use channel 3 of an (H, W, 4) image as the alpha buffer."""
        rgba = np.asarray(rgba)
        if rgba.ndim != 3 or rgba.shape[2] != 4:
            raise ValueError(f"rgba must have shape (H, W, 4), got {rgba.shape}")
        return cls(np.ascontiguousarray(rgba[:, :, 3]))

    @classmethod
    def from_probability(cls, probability: np.ndarray, threshold: float = 0.5) -> "OccupancyMask":
        """Binarize a float confidence map (e.g. a segmentation output)."""
        probability = np.asarray(probability, dtype=np.float32)
        return cls(np.where(probability > threshold, 255, 0).astype(np.uint8))

    @property
    def width(self) -> int:
        return int(self.alpha.shape[1])

    @property
    def height(self) -> int:
        return int(self.alpha.shape[0])

    @property
    def empty(self) -> bool:
        return self.alpha.size == 0

    def occupied(self, x: int, y: int) -> bool:
        """Pixel test; anything outside the buffer is free."""
        if y < 0 or y >= self.alpha.shape[0] or x < 0 or x >= self.alpha.shape[1]:
            return False
        return bool(self.alpha[y, x] > 0)

    def coverage(self) -> float:
        if self.empty:
            return 0.0
        return float(np.count_nonzero(self.alpha)) / float(self.alpha.size)


class MaskHolder:
    """Holds the most recently delivered mask; readers never wait for a new one."""

    def __init__(self) -> None:
        self._mask: Optional[OccupancyMask] = None
        self._updates = 0

    def update(self, mask: Optional[OccupancyMask]) -> None:
        self._mask = mask
        self._updates += 1

    def clear(self) -> None:
        self._mask = None

    def get_mask(self) -> Optional[OccupancyMask]:
        """Latest snapshot, or None when there is nothing usable to collide with."""
        mask = self._mask
        if mask is None or mask.empty:
            return None
        return mask

    @property
    def updates(self) -> int:
        return self._updates


__all__ = ["OccupancyMask", "MaskHolder"]
