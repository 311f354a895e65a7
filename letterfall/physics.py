"""Per-frame letter physics against the occupancy mask.

Units are mask pixels and frames: velocities are pixels per tick, gravity is
pixels per tick squared. Footprints are sampled every ``sample_stride``
pixels, so a gap narrower than the stride can be missed.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .config import PhysicsSettings
from .mask import OccupancyMask
from .state import Particle

logger = logging.getLogger(__name__)


@dataclass
class PhysicsStats:
    """Counters for the most recent step."""

    reaped: int = 0
    deflected: int = 0
    resolved: int = 0
    unresolved: int = 0
    floored: int = 0


def ring_offsets(radius: int) -> List[Tuple[int, int]]:
    """Candidate displacements at ``radius``: cardinal directions first (up first), then diagonals."""
    r = radius
    return [(0, -r), (r, 0), (-r, 0), (0, r), (r, -r), (-r, -r), (r, r), (-r, r)]


class PhysicsEngine:
    """Advances, resolves and retires letters once per rendered frame."""

    def __init__(
        self,
        settings: PhysicsSettings,
        *,
        width: int,
        height: int,
        font_size: float,
        lifetime_ms: Optional[float] = None,
    ) -> None:
        self.settings = settings
        self.width = int(width)
        self.height = int(height)
        self.font_size = float(font_size)
        self.lifetime_ms = lifetime_ms
        self.stats = PhysicsStats()
        self._mask: Optional[OccupancyMask] = None

    @property
    def floor_y(self) -> float:
        return self.height - self.font_size

    # ------------------------------------------------------------------
    # Collision sampling
    # ------------------------------------------------------------------

    def collides(self, x: float, y: float, width: float) -> bool:
        """Footprint ``[x - w/2, x + w/2]`` at row ``y + font_size`` against the current mask."""
        mask = self._mask
        if mask is None:
            return False
        row = int(math.floor(y + self.font_size))
        if row < 0 or row >= mask.height:
            return False
        left = int(math.floor(x - width / 2.0))
        right = int(math.floor(x + width / 2.0))
        xs = np.arange(left, right + 1, self.settings.sample_stride)
        xs = xs[(xs >= 0) & (xs < mask.width)]
        if xs.size == 0:
            return False
        return bool(np.any(mask.alpha[row, xs] > 0))

    def _side_samples(self, x: float, y: float) -> int:
        """Occupied samples in the rows just below the footprint at column ``x``; off-surface columns count as walls."""
        mask = self._mask
        column = int(math.floor(x))
        if column < 0 or column >= self.width:
            return self.settings.deflect_rows
        if mask is None:
            return 0
        base = int(math.floor(y + self.font_size))
        hits = 0
        for k in range(1, self.settings.deflect_rows + 1):
            if mask.occupied(column, base + k):
                hits += 1
        return hits

    # ------------------------------------------------------------------
    # Step
    # ------------------------------------------------------------------

    def step(self, particles: List[Particle], mask: Optional[OccupancyMask], now: float) -> int:
        """Advance every letter one frame and compact the list in place; returns letters reaped."""
        if mask is not None and mask.empty:
            mask = None
        self._mask = mask
        self.stats = PhysicsStats()

        keep = 0
        for particle in particles:
            if self._expired(particle, now):
                self.stats.reaped += 1
                continue
            self._advance(particle)
            particles[keep] = particle
            keep += 1
        del particles[keep:]

        self._mask = None
        return self.stats.reaped

    def _expired(self, particle: Particle, now: float) -> bool:
        lifetime = self.lifetime_ms
        if lifetime is None or lifetime <= 0:
            return False
        return (now - particle.created_at) * 1000.0 > lifetime

    def _advance(self, p: Particle) -> None:
        cfg = self.settings

        p.vy = min(p.vy + cfg.gravity, p.speed)
        next_y = p.y + p.vy

        if next_y + self.font_size >= self.height:
            # floor contact
            p.y = self.floor_y
            if p.vy > 0:
                p.vy = 0.0
            self.stats.floored += 1
        elif not self.collides(p.x, next_y, p.width):
            p.y = next_y
        elif not self.collides(p.x, p.y, p.width):
            self._deflect(p)

        if self.collides(p.x, p.y, p.width):
            self._resolve_overlap(p)

        if p.y + self.font_size > self.height:
            p.y = self.floor_y
            if p.vy > 0:
                p.vy = 0.0

        self._move_laterally(p)

    def _deflect(self, p: Particle) -> None:
        """Gravity is blocked by the mask: turn the fall into a slide toward the emptier side."""
        cfg = self.settings
        reach = p.width / 2.0 + cfg.deflect_offset
        left = self._side_samples(p.x - reach, p.y)
        right = self._side_samples(p.x + reach, p.y)
        p.vx += cfg.lateral_impulse * (left - right) / float(cfg.deflect_rows)
        p.vy = 0.0
        self.stats.deflected += 1

    def _clamp(self, x: float, y: float, width: float) -> Tuple[float, float]:
        half = width / 2.0
        x = min(max(x, half), max(self.width - half, half))
        y = min(max(y, 0.0), max(self.floor_y, 0.0))
        return x, y

    def _resolve_overlap(self, p: Particle) -> None:
        cfg = self.settings

        for _ in range(cfg.max_resolve_steps):
            if p.y <= 0 or not self.collides(p.x, p.y, p.width):
                break
            p.y -= 1.0

        if self.collides(p.x, p.y, p.width):
            found = False
            for radius in range(1, cfg.search_radius + 1):
                for dx, dy in ring_offsets(radius):
                    cx, cy = self._clamp(p.x + dx, p.y + dy, p.width)
                    if not self.collides(cx, cy, p.width):
                        p.x, p.y = cx, cy
                        found = True
                        break
                if found:
                    break
            if not found:
                p.y = max(p.y - 1.0, 0.0)
                self.stats.unresolved += 1
                logger.debug("physics: could not clear %r at (%.1f, %.1f)", p.char, p.x, p.y)

        p.vy = -cfg.pop_velocity
        self.stats.resolved += 1

    def _move_laterally(self, p: Particle) -> None:
        cfg = self.settings
        on_floor = p.y + self.font_size >= self.height - 0.5
        p.vx *= cfg.floor_friction if on_floor else cfg.air_friction
        if abs(p.vx) < cfg.vx_epsilon:
            p.vx = 0.0
            return

        direction = 1.0 if p.vx > 0 else -1.0
        remaining = min(abs(p.vx), float(cfg.max_lateral_steps))
        while remaining > 1e-9:
            stride = min(1.0, remaining)
            candidate, _ = self._clamp(p.x + direction * stride, p.y, p.width)
            if candidate == p.x or self.collides(candidate, p.y, p.width):
                p.vx = 0.0
                return
            p.x = candidate
            remaining -= stride


__all__ = ["PhysicsEngine", "PhysicsStats", "ring_offsets"]
