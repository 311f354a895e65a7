"""Rate-limited conversion of queued text into falling letters."""
from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Callable
from typing import List, Optional

from .config import LetterSettings
from .layout import Measure, build_layout, segmenter_for
from .state import LayoutPlan, Particle
from .text_queue import TextQueue

logger = logging.getLogger(__name__)


class SpawnScheduler:
    """Turns ``emission_rate * dt`` into whole letters, one queued string at a time.

    Fractional progress is carried across ticks and anything above
    ``max_per_tick`` is pushed back into the carry, so a slow frame is smoothed
    over the following ticks instead of bursting or being lost. The carry
    holds at most ``max_backlog_s`` seconds of emission.
    """

    def __init__(
        self,
        queue: TextQueue,
        measure: Measure,
        *,
        settings: LetterSettings,
        surface_width: float,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.queue = queue
        self.measure = measure
        self.settings = settings
        self.surface_width = float(surface_width)
        self.rng = rng or random.Random()
        self.clock = clock
        self._segmenter = segmenter_for(settings.cluster_mode)

        self.carry = 0.0
        self.index = 0
        self._plan: Optional[LayoutPlan] = None
        self.total_emitted = 0

    @property
    def plan(self) -> Optional[LayoutPlan]:
        return self._plan

    @property
    def target_width(self) -> float:
        return self.surface_width * self.settings.layout_width_ratio

    def reset(self) -> None:
        self.carry = 0.0
        self._reset_cursor()

    def tick(self, dt: float, now: Optional[float] = None) -> List[Particle]:
        """Emit this tick's letters; never raises on bad queue content."""
        if now is None:
            now = self.clock()
        if dt > 0 and math.isfinite(dt):
            self.carry += self.settings.emission_rate * dt

        count = int(math.floor(self.carry))
        self.carry -= count
        if count > self.settings.max_per_tick:
            self.carry += count - self.settings.max_per_tick
            count = self.settings.max_per_tick
        backlog = max(self.settings.emission_rate * self.settings.max_backlog_s, float(self.settings.max_per_tick))
        if self.carry > backlog:
            logger.debug("spawner: dropping %.1f letter(s) of backlog", self.carry - backlog)
            self.carry = backlog

        spawned: List[Particle] = []
        for _ in range(count):
            if not self.queue:
                break
            particle = self._emit_one(now)
            if particle is not None:
                spawned.append(particle)

        self.total_emitted += len(spawned)
        return spawned

    def _emit_one(self, now: float) -> Optional[Particle]:
        text = self.queue.peek(self.index)
        if not isinstance(text, str) or not text:
            logger.debug("spawner: skipping malformed queue entry %r", text)
            self._finish_current()
            return None

        plan = self._plan
        if plan is None or plan.text != text:
            plan = self._plan = build_layout(
                text,
                self.measure,
                self.target_width,
                rng=self.rng,
                max_clusters=self.settings.max_glyphs,
                segmenter=self._segmenter,
            )
            logger.debug("spawner: laid out %d cluster(s) for %r", len(plan), text[:40])

        if plan.exhausted:
            self._finish_current()
            return None

        # swap-remove a random remaining index
        pick = self.rng.randrange(len(plan.remaining))
        cluster = plan.remaining[pick]
        plan.remaining[pick] = plan.remaining[-1]
        plan.remaining.pop()
        plan.emitted += 1

        low, high = self.settings.speed_range
        particle = Particle(
            char=plan.graphemes[cluster],
            x=plan.offsets[cluster],
            y=self.settings.spawn_y,
            width=plan.widths[cluster],
            speed=self.rng.uniform(min(low, high), max(low, high)),
            color=plan.color,
            created_at=now,
        )

        if plan.exhausted:
            self._finish_current()
        return particle

    def _finish_current(self) -> None:
        self.queue.remove(self.index)
        self._reset_cursor()

    def _reset_cursor(self) -> None:
        self.index = 0
        self._plan = None


__all__ = ["SpawnScheduler"]
