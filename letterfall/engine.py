"""Frame-driven letter engine: spawner and physics over one particle store."""
from __future__ import annotations

import asyncio
from asyncio import QueueEmpty
import logging
import random
import time
from collections.abc import Callable
from typing import Any, AsyncIterator, Dict, List, Optional

from .config import Settings
from .layout import Measure
from .mask import OccupancyMask
from .physics import PhysicsEngine
from .spawner import SpawnScheduler
from .state import EnginePhase, Particle
from .text_queue import TextQueue

logger = logging.getLogger(__name__)

MaskSource = Callable[[], Optional[OccupancyMask]]


class LetterEngine:
    """Owns the particle store and ticks spawner then physics once per frame.

    ``tick`` is synchronous and deterministic given ``dt``/``now`` and the
    injected RNG; the async loop only feeds it wall-clock time.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        queue: TextQueue,
        measure: Measure,
        mask_source: Optional[MaskSource] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.queue = queue
        self.mask_source = mask_source
        self.clock = clock
        self.particles: List[Particle] = []

        self.scheduler = SpawnScheduler(
            queue,
            measure,
            settings=settings.letters,
            surface_width=settings.surface.width,
            rng=rng,
            clock=clock,
        )
        self.physics = PhysicsEngine(
            settings.physics,
            width=settings.surface.width,
            height=settings.surface.height,
            font_size=settings.letters.font_size,
            lifetime_ms=settings.letters.lifetime_ms,
        )

        self._spawning = settings.engine.spawn_enabled
        self._phase = EnginePhase.IDLE
        self._frame = 0
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._subscribers: List[asyncio.Queue[List[Dict[str, Any]]]] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def phase(self) -> EnginePhase:
        return self._phase

    @property
    def frame(self) -> int:
        return self._frame

    @property
    def spawning(self) -> bool:
        return self._spawning

    def set_spawning(self, enabled: bool) -> bool:
        self._spawning = bool(enabled)
        logger.info("Letter spawning %s", "enabled" if self._spawning else "paused")
        return self._spawning

    def snapshot(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self.particles]

    def current_mask(self) -> Optional[OccupancyMask]:
        if self.mask_source is None:
            return None
        try:
            return self.mask_source()
        except Exception as exc:
            logger.warning("Mask source failed, treating as empty: %s", exc)
            return None

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, dt: float, now: Optional[float] = None) -> List[Particle]:
        """One frame: emit, then advance/reap. Returns the letters emitted this frame."""
        if now is None:
            now = self.clock()
        spawned: List[Particle] = []
        if self._spawning:
            spawned = self.scheduler.tick(dt, now)
            self.particles.extend(spawned)
        self.physics.step(self.particles, self.current_mask(), now)
        self._frame += 1
        return spawned

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._task:
            return
        self._stop_event.clear()
        self._phase = EnginePhase.RUNNING
        self._task = asyncio.create_task(self._run_loop(), name="letter-engine-loop")
        logger.info(
            "Letter engine started (%dx%d @ %.0f fps)",
            self.settings.surface.width,
            self.settings.surface.height,
            self.settings.engine.fps,
        )

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._phase = EnginePhase.STOPPED
        logger.info("Letter engine stopped after %d frames", self._frame)

    async def _run_loop(self) -> None:
        interval = 1.0 / self.settings.engine.fps
        last = self.clock()
        try:
            while not self._stop_event.is_set():
                await asyncio.sleep(interval)
                if self._stop_event.is_set():
                    break
                now = self.clock()
                dt = max(now - last, 0.0)
                last = now
                try:
                    self.tick(dt, now)
                except Exception:
                    logger.exception("Letter engine tick failed")
                    continue
                self._broadcast(self.snapshot())
        except asyncio.CancelledError:
            raise
        finally:
            self._stop_event.clear()
            logger.info("Letter engine loop stopped")

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def _broadcast(self, payload: List[Dict[str, Any]]) -> None:
        for q in list(self._subscribers):
            if q.full():
                try:
                    q.get_nowait()
                except QueueEmpty:
                    pass
            q.put_nowait(payload)

    def subscribe(self) -> asyncio.Queue[List[Dict[str, Any]]]:
        q: asyncio.Queue[List[Dict[str, Any]]] = asyncio.Queue(
            maxsize=self.settings.engine.subscriber_queue_size
        )
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue[List[Dict[str, Any]]]) -> None:
        if q in self._subscribers:
            self._subscribers.remove(q)

    async def frames(self) -> AsyncIterator[List[Dict[str, Any]]]:
        """Stream per-frame letter snapshots."""
        q = self.subscribe()
        try:
            while True:
                yield await q.get()
        finally:
            self.unsubscribe(q)


__all__ = ["LetterEngine", "MaskSource"]
