import asyncio
import random

import pytest

from letterfall.engine import LetterEngine
from letterfall.mask import MaskHolder
from letterfall.state import EnginePhase
from letterfall.text_queue import TextQueue

from .conftest import mask_from_rows


def make_letter_engine(settings, measure, texts, **kwargs) -> LetterEngine:
    queue = TextQueue()
    queue.offer(texts)
    return LetterEngine(settings, queue=queue, measure=measure, rng=random.Random(5), **kwargs)


def test_two_letters_fall_to_the_floor(small_settings, measure) -> None:
    engine = make_letter_engine(small_settings, measure, ["AB"])

    now = 0.0
    for _ in range(10):
        now += 0.1
        engine.tick(0.1, now)

    assert len(engine.particles) == 2
    assert len(engine.queue) == 0
    first, second = engine.particles
    # spawned one tick apart, each advanced speed * ticks since spawn
    assert second.y == 36.0
    assert first.y == 40.0

    for _ in range(20):
        now += 0.1
        engine.tick(0.1, now)

    assert [p.y for p in engine.particles] == [90.0, 90.0]


def test_letters_expire_after_lifetime(small_settings, measure) -> None:
    engine = make_letter_engine(small_settings, measure, ["AB"])

    engine.tick(0.2, now=0.0)
    assert len(engine.particles) == 2

    engine.tick(0.0, now=4.9)
    assert len(engine.particles) == 2
    engine.tick(0.0, now=5.1)
    assert engine.particles == []


def test_paused_spawning_keeps_queue(small_settings, measure) -> None:
    engine = make_letter_engine(small_settings, measure, ["AB"])
    engine.set_spawning(False)

    assert engine.tick(1.0, now=0.0) == []
    assert engine.particles == []
    assert len(engine.queue) == 1


def test_mask_source_failure_is_treated_as_no_mask(small_settings, measure) -> None:
    def broken():
        raise RuntimeError("camera gone")

    engine = make_letter_engine(small_settings, measure, ["A"], mask_source=broken)
    engine.tick(0.1, now=0.0)

    assert engine.particles[0].y == 4.0


def test_latest_mask_snapshot_is_used(small_settings, measure) -> None:
    holder = MaskHolder()
    engine = make_letter_engine(small_settings, measure, ["A"], mask_source=holder.get_mask)
    holder.update(mask_from_rows(100, 100, start_row=30))

    for step in range(20):
        engine.tick(0.1, now=step * 0.1)

    [letter] = engine.particles
    assert letter.y + small_settings.letters.font_size <= 30


def test_snapshot_is_json_ready(small_settings, measure) -> None:
    engine = make_letter_engine(small_settings, measure, ["A"])
    engine.tick(0.1, now=0.0)

    [entry] = engine.snapshot()
    assert entry["char"] == "A"
    assert set(entry) == {"char", "x", "y", "width", "color"}


@pytest.mark.asyncio
async def test_loop_runs_and_stops_deterministically(small_settings, measure) -> None:
    engine = make_letter_engine(small_settings, measure, ["HELLO WORLD"])
    frames = engine.subscribe()

    await engine.start()
    assert engine.phase is EnginePhase.RUNNING
    snapshot = await asyncio.wait_for(frames.get(), timeout=2.0)
    assert isinstance(snapshot, list)

    await engine.stop()
    assert engine.phase is EnginePhase.STOPPED
    frame_at_stop = engine.frame
    positions = [(p.x, p.y) for p in engine.particles]

    await asyncio.sleep(0.1)
    assert engine.frame == frame_at_stop
    assert [(p.x, p.y) for p in engine.particles] == positions
    engine.unsubscribe(frames)


@pytest.mark.asyncio
async def test_stop_without_start_is_a_no_op(small_settings, measure) -> None:
    engine = make_letter_engine(small_settings, measure, [])

    await engine.stop()

    assert engine.phase is EnginePhase.IDLE


@pytest.mark.asyncio
async def test_slow_frames_do_not_lose_emission(small_settings, measure) -> None:
    ticks = iter(range(0, 10_000, 2))
    settings = small_settings.model_copy(
        update={"letters": small_settings.letters.model_copy(update={"max_per_tick": 100})}
    )
    # every clock read jumps two seconds
    engine = make_letter_engine(settings, measure, ["x" * 500], clock=lambda: float(next(ticks)))
    frames = engine.subscribe()

    await engine.start()
    first = await asyncio.wait_for(frames.get(), timeout=2.0)
    await engine.stop()

    assert len(first) == 20
    assert engine.scheduler.total_emitted >= 20
