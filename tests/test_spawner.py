import math
import random

import pytest

from letterfall.config import LetterSettings
from letterfall.spawner import SpawnScheduler
from letterfall.text_queue import TextQueue


def make_scheduler(queue: TextQueue, measure, **letter_overrides) -> SpawnScheduler:
    fields = dict(emission_rate=10.0, speed_min=4.0, speed_max=4.0, font_size=10)
    fields.update(letter_overrides)
    return SpawnScheduler(
        queue,
        measure,
        settings=LetterSettings(**fields),
        surface_width=100,
        rng=random.Random(99),
        clock=lambda: 0.0,
    )


def test_two_letter_string_emits_exactly_two_in_one_second(measure) -> None:
    queue = TextQueue()
    queue.offer(["AB"])
    scheduler = make_scheduler(queue, measure)

    emitted = []
    for _ in range(10):
        emitted.extend(scheduler.tick(0.1, now=0.0))

    assert sorted(p.char for p in emitted) == ["A", "B"]
    assert len(queue) == 0
    assert all(p.vx == 0.0 and p.vy == 0.0 for p in emitted)
    assert all(p.speed == 4.0 for p in emitted)


def test_carry_accumulator_bounds_drift(measure) -> None:
    queue = TextQueue()
    queue.offer(["x" * 1000])
    scheduler = make_scheduler(queue, measure, emission_rate=7.0)

    total = 0
    dt = 1.0 / 60.0
    for tick in range(1, 601):
        total += len(scheduler.tick(dt, now=0.0))
        assert abs(total - math.floor(7.0 * dt * tick)) <= 1

    assert 0.0 <= scheduler.carry < 1.0


def test_slow_frame_is_smoothed_not_dropped(measure) -> None:
    queue = TextQueue()
    queue.offer(["x" * 1000])
    scheduler = make_scheduler(queue, measure, emission_rate=100.0, max_per_tick=16)

    first = scheduler.tick(1.0, now=0.0)
    assert len(first) == 16
    assert scheduler.carry == pytest.approx(84.0)

    second = scheduler.tick(0.0, now=0.0)
    assert len(second) == 16
    assert scheduler.carry == pytest.approx(68.0)


def test_whitespace_only_string_is_removed_without_spawning(measure) -> None:
    queue = TextQueue()
    queue.offer(["   ", "A"])
    scheduler = make_scheduler(queue, measure, emission_rate=1.0)

    assert scheduler.tick(1.0, now=0.0) == []
    assert queue.snapshot() == ["A"]

    [particle] = scheduler.tick(1.0, now=0.0)
    assert particle.char == "A"
    assert len(queue) == 0


def test_malformed_entries_are_skipped_and_removed(measure) -> None:
    queue = TextQueue()
    queue.offer([None, 42, "", "Z"])
    scheduler = make_scheduler(queue, measure, emission_rate=4.0)

    emitted = scheduler.tick(1.0, now=0.0)

    assert [p.char for p in emitted] == ["Z"]
    assert len(queue) == 0


def test_exhausted_string_advances_within_the_same_tick(measure) -> None:
    queue = TextQueue()
    queue.offer(["AB", "CD"])
    scheduler = make_scheduler(queue, measure, emission_rate=4.0)

    emitted = scheduler.tick(1.0, now=0.0)

    assert sorted(p.char for p in emitted) == ["A", "B", "C", "D"]
    assert len(queue) == 0
    assert scheduler.plan is None


def test_random_reveal_reconstructs_layout(measure) -> None:
    queue = TextQueue()
    queue.offer(["hello brave new world"])
    scheduler = make_scheduler(queue, measure, emission_rate=1.0)

    emitted = scheduler.tick(1.0, now=0.0)
    plan = scheduler.plan
    emitted.extend(scheduler.tick(16.0, now=0.0))
    emitted.extend(scheduler.tick(1.0, now=0.0))

    expected = sorted(zip(plan.graphemes, plan.offsets, plan.widths))
    actual = sorted((p.char, p.x, p.width) for p in emitted)
    assert actual == expected
    assert len({p.color for p in emitted}) == 1
    # reveal order is shuffled relative to layout order
    assert [p.x for p in emitted] != sorted(p.x for p in emitted)


def test_speed_bounds_accept_either_order(measure) -> None:
    queue = TextQueue()
    queue.offer(["x" * 200])
    scheduler = make_scheduler(queue, measure, emission_rate=50.0, speed_min=8.0, speed_max=2.0)

    emitted = scheduler.tick(1.0, now=0.0)

    assert emitted
    assert all(2.0 <= p.speed <= 8.0 for p in emitted)


@pytest.mark.parametrize("dt", [-1.0, math.nan, math.inf])
def test_invalid_dt_emits_nothing(measure, dt: float) -> None:
    queue = TextQueue()
    queue.offer(["AB"])
    scheduler = make_scheduler(queue, measure)

    assert scheduler.tick(dt, now=0.0) == []
    assert scheduler.carry == 0.0


def test_empty_queue_is_a_no_op(measure) -> None:
    scheduler = make_scheduler(TextQueue(), measure)

    assert scheduler.tick(5.0, now=0.0) == []


def test_replaced_queue_head_rebuilds_plan(measure) -> None:
    queue = TextQueue()
    queue.offer(["ABCD"])
    scheduler = make_scheduler(queue, measure, emission_rate=1.0)
    scheduler.tick(1.0, now=0.0)

    queue.clear()
    queue.offer(["XY"])
    [particle] = scheduler.tick(1.0, now=0.0)

    assert particle.char in ("X", "Y")
    assert scheduler.plan.text == "XY"


def test_backlog_is_capped_when_rate_outpaces_tick_ceiling(measure) -> None:
    queue = TextQueue()
    queue.offer(["x" * 1000])
    scheduler = make_scheduler(queue, measure, emission_rate=100.0, max_per_tick=1, max_backlog_s=2.0)

    for _ in range(5):
        assert len(scheduler.tick(10.0, now=0.0)) == 1
        assert scheduler.carry == pytest.approx(200.0)
