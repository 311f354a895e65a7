import math
import random

import pytest

from letterfall.layout import build_layout, codepoint_clusters, grapheme_clusters, random_color


@pytest.mark.parametrize("text", ["", "   ", "\t\n  "])
def test_empty_or_whitespace_text_yields_empty_plan(text: str, measure, rng) -> None:
    plan = build_layout(text, measure, 200, rng=rng)

    assert len(plan) == 0
    assert plan.exhausted


def test_cluster_count_matches_non_whitespace_graphemes(measure, rng) -> None:
    # "e" + combining acute, and a ZWJ family emoji, are single clusters
    text = "cafe\u0301 \U0001F468\u200d\U0001F469\u200d\U0001F467 ok"

    plan = build_layout(text, measure, 1000, rng=rng)

    assert plan.graphemes == ["c", "a", "f", "e\u0301", "\U0001F468\u200d\U0001F469\u200d\U0001F467", "o", "k"]
    assert len(plan.remaining) == 7
    assert sorted(plan.remaining) == list(range(7))


def test_codepoint_mode_splits_combining_marks(measure, rng) -> None:
    plan = build_layout("e\u0301", measure, 100, rng=rng, segmenter=codepoint_clusters)

    assert plan.graphemes == ["e", "\u0301"]
    assert grapheme_clusters("e\u0301") == ["e\u0301"]


def test_single_line_offsets_are_centered_and_on_surface(measure, rng) -> None:
    plan = build_layout("AB CD", measure, 100, rng=rng)

    assert plan.graphemes == ["A", "B", "C", "D"]
    assert plan.widths == [10.0] * 4
    # A and B are adjacent, the space advances 10px before C
    assert plan.offsets[1] - plan.offsets[0] == pytest.approx(10.0)
    assert plan.offsets[2] - plan.offsets[1] == pytest.approx(20.0)
    assert plan.offsets[0] - 5.0 >= 0.0
    assert plan.offsets[-1] + 5.0 <= 100.0
    assert set(plan.lines) == {0}


def test_greedy_wrap_starts_new_line_for_overflowing_word(measure, rng) -> None:
    plan = build_layout("aaaa bbbb cccc", measure, 100, rng=rng)

    assert plan.lines == [0] * 8 + [1] * 4
    first_line = [o for o, line in zip(plan.offsets, plan.lines) if line == 0]
    second_line = [o for o, line in zip(plan.offsets, plan.lines) if line == 1]
    assert first_line[0] - 5.0 >= 0.0 and first_line[-1] + 5.0 <= 100.0
    assert second_line[0] - 5.0 >= 0.0 and second_line[-1] + 5.0 <= 100.0
    # second line never starts with the separating whitespace
    assert second_line[1] - second_line[0] == pytest.approx(10.0)


def test_word_wider_than_target_is_broken_onto_surface(measure, rng) -> None:
    plan = build_layout("x" * 30, measure, 100, rng=rng)

    assert len(plan) == 30
    assert plan.lines == [0] * 10 + [1] * 10 + [2] * 10
    assert all(o - w / 2 >= 0.0 for o, w in zip(plan.offsets, plan.widths))
    assert all(o + w / 2 <= 100.0 for o, w in zip(plan.offsets, plan.widths))


def test_long_word_after_short_word_starts_a_new_line(measure, rng) -> None:
    plan = build_layout("ab " + "y" * 15, measure, 100, rng=rng)

    assert plan.lines == [0, 0] + [1] * 10 + [2] * 5
    assert all(o + w / 2 <= 100.0 for o, w in zip(plan.offsets, plan.widths))


def test_cluster_cap_bounds_plan(measure, rng) -> None:
    plan = build_layout("abc def ghi", measure, 1000, rng=rng, max_clusters=5)

    assert plan.graphemes == ["a", "b", "c", "d", "e"]
    assert len(plan.remaining) == 5


def test_unmeasurable_clusters_are_dropped(rng) -> None:
    def measure(text: str) -> float:
        return math.nan if text == "x" else 10.0 * len(text)

    plan = build_layout("axb", measure, 100, rng=rng)

    assert plan.graphemes == ["a", "b"]
    assert plan.offsets[1] - plan.offsets[0] == pytest.approx(10.0)


def test_same_seed_gives_same_plan(measure) -> None:
    a = build_layout("the quick brown fox jumps", measure, 120, rng=random.Random(7))
    b = build_layout("the quick brown fox jumps", measure, 120, rng=random.Random(7))

    assert a.offsets == b.offsets
    assert a.color == b.color


def test_random_color_is_hex() -> None:
    color = random_color(random.Random(3))

    assert color.startswith("#")
    assert len(color) == 7
    int(color[1:], 16)
