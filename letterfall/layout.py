"""Per-string glyph layout: wrap once, emit in any order."""
from __future__ import annotations

import colorsys
import logging
import math
import random
from collections.abc import Callable
from typing import List, Optional, Tuple

import regex

from .state import LayoutPlan

logger = logging.getLogger(__name__)

Measure = Callable[[str], float]
Segmenter = Callable[[str], List[str]]

DEFAULT_MAX_CLUSTERS = 4000

_TOKEN_RE = regex.compile(r"\s+|\S+")
_CLUSTER_RE = regex.compile(r"\X")


def grapheme_clusters(text: str) -> List[str]:
    """Split into user-perceived characters (combining marks, emoji sequences stay whole)."""
    return _CLUSTER_RE.findall(text)


def codepoint_clusters(text: str) -> List[str]:
    """Degraded mode: one cluster per code point. Breaks combining marks and emoji ZWJ sequences."""
    return list(text)


def segmenter_for(mode: str) -> Segmenter:
    return codepoint_clusters if mode == "codepoint" else grapheme_clusters


def random_color(rng: random.Random) -> str:
    """Bright, saturated color as #rrggbb."""
    r, g, b = colorsys.hls_to_rgb(rng.random(), 0.6, 0.85)
    return "#{:02x}{:02x}{:02x}".format(int(r * 255), int(g * 255), int(b * 255))


def _measure(measure: Measure, text: str) -> Optional[float]:
    try:
        width = float(measure(text))
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(width) or width < 0:
        return None
    return width


Token = Tuple[str, bool, List[Tuple[str, float]], float]


def _break_token(token: Token, target_width: float) -> List[Token]:
    """Split an over-wide word at cluster boundaries into pieces no wider than ``target_width``."""
    pieces: List[Token] = []
    chunk: List[Tuple[str, float]] = []
    chunk_width = 0.0
    for cluster, width in token[2]:
        if chunk and chunk_width + width > target_width:
            pieces.append(("".join(c for c, _ in chunk), False, chunk, chunk_width))
            chunk, chunk_width = [], 0.0
        chunk.append((cluster, width))
        chunk_width += width
    if chunk:
        pieces.append(("".join(c for c, _ in chunk), False, chunk, chunk_width))
    return pieces


def _wrap(tokens: List[Token], target_width: float) -> List[List[Token]]:
    lines: List[List[Token]] = []
    current: List[Token] = []
    current_width = 0.0
    for token in tokens:
        _, is_space, _, width = token
        if is_space:
            if current:
                current.append(token)
                current_width += width
            continue
        if current and current_width + width > target_width:
            lines.append(current)
            current, current_width = [], 0.0
        if width > target_width:
            # a word that cannot fit any line gets its own lines
            *full, token = _break_token(token, target_width)
            lines.extend([piece] for piece in full)
            width = token[3]
        current.append(token)
        current_width += width
    if current:
        lines.append(current)

    # trailing whitespace never counts toward the line width
    for line in lines:
        while line and line[-1][1]:
            line.pop()
    return [line for line in lines if line]


def build_layout(
    text: str,
    measure: Measure,
    target_width: float,
    *,
    rng: Optional[random.Random] = None,
    max_clusters: int = DEFAULT_MAX_CLUSTERS,
    segmenter: Segmenter = grapheme_clusters,
) -> LayoutPlan:
    """Wrap ``text`` to ``target_width`` and give every non-space cluster a centered x.

    Each line gets one random start offset in ``[0, target_width - line_width]``.
    Token widths are the sum of their cluster widths so wrapping and the
    per-cluster offsets agree. Words wider than the target are broken at cluster
    boundaries. Clusters that measure as non-finite are dropped.
    """
    rng = rng or random.Random()
    plan = LayoutPlan(text=text if isinstance(text, str) else "")
    if not plan.text or plan.text.isspace():
        return plan

    tokens = []
    for token in _TOKEN_RE.findall(plan.text):
        if token.isspace():
            tokens.append((token, True, [], _measure(measure, token) or 0.0))
            continue
        clusters = []
        for cluster in segmenter(token):
            width = _measure(measure, cluster)
            if width is None:
                logger.debug("layout: dropping unmeasurable cluster %r", cluster)
                continue
            clusters.append((cluster, width))
        if clusters:
            tokens.append((token, False, clusters, sum(w for _, w in clusters)))

    target_width = max(float(target_width), 0.0)
    for line_no, line in enumerate(_wrap(tokens, target_width)):
        line_width = sum(token[3] for token in line)
        cursor = rng.uniform(0.0, max(target_width - line_width, 0.0))
        for _, is_space, clusters, width in line:
            if is_space:
                cursor += width
                continue
            for cluster, cluster_width in clusters:
                if len(plan.graphemes) >= max_clusters:
                    break
                plan.graphemes.append(cluster)
                plan.offsets.append(cursor + cluster_width / 2.0)
                plan.widths.append(cluster_width)
                plan.lines.append(line_no)
                cursor += cluster_width
        if len(plan.graphemes) >= max_clusters:
            logger.debug("layout: cluster cap %d reached for %r", max_clusters, plan.text[:40])
            break

    plan.remaining = list(range(len(plan.graphemes)))
    plan.color = random_color(rng)
    return plan


__all__ = [
    "Measure",
    "Segmenter",
    "build_layout",
    "codepoint_clusters",
    "grapheme_clusters",
    "random_color",
    "segmenter_for",
]
