"""Shared state definitions for the letter overlay."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List


class EnginePhase(str, enum.Enum):
    """
    Engine lifecycle:

    1. IDLE     - constructed, loop not started
    2. RUNNING  - ticking at the configured frame rate
    3. STOPPED  - loop cancelled; the store is no longer mutated
    """
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class Particle:
    """One falling glyph. ``x`` is the horizontal center, ``y`` the top edge."""

    char: str
    x: float
    y: float
    width: float
    speed: float
    color: str
    created_at: float
    vx: float = 0.0
    vy: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "char": self.char,
            "x": round(self.x, 2),
            "y": round(self.y, 2),
            "width": round(self.width, 2),
            "color": self.color,
        }


@dataclass
class LayoutPlan:
    """Per-string glyph placement, computed once and emitted out of order."""

    text: str
    graphemes: List[str] = field(default_factory=list)
    offsets: List[float] = field(default_factory=list)
    widths: List[float] = field(default_factory=list)
    lines: List[int] = field(default_factory=list)
    remaining: List[int] = field(default_factory=list)
    color: str = "#ffffff"
    emitted: int = 0

    def __len__(self) -> int:
        return len(self.graphemes)

    @property
    def exhausted(self) -> bool:
        return not self.remaining


__all__ = ["EnginePhase", "Particle", "LayoutPlan"]
