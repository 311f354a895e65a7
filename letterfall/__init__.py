"""Falling-letter overlay driven by a body-segmentation occupancy mask."""
from .engine import LetterEngine
from .layout import build_layout, grapheme_clusters
from .mask import MaskHolder, OccupancyMask
from .physics import PhysicsEngine
from .spawner import SpawnScheduler
from .state import LayoutPlan, Particle
from .text_queue import TextQueue

__all__ = [
    "LayoutPlan",
    "LetterEngine",
    "MaskHolder",
    "OccupancyMask",
    "Particle",
    "PhysicsEngine",
    "SpawnScheduler",
    "TextQueue",
    "build_layout",
    "grapheme_clusters",
]
