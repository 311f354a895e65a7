import random

import numpy as np
import pytest

from letterfall.config import (
    EngineSettings,
    LetterSettings,
    PhysicsSettings,
    Settings,
    SurfaceSettings,
)
from letterfall.mask import OccupancyMask
from letterfall.physics import PhysicsEngine
from letterfall.state import Particle


def fixed_width(text: str) -> float:
    """Every cluster is 10px wide; whitespace runs are 10px per character."""
    return 10.0 * len(text)


@pytest.fixture
def measure():
    return fixed_width


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def small_settings() -> Settings:
    return Settings(
        _env_file=None,
        letters=LetterSettings(
            emission_rate=10.0,
            speed_min=4.0,
            speed_max=4.0,
            font_size=10,
            lifetime_ms=5000.0,
        ),
        physics=PhysicsSettings(gravity=4.0),
        surface=SurfaceSettings(width=100, height=100),
        engine=EngineSettings(fps=60.0),
    )


@pytest.fixture
def physics_settings() -> PhysicsSettings:
    return PhysicsSettings(gravity=0.6, max_resolve_steps=40, search_radius=24)


@pytest.fixture
def make_engine(physics_settings):
    def factory(**overrides) -> PhysicsEngine:
        kwargs = dict(width=100, height=100, font_size=10, lifetime_ms=4000.0)
        settings = overrides.pop("settings", physics_settings)
        kwargs.update(overrides)
        return PhysicsEngine(settings, **kwargs)

    return factory


@pytest.fixture
def make_particle():
    def factory(**overrides) -> Particle:
        fields = dict(char="A", x=50.0, y=0.0, width=10.0, speed=4.0, color="#ffffff", created_at=0.0)
        fields.update(overrides)
        return Particle(**fields)

    return factory


def mask_from_rows(height: int, width: int, start_row: int) -> OccupancyMask:
    alpha = np.zeros((height, width), dtype=np.uint8)
    alpha[start_row:, :] = 255
    return OccupancyMask(alpha)
