"""Central configuration for the letterfall overlay service."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parents[1]
DEFAULT_ENV_FILE = ROOT_DIR / ".env"


# ============================================================
# Nested Configuration Classes
# ============================================================

class LetterSettings(BaseModel):
    """Letter emission and glyph configuration."""
    emission_rate: float = Field(5.0, ge=0.0, description="Letters emitted per second")
    speed_min: float = Field(3.0, description="Lower bound of terminal fall speed (px/frame)")
    speed_max: float = Field(6.0, description="Upper bound of terminal fall speed (px/frame)")
    font_size: int = Field(40, gt=0, description="Glyph font size (px); also the hitbox height")
    font_family: str = Field("DejaVuSansMono.ttf", description="TrueType font used to measure and draw glyphs")
    lifetime_ms: Optional[float] = Field(4000.0, description="Letter lifetime (ms); None or <= 0 keeps letters forever")
    max_per_tick: int = Field(16, ge=1, description="Ceiling on letters emitted in one tick")
    max_backlog_s: float = Field(5.0, gt=0.0, description="Seconds of emission the carry may hold back after slow frames")
    max_glyphs: int = Field(4000, ge=1, description="Maximum clusters laid out per string")
    spawn_y: float = Field(0.0, description="Top edge of freshly spawned letters")
    show_hitbox: bool = Field(False, description="Draw collision boxes for diagnostics")
    cluster_mode: str = Field("grapheme", description="'grapheme' (Unicode clusters) or 'codepoint' (degraded)")
    layout_width_ratio: float = Field(1.0, gt=0.0, le=1.0, description="Wrap width as a fraction of the surface width")

    @field_validator("cluster_mode", mode="before")
    @classmethod
    def _normalize_cluster_mode(cls, value: object) -> object:
        if isinstance(value, str):
            mode = value.strip().lower()
            if mode not in ("grapheme", "codepoint"):
                raise ValueError("cluster_mode must be 'grapheme' or 'codepoint'")
            return mode
        return value

    @model_validator(mode="after")
    def _order_speed_bounds(self) -> "LetterSettings":
        if self.speed_min > self.speed_max:
            self.speed_min, self.speed_max = self.speed_max, self.speed_min
        return self

    @property
    def speed_range(self) -> tuple[float, float]:
        return self.speed_min, self.speed_max


class PhysicsSettings(BaseModel):
    """Per-frame integration and collision tuning (pixels, frames)."""
    gravity: float = Field(0.6, ge=0.0, description="Vertical acceleration per frame")
    sample_stride: int = Field(4, ge=1, description="Pixel stride when sampling a letter footprint")
    max_resolve_steps: int = Field(40, ge=0, description="Max one-pixel upward pushes when overlapping")
    search_radius: int = Field(24, ge=0, description="Max ring radius searched for a free spot")
    deflect_rows: int = Field(4, ge=1, description="Rows sampled below a blocked letter to pick a slide side")
    deflect_offset: float = Field(4.0, ge=0.0, description="Extra lateral distance past the letter edge for slide samples")
    lateral_impulse: float = Field(2.0, ge=0.0, description="Horizontal impulse for a fully one-sided obstacle")
    pop_velocity: float = Field(1.0, ge=0.0, description="Upward speed imparted after overlap resolution")
    floor_friction: float = Field(0.8, ge=0.0, le=1.0, description="vx multiplier while resting on the floor")
    air_friction: float = Field(0.98, ge=0.0, le=1.0, description="vx multiplier while falling")
    vx_epsilon: float = Field(0.05, ge=0.0, description="|vx| below this snaps to zero")
    max_lateral_steps: int = Field(3, ge=0, description="Max one-pixel horizontal moves per frame")


class SurfaceSettings(BaseModel):
    """Render surface dimensions, shared with the occupancy mask."""
    width: int = Field(640, gt=0, description="Surface width (pixels)")
    height: int = Field(480, gt=0, description="Surface height (pixels)")


class EngineSettings(BaseModel):
    """Frame loop tuning."""
    fps: float = Field(30.0, gt=0.0, description="Target tick rate of the engine loop")
    spawn_enabled: bool = Field(True, description="Emit letters at startup")
    subscriber_queue_size: int = Field(2, ge=1, description="Max buffered frames per preview subscriber")


class TextSourceSettings(BaseModel):
    """Remote titles feed polled for text."""
    url: str = Field("http://127.0.0.1:5000/titles", description="Endpoint returning {\"titles\": [...]}; defaults to this service's own /titles")
    reddit_url: str = Field("https://www.reddit.com/r/all/new.json?limit=100", description="Listing served by /titles")
    user_agent: str = Field("letterfall/0.1", description="User-Agent sent with feed requests")
    api_key: Optional[str] = Field(None, description="Sent as X-API-Key when set")
    poll_interval_s: float = Field(2.0, gt=0.0, description="Seconds between polls")
    timeout_s: float = Field(10.0, gt=0.0, description="HTTP request timeout")
    max_queue: int = Field(200, ge=1, description="Max strings waiting to be emitted")
    seen_capacity: int = Field(2000, ge=0, description="Recently consumed strings remembered for dedup")


class CameraSettings(BaseModel):
    """Webcam and segmentation configuration."""
    enabled: bool = Field(True, description="Capture frames and produce an occupancy mask")
    camera_id: int = Field(0, description="OpenCV capture index")
    mirror: bool = Field(True, description="Flip the mask horizontally to match a mirrored view")
    mask_threshold: float = Field(0.5, ge=0.0, le=1.0, description="Segmentation probability counted as occupied")
    model_selection: int = Field(0, description="MediaPipe selfie segmentation model (0 general, 1 landscape)")
    capture_interval_s: float = Field(0.033, ge=0.0, description="Delay between captures (~30 FPS)")
    preview_background: bool = Field(False, description="Draw the camera image behind the letters in /preview")


class Settings(BaseSettings):
    """Environment-driven settings for the overlay."""

    # HTTP Server
    host: str = Field("0.0.0.0", description="Host interface for the FastAPI server")
    port: int = Field(5000, description="Port for the FastAPI server")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_directory: Path = Field(ROOT_DIR / "logs", description="Log directory path")
    log_retention_days: int = Field(14, description="Number of log files to retain")

    # Nested Configuration Objects
    letters: LetterSettings = Field(default_factory=LetterSettings, description="Letter emission settings")
    physics: PhysicsSettings = Field(default_factory=PhysicsSettings, description="Physics tuning")
    surface: SurfaceSettings = Field(default_factory=SurfaceSettings, description="Render surface")
    engine: EngineSettings = Field(default_factory=EngineSettings, description="Frame loop")
    text_source: TextSourceSettings = Field(default_factory=TextSourceSettings, description="Titles feed")
    camera: CameraSettings = Field(default_factory=CameraSettings, description="Camera and segmentation")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings(override_env_file: Optional[Path] = None) -> Settings:
    """Cached Settings instance; accepts optional env override for tests."""

    if override_env_file:
        return Settings(_env_file=str(override_env_file))
    return Settings()
