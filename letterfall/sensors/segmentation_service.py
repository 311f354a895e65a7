"""
Webcam body segmentation service.
Captures frames from a laptop camera, runs MediaPipe selfie segmentation and
publishes a mirrored occupancy mask sized to the render surface.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..config import CameraSettings, SurfaceSettings
from ..mask import MaskHolder, OccupancyMask

# Optional deps
try:
    import cv2  # type: ignore
except Exception:
    cv2 = None

try:
    import mediapipe as mp  # type: ignore
except Exception:
    mp = None


logger = logging.getLogger(__name__)


@dataclass
class SegmentationFrame:
    """One captured frame and the mask derived from it."""
    timestamp: float
    color_image: np.ndarray
    mask: OccupancyMask


def probability_to_mask(
    probability: np.ndarray,
    *,
    width: int,
    height: int,
    threshold: float,
    mirror: bool,
) -> OccupancyMask:
    """Resize a segmentation confidence map to the surface, flip it for a mirrored view, binarize."""
    probability = np.asarray(probability, dtype=np.float32)
    if probability.ndim == 3:
        probability = probability[:, :, 0]
    if mirror:
        probability = np.fliplr(probability)
    if probability.shape != (height, width):
        probability = cv2.resize(probability, (width, height), interpolation=cv2.INTER_LINEAR)
    return OccupancyMask.from_probability(probability, threshold)


class SegmentationService:
    """Async webcam + MediaPipe loop feeding a MaskHolder."""

    def __init__(
        self,
        camera: CameraSettings,
        surface: SurfaceSettings,
        *,
        holder: Optional[MaskHolder] = None,
    ) -> None:
        self.camera = camera
        self.surface = surface
        self.holder = holder or MaskHolder()
        self.enable_hardware = bool(camera.enabled and cv2 is not None and mp is not None)
        self._cap = None
        self._segmenter = None
        self._active = False
        self._lock = asyncio.Lock()
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._latest_frame: Optional[SegmentationFrame] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def latest_frame(self) -> Optional[SegmentationFrame]:
        return self._latest_frame

    def get_mask(self) -> Optional[OccupancyMask]:
        return self.holder.get_mask()

    async def start(self) -> None:
        """Open the camera and start the capture loop."""
        if self._loop_task:
            return
        if not self.enable_hardware:
            if self.camera.enabled:
                logger.warning("OpenCV or MediaPipe not available - segmentation disabled")
            else:
                logger.info("Camera disabled in settings - running without an occupancy mask")
            return

        async with self._lock:
            await self._activate_locked()
        if not self._active:
            return

        self._stop_event.clear()
        self._loop_task = asyncio.create_task(self._capture_loop(), name="segmentation-loop")
        logger.info("Segmentation service started")

    async def stop(self) -> None:
        """Stop the capture loop and release the camera."""
        if self._loop_task:
            self._stop_event.set()
            await self._loop_task
            self._loop_task = None

        async with self._lock:
            await self._deactivate_locked()
        self.holder.clear()
        logger.info("Segmentation service stopped")

    async def _activate_locked(self) -> None:
        """Activate webcam (must be called with lock held)."""
        if self._active:
            return

        logger.info(f"Opening webcam (camera_id={self.camera.camera_id})")
        self._cap = cv2.VideoCapture(self.camera.camera_id)
        if not self._cap.isOpened():
            logger.error(f"Failed to open webcam {self.camera.camera_id}")
            self._cap = None
            return

        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.surface.width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.surface.height)

        self._segmenter = mp.solutions.selfie_segmentation.SelfieSegmentation(
            model_selection=self.camera.model_selection
        )
        self._active = True
        logger.info("Webcam activated successfully")

    async def _deactivate_locked(self) -> None:
        """Deactivate webcam (must be called with lock held)."""
        if not self._active:
            return

        logger.info("Closing webcam")
        if self._cap:
            self._cap.release()
            self._cap = None
        if self._segmenter:
            self._segmenter.close()
            self._segmenter = None
        self._active = False

    def _capture_frame(self) -> Optional[SegmentationFrame]:
        """Grab one frame and segment it (runs in an executor thread)."""
        if not self._cap or not self._cap.isOpened() or not self._segmenter:
            return None

        ret, frame = self._cap.read()
        if not ret or frame is None:
            return None

        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        try:
            result = self._segmenter.process(rgb_frame)
        except Exception as e:
            logger.warning(f"Segmentation error: {e}")
            return None
        if result is None or result.segmentation_mask is None:
            return None

        mask = probability_to_mask(
            result.segmentation_mask,
            width=self.surface.width,
            height=self.surface.height,
            threshold=self.camera.mask_threshold,
            mirror=self.camera.mirror,
        )
        if self.camera.mirror:
            frame = cv2.flip(frame, 1)
        return SegmentationFrame(timestamp=time.time(), color_image=frame, mask=mask)

    async def _capture_loop(self) -> None:
        """Main capture loop."""
        loop = asyncio.get_running_loop()
        try:
            while not self._stop_event.is_set():
                frame_data = await loop.run_in_executor(None, self._capture_frame)
                if frame_data is not None:
                    self._latest_frame = frame_data
                    self.holder.update(frame_data.mask)
                await asyncio.sleep(self.camera.capture_interval_s)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Segmentation loop crashed")
        finally:
            self._stop_event.clear()
            logger.info("Segmentation loop stopped")


__all__ = ["SegmentationFrame", "SegmentationService", "probability_to_mask"]
