#!/usr/bin/env python3
"""
Letterfall - local preview window
- Webcam + MediaPipe selfie segmentation as the occupancy mask
- Letters from the command line (or a file) fall around your silhouette
- No server, no feed: handy for tuning physics settings
"""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import List

import cv2
import mediapipe as mp

from .config import Settings, get_settings
from .logging_config import configure_logging
from .engine import LetterEngine
from .mask import MaskHolder
from .render import FrameRenderer, GlyphMeasurer
from .sensors.segmentation_service import probability_to_mask
from .text_queue import TextQueue

logger = logging.getLogger(__name__)

WINDOW_TITLE = "Letterfall (press q/ESC to quit)"


class LetterfallWindow:
    """Synchronous capture -> segment -> tick -> draw loop."""

    def __init__(self, settings: Settings, texts: List[str], *, show_camera: bool = False):
        self.settings = settings
        self.queue = TextQueue(max_length=max(len(texts), 1), seen_capacity=0)
        self.queue.offer(texts)
        self.holder = MaskHolder()

        measurer = GlyphMeasurer(settings.letters.font_family, settings.letters.font_size)
        self.engine = LetterEngine(
            settings,
            queue=self.queue,
            measure=measurer,
            mask_source=self.holder.get_mask,
        )
        self.renderer = FrameRenderer(
            settings.surface.width,
            settings.surface.height,
            font=measurer.font,
            font_size=settings.letters.font_size,
            show_hitbox=settings.letters.show_hitbox,
            show_mask=not show_camera,
            show_camera=show_camera,
        )

        self.cap = cv2.VideoCapture(settings.camera.camera_id)
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, settings.surface.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, settings.surface.height)
        self.segmenter = mp.solutions.selfie_segmentation.SelfieSegmentation(
            model_selection=settings.camera.model_selection
        )

    def update_mask(self, frame) -> None:
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        result = self.segmenter.process(rgb)
        if result is None or result.segmentation_mask is None:
            self.holder.update(None)
            return
        self.holder.update(
            probability_to_mask(
                result.segmentation_mask,
                width=self.settings.surface.width,
                height=self.settings.surface.height,
                threshold=self.settings.camera.mask_threshold,
                mirror=self.settings.camera.mirror,
            )
        )

    def run(self) -> None:
        if not self.cap.isOpened():
            logger.error("Cannot open webcam %d", self.settings.camera.camera_id)
            return

        logger.info("Letterfall window running with %d queued text(s)", len(self.queue))
        last_frame_time = time.monotonic()
        try:
            while True:
                ret, frame = self.cap.read()
                if not ret:
                    logger.warning("Failed to grab frame")
                    break

                now = time.monotonic()
                dt = max(now - last_frame_time, 0.0)
                last_frame_time = now

                self.update_mask(frame)
                self.engine.tick(dt, now)

                background = cv2.flip(frame, 1) if self.settings.camera.mirror else frame
                display = self.renderer.render(self.engine.particles, self.holder.get_mask(), background)
                cv2.imshow(WINDOW_TITLE, display)

                key = cv2.waitKey(1) & 0xFF
                if key in (27, ord("q")):
                    break
                if key == ord("h"):
                    self.renderer.show_hitbox = not self.renderer.show_hitbox
                if key == ord("c"):
                    self.renderer.show_camera = not self.renderer.show_camera
                if key == ord(" "):
                    self.engine.set_spawning(not self.engine.spawning)
        finally:
            self.cap.release()
            self.segmenter.close()
            cv2.destroyAllWindows()


def parse():
    ap = argparse.ArgumentParser(description="Falling letters around a webcam silhouette")
    ap.add_argument("texts", nargs="*", help="Strings to drop (one string per argument)")
    ap.add_argument("--file", type=Path, help="Read strings from a file, one per line")
    ap.add_argument("--rate", type=float, help="Letters per second")
    ap.add_argument("--camera", action="store_true", help="Show the camera feed behind the letters")
    ap.add_argument("--hitbox", action="store_true", help="Draw collision boxes")
    ap.add_argument("--log", choices=["debug", "info", "warning", "error"], help="Override LOG_LEVEL")
    return ap.parse_args()


def main() -> None:
    args = parse()
    settings = get_settings()
    configure_logging(args.log or settings.log_level, settings.log_directory, settings.log_retention_days)
    updates = {}
    if args.rate is not None:
        updates["emission_rate"] = args.rate
    if args.hitbox:
        updates["show_hitbox"] = True
    if updates:
        settings = settings.model_copy(update={"letters": settings.letters.model_copy(update=updates)})

    texts = list(args.texts)
    if args.file:
        texts.extend(line.strip() for line in args.file.read_text(encoding="utf-8").splitlines() if line.strip())
    if not texts:
        texts = ["Hello from letterfall"]

    LetterfallWindow(settings, texts, show_camera=args.camera).run()


if __name__ == "__main__":
    main()
