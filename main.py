#!/usr/bin/env python3
"""
Vision Overlay - live camera demo

Shows the camera feed with a green person mask and red face boxes,
mirrored like a front camera and cropped to fill the window.

Usage:
    python main.py [--config CONFIG_PATH] [--device DEVICE_INDEX]

Keyboard Controls:
    Q / ESC - Quit
"""

from __future__ import annotations

import argparse
from typing import Optional

import cv2
from loguru import logger

from vision_overlay.capture.camera_source import CameraSource
from vision_overlay.config import OverlayConfig, load_config
from vision_overlay.inference.mediapipe_models import (
    MEDIAPIPE_AVAILABLE,
    MediaPipeFaceDetector,
    MediaPipeSelfieSegmenter,
)
from vision_overlay.logging_utils import setup_logging
from vision_overlay.pipeline.orchestrator import FrameAnalysisPipeline
from vision_overlay.render.canvas import Canvas
from vision_overlay.render.layers import LayerStyle
from vision_overlay.render.overlay_view import OverlayView


# ============================================================
# MAIN APPLICATION
# ============================================================

class OverlayApp:
    """Wires camera, models, pipeline and an OpenCV window together."""

    def __init__(
        self,
        config: OverlayConfig,
        window_name: str = "Vision Overlay",
        surface_width: int = 720,
        surface_height: int = 1280,
    ):
        self.config = config
        self.window_name = window_name
        self.surface_width = surface_width
        self.surface_height = surface_height

        self.view = OverlayView(
            style=LayerStyle(
                box_color=config.style.box_color,
                box_stroke_width=config.style.box_stroke_width,
                mirror=config.pipeline.mirror,
            )
        )

        self.face_detector = MediaPipeFaceDetector()
        self.segmenter = MediaPipeSelfieSegmenter(
            mask_width=config.pipeline.mask_width,
            mask_height=config.pipeline.mask_height,
        )

        self.camera = CameraSource(
            on_frame=self._on_frame,
            device_index=config.capture.device_index,
            width=config.capture.width,
            height=config.capture.height,
            fps=config.capture.fps,
            rotation_degrees=config.capture.rotation_degrees,
        )

        self.pipeline = FrameAnalysisPipeline(
            detect_faces=self.face_detector,
            segment_person=self.segmenter,
            render_state=self.view.render_state,
            release=self.camera.release,
            request_redraw=self.view.request_redraw,
            on_error=self._on_error,
            config=config.pipeline,
        )

    def _on_frame(self, frame):
        self.pipeline.on_frame(frame)

    def _on_error(self, error: Exception):
        logger.debug(f"Cycle error: {error}")

    def run(self):
        """Run the display loop until Q or ESC."""
        if not MEDIAPIPE_AVAILABLE:
            logger.warning("Running without MediaPipe: overlays will stay empty")

        if not self.camera.start():
            logger.error("Failed to start camera")
            return

        cv2.namedWindow(self.window_name, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(self.window_name, self.surface_width, self.surface_height)
        canvas = Canvas(self.surface_width, self.surface_height)

        logger.info("Press Q or ESC to quit")
        try:
            while True:
                if self.view.wait_for_redraw(timeout=0.03):
                    canvas.clear()
                    self.view.draw(self.surface_width, self.surface_height, canvas)
                    cv2.imshow(self.window_name, canvas.to_bgr())

                key = cv2.waitKey(1) & 0xFF
                if key in (ord("q"), 27):
                    break

        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        finally:
            self.camera.stop()
            self.pipeline.close()
            self.face_detector.close()
            self.segmenter.close()
            cv2.destroyAllWindows()
            logger.info("Overlay stopped")


# ============================================================
# ENTRY POINT
# ============================================================

def main(argv: Optional[list] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Live camera overlay of person masks and face boxes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to configuration file",
    )

    parser.add_argument(
        "--device", "-d",
        type=int,
        default=None,
        help="Video device index (default: from config)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from config)",
    )

    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Log file path (default: from config)",
    )

    parser.add_argument(
        "--no-mirror",
        action="store_true",
        help="Do not mirror the view horizontally",
    )

    args = parser.parse_args(argv)

    config = load_config(args.config)
    if args.device is not None:
        config.capture.device_index = args.device
    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_file is not None:
        config.logging.file = args.log_file
    if args.no_mirror:
        config.pipeline.mirror = False

    setup_logging(config.logging.level, config.logging.file)

    app = OverlayApp(config)
    app.run()


if __name__ == "__main__":
    main()
