"""
Frame Analysis Pipeline.

Runs one analysis cycle per camera frame, in strict order:

1. Convert the planar frame to an upright RGB image
2. Run face detection and person segmentation in parallel, join both
3. Compose the layer list (image, mask, face boxes)
4. Publish to the shared render state and request a redraw
5. Release the frame back to the capture device

At most one frame is in flight. The capture device withholds the next
frame until release; a frame delivered early waits in a slot of one and
replaces any frame already waiting there.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from vision_overlay.config import PipelineConfig
from vision_overlay.conversion.pixel_format import planes_to_rgb
from vision_overlay.core.contracts import (
    BoundingBox,
    CycleResult,
    InferenceOutcome,
    PipelineStage,
    ProbabilityMask,
    RawFrame,
)
from vision_overlay.core.errors import InferenceError, MalformedFrameError
from vision_overlay.render.layers import compose_layers
from vision_overlay.render.render_state import SharedRenderState


FaceDetector = Callable[[NDArray[np.uint8]], Sequence[BoundingBox]]
PersonSegmenter = Callable[[NDArray[np.uint8]], ProbabilityMask]

FACES = "faces"
SEGMENTATION = "segmentation"


class FrameAnalysisPipeline:
    """
    Per-frame orchestrator between the camera and the render state.

    Guarantees:
    - Cycle order is never changed
    - ``release`` is called exactly once per delivered frame
    - A failed model call degrades its own layer, never the whole frame
    - A malformed frame publishes nothing; the last snapshot stays visible
    """

    def __init__(
        self,
        detect_faces: FaceDetector,
        segment_person: PersonSegmenter,
        render_state: SharedRenderState,
        release: Callable[[RawFrame], None],
        request_redraw: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        config: Optional[PipelineConfig] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            detect_faces: Face detector, image -> list of BoundingBox
            segment_person: Person segmenter, image -> ProbabilityMask
            render_state: Shared state read by the display
            release: Returns a frame to the capture device
            request_redraw: Asks the host to repaint
            on_error: Error channel for per-cycle failures
            config: Pipeline configuration
        """
        self.config = config or PipelineConfig()

        self._detect_faces = detect_faces
        self._segment_person = segment_person
        self._render_state = render_state
        self._release = release
        self._request_redraw = request_redraw
        self._on_error = on_error

        # Background worker for cycles, plus one thread per model
        self._analysis_executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="frame-analysis"
        )
        self._inference_executor = ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="inference"
        )

        # Single-flight state
        self._lock = threading.Lock()
        self._busy = False
        self._pending: Optional[RawFrame] = None
        self._idle = threading.Event()
        self._idle.set()
        self._closed = False

        self._stage = PipelineStage.IDLE

        # Stats
        self._frames_processed = 0
        self._frames_dropped = 0
        self._last_result: Optional[CycleResult] = None

        logger.info("Frame analysis pipeline initialized")

    # ============================================================
    # INBOUND
    # ============================================================

    def on_frame(self, frame: RawFrame):
        """
        Accept a frame from the capture device (non-blocking).

        The frame is analysed on the background worker. If a cycle is
        already running, the frame waits until the running frame has
        been released.
        """
        displaced: Optional[RawFrame] = None
        start = False

        with self._lock:
            if self._closed:
                displaced = frame
            elif self._busy:
                displaced = self._pending
                self._pending = frame
            else:
                self._busy = True
                self._idle.clear()
                start = True
            if displaced is not None:
                self._frames_dropped += 1

        if displaced is not None:
            logger.debug(f"Frame {displaced.frame_id} dropped before analysis")
            self._release_frame(displaced)

        if start:
            self._analysis_executor.submit(self._drain, frame)

    def _drain(self, frame: RawFrame):
        """Worker loop: run the frame, then any frame that arrived meanwhile."""
        next_frame: Optional[RawFrame] = frame
        while next_frame is not None:
            try:
                self.process_frame(next_frame)
            except Exception as e:
                logger.exception(f"Unexpected error in analysis cycle: {e}")

            with self._lock:
                next_frame = self._pending
                self._pending = None
                if next_frame is None:
                    self._busy = False
                    self._idle.set()

    # ============================================================
    # CYCLE
    # ============================================================

    def process_frame(self, frame: RawFrame) -> CycleResult:
        """
        Run one full analysis cycle on the calling thread.

        Returns:
            CycleResult describing what was published
        """
        cycle_start = time.perf_counter()
        result = CycleResult(frame_id=frame.frame_id)

        try:
            # ============================================================
            # STEP 1: Convert
            # ============================================================
            self._set_stage(PipelineStage.CONVERTING)
            image = planes_to_rgb(
                frame.planes, frame.width, frame.height, frame.rotation_degrees
            )
            result.convert_ms = (time.perf_counter() - cycle_start) * 1000

            # ============================================================
            # STEP 2: Infer (both models, joined)
            # ============================================================
            self._set_stage(PipelineStage.INFERRING)
            infer_start = time.perf_counter()
            faces, mask, degraded = self._infer(image)
            result.inference_ms = (time.perf_counter() - infer_start) * 1000
            result.degraded = degraded

            # ============================================================
            # STEP 3: Compose
            # ============================================================
            self._set_stage(PipelineStage.COMPOSING)
            frame_width, frame_height = frame.display_size
            layers = compose_layers(image, mask, faces, frame_width, frame_height)
            del image

            # ============================================================
            # STEP 4: Publish
            # ============================================================
            self._set_stage(PipelineStage.PUBLISHED)
            self._render_state.publish(frame_width, frame_height, layers)
            if self._request_redraw is not None:
                self._request_redraw()

            result.published = True
            result.frame_width = frame_width
            result.frame_height = frame_height
            result.layer_count = len(layers)

        except MalformedFrameError as e:
            logger.warning(f"Frame {frame.frame_id} aborted: {e}")
            result.success = False
            result.error_message = str(e)
            self._report(e)

        finally:
            # ============================================================
            # STEP 5: Release
            # ============================================================
            self._release_frame(frame)
            self._frames_processed += 1
            result.total_ms = (time.perf_counter() - cycle_start) * 1000
            self._last_result = result
            self._set_stage(PipelineStage.IDLE)

        logger.debug(
            f"Frame {frame.frame_id}: convert {result.convert_ms:.1f}ms | "
            f"infer {result.inference_ms:.1f}ms | total {result.total_ms:.1f}ms"
        )
        return result

    def _infer(
        self,
        image: NDArray[np.uint8],
    ) -> Tuple[List[BoundingBox], ProbabilityMask, Tuple[str, ...]]:
        """
        Run both models concurrently and wait for both.

        Returns:
            Tuple of (faces, mask, names of degraded models)
        """
        futures = {
            FACES: self._inference_executor.submit(
                self._run_model, FACES, self._detect_faces, image
            ),
            SEGMENTATION: self._inference_executor.submit(
                self._run_model, SEGMENTATION, self._segment_person, image
            ),
        }
        wait(futures.values(), timeout=self.config.inference_timeout_s)

        faces_outcome = self._collect(FACES, futures[FACES])
        mask_outcome = self._collect(SEGMENTATION, futures[SEGMENTATION])

        faces: List[BoundingBox] = []
        if faces_outcome.success:
            faces = list(faces_outcome.value)

        mask = mask_outcome.value if mask_outcome.success else None
        if mask is None:
            mask = ProbabilityMask.empty(self.config.mask_width, self.config.mask_height)

        degraded = tuple(
            outcome.model
            for outcome in (faces_outcome, mask_outcome)
            if not outcome.success
        )
        return faces, mask, degraded

    @staticmethod
    def _run_model(name: str, model: Callable, image: NDArray[np.uint8]) -> InferenceOutcome:
        start = time.perf_counter()
        value = model(image)
        return InferenceOutcome(
            model=name,
            value=value,
            inference_time_ms=(time.perf_counter() - start) * 1000,
        )

    def _collect(self, name: str, future: Future) -> InferenceOutcome:
        """Turn a finished (or stalled) future into an outcome."""
        if not future.done():
            future.cancel()
            error = InferenceError(
                name, TimeoutError(f"no result after {self.config.inference_timeout_s}s")
            )
        elif future.exception() is not None:
            error = InferenceError(name, future.exception())
        else:
            outcome = future.result()
            problem = self._validate(name, outcome.value)
            if problem is None:
                return outcome
            error = InferenceError(name, TypeError(problem))

        logger.warning(f"{error}; continuing without {name} layer")
        self._report(error)
        return InferenceOutcome(model=name, success=False, error_message=str(error))

    @staticmethod
    def _validate(name: str, value: object) -> Optional[str]:
        if name == FACES:
            if not isinstance(value, (list, tuple)):
                return f"face detector returned {type(value).__name__}, expected a list"
            if not all(isinstance(box, BoundingBox) for box in value):
                return "face detector returned non-BoundingBox items"
            return None
        if not isinstance(value, ProbabilityMask):
            return f"segmenter returned {type(value).__name__}, expected ProbabilityMask"
        return None

    # ============================================================
    # HELPERS
    # ============================================================

    def _set_stage(self, stage: PipelineStage):
        self._stage = stage

    def _report(self, error: Exception):
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as e:
            logger.error(f"Error handler failed: {e}")

    def _release_frame(self, frame: RawFrame):
        try:
            self._release(frame)
        except Exception as e:
            logger.error(f"Failed to release frame {frame.frame_id}: {e}")

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no frame is in flight. Returns False on timeout."""
        return self._idle.wait(timeout)

    def close(self):
        """Stop accepting frames, finish the running cycle, release the rest."""
        with self._lock:
            self._closed = True
            pending = self._pending
            self._pending = None
            if pending is not None:
                self._frames_dropped += 1

        if pending is not None:
            self._release_frame(pending)

        self._analysis_executor.shutdown(wait=True)
        self._inference_executor.shutdown(wait=False, cancel_futures=True)
        logger.info(
            f"Pipeline closed: {self._frames_processed} processed, "
            f"{self._frames_dropped} dropped"
        )

    # ============================================================
    # STATE
    # ============================================================

    @property
    def stage(self) -> PipelineStage:
        return self._stage

    @property
    def is_idle(self) -> bool:
        return self._idle.is_set()

    @property
    def frames_processed(self) -> int:
        return self._frames_processed

    @property
    def frames_dropped(self) -> int:
        with self._lock:
            return self._frames_dropped

    @property
    def last_result(self) -> Optional[CycleResult]:
        return self._last_result
