"""Tests for the frame analysis pipeline."""

import threading
import time

import numpy as np
import pytest

from vision_overlay.config import PipelineConfig
from vision_overlay.core.contracts import (
    BoundingBox,
    FaceBoxesLayer,
    ImageLayer,
    ImagePlane,
    LayerKind,
    MaskLayer,
    PipelineStage,
    ProbabilityMask,
    RawFrame,
)
from vision_overlay.core.errors import InferenceError, UnsupportedRotationError
from vision_overlay.pipeline.orchestrator import FACES, SEGMENTATION, FrameAnalysisPipeline
from vision_overlay.render.canvas import Canvas
from vision_overlay.render.layers import render_layers
from vision_overlay.segmentation.mask_processor import decode_mask

from conftest import make_frame


@pytest.fixture
def make_pipeline(recorder, render_state, no_faces, zero_mask, pipeline_config):
    created = []

    def factory(detect_faces=no_faces, segment_person=zero_mask, config=pipeline_config):
        pipeline = FrameAnalysisPipeline(
            detect_faces=detect_faces,
            segment_person=segment_person,
            render_state=render_state,
            release=recorder.release,
            request_redraw=recorder.redraw,
            on_error=recorder.error,
            config=config,
        )
        created.append(pipeline)
        return pipeline

    yield factory
    for pipeline in created:
        pipeline.close()


def test_end_to_end_gray_frame(make_pipeline, recorder, render_state):
    pipeline = make_pipeline()
    frame = make_frame(640, 480)

    result = pipeline.process_frame(frame)

    assert result.published and result.success
    assert result.degraded == ()
    assert (result.frame_width, result.frame_height) == (640, 480)

    state = render_state.snapshot()
    assert (state.frame_width, state.frame_height) == (640, 480)
    assert [layer.kind for layer in state.layers] == [
        LayerKind.IMAGE, LayerKind.MASK, LayerKind.FACE_BOXES,
    ]
    image_layer, mask_layer, boxes_layer = state.layers
    assert image_layer.image.shape == (480, 640, 3)
    assert np.all(image_layer.image == 128)
    assert not np.any(decode_mask(mask_layer.mask)[..., 3])
    assert boxes_layer.boxes == ()

    assert recorder.released == [frame]
    assert recorder.redraws == 1
    assert recorder.errors == []


def test_rotated_frame_publishes_display_size(make_pipeline, render_state):
    pipeline = make_pipeline()

    pipeline.process_frame(make_frame(480, 640, rotation=90))

    state = render_state.snapshot()
    assert (state.frame_width, state.frame_height) == (640, 480)
    assert state.layers[0].image.shape == (480, 640, 3)


def test_faces_are_forwarded(make_pipeline, render_state):
    boxes = [BoundingBox(10, 20, 110, 140)]
    pipeline = make_pipeline(detect_faces=lambda image: boxes)

    pipeline.process_frame(make_frame(320, 240))

    assert render_state.snapshot().layers[2].boxes == tuple(boxes)


def test_face_detector_failure_degrades_boxes(make_pipeline, recorder, render_state):
    def broken(image):
        raise RuntimeError("model crashed")

    mask = ProbabilityMask(2, 2, np.ones(4, np.float32))
    pipeline = make_pipeline(detect_faces=broken, segment_person=lambda image: mask)

    result = pipeline.process_frame(make_frame(64, 48))

    assert result.published
    assert result.degraded == (FACES,)
    layers = render_state.snapshot().layers
    assert layers[2].boxes == ()
    assert layers[1].mask is mask
    assert len(recorder.errors) == 1
    error = recorder.errors[0]
    assert isinstance(error, InferenceError)
    assert error.model == FACES
    assert isinstance(error.cause, RuntimeError)


def test_segmenter_failure_publishes_empty_mask(make_pipeline, recorder, render_state):
    def broken(image):
        raise RuntimeError("out of memory")

    pipeline = make_pipeline(
        segment_person=broken,
        detect_faces=lambda image: [BoundingBox(1, 1, 5, 5)],
    )

    result = pipeline.process_frame(make_frame(64, 48))

    assert result.degraded == (SEGMENTATION,)
    mask = render_state.snapshot().layers[1].mask
    assert (mask.width, mask.height) == (256, 256)
    assert not np.any(mask.buffer)
    assert len(render_state.snapshot().layers[2].boxes) == 1
    assert [e.model for e in recorder.errors] == [SEGMENTATION]


def test_wrong_return_types_are_degraded(make_pipeline, recorder):
    pipeline = make_pipeline(
        detect_faces=lambda image: "not boxes",
        segment_person=lambda image: np.zeros((4, 4)),
    )

    result = pipeline.process_frame(make_frame(64, 48))

    assert result.published
    assert result.degraded == (FACES, SEGMENTATION)
    assert all(isinstance(e.cause, TypeError) for e in recorder.errors)


def test_zero_size_mask_is_degraded(make_pipeline, recorder, render_state):
    pipeline = make_pipeline(
        segment_person=lambda image: ProbabilityMask(0, 0, np.zeros(0, np.float32)),
    )

    result = pipeline.process_frame(make_frame(64, 48))

    assert result.published
    assert result.degraded == (SEGMENTATION,)
    assert isinstance(recorder.errors[0].cause, ValueError)
    mask = render_state.snapshot().layers[1].mask
    assert (mask.width, mask.height) == (256, 256)

    # The degraded snapshot still draws
    snapshot = render_state.consume_for_draw(64, 48)
    render_layers(snapshot.layers, Canvas(64, 48), snapshot.matrix, snapshot.params)


def test_malformed_frame_keeps_previous_state(make_pipeline, recorder, render_state):
    pipeline = make_pipeline()
    pipeline.process_frame(make_frame(64, 48, frame_id=1))
    before = render_state.snapshot()

    good = make_frame(64, 48, frame_id=2)
    luma, u, v = good.planes
    broken = RawFrame(64, 48, 0, (ImagePlane(luma.row_stride, 1, b""), u, v), frame_id=2)
    result = pipeline.process_frame(broken)

    assert not result.published
    assert not result.success
    assert render_state.snapshot() is before
    assert [frame.frame_id for frame in recorder.released] == [1, 2]
    assert recorder.redraws == 1
    assert len(recorder.errors) == 1


def test_unsupported_rotation_is_reported(make_pipeline, recorder, render_state):
    pipeline = make_pipeline()

    result = pipeline.process_frame(make_frame(64, 48, rotation=45))

    assert not result.published
    assert isinstance(recorder.errors[0], UnsupportedRotationError)
    assert render_state.snapshot().layers == ()
    assert len(recorder.released) == 1


def test_stalled_model_times_out(make_pipeline, recorder):
    unblock = threading.Event()

    def stalled(image):
        unblock.wait(10)
        return []

    pipeline = make_pipeline(
        detect_faces=stalled, config=PipelineConfig(inference_timeout_s=0.1)
    )
    try:
        result = pipeline.process_frame(make_frame(64, 48))
    finally:
        unblock.set()

    assert result.published
    assert result.degraded == (FACES,)
    assert isinstance(recorder.errors[0].cause, TimeoutError)


def test_models_run_in_parallel(make_pipeline):
    barrier = threading.Barrier(2, timeout=5)

    def detect(image):
        barrier.wait()
        return []

    def segment(image):
        barrier.wait()
        return ProbabilityMask.empty(8, 8)

    pipeline = make_pipeline(detect_faces=detect, segment_person=segment)

    result = pipeline.process_frame(make_frame(64, 48))

    assert result.degraded == ()


def test_stage_is_inferring_during_model_call(make_pipeline):
    seen = []
    holder = {}

    def detect(image):
        seen.append(holder["pipeline"].stage)
        return []

    pipeline = make_pipeline(detect_faces=detect)
    holder["pipeline"] = pipeline
    pipeline.process_frame(make_frame(64, 48))

    assert seen == [PipelineStage.INFERRING]
    assert pipeline.stage == PipelineStage.IDLE


def test_next_frame_waits_for_release(make_pipeline, recorder):
    """A frame delivered mid-cycle is analysed only after the first is released."""
    holder = {}
    second = make_frame(64, 48, frame_id=2)
    calls = []

    def detect(image):
        calls.append(len(calls) + 1)
        recorder.log("detect", len(calls))
        if len(calls) == 1:
            holder["pipeline"].on_frame(second)
        return []

    pipeline = make_pipeline(detect_faces=detect)
    holder["pipeline"] = pipeline

    pipeline.on_frame(make_frame(64, 48, frame_id=1))
    assert pipeline.wait_idle(5)

    assert recorder.events == [
        ("detect", 1),
        ("release", 1),
        ("detect", 2),
        ("release", 2),
    ]
    assert pipeline.frames_processed == 2
    assert pipeline.frames_dropped == 0


def test_waiting_frame_is_replaced_by_newer(make_pipeline, recorder):
    holder = {}
    processed = []
    late = [make_frame(64, 48, frame_id=2), make_frame(64, 48, frame_id=3)]

    def detect(image):
        processed.append(image)
        if len(processed) == 1:
            for frame in late:
                holder["pipeline"].on_frame(frame)
        return []

    pipeline = make_pipeline(detect_faces=detect)
    holder["pipeline"] = pipeline

    pipeline.on_frame(make_frame(64, 48, frame_id=1))
    assert pipeline.wait_idle(5)

    released = [frame.frame_id for frame in recorder.released]
    assert sorted(released) == [1, 2, 3]
    assert released.index(2) < released.index(1)
    assert len(processed) == 2
    assert pipeline.frames_dropped == 1
    assert pipeline.last_result.frame_id == 3


def test_every_frame_released_exactly_once(make_pipeline, recorder):
    pipeline = make_pipeline()
    frames = [make_frame(32, 24, frame_id=i) for i in range(20)]

    for frame in frames:
        pipeline.on_frame(frame)
    assert pipeline.wait_idle(10)

    ids = [frame.frame_id for frame in recorder.released]
    assert sorted(ids) == list(range(20))
    assert pipeline.frames_processed + pipeline.frames_dropped == 20


def test_concurrent_deliveries_are_all_counted(make_pipeline, recorder):
    started = threading.Event()
    unblock = threading.Event()

    def detect(image):
        started.set()
        unblock.wait(5)
        return []

    pipeline = make_pipeline(detect_faces=detect)
    pipeline.on_frame(make_frame(16, 12, frame_id=0))
    assert started.wait(5)

    def deliver(first_id):
        for frame_id in range(first_id, first_id + 50):
            pipeline.on_frame(make_frame(16, 12, frame_id=frame_id))

    threads = [threading.Thread(target=deliver, args=(1 + 50 * i,)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)
    unblock.set()
    assert pipeline.wait_idle(5)

    assert len(recorder.released) == 201
    assert pipeline.frames_processed == 2
    assert pipeline.frames_dropped == 199


def test_close_releases_waiting_and_later_frames(make_pipeline, recorder):
    started = threading.Event()
    unblock = threading.Event()

    def detect(image):
        started.set()
        unblock.wait(5)
        return []

    pipeline = make_pipeline(detect_faces=detect)
    pipeline.on_frame(make_frame(32, 24, frame_id=1))
    assert started.wait(5)
    pipeline.on_frame(make_frame(32, 24, frame_id=2))

    closer = threading.Thread(target=pipeline.close)
    closer.start()
    # Let close() take the waiting frame before the running cycle ends
    deadline = time.monotonic() + 5
    while not pipeline._closed and time.monotonic() < deadline:
        time.sleep(0.001)
    assert pipeline._closed
    unblock.set()
    closer.join(5)

    pipeline.on_frame(make_frame(32, 24, frame_id=3))

    assert sorted(frame.frame_id for frame in recorder.released) == [1, 2, 3]
    assert pipeline.frames_processed == 1


def test_release_failure_is_contained(render_state, no_faces, zero_mask):
    def bad_release(frame):
        raise RuntimeError("device gone")

    pipeline = FrameAnalysisPipeline(no_faces, zero_mask, render_state, bad_release)
    try:
        result = pipeline.process_frame(make_frame(32, 24))
    finally:
        pipeline.close()

    assert result.published
    assert pipeline.frames_processed == 1


def test_layers_are_typed(make_pipeline, render_state):
    make_pipeline().process_frame(make_frame(32, 24))
    image, mask, boxes = render_state.snapshot().layers
    assert isinstance(image, ImageLayer)
    assert isinstance(mask, MaskLayer)
    assert isinstance(boxes, FaceBoxesLayer)
