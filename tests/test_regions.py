"""
Tests for the region data model, observations, errors and configuration.
"""

import os
import uuid

from visiontrack import (
    DetectedObjectObservation,
    InvalidGeometry,
    ProcessorConfig,
    RectangleObservation,
    TrackedObjectsPalette,
    TrackedPolyRect,
    TrackedPolyRectStyle,
    TrackingLevel,
    TrackObjectRequest,
    TrackRectangleRequest,
    VisionTrackerProcessorError,
    normalize_rect,
    style_for_confidence,
)
from visiontrack.regions import corners_to_rect, denormalize_point, rect_to_corners


def test_palette_is_deterministic_and_wraps():
    size = TrackedObjectsPalette.size()
    assert size == 10
    assert TrackedObjectsPalette.color(0) == TrackedObjectsPalette.color(size)
    assert TrackedObjectsPalette.color(3) == TrackedObjectsPalette.color(3 + 2 * size)
    assert len(set(TrackedObjectsPalette.COLORS)) == size


def test_style_threshold_is_strict():
    assert style_for_confidence(0.9) == TrackedPolyRectStyle.SOLID
    assert style_for_confidence(0.51) == TrackedPolyRectStyle.SOLID
    assert style_for_confidence(0.5) == TrackedPolyRectStyle.DASHED
    assert style_for_confidence(0.0) == TrackedPolyRectStyle.DASHED
    assert style_for_confidence(0.7, threshold=0.8) == TrackedPolyRectStyle.DASHED


def test_corners_follow_lower_left_origin():
    tl, tr, br, bl = rect_to_corners((0.1, 0.2, 0.3, 0.4))
    assert bl == (0.1, 0.2)
    assert br == (0.1 + 0.3, 0.2)
    assert tl == (0.1, 0.2 + 0.4)
    assert tr == (0.1 + 0.3, 0.2 + 0.4)
    x, y, w, h = corners_to_rect((tl, tr, br, bl))
    assert abs(x - 0.1) < 1e-9 and abs(y - 0.2) < 1e-9
    assert abs(w - 0.3) < 1e-9 and abs(h - 0.4) < 1e-9


def test_normalize_rect_flips_y():
    x, y, w, h = normalize_rect((10, 20, 30, 40), (0, 0, 100, 200))
    assert abs(x - 0.1) < 1e-9
    assert abs(w - 0.3) < 1e-9
    assert abs(h - 0.2) < 1e-9
    assert abs(y - 0.7) < 1e-9

    # Offset image area inside a larger view
    x, y, w, h = normalize_rect((60, 0, 50, 100), (50, 0, 100, 100))
    assert abs(x - 0.1) < 1e-9 and abs(y - 0.0) < 1e-9

    assert normalize_rect((1, 1, 1, 1), (0, 0, 0, 0)) == (0.0, 0.0, 0.0, 0.0)


def test_denormalize_point():
    assert denormalize_point((0.0, 1.0), (0, 0, 100, 50)) == (0, 0)
    assert denormalize_point((1.0, 0.0), (10, 5, 100, 50)) == (110, 55)


def test_degenerate_boxes_are_rejected():
    for box in ((0.1, 0.1, 0.0, 0.2), (0.1, 0.1, 0.2, 0.0), (0.1, 0.1, -0.1, 0.2)):
        try:
            TrackedPolyRect.from_bounding_box(box, (0, 255, 0))
            assert False, f"expected InvalidGeometry for {box}"
        except InvalidGeometry as e:
            assert isinstance(e, ValueError)
            assert isinstance(e, VisionTrackerProcessorError)

    try:
        DetectedObjectObservation((0.5, 0.5, 0.0, 0.0))
        assert False, "expected InvalidGeometry"
    except InvalidGeometry:
        pass


def test_non_finite_boxes_are_rejected():
    nan, inf = float("nan"), float("inf")
    for box in ((0.1, 0.1, nan, 0.2), (0.1, 0.1, 0.2, nan), (nan, 0.1, 0.2, 0.2), (0.1, 0.1, inf, 0.2)):
        try:
            TrackedPolyRect.from_bounding_box(box, (0, 255, 0))
            assert False, f"expected InvalidGeometry for {box}"
        except InvalidGeometry:
            pass

    try:
        RectangleObservation((0.1, nan), (0.4, 0.5), (0.4, 0.1), (0.1, 0.1))
        assert False, "expected InvalidGeometry"
    except InvalidGeometry:
        pass


def test_updated_keeps_identity_and_color():
    rect = TrackedPolyRect.from_bounding_box((0.1, 0.1, 0.2, 0.2), (0, 255, 0))
    moved = rect.updated(DetectedObjectObservation((0.3, 0.3, 0.2, 0.2)), TrackedPolyRectStyle.DASHED)

    assert moved.id == rect.id
    assert moved.color == rect.color
    assert moved.style == TrackedPolyRectStyle.DASHED
    assert all(abs(a - b) < 1e-9 for a, b in zip(moved.bounding_box, (0.3, 0.3, 0.2, 0.2)))
    # Snapshots are not modified in place
    assert all(abs(a - b) < 1e-9 for a, b in zip(rect.bounding_box, (0.1, 0.1, 0.2, 0.2)))
    assert rect.style == TrackedPolyRectStyle.SOLID


def test_from_observation_assigns_fresh_id():
    observation = RectangleObservation((0.1, 0.5), (0.4, 0.5), (0.4, 0.1), (0.1, 0.1))
    rect = TrackedPolyRect.from_observation(observation, (0, 0, 255))

    assert rect.id != observation.uuid
    assert rect.corner_points == observation.corner_points


def test_rectangle_observation_geometry():
    obs = RectangleObservation((0.2, 0.8), (0.6, 0.9), (0.7, 0.3), (0.1, 0.2), confidence=0.75)
    x, y, w, h = obs.bounding_box
    assert abs(x - 0.1) < 1e-9 and abs(y - 0.2) < 1e-9
    assert abs(w - 0.6) < 1e-9 and abs(h - 0.7) < 1e-9
    assert obs.confidence == 0.75

    region_id = uuid.uuid4()
    again = RectangleObservation.from_corners(obs.corner_points, confidence=0.1, uuid=region_id)
    assert again.uuid == region_id
    assert again.corner_points == obs.corner_points


def test_requests_expose_seed_uuid():
    seed = DetectedObjectObservation((0.1, 0.1, 0.2, 0.2))
    request = TrackObjectRequest(seed, tracking_level=TrackingLevel.FAST)
    assert request.uuid == seed.uuid
    assert request.results is None
    assert "fast" in repr(request)

    try:
        TrackRectangleRequest(seed)
        assert False, "expected TypeError"
    except TypeError:
        pass


def test_config_from_env():
    keys = [
        "VISIONTRACK_TRACKING_LEVEL",
        "VISIONTRACK_THROTTLE",
        "VISIONTRACK_CONFIDENCE",
        "VISIONTRACK_MAX_RECTANGLES",
        "VISIONTRACK_MIN_RECT_SIZE",
    ]
    saved = {key: os.environ.get(key) for key in keys}
    try:
        os.environ["VISIONTRACK_TRACKING_LEVEL"] = "FAST"
        os.environ["VISIONTRACK_THROTTLE"] = "0"
        os.environ["VISIONTRACK_CONFIDENCE"] = "0.6"
        os.environ["VISIONTRACK_MAX_RECTANGLES"] = "not-a-number"
        os.environ["VISIONTRACK_MIN_RECT_SIZE"] = "0.25"

        config = ProcessorConfig.from_env(load_dotenv_file=False)

        assert config.tracking_level == TrackingLevel.FAST
        assert config.throttle is False
        assert config.confidence_threshold == 0.6
        assert config.maximum_observations == 10      # invalid value ignored
        assert config.detector_options()["minimum_size"] == 0.25
    finally:
        for key, value in saved.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


def test_config_defaults():
    config = ProcessorConfig()
    assert config.tracking_level == TrackingLevel.ACCURATE
    assert config.throttle is True
    assert config.confidence_threshold == 0.5
    assert config.detector_options() == {
        "minimum_aspect_ratio": 0.2,
        "maximum_aspect_ratio": 1.0,
        "minimum_size": 0.1,
        "maximum_observations": 10,
    }
