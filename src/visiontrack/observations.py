"""
Observations and tracking requests.

An observation is a located region with a confidence and a uuid. The uuid
is the identity carried from a seed observation to the result a tracking
capability produces for it, which is how the processor joins results back
to regions.

A tracking request wraps one seed observation for one frame. The
capability fills `results`; a request left with `results is None` (or an
empty list) produced nothing for that frame.
"""

from uuid import UUID, uuid4
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .regions import (
    Point,
    Rect,
    TrackingLevel,
    corners_to_rect,
    rect_to_corners,
    validate_rect,
)


@dataclass(frozen=True)
class DetectedObjectObservation:
    """A normalized bounding box with a confidence."""
    bounding_box: Rect
    confidence: float = 1.0
    uuid: UUID = field(default_factory=uuid4)

    def __post_init__(self):
        object.__setattr__(self, "bounding_box", validate_rect(self.bounding_box))

    @property
    def corner_points(self) -> Tuple[Point, Point, Point, Point]:
        return rect_to_corners(self.bounding_box)


@dataclass(frozen=True, init=False)
class RectangleObservation(DetectedObjectObservation):
    """A quadrilateral given by four normalized corners."""
    top_left: Point = (0.0, 1.0)
    top_right: Point = (1.0, 1.0)
    bottom_right: Point = (1.0, 0.0)
    bottom_left: Point = (0.0, 0.0)

    def __init__(self, top_left: Point, top_right: Point, bottom_right: Point,
                 bottom_left: Point, confidence: float = 1.0,
                 uuid: Optional[UUID] = None):
        corners = tuple(
            (float(p[0]), float(p[1]))
            for p in (top_left, top_right, bottom_right, bottom_left)
        )
        object.__setattr__(self, "top_left", corners[0])
        object.__setattr__(self, "top_right", corners[1])
        object.__setattr__(self, "bottom_right", corners[2])
        object.__setattr__(self, "bottom_left", corners[3])
        object.__setattr__(self, "bounding_box", validate_rect(corners_to_rect(corners)))
        object.__setattr__(self, "confidence", float(confidence))
        object.__setattr__(self, "uuid", uuid or uuid4())

    @classmethod
    def from_corners(cls, corners, confidence: float = 1.0,
                     uuid: Optional[UUID] = None) -> "RectangleObservation":
        tl, tr, br, bl = corners
        return cls(tl, tr, br, bl, confidence=confidence, uuid=uuid)

    @property
    def corner_points(self) -> Tuple[Point, Point, Point, Point]:
        return (self.top_left, self.top_right, self.bottom_right, self.bottom_left)


class TrackingRequest:
    """Base class for per-region, per-frame tracking requests."""

    def __init__(self, observation: DetectedObjectObservation,
                 tracking_level: TrackingLevel = TrackingLevel.ACCURATE):
        self.input_observation = observation
        self.tracking_level = tracking_level
        self.results: Optional[List[DetectedObjectObservation]] = None

    @property
    def uuid(self):
        return self.input_observation.uuid

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(uuid={self.input_observation.uuid}, "
            f"level={self.tracking_level.value}, results={self.results!r})"
        )


class TrackObjectRequest(TrackingRequest):
    """Track a free-form object seeded by its bounding box."""


class TrackRectangleRequest(TrackingRequest):
    """Track a quadrilateral seeded by its four corners."""

    def __init__(self, observation: RectangleObservation,
                 tracking_level: TrackingLevel = TrackingLevel.ACCURATE):
        if not isinstance(observation, RectangleObservation):
            raise TypeError("TrackRectangleRequest needs a RectangleObservation seed")
        super().__init__(observation, tracking_level)
