"""
VisionTrack Regions - Tracked area data model

A region is what the user (or the rectangle detector) nominated for
tracking. It keeps a stable identity for the whole session, a colour
picked once from the palette, and a geometry + style that the processor
replaces every frame a tracking result arrives.

Coordinate system:
┌──────────────────────────────────────────────┐
│  (0,1)                              (1,1)    │
│    ┌──────────────┐                          │
│    │ TL        TR │   Normalized unit square │
│    │              │   origin = LOWER-LEFT    │
│    │ BL        BR │   x, y in [0, 1]         │
│    └──────────────┘                          │
│  (0,0)                              (1,0)    │
└──────────────────────────────────────────────┘

Image pixels use an UPPER-LEFT origin, so every conversion between the
two flips the y axis.
"""

import math
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple

from .errors import InvalidGeometry

Point = Tuple[float, float]
Rect = Tuple[float, float, float, float]  # (x, y, width, height)
Color = Tuple[int, int, int]              # BGR, OpenCV order

CONFIDENCE_THRESHOLD = 0.5


class TrackedObjectType(Enum):
    """What kind of region the session tracks."""
    OBJECT = "object"          # Free-form object, seeded from a box
    RECTANGLE = "rectangle"    # Quadrilateral, seeded from four corners


class TrackingLevel(Enum):
    """Speed / accuracy trade-off handed to the tracking capability."""
    FAST = "fast"
    ACCURATE = "accurate"


class TrackedPolyRectStyle(Enum):
    """Outline style, derived from the last tracking confidence."""
    SOLID = "solid"
    DASHED = "dashed"


def style_for_confidence(confidence: float,
                         threshold: float = CONFIDENCE_THRESHOLD) -> TrackedPolyRectStyle:
    """SOLID when the tracker is confident, DASHED otherwise."""
    return TrackedPolyRectStyle.SOLID if confidence > threshold else TrackedPolyRectStyle.DASHED


class TrackedObjectsPalette:
    """Deterministic colour palette indexed by nomination order."""

    COLORS: List[Color] = [
        (0, 255, 0),      # Green
        (255, 255, 0),    # Cyan
        (0, 165, 255),    # Orange
        (42, 42, 165),    # Brown
        (0, 255, 255),    # Yellow
        (0, 0, 255),      # Red
        (255, 0, 255),    # Magenta
        (255, 128, 0),    # Azure
        (128, 0, 128),    # Purple
        (203, 192, 255),  # Pink
    ]

    @classmethod
    def color(cls, index: int) -> Color:
        return cls.COLORS[index % len(cls.COLORS)]

    @classmethod
    def size(cls) -> int:
        return len(cls.COLORS)


# === Geometry helpers ===

def validate_rect(rect: Rect) -> Rect:
    """Reject empty or non-finite boxes; returns the rect as floats."""
    x, y, w, h = (float(v) for v in rect)
    if not all(math.isfinite(v) for v in (x, y, w, h)):
        raise InvalidGeometry(f"Region {rect} is not finite")
    if not (w > 0.0 and h > 0.0):
        raise InvalidGeometry(f"Region {rect} has zero width or height")
    return (x, y, w, h)


def rect_to_corners(rect: Rect) -> Tuple[Point, Point, Point, Point]:
    """Corners of a normalized box as (top_left, top_right, bottom_right, bottom_left)."""
    x, y, w, h = rect
    return (
        (x, y + h),
        (x + w, y + h),
        (x + w, y),
        (x, y),
    )


def corners_to_rect(corners) -> Rect:
    """Axis-aligned normalized box enclosing the given corners."""
    xs = [p[0] for p in corners]
    ys = [p[1] for p in corners]
    return (min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


def normalize_rect(pixel_rect: Rect, image_area: Rect) -> Rect:
    """
    Convert a pixel-space selection into a normalized lower-left-origin box.

    Args:
        pixel_rect: (x, y, w, h) in view pixels, upper-left origin
        image_area: Where the image is drawn inside the view, (x, y, w, h)

    Returns:
        Normalized (x, y, w, h), or (0, 0, 0, 0) if the image area is empty
    """
    ax, ay, aw, ah = image_area
    if aw <= 0 or ah <= 0:
        return (0.0, 0.0, 0.0, 0.0)
    px, py, pw, ph = pixel_rect
    x = (px - ax) / aw
    y = (py - ay) / ah
    w = pw / aw
    h = ph / ah
    # Flip to lower-left origin
    y = 1.0 - y - h
    return (x, y, w, h)


def denormalize_point(point: Point, image_area: Rect) -> Tuple[int, int]:
    """Normalized lower-left-origin point -> integer pixel inside image_area."""
    ax, ay, aw, ah = image_area
    px = point[0] * aw + ax
    py = (1.0 - point[1]) * ah + ay
    return (int(round(px)), int(round(py)))


@dataclass(frozen=True)
class TrackedPolyRect:
    """
    One tracked region.

    Instances are immutable; the processor swaps in a new instance (same
    id, same colour) whenever geometry or style changes, so snapshots handed
    to the presentation side never change underneath it.
    """
    corner_points: Tuple[Point, Point, Point, Point]
    color: Color
    style: TrackedPolyRectStyle = TrackedPolyRectStyle.SOLID
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def from_bounding_box(cls, rect: Rect, color: Color,
                          style: TrackedPolyRectStyle = TrackedPolyRectStyle.SOLID,
                          region_id: Optional[uuid.UUID] = None) -> "TrackedPolyRect":
        rect = validate_rect(rect)
        return cls(
            corner_points=rect_to_corners(rect),
            color=color,
            style=style,
            id=region_id or uuid.uuid4(),
        )

    @classmethod
    def from_observation(cls, observation, color: Color,
                         style: TrackedPolyRectStyle = TrackedPolyRectStyle.SOLID) -> "TrackedPolyRect":
        """Build from an observation's corners under a fresh region id."""
        validate_rect(corners_to_rect(observation.corner_points))
        return cls(
            corner_points=tuple(observation.corner_points),
            color=color,
            style=style,
        )

    @property
    def bounding_box(self) -> Rect:
        return corners_to_rect(self.corner_points)

    @property
    def center(self) -> Point:
        xs = [p[0] for p in self.corner_points]
        ys = [p[1] for p in self.corner_points]
        return (sum(xs) / len(xs), sum(ys) / len(ys))

    def updated(self, observation, style: TrackedPolyRectStyle) -> "TrackedPolyRect":
        """New geometry/style from a tracking result; id and colour are kept."""
        return replace(self, corner_points=tuple(observation.corner_points), style=style)
