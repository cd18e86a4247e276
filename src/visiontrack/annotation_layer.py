"""
VisionTrack Annotation Layer - Region overlay rendering

Draws tracked regions onto display frames with OpenCV:
- Closed quadrilateral outline in the region's palette colour
- SOLID outline while confidence is high, DASHED when it drops
- Red line joining the centres of consecutive regions
- Dashed blue rubber-band rectangle while the user drags a selection
- Frame counter badge while tracking

Region geometry arrives normalized with a lower-left origin and is mapped
into the image area (upper-left origin) at draw time.
"""

import math
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .regions import Rect, TrackedPolyRect, TrackedPolyRectStyle, denormalize_point


def fit_image_area(image_size: Tuple[int, int], view_size: Tuple[int, int]) -> Rect:
    """
    Largest aspect-preserving area for an image inside a view, centred.

    There are two ways to fully fit the image:
    Option 1) image.width = view.width  ==> image.height <= view.height
    Option 2) image.height = view.height ==> image.width <= view.width

    Returns:
        (x, y, w, h) in view pixels, or (0, 0, 0, 0) for an empty image
    """
    img_w, img_h = image_size
    view_w, view_h = view_size
    if img_w <= 0 or img_h <= 0:
        return (0, 0, 0, 0)

    aspect = img_w / img_h

    option1_h = math.floor(view_w / aspect)
    if option1_h <= view_h:
        return (0, math.floor((view_h - option1_h) / 2.0), view_w, option1_h)

    option2_w = math.floor(view_h * aspect)
    if option2_w <= view_w:
        return (math.floor((view_w - option2_w) / 2.0), 0, option2_w, view_h)

    return (0, 0, 0, 0)


class PolyRectRenderer:
    """
    Renders TrackedPolyRects onto frames.

    Usage:
        renderer = PolyRectRenderer()
        frame = renderer.render(frame, rects)
    """

    DASH_PATTERN = (4.0, 2.0)                  # on, off (scaled by dash_scale)
    CENTER_LINE_COLOR = (0, 0, 255)            # Red
    RUBBER_BAND_COLOR = (255, 0, 0)            # Blue

    def __init__(
        self,
        thickness: int = 2,
        dash_scale: float = 2.0,
        draw_center_line: bool = True,
        font: int = cv2.FONT_HERSHEY_SIMPLEX,
        font_scale: float = 0.6
    ):
        self.thickness = thickness
        self.dash_scale = dash_scale
        self.draw_center_line = draw_center_line
        self.font = font
        self.font_scale = font_scale

    def render(
        self,
        frame: np.ndarray,
        rects: Sequence[TrackedPolyRect],
        rubber_band: Optional[Rect] = None,
        image_area: Optional[Rect] = None
    ) -> np.ndarray:
        """
        Draw regions (and an optional selection) onto the frame in place.

        Args:
            frame: BGR display frame
            rects: Regions to draw
            rubber_band: Pixel-space (x, y, w, h) selection in progress
            image_area: Where normalized coordinates map to; whole frame by default

        Returns:
            The same frame
        """
        h, w = frame.shape[:2]
        area = image_area or (0, 0, w, h)

        if rubber_band is not None and rubber_band[2] > 0 and rubber_band[3] > 0:
            x, y, rw, rh = (int(round(v)) for v in rubber_band)
            corners = [(x, y), (x + rw, y), (x + rw, y + rh), (x, y + rh)]
            self._draw_dashed_polygon(frame, corners, self.RUBBER_BAND_COLOR)

        last_center = None
        for rect in rects:
            points = [denormalize_point(p, area) for p in rect.corner_points]
            if rect.style == TrackedPolyRectStyle.SOLID:
                pts = np.array(points, dtype=np.int32)
                cv2.polylines(frame, [pts], True, rect.color, self.thickness, cv2.LINE_AA)
            else:
                self._draw_dashed_polygon(frame, points, rect.color)

            center = (
                int(round(sum(p[0] for p in points) / len(points))),
                int(round(sum(p[1] for p in points) / len(points))),
            )
            if self.draw_center_line and last_center is not None:
                cv2.line(frame, last_center, center, self.CENTER_LINE_COLOR, self.thickness, cv2.LINE_AA)
            last_center = center

        return frame

    def _draw_dashed_polygon(self, frame: np.ndarray, points: List[Tuple[int, int]],
                             color: Tuple[int, int, int]):
        """Dashed closed polyline; the dash phase carries over between edges."""
        on_len = self.DASH_PATTERN[0] * self.dash_scale
        off_len = self.DASH_PATTERN[1] * self.dash_scale
        period = on_len + off_len
        phase = 0.0

        previous = points[-1]
        for current in points:
            x0, y0 = previous
            x1, y1 = current
            length = math.hypot(x1 - x0, y1 - y0)
            pos = 0.0
            while pos < length:
                in_period = (phase + pos) % period
                if in_period < on_len:
                    seg = min(on_len - in_period, length - pos)
                    t0 = pos / length
                    t1 = (pos + seg) / length
                    p0 = (int(round(x0 + (x1 - x0) * t0)), int(round(y0 + (y1 - y0) * t0)))
                    p1 = (int(round(x0 + (x1 - x0) * t1)), int(round(y0 + (y1 - y0) * t1)))
                    cv2.line(frame, p0, p1, color, self.thickness, cv2.LINE_AA)
                else:
                    seg = min(period - in_period, length - pos)
                pos += seg
            phase = (phase + length) % period
            previous = current

    def render_counter(self, frame: np.ndarray, frame_index: int) -> np.ndarray:
        """Draw a 'Frame: N' badge in the top-left corner."""
        text = f"Frame: {frame_index}"
        (text_w, text_h), baseline = cv2.getTextSize(text, self.font, self.font_scale, 1)

        padding = 6
        overlay = frame.copy()
        cv2.rectangle(
            overlay,
            (10 - padding, 10),
            (10 + text_w + padding, 10 + text_h + 2 * padding),
            (0, 0, 0),
            -1
        )
        cv2.addWeighted(overlay, 0.6, frame, 0.4, 0, frame)
        cv2.putText(
            frame, text, (10, 10 + text_h + padding),
            self.font, self.font_scale, (255, 255, 255), 1, cv2.LINE_AA
        )
        return frame
