"""
VisionTrack Capabilities - Rectangle detection and sequence tracking

The processor treats detection and tracking as opaque capabilities with a
small contract. This module defines the contracts and ships OpenCV
implementations of both:

┌─────────────────────────────────────────────────────────────────┐
│  RectangleDetector.detect(frame, orientation)                   │
│    → [RectangleObservation]  (aspect, size and count filtered)  │
│    Contour implementation: Canny → contours → approxPolyDP quad │
├─────────────────────────────────────────────────────────────────┤
│  SequenceRequestHandler.perform(requests, frame, orientation)   │
│    → fills request.results, raises TrackingRequestFailed on a   │
│      batch problem (already filled results stay usable)         │
│    Template implementation: NCC match of the seed region cut    │
│    from the previous frame inside a search window               │
└─────────────────────────────────────────────────────────────────┘

All geometry crossing these interfaces is normalized with a lower-left
origin, measured on the upright (orientation-corrected) frame.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .errors import RectangleDetectionFailed, TrackingRequestFailed
from .observations import (
    DetectedObjectObservation,
    RectangleObservation,
    TrackingRequest,
    TrackRectangleRequest,
)
from .regions import TrackingLevel
from .video_pipeline import FrameProcessor


# === Rectangle detection ===

class RectangleDetector(ABC):
    """
    Proposes rectangular regions on a single frame.

    Filters follow the usual rectangle-detector knobs:
        minimum_aspect_ratio / maximum_aspect_ratio: short side / long side
        minimum_size: shortest side as a fraction of the smaller frame dimension
        maximum_observations: cap on the number of results
    """

    def __init__(
        self,
        minimum_aspect_ratio: float = 0.2,
        maximum_aspect_ratio: float = 1.0,
        minimum_size: float = 0.1,
        maximum_observations: int = 10
    ):
        self.minimum_aspect_ratio = minimum_aspect_ratio
        self.maximum_aspect_ratio = maximum_aspect_ratio
        self.minimum_size = minimum_size
        self.maximum_observations = maximum_observations

    @abstractmethod
    def detect(self, frame: np.ndarray, orientation: int = 0) -> List[RectangleObservation]:
        """
        Detect rectangles, best first.

        Raises:
            RectangleDetectionFailed: if detection cannot run on this frame
        """


class ContourRectangleDetector(RectangleDetector):
    """Edge-contour rectangle detector built on OpenCV."""

    CANNY_LOW = 50
    CANNY_HIGH = 150
    APPROX_EPSILON = 0.02   # Fraction of perimeter for approxPolyDP
    DUPLICATE_IOU = 0.8     # Inner/outer edge contours of the same quad

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.logger = logging.getLogger("ContourRectangleDetector")

    def detect(self, frame: np.ndarray, orientation: int = 0) -> List[RectangleObservation]:
        if frame is None or frame.size == 0:
            raise RectangleDetectionFailed()

        try:
            upright = FrameProcessor.orient(frame, orientation)
            gray = FrameProcessor.to_grayscale(upright)
            h, w = gray.shape[:2]
            blurred = cv2.GaussianBlur(gray, (5, 5), 0)
            edges = cv2.Canny(blurred, self.CANNY_LOW, self.CANNY_HIGH)
            edges = cv2.dilate(edges, np.ones((3, 3), dtype=np.uint8))
            contours, _ = cv2.findContours(edges, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)
        except cv2.error as e:
            self.logger.error(f"Rectangle detection failed: {e}")
            raise RectangleDetectionFailed() from e

        min_side = self.minimum_size * min(w, h)
        candidates: List[Tuple[float, np.ndarray]] = []

        for contour in contours:
            perimeter = cv2.arcLength(contour, True)
            if perimeter <= 0:
                continue
            approx = cv2.approxPolyDP(contour, self.APPROX_EPSILON * perimeter, True)
            if len(approx) != 4 or not cv2.isContourConvex(approx):
                continue

            _, (rw, rh), _ = cv2.minAreaRect(approx)
            short_side, long_side = min(rw, rh), max(rw, rh)
            if short_side <= 0:
                continue
            aspect = short_side / long_side
            if aspect < self.minimum_aspect_ratio or aspect > self.maximum_aspect_ratio:
                continue
            if short_side < min_side:
                continue

            # Rectangularity: how much of the min-area box the quad fills
            confidence = min(1.0, cv2.contourArea(approx) / (rw * rh))
            candidates.append((confidence, approx.reshape(4, 2).astype(np.float64)))

        candidates.sort(key=lambda c: c[0], reverse=True)

        accepted: List[Tuple[float, np.ndarray]] = []
        for confidence, pts in candidates:
            if any(_box_iou(pts, other) > self.DUPLICATE_IOU for _, other in accepted):
                continue
            accepted.append((confidence, pts))
            if len(accepted) >= self.maximum_observations:
                break

        self.logger.debug(f"{len(contours)} contours -> {len(accepted)} rectangles")
        return [self._to_observation(pts, confidence, w, h) for confidence, pts in accepted]

    @staticmethod
    def _to_observation(pts: np.ndarray, confidence: float, width: int, height: int) -> RectangleObservation:
        tl, tr, br, bl = _order_corners(pts)

        def norm(p):
            return (float(p[0]) / width, 1.0 - float(p[1]) / height)

        return RectangleObservation(norm(tl), norm(tr), norm(br), norm(bl), confidence=confidence)


def _order_corners(pts: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Order pixel corners as top-left, top-right, bottom-right, bottom-left."""
    s = pts.sum(axis=1)
    d = pts[:, 1] - pts[:, 0]
    return pts[np.argmin(s)], pts[np.argmin(d)], pts[np.argmax(s)], pts[np.argmax(d)]


def _box_iou(a: np.ndarray, b: np.ndarray) -> float:
    ax, ay, aw, ah = cv2.boundingRect(a.astype(np.float32))
    bx, by, bw, bh = cv2.boundingRect(b.astype(np.float32))
    ix = max(0, min(ax + aw, bx + bw) - max(ax, bx))
    iy = max(0, min(ay + ah, by + bh) - max(ay, by))
    inter = ix * iy
    union = aw * ah + bw * bh - inter
    return inter / union if union > 0 else 0.0


# === Sequence tracking ===

class SequenceRequestHandler(ABC):
    """
    Runs a batch of tracking requests against consecutive frames.

    Handlers may keep state between calls (e.g. the previous frame), so one
    handler instance serves exactly one frame sequence.
    """

    def prime(self, frame: np.ndarray, orientation: int = 0):
        """Show the handler the frame the seed observations were taken on."""

    @abstractmethod
    def perform(self, requests: Sequence[TrackingRequest], frame: np.ndarray, orientation: int = 0):
        """
        Fill `results` of every request it could process.

        Raises:
            TrackingRequestFailed: if one or more requests failed; results of
                the other requests remain set
        """


class TemplateSequenceRequestHandler(SequenceRequestHandler):
    """
    Normalized cross-correlation tracker.

    For every request the seed region is cut from the previous frame and
    searched for in a window around the same place in the current frame.

    Tracking levels:
    - FAST: half resolution, search margin of half the region size
    - ACCURATE: full resolution, search margin of one region size
    """

    FAST_SCALE = 0.5
    SEARCH_MARGIN = {
        TrackingLevel.FAST: 0.5,
        TrackingLevel.ACCURATE: 1.0,
    }
    MIN_TEMPLATE_SIZE = 4      # pixels, either side
    MIN_TEMPLATE_STD = 2.0     # flat patches cannot be matched

    def __init__(self, search_margin: Optional[Dict[TrackingLevel, float]] = None):
        self.search_margin = dict(self.SEARCH_MARGIN)
        if search_margin:
            self.search_margin.update(search_margin)
        self._previous: Optional[np.ndarray] = None
        self.logger = logging.getLogger("TemplateSequenceRequestHandler")

    def _prepare(self, frame: np.ndarray, orientation: int) -> np.ndarray:
        return FrameProcessor.to_grayscale(FrameProcessor.orient(frame, orientation))

    def prime(self, frame: np.ndarray, orientation: int = 0):
        self._previous = self._prepare(frame, orientation)

    def reset(self):
        self._previous = None

    def perform(self, requests: Sequence[TrackingRequest], frame: np.ndarray, orientation: int = 0):
        current = self._prepare(frame, orientation)
        previous = self._previous
        if previous is None or previous.shape != current.shape:
            previous = current

        scaled: Dict[TrackingLevel, Tuple[np.ndarray, np.ndarray]] = {}
        failures: List[BaseException] = []

        for request in requests:
            level = request.tracking_level
            if level not in scaled:
                scaled[level] = self._scaled_pair(previous, current, level)
            prev_img, cur_img = scaled[level]
            try:
                request.results = self._track(request, prev_img, cur_img)
            except (cv2.error, ValueError) as e:
                request.results = None
                failures.append(e)
                self.logger.warning(f"Request {request.uuid} failed: {e}")

        self._previous = current

        if failures:
            raise TrackingRequestFailed(failures)

    def _scaled_pair(self, previous: np.ndarray, current: np.ndarray,
                     level: TrackingLevel) -> Tuple[np.ndarray, np.ndarray]:
        if level != TrackingLevel.FAST:
            return previous, current
        width = max(1, int(current.shape[1] * self.FAST_SCALE))
        return (
            FrameProcessor.resize(previous, width=width),
            FrameProcessor.resize(current, width=width),
        )

    def _track(self, request: TrackingRequest, previous: np.ndarray,
               current: np.ndarray) -> Optional[List[DetectedObjectObservation]]:
        h, w = current.shape[:2]
        seed = request.input_observation
        bx, by, bw, bh = seed.bounding_box

        # Normalized LLC box -> pixel ULC box, clipped to the frame
        x1 = max(0, int(round(bx * w)))
        y1 = max(0, int(round((1.0 - by - bh) * h)))
        x2 = min(w, int(round((bx + bw) * w)))
        y2 = min(h, int(round((1.0 - by) * h)))
        if x2 - x1 < self.MIN_TEMPLATE_SIZE or y2 - y1 < self.MIN_TEMPLATE_SIZE:
            return None

        template = previous[y1:y2, x1:x2]
        if float(template.std()) < self.MIN_TEMPLATE_STD:
            return None

        margin = self.search_margin.get(request.tracking_level, 1.0)
        mx = int(math.ceil((x2 - x1) * margin))
        my = int(math.ceil((y2 - y1) * margin))
        sx1, sy1 = max(0, x1 - mx), max(0, y1 - my)
        sx2, sy2 = min(w, x2 + mx), min(h, y2 + my)
        search = current[sy1:sy2, sx1:sx2]
        if search.shape[0] < template.shape[0] or search.shape[1] < template.shape[1]:
            return None

        res = cv2.matchTemplate(search, template, cv2.TM_CCOEFF_NORMED)
        _, max_val, _, max_loc = cv2.minMaxLoc(res)
        confidence = float(max_val) if math.isfinite(max_val) else 0.0
        confidence = max(0.0, min(1.0, confidence))

        dx = (sx1 + max_loc[0] - x1) / w
        dy = -(sy1 + max_loc[1] - y1) / h  # pixel rows grow downwards

        if isinstance(request, TrackRectangleRequest):
            corners = [(p[0] + dx, p[1] + dy) for p in seed.corner_points]
            result = RectangleObservation.from_corners(corners, confidence=confidence, uuid=seed.uuid)
        else:
            result = DetectedObjectObservation(
                bounding_box=(bx + dx, by + dy, bw, bh),
                confidence=confidence,
                uuid=seed.uuid,
            )
        return [result]
