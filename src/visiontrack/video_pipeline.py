"""
VisionTrack Video Pipeline - Frame sources for the tracking processor

The processor pulls frames one at a time, so a frame source here is a
plain sequential reader rather than a freshest-frame capture thread:
- next_frame() returns the next decoded frame or None at end of stream
- orientation tells the capabilities how the frame is rotated
- affine_transform maps frame pixels to upright display pixels
- frame_interval_seconds paces playback
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

import cv2
import numpy as np

from .errors import ReaderInitializationFailed

DEFAULT_FPS = 30.0


class FrameSource(ABC):
    """Sequential source of frames plus per-sequence metadata."""

    @abstractmethod
    def next_frame(self) -> Optional[np.ndarray]:
        """Next frame (BGR), or None when the sequence is exhausted."""

    @property
    @abstractmethod
    def orientation(self) -> int:
        """Clockwise rotation in degrees (0, 90, 180 or 270) needed to show the frame upright."""

    @property
    @abstractmethod
    def frame_size(self) -> Tuple[int, int]:
        """Raw (width, height) of decoded frames."""

    @property
    @abstractmethod
    def fps(self) -> float:
        """Nominal frame rate."""

    @property
    def frame_interval_seconds(self) -> float:
        fps = self.fps
        return 1.0 / fps if fps > 0 else 1.0 / DEFAULT_FPS

    @property
    def affine_transform(self) -> np.ndarray:
        width, height = self.frame_size
        return FrameProcessor.orientation_transform(width, height, self.orientation)

    def release(self):
        """Free underlying resources. No-op by default."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


class VideoReader(FrameSource):
    """
    Reads a video file (or stream URL) with OpenCV.

    Auto-rotation is switched off so that orientation is reported through
    `orientation` / `affine_transform` instead of being baked into frames.

    Raises:
        ReaderInitializationFailed: if the source cannot be opened
    """

    def __init__(self, filepath: str):
        self.filepath = filepath
        self.logger = logging.getLogger(__name__)

        self._cap = cv2.VideoCapture(filepath)
        if not self._cap.isOpened():
            self._cap.release()
            self.logger.error(f"Failed to open video source: {filepath}")
            raise ReaderInitializationFailed()

        self._cap.set(cv2.CAP_PROP_ORIENTATION_AUTO, 0)

        self._width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self._height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self._native_fps = self._cap.get(cv2.CAP_PROP_FPS) or DEFAULT_FPS
        self._orientation = _snap_orientation(self._cap.get(cv2.CAP_PROP_ORIENTATION_META))
        self._frame_count = 0

        self.logger.info(
            f"Video source initialized: {self._width}x{self._height} @ {self._native_fps:.1f}fps, "
            f"orientation {self._orientation} deg"
        )

    def next_frame(self) -> Optional[np.ndarray]:
        if self._cap is None:
            return None
        ret, frame = self._cap.read()
        if not ret:
            return None
        self._frame_count += 1
        return frame

    @property
    def orientation(self) -> int:
        return self._orientation

    @property
    def frame_size(self) -> Tuple[int, int]:
        return (self._width, self._height)

    @property
    def fps(self) -> float:
        return self._native_fps

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def release(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None


class ArrayFrameSource(FrameSource):
    """In-memory frame source over already decoded frames."""

    def __init__(self, frames: Iterable[np.ndarray], fps: float = DEFAULT_FPS, orientation: int = 0):
        self._frames: List[np.ndarray] = list(frames)
        self._fps = fps
        self._orientation = _snap_orientation(orientation)
        self._index = 0

    def next_frame(self) -> Optional[np.ndarray]:
        if self._index >= len(self._frames):
            return None
        frame = self._frames[self._index]
        self._index += 1
        return frame

    @property
    def orientation(self) -> int:
        return self._orientation

    @property
    def frame_size(self) -> Tuple[int, int]:
        if not self._frames:
            return (0, 0)
        h, w = self._frames[0].shape[:2]
        return (w, h)

    @property
    def fps(self) -> float:
        return self._fps

    def __len__(self) -> int:
        return len(self._frames)


def _snap_orientation(value) -> int:
    """Round any rotation angle to the nearest multiple of 90 in [0, 360)."""
    try:
        degrees = int(round(float(value) / 90.0)) * 90
    except (TypeError, ValueError):
        return 0
    return degrees % 360


class FrameProcessor:
    """Utility class for orientation handling and frame conversion."""

    _ROTATE_CODES = {
        90: cv2.ROTATE_90_CLOCKWISE,
        180: cv2.ROTATE_180,
        270: cv2.ROTATE_90_COUNTERCLOCKWISE,
    }

    @staticmethod
    def orientation_transform(width: int, height: int, orientation: int) -> np.ndarray:
        """
        2x3 affine matrix rotating a width x height frame clockwise by `orientation`.

        The matrix maps frame pixel (x, y) to display pixel (x', y'), matching
        what cv2.rotate produces for the same angle.
        """
        w1 = float(max(width - 1, 0))
        h1 = float(max(height - 1, 0))
        orientation = _snap_orientation(orientation)
        if orientation == 90:
            m = [[0, -1, h1], [1, 0, 0]]
        elif orientation == 180:
            m = [[-1, 0, w1], [0, -1, h1]]
        elif orientation == 270:
            m = [[0, 1, 0], [-1, 0, w1]]
        else:
            m = [[1, 0, 0], [0, 1, 0]]
        return np.array(m, dtype=np.float64)

    @staticmethod
    def orient(frame: np.ndarray, orientation: int) -> np.ndarray:
        """Rotate a frame upright. Returns the input unchanged for 0 degrees."""
        code = FrameProcessor._ROTATE_CODES.get(_snap_orientation(orientation))
        if code is None:
            return frame
        return cv2.rotate(frame, code)

    @staticmethod
    def apply_affine(frame: np.ndarray, transform: np.ndarray) -> np.ndarray:
        """Warp a frame with a display transform, sizing the output to fit."""
        h, w = frame.shape[:2]
        if np.allclose(transform, np.array([[1, 0, 0], [0, 1, 0]])):
            return frame
        corners = np.array([[0, 0, 1], [w - 1, 0, 1], [0, h - 1, 1], [w - 1, h - 1, 1]], dtype=np.float64)
        mapped = corners @ transform.T
        out_w = int(round(mapped[:, 0].max() - mapped[:, 0].min())) + 1
        out_h = int(round(mapped[:, 1].max() - mapped[:, 1].min())) + 1
        return cv2.warpAffine(frame, transform, (out_w, out_h), flags=cv2.INTER_NEAREST)

    @staticmethod
    def to_grayscale(frame: np.ndarray) -> np.ndarray:
        if frame.ndim == 2:
            return frame
        return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)

    @staticmethod
    def resize(frame: np.ndarray, width: int = None, height: int = None) -> np.ndarray:
        """Resize frame maintaining aspect ratio."""
        h, w = frame.shape[:2]

        if width and not height:
            ratio = width / w
            new_size = (width, int(h * ratio))
        elif height and not width:
            ratio = height / h
            new_size = (int(w * ratio), height)
        elif width and height:
            new_size = (width, height)
        else:
            return frame

        return cv2.resize(frame, new_size, interpolation=cv2.INTER_LINEAR)
