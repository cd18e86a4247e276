"""
VisionTrack Processor - Multi-region tracking session

Owns the set of nominated regions and runs the per-frame tracking loop.

State Machine:
┌──────┐  perform_tracking()  ┌─────────┐  end of stream   ┌─────────┐
│ IDLE │ ───────────────────→ │ RUNNING │ ───────────────→ │ STOPPED │
└──────┘                      └────┬────┘                  └─────────┘
                                   │  cancel flag seen     ┌───────────┐
                                   ├─────────────────────→ │ CANCELLED │
                                   │                       └───────────┘
                                   │  frame source raised  ┌────────┐
                                   └─────────────────────→ │ FAILED │
                                                           └────────┘
RUNNING starts before the reader is opened, so cancel_tracking() and the
region edit guards cover start-up too. A start-up error (reader, first
frame, detection) restores the prior state without a finish signal; every
exit from the frame loop emits did_finish_tracking() exactly once.

Per frame:
1. Pull the next frame; none left -> STOPPED
2. Bump the frame counter and report it
3. Build one request per region from its seed observation
4. Perform the whole batch in one call; a batch failure is remembered,
   not fatal
5. For each result: style from confidence, update the region by id,
   the result becomes the region's next seed
6. Report the frame with the regions that got a result
7. Sleep one frame interval (pacing only)

Regions that get no result keep their last geometry, style and seed.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Union
from uuid import UUID

import numpy as np

from .capabilities import (
    ContourRectangleDetector,
    RectangleDetector,
    SequenceRequestHandler,
    TemplateSequenceRequestHandler,
)
from .config import ProcessorConfig
from .errors import (
    FirstFrameReadFailed,
    ObjectTrackingFailed,
    ProcessorBusy,
    ReaderInitializationFailed,
    RectangleDetectionFailed,
    TrackingRequestFailed,
    VisionTrackerProcessorError,
)
from .observations import (
    DetectedObjectObservation,
    RectangleObservation,
    TrackingRequest,
    TrackObjectRequest,
    TrackRectangleRequest,
)
from .regions import (
    Rect,
    TrackedObjectsPalette,
    TrackedObjectType,
    TrackedPolyRect,
    TrackingLevel,
    style_for_confidence,
    validate_rect,
)
from .video_pipeline import FrameSource, VideoReader

Nomination = Union[Rect, TrackedPolyRect, RectangleObservation]


class ProcessorState(Enum):
    """Lifecycle of a tracking session."""
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"        # Frame source exhausted
    CANCELLED = "cancelled"    # Stopped on request
    FAILED = "failed"          # Aborted by a non-recoverable error


class VisionTrackerProcessorDelegate(ABC):
    """Receives frames, progress and the finish signal from the processor."""

    @abstractmethod
    def display_frame(self, frame: Optional[np.ndarray], transform: np.ndarray,
                      rects: Optional[List[TrackedPolyRect]]):
        pass

    @abstractmethod
    def display_frame_counter(self, frame_index: int):
        pass

    @abstractmethod
    def did_finish_tracking(self):
        pass


@dataclass
class TrackingSummary:
    """Outcome of one perform_tracking() run."""
    state: ProcessorState
    frames_processed: int
    tracking_failed: bool = False

    @property
    def cancelled(self) -> bool:
        return self.state == ProcessorState.CANCELLED


class VisionTrackerProcessor:
    """
    Tracks nominated regions through a frame sequence.

    Args:
        frame_source_factory: Callable returning a fresh FrameSource; called
            once per preview and once per tracking run
        detector: Rectangle detector for rectangle mode
        request_handler_factory: Callable returning a fresh
            SequenceRequestHandler for each run
        config: Processor tunables
        delegate: Receiver of frames / progress / finish

    Usage:
        processor = VisionTrackerProcessor.for_video("clip.mp4")
        processor.delegate = my_delegate
        processor.nominate([(0.1, 0.1, 0.2, 0.2)])
        processor.perform_tracking(TrackedObjectType.OBJECT)

    Regions may only be changed while the processor is not RUNNING.
    """

    def __init__(
        self,
        frame_source_factory: Callable[[], FrameSource],
        detector: Optional[RectangleDetector] = None,
        request_handler_factory: Optional[Callable[[], SequenceRequestHandler]] = None,
        config: Optional[ProcessorConfig] = None,
        delegate: Optional[VisionTrackerProcessorDelegate] = None
    ):
        self.config = config or ProcessorConfig()
        self.tracking_level: TrackingLevel = self.config.tracking_level
        self.delegate = delegate
        self.detector = detector or ContourRectangleDetector(**self.config.detector_options())

        self._frame_source_factory = frame_source_factory
        self._request_handler_factory = request_handler_factory or TemplateSequenceRequestHandler

        # Nominated regions, in nomination order
        self._nominations: List[TrackedPolyRect] = []
        self._rectangles_nominated = False

        # Session state
        self._tracked_objects: Dict[UUID, TrackedPolyRect] = {}
        self._cancel_requested = False
        self._frame_counter = 0
        self._state = ProcessorState.IDLE
        self._state_lock = threading.Lock()

        self.logger = logging.getLogger("VisionTrackerProcessor")

    @classmethod
    def for_video(cls, filepath: str, **kwargs) -> "VisionTrackerProcessor":
        """Processor reading frames from a video file."""
        return cls(lambda: VideoReader(filepath), **kwargs)

    # === Nomination ===

    def nominate(self, regions: Iterable[Nomination]) -> List[TrackedPolyRect]:
        """
        Replace the nominated regions.

        Accepts normalized (x, y, w, h) boxes, TrackedPolyRects or
        RectangleObservations. Each region gets the palette colour for its
        position and a fresh id.

        Raises:
            InvalidGeometry: a box is empty or not finite (nothing changes)
            ProcessorBusy: tracking is running
        """
        self._ensure_not_running()
        regions = list(regions)
        rectangles = bool(regions) and all(isinstance(r, RectangleObservation) for r in regions)
        return self._replace_nominations(regions, rectangles)

    def add_region(self, region: Nomination) -> TrackedPolyRect:
        """Append one region, coloured by the current region count."""
        self._ensure_not_running()
        rect = self._make_region(region, len(self._nominations))
        self._nominations.append(rect)
        self._tracked_objects[rect.id] = rect
        self._rectangles_nominated = False
        return rect

    def clear_regions(self):
        self._ensure_not_running()
        self._replace_nominations([], rectangles=False)

    def _replace_nominations(self, regions: List[Nomination], rectangles: bool) -> List[TrackedPolyRect]:
        nominated = [self._make_region(region, index) for index, region in enumerate(regions)]
        self._nominations = nominated
        self._tracked_objects = {rect.id: rect for rect in nominated}
        self._rectangles_nominated = rectangles
        self.logger.info(f"Nominated {len(nominated)} region(s)")
        return list(nominated)

    @staticmethod
    def _make_region(region: Nomination, index: int) -> TrackedPolyRect:
        color = TrackedObjectsPalette.color(index)
        if isinstance(region, DetectedObjectObservation):
            return TrackedPolyRect.from_observation(region, color)
        if isinstance(region, TrackedPolyRect):
            validate_rect(region.bounding_box)
            return TrackedPolyRect(corner_points=region.corner_points, color=color)
        return TrackedPolyRect.from_bounding_box(tuple(region), color)

    def _ensure_not_running(self):
        if self._state == ProcessorState.RUNNING:
            raise ProcessorBusy()

    def _claim_run(self) -> ProcessorState:
        """Enter RUNNING with a cleared cancel flag; returns the prior state."""
        with self._state_lock:
            self._ensure_not_running()
            previous_state = self._state
            self._cancel_requested = False
            self._frame_counter = 0
            self._state = ProcessorState.RUNNING
        return previous_state

    # === Preview ===

    def read_and_display_first_frame(self, perform_rectangles_detection: bool = False):
        """
        Show the first frame, optionally nominating detected rectangles.

        Raises:
            ReaderInitializationFailed, FirstFrameReadFailed,
            RectangleDetectionFailed
        """
        self._ensure_not_running()
        reader = self._open_reader()
        try:
            first_frame = reader.next_frame()
            if first_frame is None:
                raise FirstFrameReadFailed()

            first_frame_rects = None
            if perform_rectangles_detection:
                observations = self._detect_rectangles(first_frame, reader.orientation)
                first_frame_rects = self._replace_nominations(observations, rectangles=True)

            self._notify("display_frame", first_frame, reader.affine_transform, first_frame_rects)
        finally:
            reader.release()

    def _open_reader(self) -> FrameSource:
        try:
            reader = self._frame_source_factory()
        except VisionTrackerProcessorError:
            raise
        except Exception as e:
            self.logger.error(f"Frame source could not be created: {e}")
            raise ReaderInitializationFailed() from e
        if reader is None:
            raise ReaderInitializationFailed()
        return reader

    def _detect_rectangles(self, frame: np.ndarray, orientation: int) -> List[RectangleObservation]:
        if self.detector is None:
            raise RectangleDetectionFailed()
        observations = self.detector.detect(frame, orientation)
        self.logger.info(f"Detected {len(observations)} rectangle(s) on the first frame")
        return observations

    # === Tracking ===

    def perform_tracking(self, object_type: TrackedObjectType = TrackedObjectType.OBJECT,
                         tracking_level: Optional[TrackingLevel] = None) -> TrackingSummary:
        """
        Run the frame loop on the calling thread until the stream ends or
        cancel_tracking() is observed.

        Raises:
            ReaderInitializationFailed, FirstFrameReadFailed,
            RectangleDetectionFailed: before the loop starts
            ObjectTrackingFailed: after the loop, if any batch failed
            ProcessorBusy: a run is already in progress
        """
        level = tracking_level or self.tracking_level
        previous_state = self._claim_run()

        # Start-up is part of the run
        reader = None
        loop_started = False
        try:
            reader = self._open_reader()

            # The first frame was shown during preview; seeds refer to it
            first_frame = reader.next_frame()
            if first_frame is None:
                raise FirstFrameReadFailed()

            if object_type == TrackedObjectType.RECTANGLE and not self._rectangles_nominated:
                self._replace_nominations(
                    self._detect_rectangles(first_frame, reader.orientation), rectangles=True
                )

            handler = self._request_handler_factory()
            handler.prime(first_frame, reader.orientation)

            loop_started = True
            summary = self._run_loop(reader, handler, object_type, level)
        finally:
            if not loop_started:
                self._state = previous_state
            if reader is not None:
                reader.release()

        if summary.tracking_failed:
            raise ObjectTrackingFailed()
        return summary

    def _run_loop(self, reader: FrameSource, handler: SequenceRequestHandler,
                  object_type: TrackedObjectType, level: TrackingLevel) -> TrackingSummary:
        tracked_objects = {rect.id: rect for rect in self._nominations}
        self._tracked_objects = tracked_objects
        input_observations = {
            region_id: self._seed_observation(rect, object_type)
            for region_id, rect in tracked_objects.items()
        }

        tracking_failed = False
        final_state = ProcessorState.STOPPED
        self.logger.info(
            f"Tracking {len(tracked_objects)} {object_type.value}(s), level={level.value}"
        )

        try:
            while True:
                if self._cancel_requested:
                    final_state = ProcessorState.CANCELLED
                    break

                frame = reader.next_frame()
                if frame is None:
                    break

                self._frame_counter += 1
                self._notify("display_frame_counter", self._frame_counter)

                tracking_requests = [
                    request for request in (
                        self._make_request(seed, object_type, level)
                        for seed in input_observations.values()
                    )
                    if request is not None
                ]

                try:
                    handler.perform(tracking_requests, frame, reader.orientation)
                except TrackingRequestFailed as e:
                    tracking_failed = True
                    self.logger.warning(f"Frame {self._frame_counter}: {e}")

                rects = []
                for request in tracking_requests:
                    observation = self._first_result(request, object_type)
                    if observation is None:
                        continue
                    known_rect = tracked_objects.get(observation.uuid)
                    if known_rect is None:
                        self.logger.debug(f"Dropping result for unknown id {observation.uuid}")
                        continue

                    style = style_for_confidence(observation.confidence, self.config.confidence_threshold)
                    rect = known_rect.updated(observation, style)
                    tracked_objects[observation.uuid] = rect
                    rects.append(rect)

                    # Seed for the next frame
                    input_observations[observation.uuid] = observation

                self.logger.debug(
                    f"Frame {self._frame_counter}: {len(rects)}/{len(tracking_requests)} regions updated"
                )
                self._notify("display_frame", frame, reader.affine_transform, rects)

                if self.config.throttle:
                    time.sleep(reader.frame_interval_seconds)
        except Exception:
            final_state = ProcessorState.FAILED
            self.logger.error(f"Tracking aborted at frame {self._frame_counter}")
            raise
        finally:
            self._state = final_state
            self.logger.info(f"Tracking {final_state.value} after {self._frame_counter} frame(s)")
            self._notify("did_finish_tracking")

        return TrackingSummary(
            state=final_state,
            frames_processed=self._frame_counter,
            tracking_failed=tracking_failed,
        )

    @staticmethod
    def _seed_observation(rect: TrackedPolyRect, object_type: TrackedObjectType) -> DetectedObjectObservation:
        if object_type == TrackedObjectType.RECTANGLE:
            return RectangleObservation.from_corners(rect.corner_points, uuid=rect.id)
        return DetectedObjectObservation(bounding_box=rect.bounding_box, uuid=rect.id)

    @staticmethod
    def _make_request(seed: DetectedObjectObservation, object_type: TrackedObjectType,
                      level: TrackingLevel) -> Optional[TrackingRequest]:
        if object_type == TrackedObjectType.RECTANGLE:
            if not isinstance(seed, RectangleObservation):
                return None
            return TrackRectangleRequest(seed, tracking_level=level)
        return TrackObjectRequest(seed, tracking_level=level)

    @staticmethod
    def _first_result(request: TrackingRequest,
                      object_type: TrackedObjectType) -> Optional[DetectedObjectObservation]:
        if not request.results:
            return None
        observation = request.results[0]
        if not isinstance(observation, DetectedObjectObservation):
            return None
        # Rectangle mode only accepts quadrilateral results
        if object_type == TrackedObjectType.RECTANGLE and not isinstance(observation, RectangleObservation):
            return None
        return observation

    def cancel_tracking(self):
        """Ask the running loop to stop at the next frame boundary."""
        if not self._cancel_requested:
            self.logger.info("Cancel requested")
        self._cancel_requested = True

    def _notify(self, method: str, *args):
        if self.delegate is not None:
            getattr(self.delegate, method)(*args)

    # === Introspection ===

    @property
    def state(self) -> ProcessorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ProcessorState.RUNNING

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    @property
    def frame_counter(self) -> int:
        return self._frame_counter

    @property
    def objects_to_track(self) -> List[TrackedPolyRect]:
        """Nominated regions, as nominated."""
        return list(self._nominations)

    @property
    def tracked_objects(self) -> List[TrackedPolyRect]:
        """Current region table: latest geometry/style of every region."""
        return list(self._tracked_objects.values())

    def tracked_object(self, region_id: UUID) -> Optional[TrackedPolyRect]:
        return self._tracked_objects.get(region_id)
