"""
VisionTrack - Multi-region video tracking engine

Tracks user-drawn objects or automatically detected rectangles through a
video, reporting every frame where each region went and how confident the
tracker was (solid outline = confident, dashed = unsure).

Features:
- Stable region identity and palette colours for the whole session
- Pluggable detection / tracking capabilities (OpenCV defaults)
- Cooperative cancellation at frame boundaries
- Partial tracking failures never stop the loop
- Queue-based hand-off of results to a UI thread

Quick Start:
    from visiontrack import VisionTrackerProcessor, TrackedObjectType

    processor = VisionTrackerProcessor.for_video("clip.mp4")
    processor.delegate = my_delegate
    processor.nominate([(0.40, 0.40, 0.20, 0.20)])   # normalized x, y, w, h
    processor.perform_tracking(TrackedObjectType.OBJECT)
"""

__version__ = "1.0.0"

# Data model
from .errors import (
    VisionTrackerProcessorError,
    ReaderInitializationFailed,
    FirstFrameReadFailed,
    RectangleDetectionFailed,
    ObjectTrackingFailed,
    InvalidGeometry,
    ProcessorBusy,
    TrackingRequestFailed,
)
from .regions import (
    TrackedPolyRect,
    TrackedPolyRectStyle,
    TrackedObjectType,
    TrackedObjectsPalette,
    TrackingLevel,
    style_for_confidence,
    normalize_rect,
)
from .observations import (
    DetectedObjectObservation,
    RectangleObservation,
    TrackingRequest,
    TrackObjectRequest,
    TrackRectangleRequest,
)

# Frame sources
from .video_pipeline import (
    FrameSource,
    VideoReader,
    ArrayFrameSource,
    FrameProcessor,
)

# Capabilities
from .capabilities import (
    RectangleDetector,
    ContourRectangleDetector,
    SequenceRequestHandler,
    TemplateSequenceRequestHandler,
)

# Session
from .config import ProcessorConfig
from .processor import (
    VisionTrackerProcessor,
    VisionTrackerProcessorDelegate,
    ProcessorState,
    TrackingSummary,
)
from .dispatch import QueuedDelegate, WorkQueue

# Rendering
from .annotation_layer import PolyRectRenderer, fit_image_area

__all__ = [
    # Version
    "__version__",

    # Errors
    "VisionTrackerProcessorError",
    "ReaderInitializationFailed",
    "FirstFrameReadFailed",
    "RectangleDetectionFailed",
    "ObjectTrackingFailed",
    "InvalidGeometry",
    "ProcessorBusy",
    "TrackingRequestFailed",

    # Regions
    "TrackedPolyRect",
    "TrackedPolyRectStyle",
    "TrackedObjectType",
    "TrackedObjectsPalette",
    "TrackingLevel",
    "style_for_confidence",
    "normalize_rect",

    # Observations
    "DetectedObjectObservation",
    "RectangleObservation",
    "TrackingRequest",
    "TrackObjectRequest",
    "TrackRectangleRequest",

    # Video
    "FrameSource",
    "VideoReader",
    "ArrayFrameSource",
    "FrameProcessor",

    # Capabilities
    "RectangleDetector",
    "ContourRectangleDetector",
    "SequenceRequestHandler",
    "TemplateSequenceRequestHandler",

    # Session
    "ProcessorConfig",
    "VisionTrackerProcessor",
    "VisionTrackerProcessorDelegate",
    "ProcessorState",
    "TrackingSummary",
    "QueuedDelegate",
    "WorkQueue",

    # Rendering
    "PolyRectRenderer",
    "fit_image_area",
]
