"""
VisionTrack error taxonomy.

Every error raised to the caller of the tracking processor derives from
VisionTrackerProcessorError and carries a short user-facing message that a
front end can show as-is.

    ReaderInitializationFailed   fatal, aborts start
    FirstFrameReadFailed         fatal, aborts start
    RectangleDetectionFailed     fatal during preview / nomination
    InvalidGeometry              fatal to one nomination call only
    ProcessorBusy                region edits attempted while running
    ObjectTrackingFailed         deferred, raised after the loop finished
"""

from typing import List, Optional


class VisionTrackerProcessorError(Exception):
    """Base class for processor errors."""

    message = "Vision processor error."

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ReaderInitializationFailed(VisionTrackerProcessorError):
    message = "Cannot create a Video Reader for selected video."


class FirstFrameReadFailed(VisionTrackerProcessorError):
    message = "Cannot read the first frame from selected video."


class RectangleDetectionFailed(VisionTrackerProcessorError):
    message = "Rectangle Detector failed to detect rectangles on the first frame of selected video."


class ObjectTrackingFailed(VisionTrackerProcessorError):
    message = "Tracking of one or more objects failed."


class InvalidGeometry(VisionTrackerProcessorError, ValueError):
    message = "Nominated region is empty or not finite."


class ProcessorBusy(VisionTrackerProcessorError):
    message = "Regions cannot be changed while tracking is running."


class TrackingRequestFailed(Exception):
    """
    Batch-level failure reported by a tracking capability.

    Requests that were processed before the failure keep their results,
    so the caller can still consume them.
    """

    def __init__(self, failures: Optional[List[BaseException]] = None):
        self.failures = failures or []
        super().__init__(f"{len(self.failures)} tracking request(s) failed")
