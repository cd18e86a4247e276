#!/usr/bin/env python3
"""
VisionTrack - Interactive Demo

Demonstrates the multi-region tracking processor on a video file:
1. Shows the first frame of the video
2. Object mode: user drags boxes around objects to track
   Rectangle mode: rectangles are detected automatically
3. SPACE starts tracking; outlines follow the regions frame by frame
4. Outlines turn dashed when the tracker loses confidence
5. Tracking can be stopped at any time and restarted from the first frame

Usage:
    python main_demo.py --source video.mp4

Controls:
    - N: Select objects to track (drag, ENTER/SPACE per box, ESC when done)
    - C: Clear selected objects
    - M: Toggle mode (object / rectangle)
    - L: Toggle tracking level (fast / accurate)
    - SPACE: Start / stop tracking
    - Q/ESC: Quit
"""

import sys
import logging
import argparse
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from visiontrack import (
    FrameProcessor,
    ObjectTrackingFailed,
    PolyRectRenderer,
    ProcessorConfig,
    QueuedDelegate,
    TrackedObjectType,
    TrackedPolyRect,
    TrackingLevel,
    VisionTrackerProcessor,
    VisionTrackerProcessorDelegate,
    VisionTrackerProcessorError,
    WorkQueue,
    normalize_rect,
)


class VisionTrackDemo(VisionTrackerProcessorDelegate):
    """
    Interactive demo of the VisionTrack processor.

    Tracking runs on a serial work queue; every delegate call comes back to
    the main thread through a QueuedDelegate so that OpenCV windows are only
    touched from here.
    """

    WINDOW_NAME = "VisionTrack Demo"

    def __init__(
            self,
            source: str,
            mode: TrackedObjectType = TrackedObjectType.OBJECT,
            config: Optional[ProcessorConfig] = None
    ):
        self.source = source
        self.mode = mode
        self.config = config or ProcessorConfig()

        self.processor = VisionTrackerProcessor.for_video(source, config=self.config)
        self.delegate_queue = QueuedDelegate(self)
        self.processor.delegate = self.delegate_queue
        self.work_queue = WorkQueue("visiontrack.work", on_error=self._handle_error)
        self.renderer = PolyRectRenderer()

        # Display state (main thread only)
        self._frame: Optional[np.ndarray] = None
        self._rects: List[TrackedPolyRect] = []
        self._frame_index = 0
        self._tracking = False
        self._running = False
        self._message: Optional[str] = None

        self.logger = logging.getLogger("VisionTrackDemo")

    # === Worker jobs ===

    def _display_first_video_frame(self):
        try:
            is_tracking_rects = self.mode == TrackedObjectType.RECTANGLE
            self.processor.read_and_display_first_frame(perform_rectangles_detection=is_tracking_rects)
        except VisionTrackerProcessorError as e:
            self._handle_error(e)

    def _start_tracking(self):
        try:
            summary = self.processor.perform_tracking(self.mode, self.processor.tracking_level)
            self.logger.info(f"Tracking {summary.state.value}: {summary.frames_processed} frames")
        except VisionTrackerProcessorError as e:
            self._handle_error(e)
            if not isinstance(e, ObjectTrackingFailed):
                # Failed before the loop started; no finish signal will come
                self._tracking = False

    def _handle_error(self, error: BaseException):
        if isinstance(error, VisionTrackerProcessorError):
            message = f"Vision Processor Error: {error.message}"
        else:
            message = f"Error: {error}"
        self.logger.error(message)
        self._message = message

    # === Delegate (called from pump() on the main thread) ===

    def display_frame(self, frame, transform, rects):
        if frame is not None:
            self._frame = FrameProcessor.apply_affine(frame, transform)
        if rects is not None:
            self._rects = list(rects)
        elif self.mode == TrackedObjectType.OBJECT:
            self._rects = self.processor.objects_to_track
        else:
            self._rects = []

    def display_frame_counter(self, frame_index: int):
        self._frame_index = frame_index

    def did_finish_tracking(self):
        self._tracking = False
        self.work_queue.submit(self._display_first_video_frame)

    # === Controls ===

    def _select_objects(self):
        if self._tracking or self._frame is None:
            return
        if self.mode != TrackedObjectType.OBJECT:
            self._message = "Rectangles are detected automatically"
            return

        h, w = self._frame.shape[:2]
        rois = cv2.selectROIs(self.WINDOW_NAME, self._frame, showCrosshair=True, fromCenter=False)
        for roi in rois:
            x, y, rw, rh = (int(v) for v in roi)
            if rw <= 0 or rh <= 0:
                continue
            self.processor.add_region(normalize_rect((x, y, rw, rh), (0, 0, w, h)))
        self._rects = self.processor.objects_to_track
        self.logger.info(f"{len(self._rects)} object(s) selected")

    def _toggle_tracking(self):
        if self._tracking:
            self.processor.cancel_tracking()
            return
        self._message = None
        self._tracking = True
        self._frame_index = 0
        self.work_queue.submit(self._start_tracking)

    def _toggle_mode(self):
        if self._tracking:
            return
        if self.mode == TrackedObjectType.OBJECT:
            self.mode = TrackedObjectType.RECTANGLE
        else:
            self.mode = TrackedObjectType.OBJECT
            self.processor.clear_regions()
        self.logger.info(f"Mode: {self.mode.value}")
        self.work_queue.submit(self._display_first_video_frame)

    def _toggle_level(self):
        if self._tracking:
            return
        if self.processor.tracking_level == TrackingLevel.FAST:
            self.processor.tracking_level = TrackingLevel.ACCURATE
        else:
            self.processor.tracking_level = TrackingLevel.FAST
        self.logger.info(f"Tracking level: {self.processor.tracking_level.value}")

    def _clear_objects(self):
        if self._tracking or self.mode != TrackedObjectType.OBJECT:
            return
        self.processor.clear_regions()
        self.work_queue.submit(self._display_first_video_frame)

    def _handle_key(self, key: int) -> bool:
        """Returns False when the demo should quit."""
        if key in (ord('q'), 27):
            return False
        if key == ord(' '):
            self._toggle_tracking()
        elif key == ord('n'):
            self._select_objects()
        elif key == ord('c'):
            self._clear_objects()
        elif key == ord('m'):
            self._toggle_mode()
        elif key == ord('l'):
            self._toggle_level()
        return True

    # === Main loop ===

    def _compose(self) -> Optional[np.ndarray]:
        if self._frame is None:
            return None
        output = self._frame.copy()
        self.renderer.render(output, self._rects)
        if self._tracking:
            self.renderer.render_counter(output, self._frame_index)
        else:
            hint = f"[{self.mode.value} | {self.processor.tracking_level.value}] SPACE start  N select  M mode  Q quit"
            cv2.putText(output, hint, (10, output.shape[0] - 15),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 1, cv2.LINE_AA)
        if self._message:
            cv2.putText(output, self._message, (10, 60),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 255), 2, cv2.LINE_AA)
        return output

    def run(self):
        cv2.namedWindow(self.WINDOW_NAME, cv2.WINDOW_NORMAL)
        self.work_queue.start()
        self.work_queue.submit(self._display_first_video_frame)
        self._running = True

        try:
            while self._running:
                self.delegate_queue.pump()

                output = self._compose()
                if output is not None:
                    cv2.imshow(self.WINDOW_NAME, output)

                key = cv2.waitKey(15) & 0xFF
                if key != 0xFF and not self._handle_key(key):
                    self._running = False

        except KeyboardInterrupt:
            self.logger.info("Interrupted by user")
        finally:
            self.processor.cancel_tracking()
            self.work_queue.stop()
            cv2.destroyAllWindows()
            self.logger.info("Demo stopped.")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="VisionTrack Multi-Region Tracking Demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Controls:
  N            Select objects to track (object mode)
  C            Clear selected objects
  M            Toggle object / rectangle mode
  L            Toggle fast / accurate tracking
  SPACE        Start / stop tracking
  Q/ESC        Quit

Configuration:
  Defaults can be set in a .env file or the environment:
    VISIONTRACK_TRACKING_LEVEL=fast
    VISIONTRACK_THROTTLE=0

Examples:
  python main_demo.py --source video.mp4
  python main_demo.py --source video.mp4 --mode rectangle
  python main_demo.py --source video.mp4 --level fast --no-throttle
        """
    )

    parser.add_argument(
        "--source", "-s",
        required=True,
        help="Video file path or stream URL"
    )
    parser.add_argument(
        "--mode",
        choices=["object", "rectangle"],
        default="object",
        help="What to track"
    )
    parser.add_argument(
        "--level",
        choices=["fast", "accurate"],
        default=None,
        help="Tracking level (overrides VISIONTRACK_TRACKING_LEVEL)"
    )
    parser.add_argument(
        "--no-throttle",
        action="store_true",
        help="Do not pace playback to the video frame rate"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    config = ProcessorConfig.from_env()
    if args.level:
        config.tracking_level = TrackingLevel(args.level)
    if args.no_throttle:
        config.throttle = False

    mode = TrackedObjectType(args.mode)

    # Print banner
    print("\n" + "=" * 60)
    print("  VisionTrack Multi-Region Tracking")
    print("=" * 60)
    print(f"  Source: {args.source}")
    print(f"  Mode: {mode.value}")
    print(f"  Level: {config.tracking_level.value}")
    print(f"  Throttle: {'Enabled' if config.throttle else 'Disabled'}")
    print("=" * 60)
    print("\n  Press 'N' to select objects, SPACE to start tracking.\n")

    demo = VisionTrackDemo(source=args.source, mode=mode, config=config)
    demo.run()


if __name__ == "__main__":
    main()
