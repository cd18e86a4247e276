"""
Tests for the work queue and the queued delegate hand-off.
"""

import threading

import numpy as np

from fakes import RecordingDelegate, ScriptedRequestHandler, make_frames, make_processor, shifted
from visiontrack import ProcessorState, QueuedDelegate, WorkQueue


def test_queued_delegate_defers_until_pump():
    target = RecordingDelegate()
    queued = QueuedDelegate(target)

    queued.display_frame_counter(1)
    queued.display_frame(None, None, [])
    queued.display_frame_counter(2)
    queued.did_finish_tracking()

    assert target.counters == []
    assert queued.pending == 4

    assert queued.pump(max_messages=1) == 1
    assert target.counters == [1]

    assert queued.pump() == 3
    assert target.counters == [1, 2]
    assert len(target.frames) == 1
    assert target.finished == 1
    assert queued.pending == 0
    assert queued.pump() == 0


def test_queued_delegate_drops_stale_frames_when_not_pumped():
    """An idle presentation side holds only the newest frames and counters."""
    target = RecordingDelegate()
    queued = QueuedDelegate(target, max_pending=2)

    for index in range(1, 51):
        queued.display_frame_counter(index)
        queued.display_frame(np.zeros((4, 4, 3), dtype=np.uint8), None, [index])
    queued.did_finish_tracking()

    assert queued.pending == 2 + 2 + 1
    assert queued.dropped == 2 * 48

    queued.pump()
    assert target.counters == [49, 50]
    assert [rects for _, _, rects in target.frames] == [[49], [50]]
    assert target.finished == 1


def test_queued_delegate_never_drops_finish():
    target = RecordingDelegate()
    queued = QueuedDelegate(target, max_pending=1)

    queued.did_finish_tracking()
    for index in range(5):
        queued.display_frame_counter(index)
    queued.did_finish_tracking()

    queued.pump()
    assert target.finished == 2
    assert target.counters == [4]


def test_work_queue_runs_jobs_in_order():
    results = []
    queue = WorkQueue("test.work")
    try:
        for i in range(5):
            queue.submit(lambda i=i: results.append((i, threading.current_thread().name)))
        queue.join()
    finally:
        queue.stop()

    assert [i for i, _ in results] == [0, 1, 2, 3, 4]
    assert all(name == "test.work" for _, name in results)


def test_work_queue_reports_errors_and_keeps_going():
    errors = []
    results = []

    def failing():
        raise RuntimeError("boom")

    with WorkQueue("test.errors", on_error=errors.append) as queue:
        queue.submit(failing)
        queue.submit(lambda: results.append("after"))
        queue.join()

    assert len(errors) == 1 and str(errors[0]) == "boom"
    assert results == ["after"]


def test_tracking_on_work_queue_with_queued_delegate():
    """Tracking runs on the worker; the caller sees calls only when pumping."""
    print("\n" + "=" * 60)
    print("TEST: Worker thread tracking with queued delegate")
    print("=" * 60)

    target = RecordingDelegate()
    queued = QueuedDelegate(target)
    handler = ScriptedRequestHandler(lambda index, request: shifted(request, dx=0.01))
    processor, _ = make_processor(make_frames(5), handler=handler, delegate=queued)
    processor.nominate([(0.1, 0.1, 0.2, 0.2)])

    summaries = []
    with WorkQueue("test.tracking") as work:
        work.submit(lambda: summaries.append(processor.perform_tracking()))
        work.join()

    assert target.counters == []
    dispatched = queued.pump()
    print(f"  Dispatched {dispatched} delegate call(s)")

    assert dispatched == 4 + 4 + 1
    assert target.counters == [1, 2, 3, 4]
    assert target.finished == 1
    assert summaries[0].state == ProcessorState.STOPPED
