"""
Batch Processor Tests
=====================

Tests for candidate selection, best-candidate choice and the
store-then-notify egress of the consumer loop.
"""

import threading

import pytest

from sentry_agent.stream.buffer import WindowBuffer
from sentry_agent.stream.processor import BatchProcessor, select_candidate_positions

from conftest import (
    FIXED_NOW,
    FakeDetector,
    FakeNotifier,
    FakeStore,
    label_encoder,
    wait_for,
)


def make_processor(detector, store, notifier, buffer=None, stop_event=None, **kwargs):
    return BatchProcessor(
        name="garage/motionDetector",
        buffer=buffer if buffer is not None else WindowBuffer(),
        detector=detector,
        store=store,
        notifier=notifier,
        stop_event=stop_event or threading.Event(),
        encoder=label_encoder,
        clock=lambda: FIXED_NOW,
        **kwargs,
    )


class TestCandidatePositions:
    """Tests for select_candidate_positions."""

    @pytest.mark.parametrize(
        "length, expected",
        [
            (0, []),
            (1, [0]),
            (2, [1]),
            (3, [1, 2]),
            (4, [1, 2, 3]),
            (6, [1, 2, 3]),
            (10, [1, 2, 3, 5]),
            (50, [1, 2, 3, 25]),
        ],
    )
    def test_positions(self, length, expected):
        assert select_candidate_positions(length) == expected

    def test_positions_unique_and_in_bounds(self):
        for length in range(0, 60):
            positions = select_candidate_positions(length)
            assert len(positions) == len(set(positions))
            assert all(0 <= p < length for p in positions)
            assert positions == sorted(positions)


class TestBatchEvaluation:
    """Tests for BatchProcessor.process_batch."""

    def test_best_candidate_is_stored_then_notified(self, make_batch, store, notifier):
        detector = FakeDetector({"cam_1": 80.0, "cam_2": 60.0})
        processor = make_processor(detector, store, notifier, min_confidence=50.0)
        batch = make_batch(4)

        best = processor.process_batch(batch)

        assert best is not None
        assert best.position_index == 1
        assert best.confidence == 80.0
        assert detector.calls == ["cam_1", "cam_2", "cam_3"]
        assert store.keys == ["garage_motionDetector/2024-05-01_12:00:00_80_1"]
        assert store.puts[0][1] == b"cam_1"

        assert len(notifier.sent) == 1
        sent = notifier.sent[0]
        assert sent["subject"] == "garage/motionDetector"
        assert sent["storage_key"] == store.keys[0]
        assert sent["attachment"] == b"cam_1"
        assert sent["attachment_name"] == "person.jpg"
        assert "Database name : garage_motionDetector/2024-05-01_12:00:00_80_1" in sent["body"]

    def test_frames_released_after_processing(self, make_batch, store, notifier):
        processor = make_processor(FakeDetector(default=90.0), store, notifier)
        batch = make_batch(5)

        processor.process_batch(batch)

        assert batch.released
        assert all(frame.released for frame in batch)
        assert processor.metrics.frames_released == 5
        assert processor.metrics.batches_processed == 1

    def test_no_person_no_egress(self, make_batch, store, notifier):
        processor = make_processor(FakeDetector(), store, notifier)
        batch = make_batch(10)

        assert processor.process_batch(batch) is None
        assert store.puts == []
        assert notifier.sent == []
        assert batch.released

    def test_below_threshold_is_not_a_match(self, make_batch, store, notifier):
        detector = FakeDetector({"cam_1": 74.9, "cam_2": 75.0})
        processor = make_processor(detector, store, notifier)

        best = processor.process_batch(make_batch(4))

        assert best.position_index == 2
        assert best.confidence == 75.0

    def test_ties_keep_earliest_candidate(self, make_batch, store, notifier):
        detector = FakeDetector({"cam_1": 88.0, "cam_3": 88.0, "cam_5": 88.0})
        processor = make_processor(detector, store, notifier)

        best = processor.process_batch(make_batch(10))

        assert best.position_index == 1

    def test_middle_candidate_can_win(self, make_batch, store, notifier):
        detector = FakeDetector({"cam_1": 80.0, "cam_25": 97.5})
        processor = make_processor(detector, store, notifier)

        best = processor.process_batch(make_batch(50))

        assert best.position_index == 25
        assert store.keys == ["garage_motionDetector/2024-05-01_12:00:00_97.5_25"]

    def test_single_frame_batch(self, make_batch, store, notifier):
        processor = make_processor(FakeDetector({"cam_0": 90.0}), store, notifier)

        best = processor.process_batch(make_batch(1))

        assert best.position_index == 0

    def test_empty_batch(self, make_batch, store, notifier):
        detector = FakeDetector(default=90.0)
        processor = make_processor(detector, store, notifier)

        assert processor.process_batch(make_batch(0)) is None
        assert detector.calls == []
        assert processor.metrics.batches_processed == 1


class TestEgressFailures:
    """Detector, store and notify failures drop the detection, not the loop."""

    def test_detector_failure_drops_batch(self, make_batch, store, notifier):
        detector = FakeDetector({"cam_1": 95.0}, fail_on=("cam_2",))
        processor = make_processor(detector, store, notifier)
        batch = make_batch(4)

        assert processor.process_batch(batch) is None
        assert store.puts == []
        assert notifier.sent == []
        assert processor.metrics.detector_errors == 1
        assert batch.released

    def test_store_failure_skips_notify(self, make_batch, notifier):
        store = FakeStore(fail=True)
        processor = make_processor(FakeDetector(default=90.0), store, notifier)
        batch = make_batch(4)

        assert processor.process_batch(batch) is None
        assert notifier.sent == []
        assert processor.metrics.store_errors == 1
        assert processor.metrics.detections == 0
        assert batch.released

    def test_notify_failure_keeps_stored_image(self, make_batch, store):
        notifier = FakeNotifier(fail=True)
        processor = make_processor(FakeDetector(default=90.0), store, notifier)

        best = processor.process_batch(make_batch(4))

        assert best is not None
        assert len(store.puts) == 1
        assert processor.metrics.notify_errors == 1
        assert processor.metrics.detections == 1
        assert processor.metrics.last_storage_key == store.keys[0]


class TestProcessingLoop:
    """Tests for BatchProcessor.run."""

    def test_processes_batches_in_fifo_order(self, make_batch, store, notifier):
        buffer = WindowBuffer()
        stop_event = threading.Event()
        detector = FakeDetector({"a_1": 90.0, "b_1": 80.0})
        processor = make_processor(
            detector, store, notifier,
            buffer=buffer, stop_event=stop_event, poll_interval=0.01,
        )
        batches = [make_batch(2, "a"), make_batch(2, "b")]
        for batch in batches:
            buffer.push(batch)

        thread = threading.Thread(target=processor.run)
        thread.start()
        try:
            assert wait_for(lambda: processor.metrics.batches_processed == 2)
        finally:
            stop_event.set()
            thread.join(timeout=2.0)

        assert not thread.is_alive()
        assert detector.calls == ["a_1", "b_1"]
        assert [key.rsplit("_", 2)[1] for key in store.keys] == ["90", "80"]
        assert all(batch.released for batch in batches)

    def test_loop_survives_failing_batch(self, make_batch, store, notifier):
        buffer = WindowBuffer()
        stop_event = threading.Event()
        detector = FakeDetector({"ok_1": 90.0}, fail_on=("bad_1",))
        processor = make_processor(
            detector, store, notifier,
            buffer=buffer, stop_event=stop_event, poll_interval=0.01,
        )
        buffer.push(make_batch(2, "bad"))
        buffer.push(make_batch(2, "ok"))

        thread = threading.Thread(target=processor.run)
        thread.start()
        try:
            assert wait_for(lambda: processor.metrics.batches_processed == 2)
        finally:
            stop_event.set()
            thread.join(timeout=2.0)

        assert processor.metrics.detector_errors == 1
        assert len(store.puts) == 1
