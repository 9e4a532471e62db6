#!/usr/bin/env python3
"""
Single Stream Runner
====================

Standalone script to exercise one stream end to end without a broker.

This script:
    1. Opens a video source (RTSP/HTTP URL, file, or device index)
    2. Toggles the active window on a fixed schedule
    3. Logs capture and detection stats every few seconds
    4. Stops the stream and reports a final summary

Detector, storage and notifier backends come from config.yaml /
SENTRY_* environment variables, exactly as in the service.

Usage:
    python scripts/run_stream.py --source 0 --duration 60
    python scripts/run_stream.py --source rtsp://cam.local/1 --window 3 --period 10
"""

import argparse
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from sentry_agent.config import settings
from sentry_agent.main import create_detector, create_image_store, create_notifier
from sentry_agent.models import StreamIdentity
from sentry_agent.stream import StreamController


logger = logging.getLogger(__name__)


def run(
    name: str,
    source: str,
    duration: int,
    window: float,
    period: float,
    report_interval: int,
) -> dict:
    """
    Run one stream for a fixed duration.

    Args:
        name: Stream name (used in storage keys and notifications)
        source: Capture URI
        duration: Run time in seconds
        window: Seconds the window stays open each period
        period: Seconds between window openings
        report_interval: Seconds between progress reports

    Returns:
        Final snapshot of the stream
    """
    logger.info("=" * 60)
    logger.info("Single Stream Run")
    logger.info("=" * 60)
    logger.info(f"Stream: {name}")
    logger.info(f"Source: {source}")
    logger.info(f"Duration: {duration} seconds")
    logger.info(f"Window: {window}s every {period}s")
    logger.info(f"Buffer limit: {settings.streams.buffer_limit}")
    logger.info("=" * 60)

    controller = StreamController(
        identity=StreamIdentity(name=name, source_uri=source),
        buffer_limit=settings.streams.buffer_limit,
        detector=create_detector(settings),
        store=create_image_store(settings),
        notifier=create_notifier(settings),
        capture_retry_delay=settings.streams.capture_retry_delay_seconds,
        poll_interval=settings.streams.poll_interval_seconds,
        max_queued_batches=settings.streams.max_queued_batches,
        target_label=settings.detector.target_label,
        min_confidence=settings.detector.min_confidence,
        attachment_name=settings.notifier.attachment_name,
    )
    controller.start()

    start_time = time.time()
    last_report_time = start_time

    try:
        while True:
            elapsed = time.time() - start_time
            if elapsed >= duration:
                logger.info(f"Run duration ({duration}s) reached")
                break

            should_be_active = (elapsed % period) < window
            if should_be_active != controller.is_active():
                if should_be_active:
                    controller.activate()
                else:
                    controller.deactivate()

            if time.time() - last_report_time >= report_interval:
                snap = controller.snapshot()
                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {elapsed:.0f}s)")
                logger.info(f"  Active: {snap['active']}")
                logger.info(f"  Frames read: {snap['source']['frames_read']}")
                logger.info(f"  Frames buffered: {snap['source']['frames_buffered']}")
                logger.info(f"  Frames dropped: {snap['source']['frames_dropped']}")
                logger.info(f"  Read failures: {snap['source']['read_failures']}")
                logger.info(f"  Batches processed: {snap['processor']['batches_processed']}")
                logger.info(f"  Detections: {snap['processor']['detections']}")
                logger.info(f"  Queued batches: {snap['buffer']['size']}")
                last_report_time = time.time()

            time.sleep(0.1)

    except KeyboardInterrupt:
        logger.info("Run interrupted by user")
    finally:
        controller.stop()

    snap = controller.snapshot()
    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {time.time() - start_time:.1f} seconds")
    logger.info(f"Frames read: {snap['source']['frames_read']}")
    logger.info(f"Batches processed: {snap['processor']['batches_processed']}")
    logger.info(f"Detections: {snap['processor']['detections']}")
    logger.info(f"Last storage key: {snap['processor']['last_storage_key']}")
    logger.info("=" * 60)
    return snap


def main():
    parser = argparse.ArgumentParser(description="Run a single SentryAgent stream")
    parser.add_argument(
        "--source",
        type=str,
        default=os.environ.get("SENTRY_SOURCE", "0"),
        help="Capture URI or device index (default: 0)",
    )
    parser.add_argument(
        "--name",
        type=str,
        default="local/camera",
        help="Stream name (default: local/camera)",
    )
    parser.add_argument("--duration", type=int, default=60, help="Run time in seconds")
    parser.add_argument("--window", type=float, default=3.0, help="Window length in seconds")
    parser.add_argument("--period", type=float, default=10.0, help="Window period in seconds")
    parser.add_argument(
        "--report-interval",
        type=int,
        default=5,
        help="Seconds between progress reports (default: 5)",
    )

    args = parser.parse_args()
    if args.window <= 0 or args.period <= args.window:
        parser.error("--period must be greater than --window, and --window positive")

    snap = run(
        name=args.name,
        source=args.source,
        duration=args.duration,
        window=args.window,
        period=args.period,
        report_interval=args.report_interval,
    )

    sys.exit(0 if snap["source"]["frames_read"] > 0 else 1)


if __name__ == "__main__":
    main()
