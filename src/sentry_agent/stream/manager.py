"""
Stream Manager
==============

Owns every StreamController, keyed by stream name, and routes control
commands to them.

Design Rules:
    - dispatch() is the only control ingress; unknown streams are logged
      and ignored, never raised
    - stop_all() stops controllers concurrently and keeps going past
      per-stream failures, so one stuck stream cannot hold up the others
    - No state is shared between streams
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Union

from sentry_agent.egress.notifier import Notifier
from sentry_agent.egress.storage import ImageStore
from sentry_agent.models.detection import StreamIdentity
from sentry_agent.models.input import ControlAction
from sentry_agent.perception.engine import Detector
from sentry_agent.stream.capture import CaptureFactory, VideoSource
from sentry_agent.stream.controller import StreamController


logger = logging.getLogger(__name__)


class StreamManager:
    """
    Collection of stream controllers addressed by stream name.

    Example:
        manager = StreamManager.from_settings(settings, detector, store, notifier)
        manager.start_all()

        manager.dispatch("garage/motionDetector", ControlAction.ACTIVATE)

        failures = manager.stop_all()
    """

    def __init__(self, controllers: Iterable[StreamController] = ()) -> None:
        self._controllers: Dict[str, StreamController] = {}
        for controller in controllers:
            self.add(controller)

    @classmethod
    def from_settings(
        cls,
        settings,
        detector: Detector,
        store: ImageStore,
        notifier: Notifier,
        capture_factory: CaptureFactory = VideoSource,
    ) -> "StreamManager":
        """
        Build one controller per configured stream.

        Args:
            settings: Loaded Settings (streams, detector, notifier sections)
            detector: Shared detector
            store: Shared image store
            notifier: Shared notifier
            capture_factory: Builds capture handles
        """
        streams = settings.streams
        controllers = [
            StreamController(
                identity=StreamIdentity(name=name, source_uri=uri),
                buffer_limit=streams.buffer_limit,
                detector=detector,
                store=store,
                notifier=notifier,
                capture_factory=capture_factory,
                capture_retry_delay=streams.capture_retry_delay_seconds,
                poll_interval=streams.poll_interval_seconds,
                max_queued_batches=streams.max_queued_batches,
                target_label=settings.detector.target_label,
                min_confidence=settings.detector.min_confidence,
                attachment_name=settings.notifier.attachment_name,
            )
            for name, uri in streams.sources.items()
        ]
        if not controllers:
            logger.warning("No streams configured")
        return cls(controllers)

    @property
    def names(self) -> List[str]:
        return list(self._controllers)

    def __len__(self) -> int:
        return len(self._controllers)

    def __contains__(self, name: str) -> bool:
        return name in self._controllers

    def get(self, name: str) -> Optional[StreamController]:
        return self._controllers.get(name)

    def add(self, controller: StreamController) -> None:
        """Register a controller; names must be unique."""
        if controller.name in self._controllers:
            raise ValueError(f"Duplicate stream name: {controller.name}")
        self._controllers[controller.name] = controller

    def start_all(self) -> None:
        """Start every controller that has not been started yet."""
        for controller in self._controllers.values():
            try:
                controller.start()
            except Exception as e:
                logger.error(f"[{controller.name}] Failed to start: {e}")

    def dispatch(self, name: str, action: Union[ControlAction, str]) -> bool:
        """
        Forward a control action to the named stream.

        Args:
            name: Stream name
            action: ControlAction or its string value

        Returns:
            True if the action reached a controller, False if the stream
            or action was unknown (logged and ignored).
        """
        controller = self._controllers.get(name)
        if controller is None:
            logger.warning(f"Control command for unknown stream '{name}' ignored")
            return False

        try:
            action = ControlAction(action)
        except ValueError:
            logger.warning(f"[{name}] Unknown control action '{action}' ignored")
            return False

        if action is ControlAction.ACTIVATE:
            return controller.activate()
        return controller.deactivate()

    def stop_all(self) -> Dict[str, BaseException]:
        """
        Stop every controller.

        Returns:
            Per-stream exceptions raised while stopping (empty on success).
        """
        if not self._controllers:
            return {}

        failures: Dict[str, BaseException] = {}
        with ThreadPoolExecutor(
            max_workers=len(self._controllers),
            thread_name_prefix="stop",
        ) as pool:
            futures = {
                name: pool.submit(controller.stop)
                for name, controller in self._controllers.items()
            }
            for name, future in futures.items():
                try:
                    future.result()
                except Exception as e:
                    failures[name] = e
                    logger.error(f"[{name}] Failed to stop: {e}")

        logger.info(
            f"Stopped {len(self._controllers) - len(failures)}/{len(self._controllers)} streams"
        )
        return failures

    def snapshot(self) -> List[dict]:
        """Per-stream state and metrics."""
        return [controller.snapshot() for controller in self._controllers.values()]
