"""Training session: camera frames in, coaching feedback out.

Everything that touches session state runs on one asyncio event loop. The
capture side only ever calls ``push_frame``, which never blocks; detection
and frame selection run on a small thread pool, and the network round trip
is awaited on the loop.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from .analysis.frame_selector import FrameQualitySelector
from .analysis.shot_detector import ShotEvent, TrajectoryShotDetector
from .analysis.trajectory import MotionTrajectoryEstimator, TrajectoryEstimator
from .config.settings import DEFAULT_CONFIG, ShotCoachConfig
from .core.frame import Frame
from .core.frame_buffer import FrameBuffer
from .errors import AnalysisInFlightError, SessionStartError
from .feedback.sequencer import DisplayEvent, FeedbackSequencer, SessionStats
from .feedback.tips import CoachingTips
from .session.auth import CredentialService
from .session.controller import AnalysisSessionController
from .session.models import AnalysisResult, ConnectionState

logger = logging.getLogger(__name__)


class TrainingSession:
    """End-to-end pipeline: frame buffer -> shot detector -> frame selector ->
    analysis session -> feedback sequencer.

    Args:
        config: Full configuration; ``DEFAULT_CONFIG`` when omitted.
        estimator: Trajectory estimator; the OpenCV motion estimator by default.
        controller: Analysis session controller (tests inject fakes).
        credential_service: Token service client.
        tips: Canned coaching copy; loaded from ``pipeline.tips_path`` if set.
        on_display: Called on the loop with each ``DisplayEvent``.
        on_connectivity: Called on the loop when live analysis becomes
            available or unavailable.
    """

    def __init__(
        self,
        config: ShotCoachConfig = DEFAULT_CONFIG,
        estimator: Optional[TrajectoryEstimator] = None,
        controller: Optional[Any] = None,
        credential_service: Optional[CredentialService] = None,
        tips: Optional[CoachingTips] = None,
        on_display: Optional[Callable[[DisplayEvent], None]] = None,
        on_connectivity: Optional[Callable[[bool], None]] = None,
    ):
        self.config = config
        self.on_display = on_display
        self.on_connectivity = on_connectivity

        self.buffer = FrameBuffer(config.buffer.capacity)
        self.estimator = estimator or MotionTrajectoryEstimator(
            config.motion, min_points=config.detector.min_points
        )
        self.detector = TrajectoryShotDetector(self.estimator, self.buffer, config.detector)
        self.selector = FrameQualitySelector(config.selector)
        self.credential_service = credential_service or CredentialService(config.token_service)

        if tips is None:
            tips = CoachingTips.from_json(config.pipeline.tips_path) if config.pipeline.tips_path else CoachingTips()
        self.sequencer = FeedbackSequencer(tips)

        if controller is None:
            controller = AnalysisSessionController(
                config.session,
                credential_provider=self.credential_service.fetch,
            )
        if getattr(controller, "on_state_change", None) is None:
            controller.on_state_change = self._handle_state_change
        self.controller = controller

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional["asyncio.Queue[Frame]"] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._detection_task: Optional[asyncio.Task] = None
        self._analysis_task: Optional[asyncio.Task] = None
        self._generation = 0
        self._active = False
        self._is_analyzing = False
        self._live = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return self._active

    @property
    def is_analyzing(self) -> bool:
        return self._is_analyzing

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def stats(self) -> SessionStats:
        return self.sequencer.stats

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Begin a session.

        Raises:
            SessionStartError: if neither a credential that can still start a
                session nor an API key is available.
        """
        if self._active:
            logger.debug("Session already active")
            return

        self._loop = asyncio.get_running_loop()

        credential = None
        if self.credential_service.configured:
            credential = await asyncio.to_thread(self.credential_service.fetch)
        if credential is not None and not credential.can_start_session():
            logger.warning("Discarding %r: past its session start deadline", credential)
            credential = None
        if credential is None and not self.config.session.has_api_key:
            raise SessionStartError("No session credential could be obtained and no API key is configured")

        self._generation += 1
        self.sequencer.begin()
        self.buffer.clear()
        self.detector.reset()
        self._is_analyzing = False
        self._queue = asyncio.Queue(maxsize=max(1, self.config.pipeline.detection_queue_size))
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self.config.pipeline.worker_threads),
            thread_name_prefix="shot-coach",
        )
        self._active = True

        await self.controller.start(credential)
        self._detection_task = asyncio.create_task(self._detection_loop(self._generation))
        logger.info("Training session %d started", self._generation)

    async def end(self) -> None:
        """Stop the session; results still in flight are discarded."""
        if not self._active:
            return
        self._active = False
        self._generation += 1
        self.sequencer.close()

        await self.controller.disconnect()

        task, self._detection_task = self._detection_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        self._is_analyzing = False
        self.buffer.clear()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

        stats = self.sequencer.stats
        logger.info(
            "Training session ended: %d/%d makes (%.0f%%)",
            stats.makes, stats.total_shots, stats.accuracy,
        )

    async def wait_idle(self) -> None:
        """Wait until queued frames are processed and no analysis is running."""
        # Let frames handed over with call_soon_threadsafe reach the queue.
        await asyncio.sleep(0)
        if self._queue is not None and self._active:
            await self._queue.join()
        task = self._analysis_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Frame ingestion (any thread)
    # ------------------------------------------------------------------

    def push_frame(self, frame: Frame) -> None:
        """Hand a captured frame to the pipeline; never blocks or raises."""
        if not self._active or self._loop is None:
            return
        self.buffer.push(frame)
        try:
            self._loop.call_soon_threadsafe(self._enqueue, frame, self._generation)
        except RuntimeError:
            logger.debug("Event loop closed; frame %s dropped", frame.index)

    def _enqueue(self, frame: Frame, generation: int) -> None:
        if generation != self._generation or self._queue is None:
            return
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.debug("Detection queue full; frame %s only buffered", frame.index)

    # ------------------------------------------------------------------
    # Detection and analysis (loop)
    # ------------------------------------------------------------------

    async def _detection_loop(self, generation: int) -> None:
        queue = self._queue
        loop = asyncio.get_running_loop()
        while True:
            frame = await queue.get()
            try:
                event = await loop.run_in_executor(self._executor, self.detector.observe, frame)
                if event is not None and generation == self._generation:
                    self._on_shot(event, frame, generation)
            finally:
                queue.task_done()

    def _on_shot(self, event: ShotEvent, frame: Frame, generation: int) -> None:
        if self._is_analyzing:
            logger.info("Shot at t=%.2fs ignored: analysis in flight", event.timestamp)
            return
        self._is_analyzing = True
        self._analysis_task = asyncio.create_task(self._analyze_shot(event, frame, generation))

    async def _analyze_shot(self, event: ShotEvent, frame: Frame, generation: int) -> None:
        try:
            frames = await self.selector.select_async(event, frame, self._executor)
            if not frames:
                logger.warning("No frame selected for shot at t=%.2fs", event.timestamp)
                return
            result = await self.controller.analyze(frames[0], self.sequencer.stats.last_tip)
        except AnalysisInFlightError as e:
            logger.warning("Shot skipped: %s", e)
            return
        except Exception:
            logger.exception("Analysis of shot at t=%.2fs failed", event.timestamp)
            return
        finally:
            if generation == self._generation:
                self._is_analyzing = False

        self._apply_result(result, generation)

    def _apply_result(self, result: AnalysisResult, generation: int) -> None:
        if generation != self._generation or not self.sequencer.active:
            logger.info("Discarding late result %s from an ended session", result.request_id)
            return
        display = self.sequencer.on_result(result)
        if display is None:
            return
        logger.info(
            "Shot %d: %s (%s) - %s",
            display.total_shots, display.outcome.value, result.source, display.tip,
        )
        if self.on_display is not None:
            try:
                self.on_display(display)
            except Exception:
                logger.exception("Display callback failed")

    def _handle_state_change(self, state: ConnectionState, is_live: bool) -> None:
        if is_live == self._live:
            return
        self._live = is_live
        if self.on_connectivity is not None:
            try:
                self.on_connectivity(is_live)
            except Exception:
                logger.exception("Connectivity callback failed")
