from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from shot_coach.analysis.trajectory import TrajectoryEstimator
from shot_coach.config.settings import PipelineConfig, SessionConfig, ShotCoachConfig
from shot_coach.errors import SessionStartError
from shot_coach.pipeline import TrainingSession
from shot_coach.session.models import AnalysisResult, ConnectionState, SessionCredential, ShotOutcome

from helpers import SHOT_ARC, make_frame

CONFIG = ShotCoachConfig(
    session=SessionConfig(api_key="test-key"),
    pipeline=PipelineConfig(detection_queue_size=64),
)


class TriggerOnIndex(TrajectoryEstimator):
    """Reports a shot arc for the listed frame indices only."""

    def __init__(self, *indices):
        self.indices = set(indices)

    def observe(self, frame):
        return [SHOT_ARC] if frame.index in self.indices else []

    def reset(self):
        pass


class FakeController:
    on_state_change = None

    def __init__(self, outcome=ShotOutcome.MAKE, tip="Nice arc"):
        self.outcome = outcome
        self.tip = tip
        self.gate = None
        self.started = False
        self.disconnected = False
        self.calls = []

    async def start(self, credential=None):
        self.started = True
        self.on_state_change(ConnectionState.READY, True)

    async def analyze(self, frame, last_tip=""):
        self.calls.append((frame, last_tip))
        if self.gate is not None:
            await self.gate.wait()
        return AnalysisResult(outcome=self.outcome, tip=self.tip, source="live")

    async def disconnect(self):
        self.disconnected = True
        self.on_state_change(ConnectionState.DISCONNECTED, False)


def _session(estimator, controller, **kwargs):
    return TrainingSession(CONFIG, estimator=estimator, controller=controller, **kwargs)


def test_shot_flows_through_to_display():
    displays = []
    connectivity = []

    async def scenario():
        controller = FakeController()
        session = _session(
            TriggerOnIndex(9), controller,
            on_display=displays.append, on_connectivity=connectivity.append,
        )
        await session.start()
        for i in range(10):
            session.push_frame(make_frame(timestamp=i / 30.0, index=i))
        await session.wait_idle()
        stats = session.stats
        await session.end()
        return controller, stats

    controller, stats = asyncio.run(scenario())

    assert len(controller.calls) == 1
    frame, last_tip = controller.calls[0]
    # Release frame of the 10-frame window.
    assert frame.index == 5
    assert last_tip == ""
    assert len(displays) == 1
    assert displays[0].outcome is ShotOutcome.MAKE
    assert displays[0].tip == "Nice arc"
    assert (stats.makes, stats.total_shots) == (1, 1)
    assert connectivity == [True, False]
    assert controller.disconnected


def test_shots_during_analysis_are_ignored():
    async def scenario():
        controller = FakeController()
        controller.gate = asyncio.Event()
        session = _session(TriggerOnIndex(0, 1), controller)
        await session.start()
        # Far enough apart to clear the detector cooldown.
        session.push_frame(make_frame(timestamp=0.0, index=0))
        session.push_frame(make_frame(timestamp=5.0, index=1))
        await asyncio.sleep(0)
        await session._queue.join()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + 1.0
        while not controller.calls and loop.time() < deadline:
            await asyncio.sleep(0.005)
        calls_while_busy = len(controller.calls)
        assert session.is_analyzing
        controller.gate.set()
        await session.wait_idle()
        stats = session.stats
        await session.end()
        return calls_while_busy, stats

    calls_while_busy, stats = asyncio.run(scenario())
    assert calls_while_busy == 1
    assert stats.total_shots == 1


def test_ending_session_discards_late_result():
    displays = []

    async def scenario():
        controller = FakeController()
        controller.gate = asyncio.Event()
        session = _session(TriggerOnIndex(0), controller, on_display=displays.append)
        await session.start()
        session.push_frame(make_frame(index=0))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + 1.0
        while not controller.calls and loop.time() < deadline:
            await asyncio.sleep(0.005)

        late_task = session._analysis_task
        await session.end()
        controller.gate.set()
        await asyncio.gather(late_task)
        return session

    session = asyncio.run(scenario())
    assert displays == []
    assert session.stats.total_shots == 0
    assert not session.active


def test_last_tip_is_passed_to_next_analysis():
    async def scenario():
        controller = FakeController(outcome=ShotOutcome.MISS, tip="Bend your knees")
        session = _session(TriggerOnIndex(0, 1), controller)
        await session.start()
        session.push_frame(make_frame(timestamp=0.0, index=0))
        await session.wait_idle()
        session.push_frame(make_frame(timestamp=5.0, index=1))
        await session.wait_idle()
        await session.end()
        return controller

    controller = asyncio.run(scenario())
    assert [tip for _, tip in controller.calls] == ["", "Bend your knees"]


def test_start_without_credential_or_key_fails():
    async def scenario():
        session = TrainingSession(ShotCoachConfig(), estimator=TriggerOnIndex(), controller=FakeController())
        await session.start()

    with pytest.raises(SessionStartError):
        asyncio.run(scenario())


def test_push_frame_outside_session_is_ignored():
    async def scenario():
        session = _session(TriggerOnIndex(), FakeController())
        session.push_frame(make_frame())
        assert len(session.buffer) == 0
        await session.start()
        session.push_frame(make_frame())
        assert len(session.buffer) == 1
        await session.end()
        await session.end()
        assert len(session.buffer) == 0

    asyncio.run(scenario())


class StaticCredentialService:
    configured = True

    def __init__(self, credential):
        self.credential = credential

    def fetch(self):
        return self.credential


def test_start_with_expired_credential_and_no_key_fails():
    now = datetime.now(timezone.utc)
    expired = SessionCredential(
        token="eph-token",
        expires_at=now + timedelta(minutes=30),
        session_start_deadline=now - timedelta(seconds=1),
    )
    controller = FakeController()

    async def scenario():
        session = TrainingSession(
            ShotCoachConfig(),
            estimator=TriggerOnIndex(),
            controller=controller,
            credential_service=StaticCredentialService(expired),
        )
        try:
            await session.start()
        finally:
            assert not session.active

    with pytest.raises(SessionStartError):
        asyncio.run(scenario())
    assert not controller.started


def test_failed_frame_selection_clears_analysis_flag():
    displays = []

    async def failing_select(event, frame, executor=None):
        raise RuntimeError("cannot schedule new futures after shutdown")

    async def scenario():
        controller = FakeController()
        session = _session(TriggerOnIndex(0), controller, on_display=displays.append)
        session.selector.select_async = failing_select
        await session.start()
        session.push_frame(make_frame(index=0))
        await session.wait_idle()
        task = session._analysis_task
        analyzing = session.is_analyzing
        await session.end()
        return task, analyzing, controller

    task, analyzing, controller = asyncio.run(scenario())
    assert task.done()
    assert task.exception() is None
    assert not analyzing
    assert controller.calls == []
    assert displays == []
