from unittest.mock import MagicMock

import pytest

from rtp_transcriber.backend.application.result_router import ResultRouter
from rtp_transcriber.backend.application.session_manager import (
    RESTART_REASON_ERROR,
    RESTART_REASON_EXPIRY,
    SessionManager,
    SessionManagerHooks,
)
from rtp_transcriber.backend.application.types import ManagerState
from rtp_transcriber.backend.component.continuity_buffer import ContinuityBuffer
from rtp_transcriber.backend.provider.base import Alternative, RecognitionResult
from rtp_transcriber.backend.transport.rtp_receiver import Frame
from rtp_transcriber.errors import (
    SessionFatalError,
    SessionOpenError,
    SessionTransientError,
)

MAX_MS = 25000


def _frame(seq: int) -> Frame:
    return Frame(payload=seq.to_bytes(2, "big"), sequence=seq)


def _final(end_ms: int, text: str = "hello") -> RecognitionResult:
    return RecognitionResult(
        end_time_ms=end_ms, is_final=True, alternatives=(Alternative(text, 0.9),)
    )


def _build(provider, timers, hooks=None):
    router = ResultRouter(MAX_MS)
    buffer = ContinuityBuffer(MAX_MS)
    manager = SessionManager(
        provider,
        buffer,
        router,
        MAX_MS,
        hooks=hooks,
        timer_factory=timers,
    )
    return manager, router, buffer


def test_start_opens_session_and_arms_timer(fake_provider, fake_timers):
    """Test start opens session and arms timer."""
    manager, _, _ = _build(fake_provider, fake_timers)
    epoch = manager.start()

    assert epoch.index == 0
    assert manager.state == ManagerState.STREAMING
    assert len(fake_provider.sessions) == 1
    assert fake_timers.last.started
    assert fake_timers.last.interval == pytest.approx(25.0)


def test_start_twice_is_rejected(fake_provider, fake_timers):
    """Test start twice is rejected."""
    manager, _, _ = _build(fake_provider, fake_timers)
    manager.start()
    with pytest.raises(RuntimeError):
        manager.start()


def test_frames_forwarded_only_while_streaming(fake_provider, fake_timers):
    """Test frames forwarded only while streaming."""
    dropped = []
    hooks = SessionManagerHooks(on_frame_dropped=dropped.append)
    manager, _, buffer = _build(fake_provider, fake_timers, hooks)

    manager.on_frame(_frame(0))
    assert dropped == [_frame(0)]

    manager.start()
    manager.on_frame(_frame(1))
    manager.on_frame(_frame(2))
    assert fake_provider.current.writes == [_frame(1).payload, _frame(2).payload]
    assert [f.sequence for f in buffer.current_frames()] == [1, 2]


def test_expiry_restart_replays_tail_before_live_frames(fake_provider, fake_timers):
    """Test expiry restart replays tail before live frames."""
    manager, _, _ = _build(fake_provider, fake_timers)
    manager.start()
    first = fake_provider.current
    for seq in range(100):
        manager.on_frame(_frame(seq))
    first.emit_result(_final(24000))

    fake_timers.last.fire()
    manager.on_frame(_frame(100))

    assert first.detached
    assert first.closed
    assert fake_timers.timers[0].cancelled
    second = fake_provider.current
    assert second is not first
    assert second.writes == [_frame(seq).payload for seq in (96, 97, 98, 99, 100)]
    assert manager.epoch.index == 1
    assert manager.epoch.bridging_offset_ms == 1000
    assert manager.state == ManagerState.STREAMING
    assert fake_timers.last.started


def test_replayed_frames_are_not_buffered_again(fake_provider, fake_timers):
    """Test replayed frames are not buffered again."""
    manager, _, buffer = _build(fake_provider, fake_timers)
    manager.start()
    for seq in range(4):
        manager.on_frame(_frame(seq))
    fake_timers.last.fire()
    manager.on_frame(_frame(4))

    assert [f.sequence for f in buffer.current_frames()] == [4]
    assert [f.sequence for f in buffer.previous_frames()] == [0, 1, 2, 3]


def test_restart_hooks_report_reason_and_plan(fake_provider, fake_timers):
    """Test restart hooks report reason and plan."""
    hooks = SessionManagerHooks(on_restart=MagicMock(), on_session_opened=MagicMock())
    manager, _, _ = _build(fake_provider, fake_timers, hooks)
    manager.start()
    for seq in range(10):
        manager.on_frame(_frame(seq))
    fake_timers.last.fire()

    hooks.on_restart.assert_called_once()
    reason, plan = hooks.on_restart.call_args.args
    assert reason == RESTART_REASON_EXPIRY
    assert len(plan.replay) == 10
    assert [c.args[0].index for c in hooks.on_session_opened.call_args_list] == [0, 1]


def test_transient_error_triggers_restart(fake_provider, fake_timers):
    """Test transient error triggers restart."""
    hooks = SessionManagerHooks(on_restart=MagicMock())
    manager, _, _ = _build(fake_provider, fake_timers, hooks)
    manager.start()

    fake_provider.current.emit_error(SessionTransientError("OUT_OF_RANGE"))

    assert len(fake_provider.sessions) == 2
    assert manager.epoch.index == 1
    assert hooks.on_restart.call_args.args[0] == RESTART_REASON_ERROR


def test_timer_and_error_race_restarts_once(fake_provider, fake_timers):
    """Test timer and error race restarts once."""
    manager, _, _ = _build(fake_provider, fake_timers)
    manager.start()
    first = fake_provider.current
    expiry = fake_timers.last
    callbacks = first.installed_callbacks

    callbacks.on_error(SessionTransientError("OUT_OF_RANGE"))
    expiry.fire()

    assert len(fake_provider.sessions) == 2
    assert manager.epoch.index == 1
    assert fake_provider.max_open == 1


def test_stale_restart_request_is_ignored(fake_provider, fake_timers):
    """Test stale restart request is ignored."""
    manager, _, _ = _build(fake_provider, fake_timers)
    manager.start()
    assert manager.request_restart(0, RESTART_REASON_EXPIRY)
    assert not manager.request_restart(0, RESTART_REASON_EXPIRY)
    assert len(fake_provider.sessions) == 2


def test_results_from_detached_session_are_ignored(fake_provider, fake_timers):
    """Test results from detached session are ignored."""
    manager, router, _ = _build(fake_provider, fake_timers)
    transcripts = []
    router.subscribe_transcripts(transcripts.append)
    manager.start()
    old_callbacks = fake_provider.current.installed_callbacks
    fake_timers.last.fire()

    old_callbacks.on_result(_final(1000, "late"))
    old_callbacks.on_error(SessionFatalError("PERMISSION_DENIED"))

    assert transcripts == []
    assert manager.state == ManagerState.STREAMING


def test_corrected_time_after_restart(fake_provider, fake_timers):
    """Test corrected time after restart."""
    manager, router, _ = _build(fake_provider, fake_timers)
    transcripts = []
    router.subscribe_transcripts(transcripts.append)
    manager.start()
    for seq in range(100):
        manager.on_frame(_frame(seq))
    fake_provider.current.emit_result(_final(24000, "first"))
    fake_timers.last.fire()
    fake_provider.current.emit_result(_final(2000, "second"))

    assert [(t.text, t.corrected_ms) for t in transcripts] == [
        ("first", 24000),
        ("second", 26000),
    ]


def test_fatal_error_closes_without_further_restarts(fake_provider, fake_timers):
    """Test fatal error closes without further restarts."""
    closed = MagicMock()
    hooks = SessionManagerHooks(on_closed=closed)
    manager, _, buffer = _build(fake_provider, fake_timers, hooks)
    manager.start()
    session = fake_provider.current
    manager.on_frame(_frame(0))

    error = SessionFatalError("PERMISSION_DENIED")
    session.emit_error(error)
    fake_timers.last.fire()
    manager.on_frame(_frame(1))

    assert manager.state == ManagerState.CLOSED
    assert manager.close_error is error
    assert session.closed
    assert len(fake_provider.sessions) == 1
    assert buffer.previous_frames() == ()
    closed.assert_called_once_with(error)


def test_start_open_failure_closes_and_raises(fake_provider, fake_timers):
    """Test start open failure closes and raises."""
    closed = MagicMock()
    manager, _, _ = _build(
        fake_provider, fake_timers, SessionManagerHooks(on_closed=closed)
    )
    fake_provider.fail_on_open.add(0)

    with pytest.raises(SessionOpenError):
        manager.start()

    assert manager.state == ManagerState.CLOSED
    assert isinstance(closed.call_args.args[0], SessionOpenError)
    assert fake_timers.timers == []


def test_restart_open_failure_closes(fake_provider, fake_timers):
    """Test restart open failure closes."""
    closed = MagicMock()
    manager, _, _ = _build(
        fake_provider, fake_timers, SessionManagerHooks(on_closed=closed)
    )
    manager.start()
    fake_provider.fail_on_open.add(1)

    assert not manager.request_restart(0, RESTART_REASON_EXPIRY)
    assert manager.state == ManagerState.CLOSED
    assert fake_provider.sessions[0].closed
    assert isinstance(closed.call_args.args[0], SessionOpenError)


def test_close_is_idempotent(fake_provider, fake_timers):
    """Test close is idempotent."""
    states = []
    closed = MagicMock()
    hooks = SessionManagerHooks(on_closed=closed, on_state_change=states.append)
    manager, _, _ = _build(fake_provider, fake_timers, hooks)
    manager.start()

    manager.close()
    manager.close()

    closed.assert_called_once_with(None)
    assert states[-1] == ManagerState.CLOSED
    assert states.count(ManagerState.CLOSED) == 1
    assert fake_timers.last.cancelled
    assert fake_provider.current.closed


def test_close_tolerates_session_close_failure(fake_provider, fake_timers):
    """Test close tolerates session close failure."""
    manager, _, _ = _build(fake_provider, fake_timers)
    manager.start()
    fake_provider.current.close = MagicMock(side_effect=OSError("socket gone"))

    manager.close()

    assert manager.state == ManagerState.CLOSED


def test_at_most_one_session_open_across_restarts(fake_provider, fake_timers):
    """Test at most one session open across restarts."""
    manager, _, _ = _build(fake_provider, fake_timers)
    manager.start()
    for _ in range(5):
        fake_timers.last.fire()

    assert len(fake_provider.sessions) == 6
    assert fake_provider.max_open == 1
    assert all(s.closed for s in fake_provider.sessions[:-1])


def test_corrected_times_never_decrease_across_epochs(fake_provider, fake_timers):
    """Test corrected times never decrease across epochs."""
    plans = []
    epochs = []
    hooks = SessionManagerHooks(
        on_restart=lambda _reason, plan: plans.append(plan),
        on_session_opened=epochs.append,
    )
    manager, router, _ = _build(fake_provider, fake_timers, hooks)
    transcripts = []
    router.subscribe_transcripts(transcripts.append)
    manager.start()

    schedule = [
        (100, (5000, 15000, 24000)),
        (80, (3000, 12000, 22000)),
        (120, (6000, 18000, 23500)),
        (90, (7000, 16000)),
    ]
    seq = 0
    for frame_count, end_times in schedule:
        for _ in range(frame_count):
            manager.on_frame(_frame(seq))
            seq += 1
        for end_ms in end_times:
            fake_provider.current.emit_result(_final(end_ms))
        fake_timers.last.fire()

    corrected = [t.corrected_ms for t in transcripts]
    assert len(corrected) == 11
    assert corrected == sorted(corrected)
    assert corrected[3] == 3000 - 1000 + MAX_MS

    assert len(plans) == len(schedule)
    assert [plan.bridging_offset_ms for plan in plans[:2]] == [1000, 4062]
    for epoch, plan, (_, end_times) in zip(epochs[1:], plans, schedule):
        assert epoch.bridging_offset_ms == plan.bridging_offset_ms
        assert 0 <= plan.clamped_offset_ms <= end_times[-1]
