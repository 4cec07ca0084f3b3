"""
Unit tests for RequestTracker dispatch and status tracking.

Run: pytest tests/test_sender.py -v
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from PySide6.QtCore import QCoreApplication, QEvent

from errors import SubmissionError
from models import RESPONSE_OUTCOMES, RequestStatus
from sender import RequestTracker, random_outcome


def _pump(qapp, seconds):
    deadline = time.monotonic() + seconds
    while time.monotonic() < deadline:
        qapp.processEvents()
        time.sleep(0.005)


def _tracker(executor, scheduler, submit=lambda payload: "success",
             choose_outcome=lambda choices: RequestStatus.AVAILABLE):
    tracker = RequestTracker(submit=submit, choose_outcome=choose_outcome,
                             executor=executor, schedule=scheduler)
    history = []
    tracker.status_changed.connect(lambda key, status: history.append((key, status)))
    return tracker, history


class TestDispatch:
    """Tests for RequestTracker.dispatch()"""

    def test_success_ack_goes_pending_then_sent(self, qapp, executor, scheduler, config):
        tracker, history = _tracker(executor, scheduler)

        assert tracker.dispatch("bank_3", config) is True

        assert history == [("bank_3", "pending"), ("bank_3", "sent")]
        assert tracker.status("bank_3") is RequestStatus.SENT
        assert len(scheduler.calls) == 1
        assert scheduler.calls[0][0] == 3000

    def test_submits_config_payload(self, qapp, executor, scheduler, config):
        submitted = []
        tracker, _ = _tracker(executor, scheduler, submit=lambda p: submitted.append(p) or "success")

        tracker.dispatch("bank_3", config)

        assert submitted[0]["bank_id"] == "bank_3"
        assert submitted[0]["message"] == "Urgent blood request: 2 units of O- (Whole Blood) - Priority: Critical"

    def test_other_ack_goes_pending_then_failed(self, qapp, executor, scheduler, config):
        tracker, history = _tracker(executor, scheduler, submit=lambda p: "error")

        tracker.dispatch("A", config)

        assert history == [("A", "pending"), ("A", "failed")]
        assert scheduler.calls == []

    def test_transport_failure_never_passes_through_sent(self, qapp, executor, scheduler, config):
        def submit(payload):
            raise SubmissionError(payload["bank_id"], "connection refused")

        tracker, history = _tracker(executor, scheduler, submit=submit)

        tracker.dispatch("A", config)

        assert history == [("A", "pending"), ("A", "failed")]
        assert tracker.status("A").is_terminal

    def test_unexpected_exception_marks_failed(self, qapp, executor, scheduler, config):
        def submit(payload):
            raise RuntimeError("boom")

        tracker, _ = _tracker(executor, scheduler, submit=submit)

        tracker.dispatch("A", config)

        assert tracker.status("A") is RequestStatus.FAILED

    def test_second_dispatch_is_a_no_op(self, qapp, executor, scheduler, config):
        tracker, history = _tracker(executor, scheduler)

        tracker.dispatch("A", config)
        assert tracker.dispatch("A", config) is False

        assert [s for _, s in history].count("pending") == 1
        assert len(executor.submitted) == 1

    def test_guard_while_pending(self, qapp, scheduler, config):
        class _NeverDone:
            def submit(self, fn, *args):
                from concurrent.futures import Future
                return Future()

        tracker, history = _tracker(_NeverDone(), scheduler)

        tracker.dispatch("A", config)

        assert tracker.status("A") is RequestStatus.PENDING
        assert not tracker.is_actionable("A")
        assert tracker.dispatch("A", config) is False
        assert history == [("A", "pending")]


class TestDelayedResolution:
    """Tests for the simulated bank reply"""

    @pytest.mark.parametrize("outcome", list(RESPONSE_OUTCOMES))
    def test_sent_resolves_to_chosen_outcome(self, qapp, executor, scheduler, config, outcome):
        tracker, history = _tracker(executor, scheduler, choose_outcome=lambda choices: outcome)
        tracker.dispatch("A", config)

        scheduler.fire_all()

        assert tracker.status("A") is outcome
        assert history[-1] == ("A", outcome.value)
        assert "pending" not in [s for _, s in history[2:]]

    def test_outcome_choices_are_bank_replies(self, qapp, executor, scheduler, config):
        seen = []

        def choose(choices):
            seen.extend(choices)
            return choices[0]

        tracker, _ = _tracker(executor, scheduler, choose_outcome=choose)
        tracker.dispatch("A", config)
        scheduler.fire_all()

        assert set(seen) == {RequestStatus.AVAILABLE, RequestStatus.UNAVAILABLE, RequestStatus.PARTIAL}

    def test_resolution_fires_once(self, qapp, executor, scheduler, config):
        tracker, history = _tracker(executor, scheduler)
        tracker.dispatch("A", config)
        callback = scheduler.calls[0][1]

        callback()
        callback()

        assert history == [("A", "pending"), ("A", "sent"), ("A", "available")]

    def test_random_outcome_stays_within_replies(self):
        for _ in range(50):
            assert random_outcome(RESPONSE_OUTCOMES) in RESPONSE_OUTCOMES


class TestDispatchAll:
    """Tests for RequestTracker.dispatch_all()"""

    def test_skips_recipients_with_entries(self, qapp, executor, scheduler, config):
        tracker, _ = _tracker(executor, scheduler)
        tracker.dispatch("A", config)
        assert tracker.status("A") is RequestStatus.SENT

        dispatched = tracker.dispatch_all(["A", "B"], config)

        assert dispatched == ["B"]
        assert [args[0]["bank_id"] for args in executor.submitted] == ["A", "B"]

    def test_repeated_calls_are_idempotent(self, qapp, executor, scheduler, config):
        tracker, _ = _tracker(executor, scheduler)

        tracker.dispatch_all(["A", "B"], config)
        assert tracker.dispatch_all(["A", "B"], config) == []

        assert len(executor.submitted) == 2

    def test_one_failure_does_not_affect_others(self, qapp, executor, scheduler, config):
        def submit(payload):
            if payload["bank_id"] == "B":
                raise SubmissionError("B", "unreachable")
            return "success"

        tracker, _ = _tracker(executor, scheduler, submit=submit)

        tracker.dispatch_all(["A", "B", "C"], config)

        assert tracker.statuses() == {
            "A": RequestStatus.SENT,
            "B": RequestStatus.FAILED,
            "C": RequestStatus.SENT,
        }

    def test_counts_and_progress(self, qapp, executor, scheduler, config):
        tracker, _ = _tracker(executor, scheduler, submit=lambda p: "success" if p["bank_id"] != "C" else "no")
        progress = []
        tracker.progress.connect(lambda resolved, total: progress.append((resolved, total)))

        tracker.dispatch_all(["A", "B", "C"], config)
        scheduler.fire_all()

        counts = tracker.counts()
        assert counts[RequestStatus.AVAILABLE] == 2
        assert counts[RequestStatus.FAILED] == 1
        assert progress[-1] == (3, 3)


class TestWorkerPool:
    """Submissions on a real thread pool report back on the Qt thread"""

    def test_status_updates_arrive_on_owner_thread(self, qapp, scheduler, config):
        main_thread = threading.get_ident()
        seen_threads = []
        pool = ThreadPoolExecutor(max_workers=2)
        tracker, history = _tracker(pool, scheduler)
        tracker.status_changed.connect(lambda key, status: seen_threads.append(threading.get_ident()))

        tracker.dispatch_all(["A", "B"], config)
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline and len(tracker.statuses()) == 2 and \
                any(s is RequestStatus.PENDING for s in tracker.statuses().values()):
            qapp.processEvents()
            time.sleep(0.01)
        pool.shutdown(wait=True)

        assert tracker.statuses() == {"A": RequestStatus.SENT, "B": RequestStatus.SENT}
        assert set(seen_threads) == {main_thread}


class TestTimerResolution:
    """The default QTimer scheduling and teardown"""

    def test_real_timer_resolves_sent(self, qapp, executor, config):
        tracker = RequestTracker(submit=lambda p: "success",
                                 choose_outcome=lambda choices: RequestStatus.PARTIAL,
                                 response_delay_ms=10, executor=executor)

        tracker.dispatch("A", config)
        assert tracker.status("A") is RequestStatus.SENT

        deadline = time.monotonic() + 5
        while time.monotonic() < deadline and tracker.status("A") is RequestStatus.SENT:
            qapp.processEvents()
            time.sleep(0.005)

        assert tracker.status("A") is RequestStatus.PARTIAL

    def test_teardown_before_delay_drops_resolution(self, qapp, executor, config):
        chosen = []
        tracker = RequestTracker(submit=lambda p: "success",
                                 choose_outcome=lambda choices: chosen.append(1) or RequestStatus.AVAILABLE,
                                 response_delay_ms=50, executor=executor)
        history = []
        tracker.status_changed.connect(lambda key, status: history.append(status))
        tracker.dispatch("A", config)

        tracker.deleteLater()
        QCoreApplication.sendPostedEvents(None, QEvent.Type.DeferredDelete)
        _pump(qapp, 0.2)

        assert history == ["pending", "sent"]
        assert chosen == []


class TestShutdown:
    """Dispatching after the worker pool is gone"""

    def test_dispatch_after_shutdown_marks_failed(self, qapp, scheduler, config):
        pool = ThreadPoolExecutor(max_workers=1)
        tracker, history = _tracker(pool, scheduler)
        tracker.shutdown()

        tracker.dispatch("A", config)

        assert history == [("A", "pending"), ("A", "failed")]
        assert tracker.status("A") is RequestStatus.FAILED
