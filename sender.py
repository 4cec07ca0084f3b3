# sender.py
import random
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import structlog
from PySide6.QtCore import QObject, QTimer, Signal, Slot

from client import submit_request
from models import RESPONSE_OUTCOMES, RequestConfig, RequestStatus

logger = structlog.get_logger(__name__)

ACK_SUCCESS = "success"


def random_outcome(choices: Sequence[RequestStatus]) -> RequestStatus:
    return random.choice(list(choices))


class RequestTracker(QObject):
    """
    Owns the per-bank status map. Submissions run on a worker pool; their
    results come back through a queued signal so every status change happens
    on the thread that owns the tracker (the Qt event loop).
    """
    status_changed = Signal(str, str)   # bank key, status value
    progress = Signal(int, int)         # resolved, dispatched
    _submission_done = Signal(str, object)

    def __init__(self, submit: Callable[[dict], str] = submit_request,
                 choose_outcome: Callable[[Sequence[RequestStatus]], RequestStatus] = random_outcome,
                 response_delay_ms: int = 3000, concurrency: int = 4,
                 executor=None, schedule: Optional[Callable[[int, Callable[[], None]], None]] = None,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self._submit = submit
        self._choose_outcome = choose_outcome
        self.response_delay_ms = response_delay_ms
        self._executor = executor or ThreadPoolExecutor(max_workers=concurrency)
        self._schedule = schedule or self._start_timer
        self._statuses: Dict[str, RequestStatus] = {}
        self._submission_done.connect(self._on_submission_done)

    def status(self, key: str) -> Optional[RequestStatus]:
        return self._statuses.get(key)

    def statuses(self) -> Dict[str, RequestStatus]:
        return dict(self._statuses)

    def is_actionable(self, key: str) -> bool:
        return key not in self._statuses

    def counts(self) -> Counter:
        return Counter(self._statuses.values())

    def dispatch(self, key: str, config: RequestConfig) -> bool:
        if key in self._statuses:
            logger.info("dispatch_skipped", bank_id=key, status=self._statuses[key].value)
            return False

        self._set_status(key, RequestStatus.PENDING)
        payload = config.to_payload(key)
        logger.info("request_dispatched", bank_id=key, blood_group=payload["blood_group"],
                    units_needed=payload["units_needed"], urgency=payload["urgency"])
        try:
            future = self._executor.submit(self._submit, payload)
        except RuntimeError as e:
            # pool already shut down
            logger.warning("request_failed", bank_id=key, error=str(e))
            self._set_status(key, RequestStatus.FAILED)
            return True
        future.add_done_callback(lambda f, key=key: self._submission_done.emit(key, f))
        return True

    def dispatch_all(self, keys: Iterable[str], config: RequestConfig) -> List[str]:
        dispatched = []
        for key in keys:
            if key in self._statuses:
                continue
            if self.dispatch(key, config):
                dispatched.append(key)
        logger.info("dispatch_all", dispatched=len(dispatched))
        return dispatched

    def shutdown(self):
        # in-flight submissions are left to finish; their results are dropped
        self._executor.shutdown(wait=False)

    @Slot(str, object)
    def _on_submission_done(self, key: str, future: Future):
        try:
            ack = future.result()
        except Exception as e:
            logger.warning("request_failed", bank_id=key, error=str(e))
            self._set_status(key, RequestStatus.FAILED)
            return

        if ack != ACK_SUCCESS:
            logger.warning("request_rejected", bank_id=key, ack=ack)
            self._set_status(key, RequestStatus.FAILED)
            return

        self._set_status(key, RequestStatus.SENT)
        self._schedule(self.response_delay_ms, lambda key=key: self._resolve(key))

    def _resolve(self, key: str):
        if self._statuses.get(key) is not RequestStatus.SENT:
            return
        outcome = RequestStatus(self._choose_outcome(RESPONSE_OUTCOMES))
        if outcome not in RESPONSE_OUTCOMES:
            raise ValueError(f"Not a bank reply: {outcome.value}")
        logger.info("bank_replied", bank_id=key, outcome=outcome.value)
        self._set_status(key, outcome)

    def _set_status(self, key: str, status: RequestStatus):
        self._statuses[key] = status
        self.status_changed.emit(key, status.value)
        counts = self.counts()
        unresolved = counts[RequestStatus.PENDING] + counts[RequestStatus.SENT]
        self.progress.emit(len(self._statuses) - unresolved, len(self._statuses))

    def _start_timer(self, delay_ms: int, callback: Callable[[], None]):
        # parented to the tracker so teardown drops it silently
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.timeout.connect(callback)
        timer.timeout.connect(timer.deleteLater)
        timer.start(delay_ms)
