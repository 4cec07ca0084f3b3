"""
Shared test fixtures.
"""

import os
from concurrent.futures import Future

import pytest

from models import RequestConfig

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


class ImmediateExecutor:
    """Runs submissions inline so results arrive before dispatch() returns."""

    def __init__(self):
        self.submitted = []

    def submit(self, fn, *args, **kwargs):
        self.submitted.append(args)
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True):
        pass


class ManualScheduler:
    """Collects delayed callbacks; tests fire them explicitly."""

    def __init__(self):
        self.calls = []

    def __call__(self, delay_ms, callback):
        self.calls.append((delay_ms, callback))

    def fire_all(self):
        calls, self.calls = self.calls, []
        for _delay, callback in calls:
            callback()


@pytest.fixture(scope="session")
def qapp():
    from PySide6.QtWidgets import QApplication

    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app


@pytest.fixture
def executor():
    return ImmediateExecutor()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def config():
    return RequestConfig(blood_group="O-", products=["Whole Blood"], units_needed=2, urgency="Critical")


@pytest.fixture
def fallback_csv(tmp_path):
    path = tmp_path / "bloodbanks_data.csv"
    path.write_text(
        "id,name,phone,city,latitude,longitude,distance,blood_types_available\n"
        "BB001,City Blood Bank,080-111,Bangalore,12.95,77.57,2.1,\"A+,O-\"\n"
        "BB002,Lions Blood Bank,080-222,Bangalore,12.98,77.59,1.5,\"B+\"\n",
        encoding="utf-8",
    )
    return path
