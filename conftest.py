"""
Shared test setup for AllCalc
The database path must be set before config is imported anywhere.
"""
import os
import tempfile

import pytest

os.environ["ALLCALC_DB_PATH"] = os.path.join(tempfile.mkdtemp(prefix="allcalc-"), "test.db")
os.environ["LLM_BASE_URL"] = ""
os.environ["LLM_MODEL"] = ""

from database import Database
from history_manager import HistoryManager
from mode_policy import CalculatorMode


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeClassifier:
    def __init__(self, mode=CalculatorMode.SCIENTIFIC):
        self.mode = mode
        self.calls = []

    def classify(self, expression):
        self.calls.append(expression)
        return self.mode


class FakeHistory:
    def __init__(self, fail=False):
        self.records = []
        self.fail = fail

    def add_calculation(self, user_id, expression, result, mode="Standard"):
        if self.fail:
            raise RuntimeError("history offline")
        self.records.append((user_id, expression, result, mode))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def history_manager(tmp_path):
    return HistoryManager(Database(str(tmp_path / "history.db")))
