"""
Pytest fixtures for the signaling relay tests
"""
import pytest

from matchmaking import Matchmaker


class Recorder:
    """Collects (connection_id, event, data) emissions."""

    def __init__(self):
        self.sent = []

    def __call__(self, connection_id, event, data):
        self.sent.append((connection_id, event, data))

    def to(self, connection_id):
        return [(event, data) for cid, event, data in self.sent if cid == connection_id]

    def clear(self):
        self.sent.clear()


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mm(recorder, clock):
    return Matchmaker(recorder, waiting_timeout=300.0, clock=clock)
