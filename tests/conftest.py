"""
Shared fixtures for the reconciliation engine tests.
"""

import os

os.environ.setdefault("ENV", "test")

from datetime import datetime, timedelta, timezone

import pytest

from reconcile.config import TestConfig
from reconcile.persistence import MemorySink
from reconcile.session import ReconciliationSession


class FixedClock:
    """Deterministic clock; advance() moves it forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 7, 5, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def sample_batch():
    """One day's ledger (left) and bank statement (right) rows."""
    return {
        "name": "july-week-1.xlsx",
        "left": [
            {"id": "L1", "date": "2024-06-15", "description": "Office supplies", "amount": "100.00", "reference": "INV-100"},
            {"id": "L2", "date": "2024-07-01", "description": "Consulting fee", "amount": "500.00", "reference": "INV-200"},
            {"id": "L3", "date": "2024-07-02", "description": "Software licence", "amount": "42.00", "reference": "INV-300"},
        ],
        "right": [
            {"id": "R1", "date": "2024-06-15", "description": "CARD PAYMENT OFFICE", "amount": "95.00", "reference": "TX-1"},
            {"id": "R2", "date": "2024-07-01", "description": "TRANSFER CONSULTING", "amount": "485.00", "reference": "TX-2"},
            {"id": "R3", "date": "2024-07-02", "description": "DD SOFTWARE", "amount": "42.00", "reference": "TX-3"},
            {"id": "R4", "date": "2024-07-03", "description": "BANK FEE", "amount": "10.30", "reference": "TX-4"},
        ],
    }


@pytest.fixture
def session(clock, sink):
    """Fresh session on TestConfig with no data."""
    return ReconciliationSession(config=TestConfig(), sink=sink, clock=clock)


@pytest.fixture
def admin(session):
    return session.resolve_user("u0")


@pytest.fixture
def manager(session):
    return session.resolve_user("u1")


@pytest.fixture
def analyst(session):
    return session.resolve_user("u2")


@pytest.fixture
def loaded_session(session, admin, sample_batch):
    """Session with the sample batch imported by the admin for 2024-07-05."""
    session.import_transactions(sample_batch, admin, "2024-07-05")
    return session
