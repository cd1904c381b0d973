"""
Tests for the period lock.
"""

from datetime import date, datetime

import pytest

from reconcile.components.period_lock import (
    find_locked_dates,
    is_locked,
    is_stale_working_date,
    parse_cutoff,
)
from reconcile.exceptions import (
    PeriodLockedError,
    PermissionDeniedError,
    ValidationFailedError,
)

CUTOFF = date(2024, 6, 30)


def test_is_locked_on_and_before_cutoff():
    assert is_locked(date(2024, 6, 15), CUTOFF)
    assert is_locked(date(2024, 6, 30), CUTOFF)
    assert not is_locked(date(2024, 7, 1), CUTOFF)


def test_no_cutoff_locks_nothing():
    assert not is_locked(date(1999, 1, 1), None)


def test_parse_cutoff():
    assert parse_cutoff("2024-06-30") == CUTOFF
    assert parse_cutoff(datetime(2024, 6, 30, 23, 59)) == CUTOFF
    assert parse_cutoff(None) is None
    assert parse_cutoff("") is None


def test_parse_cutoff_rejects_garbage():
    with pytest.raises(ValidationFailedError):
        parse_cutoff("30/06/2024")


def test_find_locked_dates(loaded_session):
    locked = find_locked_dates(loaded_session.workspace.transactions, CUTOFF)
    assert locked == [date(2024, 6, 15)]


def test_stale_working_date():
    today = date(2024, 7, 20)
    assert is_stale_working_date(date(2024, 7, 5), today, 10)
    assert not is_stale_working_date(date(2024, 7, 15), today, 10)
    assert not is_stale_working_date(None, today, 10)


def test_session_is_locked(loaded_session, admin):
    loaded_session.set_cutoff("2024-06-30", admin)
    assert loaded_session.is_locked("2024-06-15")
    assert not loaded_session.is_locked("2024-07-01")
    assert not loaded_session.is_locked("")


def test_set_cutoff_is_audited(loaded_session, admin):
    result = loaded_session.set_cutoff("2024-06-30", admin)

    assert result == CUTOFF
    assert loaded_session.workspace.locked_date == CUTOFF
    entry = loaded_session.audit.latest()
    assert entry.action == "Period Lock"
    assert "2024-06-30" in entry.details


def test_clear_cutoff(loaded_session, admin):
    loaded_session.set_cutoff("2024-06-30", admin)
    assert loaded_session.set_cutoff(None, admin) is None
    assert loaded_session.workspace.locked_date is None


def test_set_cutoff_requires_manage_periods(loaded_session, manager):
    with pytest.raises(PermissionDeniedError):
        loaded_session.set_cutoff("2024-06-30", manager)
    assert loaded_session.workspace.locked_date is None


def test_match_in_closed_period_rejected(loaded_session, admin, analyst):
    loaded_session.set_cutoff("2024-06-30", admin)
    before = loaded_session.workspace.capture()
    depth = len(loaded_session.checkpoints)

    with pytest.raises(PeriodLockedError) as exc_info:
        loaded_session.create_match(["L1"], ["R1"], None, analyst)

    assert "Locked Date: 2024-06-30" in str(exc_info.value)
    assert exc_info.value.locked_dates == [date(2024, 6, 15)]
    assert loaded_session.workspace.capture() == before
    assert len(loaded_session.checkpoints) == depth


def test_match_after_cutoff_allowed(loaded_session, admin, analyst):
    loaded_session.set_cutoff("2024-06-30", admin)
    match = loaded_session.create_match(["L2"], ["R2"], None, analyst)
    assert match is not None


def test_unmatch_in_closed_period_rejected(loaded_session, admin, analyst, manager):
    match = loaded_session.create_match(["L1"], ["R1"], None, analyst)
    loaded_session.set_cutoff("2024-06-30", admin)

    with pytest.raises(PeriodLockedError):
        loaded_session.unmatch(match.id, manager)
    assert loaded_session.workspace.get_match(match.id) is not None


def test_comment_in_closed_period_rejected(loaded_session, admin, analyst):
    match = loaded_session.create_match(["L1"], ["R1"], "original", analyst)
    loaded_session.set_cutoff("2024-06-30", admin)

    with pytest.raises(PeriodLockedError):
        loaded_session.update_comment(match.id, "edited", analyst)
    assert loaded_session.workspace.get_match(match.id).comment == "original"


def test_batch_unmatch_skips_locked(loaded_session, admin, analyst, manager):
    locked_match = loaded_session.create_match(["L1"], ["R1"], None, analyst)
    open_match = loaded_session.create_match(["L2"], ["R2"], None, analyst)
    loaded_session.set_cutoff("2024-06-30", admin)

    result = loaded_session.batch_unmatch([locked_match.id, open_match.id], manager)

    assert result.processed == 1
    assert result.skipped == 1
    assert result.skipped_ids == [locked_match.id]
    assert [m.id for m in loaded_session.workspace.matches] == [locked_match.id]
    assert loaded_session.audit.latest().action == "Batch Unmatch"


def test_batch_unmatch_all_locked(loaded_session, admin, analyst, manager):
    match = loaded_session.create_match(["L1"], ["R1"], None, analyst)
    loaded_session.set_cutoff("2024-06-30", admin)
    audit_before = len(loaded_session.audit)

    result = loaded_session.batch_unmatch([match.id], manager)

    assert result.processed == 0
    assert result.skipped == 1
    assert len(loaded_session.audit) == audit_before


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
