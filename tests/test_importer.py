"""
Tests for import validation and the import operation.
"""

from datetime import date
from decimal import Decimal

import pytest

from reconcile.components.importer import ImportBatch, validate_batch
from reconcile.exceptions import ValidationFailedError
from reconcile.schemas.transaction import Side, TransactionStatus


@pytest.fixture
def messy_batch():
    return {
        "left": [
            {"id": "L1", "date": "2024-07-01", "description": "Valid", "amount": 12.5, "reference": 1001},
            {"id": "L2", "date": "2024/07/01", "description": "Slashes", "amount": "5.00"},
            {"id": "L3", "date": "2024-02-30", "description": "No such day", "amount": "5.00"},
            {"id": "", "date": "2024-07-01", "description": "Blank id", "amount": "5.00"},
        ],
        "right": [
            {"id": "R1", "date": "2024-07-01", "description": "Valid", "amount": "-12.50"},
            {"id": "R2", "date": "2024-07-01", "description": "Text amount", "amount": "twelve"},
            {"id": "R3", "date": "2024-07-01", "description": "Bool amount", "amount": True},
            {"id": "L1", "date": "2024-07-01", "description": "Duplicate id", "amount": "1.00"},
        ],
    }


def test_validate_batch_drops_invalid_rows(messy_batch):
    transactions, errors = validate_batch(ImportBatch.model_validate(messy_batch), "u2")

    assert [t.id for t in transactions] == ["L1", "R1"]
    assert len(errors) == 6
    assert any("duplicate id L1" in e for e in errors)


def test_validated_rows_become_transactions(messy_batch):
    transactions, _ = validate_batch(ImportBatch.model_validate(messy_batch), "u2")
    left, right = transactions

    assert left.side == Side.LEFT
    assert left.amount == Decimal("12.5")
    assert left.reference == "1001"
    assert left.date == date(2024, 7, 1)
    assert left.imported_by == "u2"
    assert left.status == TransactionStatus.UNMATCHED
    assert right.side == Side.RIGHT
    assert right.amount == Decimal("-12.50")


def test_numeric_id_and_description_accepted(session, admin):
    """Spreadsheet exports often give ids as numbers."""
    batch = {
        "left": [{"id": 101, "date": "2024-07-01", "description": 2024, "amount": 5}],
        "right": [{"id": None, "date": "2024-07-01", "description": "No id", "amount": 5}],
    }

    result = session.import_transactions(batch, admin, "2024-07-01")

    assert result.imported == 1
    assert result.skipped == 1
    transaction = session.workspace.get_transaction("101")
    assert transaction.description == "2024"
    assert transaction.amount == Decimal("5")


def test_import_reports_skipped_rows(session, admin, messy_batch):
    result = session.import_transactions(messy_batch, admin, "2024-07-01")

    assert result.imported == 2
    assert result.skipped == 6
    assert result.snapshot_id is not None
    assert "Skipped 6 invalid rows" in session.audit.latest().details


def test_import_replaces_workspace(loaded_session, analyst, admin):
    loaded_session.create_match(["L1"], ["R1"], None, analyst)
    loaded_session.toggle_select("L2", Side.LEFT)

    batch = {"left": [{"id": "N1", "date": "2024-07-08", "description": "New", "amount": "1.00"}]}
    loaded_session.import_transactions(batch, admin, "2024-07-08")

    ws = loaded_session.workspace
    assert [t.id for t in ws.transactions] == ["N1"]
    assert ws.matches == []
    assert ws.selected_left_ids == set()
    assert ws.selected_date == date(2024, 7, 8)
    assert loaded_session.audit.latest().action == "Import"


def test_import_can_be_undone(loaded_session, admin):
    before = loaded_session.workspace.capture()
    loaded_session.import_transactions({"left": [], "right": []}, admin, "2024-07-08")

    assert loaded_session.undo()
    assert loaded_session.workspace.capture() == before


def test_malformed_batch_rejected(session, admin):
    with pytest.raises(ValidationFailedError):
        session.import_transactions({"left": "not a list"}, admin, "2024-07-01")
    assert len(session.audit) == 0


def test_import_needs_working_date(session, admin, sample_batch):
    with pytest.raises(ValidationFailedError):
        session.import_transactions(sample_batch, admin, "")


@pytest.mark.asyncio
async def test_import_from_async_source(session, admin, sample_batch):
    """The fetch is awaited with the parsed working date."""
    requested = []

    async def fetch(for_date):
        requested.append(for_date)
        return sample_batch

    result = await session.import_from(fetch, admin, "2024-07-05")

    assert requested == [date(2024, 7, 5)]
    assert result.imported == 7
    assert result.skipped == 0
    assert len(session.workspace.unmatched(Side.RIGHT)) == 4


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
