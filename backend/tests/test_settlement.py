from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from backoffice.core.config import settings
from backoffice.core.errors import ActionError, ErrorKind
from backoffice.schemas.settlement import SettlementImport, UnsettledImport
from backoffice.services import settlement as settlement_service

from conftest import OTHER_USER, USER


async def _forecasts(db, txn_ids=("T1", "T2", "T3")):
    return await settlement_service.import_unsettled(
        db,
        USER,
        UnsettledImport(
            marketplace="TikTok",
            file_name="forecast.xlsx",
            rows=[
                {"txn_id": txn_id, "estimated_settle_time": datetime(2026, 3, i + 1), "estimated_settlement_amount": 100}
                for i, txn_id in enumerate(txn_ids)
            ],
        ),
    )


def _settlements(txn_ids, reconcile=True):
    return SettlementImport(
        marketplace="tiktok",
        file_name="income.xlsx",
        reconcile=reconcile,
        rows=[
            {"txn_id": txn_id, "settled_time": datetime(2026, 3, 10, 4, 0), "settlement_amount": 95.5}
            for txn_id in txn_ids
        ],
    )


async def test_import_settlements_reconciles_forecasts(db):
    forecast = await _forecasts(db)
    assert forecast["inserted"] == 3

    result = await settlement_service.import_settlements(db, USER, _settlements(["T1", "T2", "T9"]))

    assert result["inserted"] == 3
    assert result["reconcile"] == {
        "settled_count": 2,
        "already_settled_count": 0,
        "not_found_count": 1,
        "errors": [],
    }

    db.expire_all()
    open_rows = await settlement_service.list_unsettled(db, USER)
    assert [row["txn_id"] for row in open_rows["data"]] == ["T3"]
    settled = await settlement_service.list_unsettled(db, USER, status="settled")
    assert settled["total"] == 2
    assert settled["data"][0]["settled_at"] == "2026-03-10T04:00:00"

    status = await settlement_service.get_reconcile_status(db, USER, result["batch_id"])
    assert status["settlement_count"] == 3
    assert status["matched_count"] == 2
    assert status["unsettled_count"] == 0
    assert status["not_found_count"] == 1


async def test_reconcile_twice_counts_already_settled(db):
    await _forecasts(db)
    result = await settlement_service.import_settlements(db, USER, _settlements(["T1", "T2"]))

    again = await settlement_service.reconcile_settlements(db, USER, result["batch_id"])
    assert again.settled_count == 0
    assert again.already_settled_count == 2


async def test_reimport_updates_existing_rows(db):
    await _forecasts(db)
    first = await settlement_service.import_settlements(db, USER, _settlements(["T1"], reconcile=False))
    assert "reconcile" not in first

    second = await settlement_service.import_settlements(db, USER, _settlements(["T1", "T2"], reconcile=False))
    assert second["inserted"] == 1
    assert second["updated"] == 1

    status = await settlement_service.get_reconcile_status(db, USER, second["batch_id"])
    assert status["settlement_count"] == 2
    assert status["unsettled_count"] == 2

    forecasts_again = await _forecasts(db, txn_ids=("T1", "T4"))
    assert forecasts_again["inserted"] == 1
    assert forecasts_again["updated"] == 1


async def test_import_validation(db):
    with pytest.raises(ActionError) as exc_info:
        await settlement_service.import_settlements(db, USER, SettlementImport(marketplace=" ", rows=[]))
    assert exc_info.value.code == "settlement.marketplace_required"

    with pytest.raises(ActionError) as exc_info:
        await settlement_service.import_unsettled(db, USER, UnsettledImport(marketplace="shopee", rows=[]))
    assert exc_info.value.code == "settlement.no_rows"


async def test_other_users_batch_is_not_found(db):
    await _forecasts(db)
    result = await settlement_service.import_settlements(db, USER, _settlements(["T1"]))
    with pytest.raises(ActionError) as exc_info:
        await settlement_service.reconcile_settlements(db, OTHER_USER, result["batch_id"])
    assert exc_info.value.kind == ErrorKind.NOT_FOUND


async def test_reconcile_runs_in_batches(db, monkeypatch):
    monkeypatch.setattr(settings, "RECONCILE_BATCH_SIZE", 2)
    txn_ids = [f"T{i}" for i in range(1, 6)]
    await _forecasts(db, txn_ids)
    imported = await settlement_service.import_settlements(db, USER, _settlements(txn_ids, reconcile=False))

    result = await settlement_service.reconcile_settlements(db, USER, imported["batch_id"])

    assert result.settled_count == 5
    assert result.errors == []
    db.expire_all()
    assert (await settlement_service.list_unsettled(db, USER))["data"] == []


async def test_failed_batch_is_reported_and_others_still_settle(db, monkeypatch):
    monkeypatch.setattr(settings, "RECONCILE_BATCH_SIZE", 2)
    txn_ids = [f"T{i}" for i in range(1, 6)]
    await _forecasts(db, txn_ids)
    imported = await settlement_service.import_settlements(db, USER, _settlements(txn_ids, reconcile=False))

    build_update = settlement_service.update
    statements = []

    def update_failing_on_third(*args, **kwargs):
        statements.append(args)
        if len(statements) == 3:
            raise OperationalError("UPDATE unsettled_transactions", {}, Exception("database is locked"))
        return build_update(*args, **kwargs)

    monkeypatch.setattr(settlement_service, "update", update_failing_on_third)
    result = await settlement_service.reconcile_settlements(db, USER, imported["batch_id"])

    assert result.settled_count == 3
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Batch 2 update failed")

    db.expire_all()
    assert (await settlement_service.list_unsettled(db, USER))["total"] == 2


async def test_status_ignores_forecasts_of_other_marketplaces(db):
    await _forecasts(db, txn_ids=("T1",))
    await settlement_service.import_unsettled(
        db,
        USER,
        UnsettledImport(
            marketplace="Shopee",
            rows=[{"txn_id": "T2", "estimated_settlement_amount": 50}],
        ),
    )

    result = await settlement_service.import_settlements(db, USER, _settlements(["T1", "T2"]))
    assert result["reconcile"]["settled_count"] == 1
    assert result["reconcile"]["not_found_count"] == 1

    status = await settlement_service.get_reconcile_status(db, USER, result["batch_id"])
    assert status["settlement_count"] == 2
    assert status["matched_count"] == 1
    # the shopee T2 forecast is still open but is not this batch's
    assert status["unsettled_count"] == 0
    assert status["not_found_count"] == 1
