import pytest

from backoffice.core.errors import ActionError, ErrorKind
from backoffice.models import Expense
from backoffice.schemas.analytics import MetricRef
from backoffice.services import analytics_builder as analytics_service

from conftest import MARCH_1, USER, add_order_line

DATE_RANGE = {"start": "2026-03-01", "end": "2026-03-02"}


async def _seed(db):
    await add_order_line(db, total_amount=1000, quantity=4)
    await add_order_line(db, order_id="ORD-1", sku="MKT-B", seller_sku="SKU-B", total_amount=0, quantity=1)
    db.add(Expense(created_by=USER, expense_date=MARCH_1, category="Operating", subcategory="Rent", amount=300))
    db.add(Expense(created_by=USER, expense_date=MARCH_1, category="Operating", subcategory="Internet", amount=20))
    await db.commit()


def _definition(**overrides):
    definition = {
        "metrics": [
            {"kind": "metric", "key": "revenue"},
            {"kind": "expense_subcategory", "category": "Operating", "subcategory": "Rent"},
        ],
        "expression": "revenue - x_op_rent",
        "expression_label": "Net",
        "date_range": DATE_RANGE,
    }
    definition.update(overrides)
    return definition


def test_metric_slots():
    assert analytics_service.metric_slot(MetricRef(kind="metric", key="orders")) == "orders"
    assert analytics_service.metric_slot(MetricRef(kind="ads_spend")) == "ads_all"
    assert analytics_service.metric_slot(MetricRef(kind="ads_spend", campaign_type="live")) == "ads_live"
    assert (
        analytics_service.metric_slot(
            MetricRef(kind="expense_subcategory", category="Operating", subcategory="Office Rent (BKK)")
        )
        == "x_op_office_rent_bkk"
    )
    assert analytics_service.metric_slot(MetricRef(kind="funnel", metric="orders", stage="cancel")) == "fn_orders_cancel"
    assert analytics_service.metric_label(MetricRef(kind="funnel", metric="orders", stage="cancel")) == "Cancelled Orders"


def test_legacy_definition_is_migrated():
    definition = analytics_service.migrate_definition(
        {"metrics": ["revenue", "orders"], "dateRange": DATE_RANGE, "expressionLabel": "AOV"}
    )
    assert [m.key for m in definition.metrics] == ["revenue", "orders"]
    assert definition.expression_label == "AOV"
    assert definition.date_range.start.isoformat() == "2026-03-01"

    assert analytics_service.migrate_definition("garbage").metrics == []


def test_malformed_definition_is_a_validation_error():
    with pytest.raises(ActionError) as exc_info:
        analytics_service.migrate_definition({"metrics": [{"kind": "bogus"}], "date_range": DATE_RANGE})
    assert exc_info.value.kind == ErrorKind.VALIDATION
    assert exc_info.value.code == "common.invalid_request"


async def test_run_computes_formula_per_day(db):
    await _seed(db)
    result = await analytics_service.run_analytics(db, USER, _definition())

    assert result["computed_label"] == "Net"
    assert [c["slot"] for c in result["columns"]] == ["revenue", "x_op_rent"]
    first, second = result["rows"]
    assert first == {"date": "2026-03-01", "values": {"revenue": 1000.0, "x_op_rent": 300.0}, "computed": 700.0}
    assert second["computed"] == 0.0


async def test_orders_units_and_division_by_zero(db):
    await _seed(db)
    result = await analytics_service.run_analytics(
        db,
        USER,
        _definition(
            metrics=[{"kind": "metric", "key": "revenue"}, {"kind": "metric", "key": "orders"}, "units"],
            expression="revenue / orders",
            expression_label=None,
        ),
    )
    first, second = result["rows"]
    assert first["values"]["orders"] == 1.0
    assert first["values"]["units"] == 5.0
    assert first["computed"] == 1000.0
    assert second["computed"] is None
    assert result["computed_label"] == "Computed"


async def test_unavailable_metrics_read_as_zero(db):
    result = await analytics_service.run_analytics(
        db,
        USER,
        _definition(
            metrics=[{"kind": "funnel", "metric": "orders", "stage": "all"}],
            expression="fn_orders_all + 1",
        ),
    )
    assert result["columns"][0]["available"] is False
    assert result["rows"][0]["values"] == {"fn_orders_all": 0.0}
    assert result["rows"][0]["computed"] == 1.0


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"metrics": []}, "analytics.no_metrics"),
        ({"expression": "revenue * profit"}, "analytics.invalid_expression"),
        ({"expression": "revenue * " + "9" * 400}, "analytics.invalid_expression"),
        ({"date_range": {"start": "2026-03-02", "end": "2026-03-01"}}, "common.invalid_date_range"),
        ({"date_range": {}}, "common.invalid_date_range"),
    ],
)
async def test_run_rejections(db, overrides, code):
    with pytest.raises(ActionError) as exc_info:
        await analytics_service.run_analytics(db, USER, _definition(**overrides))
    assert exc_info.value.code == code


async def test_export_csv(db):
    await _seed(db)
    exported = await analytics_service.export_analytics_csv(db, USER, _definition())

    assert exported["filename"].startswith("analytics-builder-")
    lines = exported["csv"].lstrip("﻿").split("\n")
    assert lines[0] == "Date,Revenue,Rent (Operating),Net"
    assert lines[1] == "2026-03-01,1000.0,300.0,700.0"


async def test_expense_subcategories(db):
    await _seed(db)
    assert await analytics_service.get_expense_subcategories(db, USER) == ["Internet", "Rent"]
    assert await analytics_service.get_expense_subcategories(db, USER, category="COGS") == []


async def test_presets_upsert_by_name(db):
    first = await analytics_service.save_preset(db, USER, " Weekly ", _definition())
    second = await analytics_service.save_preset(db, USER, "Weekly", _definition(expression="revenue"))

    assert first["id"] == second["id"]
    assert second["definition"]["expression"] == "revenue"

    presets = await analytics_service.list_presets(db, USER)
    assert [p["name"] for p in presets] == ["Weekly"]

    touched = await analytics_service.touch_preset(db, USER, first["id"])
    assert touched["last_used_at"]

    await analytics_service.delete_preset(db, USER, first["id"])
    with pytest.raises(ActionError) as exc_info:
        await analytics_service.touch_preset(db, USER, first["id"])
    assert exc_info.value.kind == ErrorKind.NOT_FOUND

    with pytest.raises(ActionError) as exc_info:
        await analytics_service.save_preset(db, USER, "  ", _definition())
    assert exc_info.value.code == "analytics.preset_name_required"
