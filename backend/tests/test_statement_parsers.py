from datetime import date
from decimal import Decimal

import pytest

from backoffice.lib.ads_report_parser import ReportFormatError, parse_ads_report, parse_report_date
from backoffice.lib.bank_statement_parser import (
    parse_amount,
    parse_bangkok_date,
    parse_bank_statement_auto,
    parse_bank_statement_manual,
)
from backoffice.lib.header_detector import detect_header_row, suggest_column_mapping

KBIZ_CSV = (
    "Date,Description,Withdrawal,Deposit,Balance\n"
    "01/03/2026,Opening transfer,,1000.00,1000.00\n"
    "02/03/2026,Card payment,250.50,,749.50\n"
    "not a date,Broken,1,,\n"
    "03/03/2026,Nothing,0,0,749.50\n"
).encode("utf-8")

KPLUS_WITH_METADATA_CSV = (
    "Account statement\n"
    "Account no,123-4-56789-0\n"
    "Date,Transaction,Withdrawal,Deposit,Balance,Channel\n"
    '01/03/2026,Transfer in,,"1,000.00","5,000.00",K PLUS\n'
).encode("utf-8")


def test_parse_bangkok_date_formats():
    assert parse_bangkok_date("01/03/2026") == date(2026, 3, 1)
    assert parse_bangkok_date("2026-03-01 10:15:00") == date(2026, 3, 1)
    assert parse_bangkok_date("45000") == date(2023, 3, 15)
    assert parse_bangkok_date("garbage") is None
    assert parse_bangkok_date("") is None


def test_parse_amount_drops_sign_and_noise():
    assert parse_amount("-1,250.75") == Decimal("1250.75")
    assert parse_amount("฿ 99") == Decimal("99")
    assert parse_amount("-") == Decimal("0")
    assert parse_amount(None) == Decimal("0")
    assert parse_amount(-12.5) == Decimal("12.5")


def test_header_row_found_below_metadata_rows():
    rows = [
        ["Account statement"],
        ["Account no", "123-4-56789-0"],
        ["Date", "Transaction", "Withdrawal", "Deposit", "Balance", "Channel"],
        ["01/03/2026", "Transfer in", "", "1000", "5000", "K PLUS"],
    ]
    detection = detect_header_row(rows)
    assert detection.header_row_index == 2
    assert detection.data_start_row_index == 3
    assert detection.confidence == 1


def test_header_detection_falls_back_to_first_row():
    detection = detect_header_row([["Foo", "Bar"], ["1", "2"]])
    assert detection.header_row_index == 0
    assert detection.confidence == 0.3


def test_plain_english_header_is_confident():
    detection = detect_header_row([["Date", "Description", "Withdrawal", "Deposit"], ["01/03/2026", "Coffee", "45", ""]])
    assert detection.header_row_index == 0
    assert detection.columns == ["Date", "Description", "Withdrawal", "Deposit"]
    assert detection.confidence >= 0.4


def test_single_matching_group_is_not_a_header():
    rows = [["Statement date", "2026-03-31"], ["01/03/2026", "Coffee", "45"]]
    detection = detect_header_row(rows)
    assert detection.header_row_index == 0
    assert detection.data_start_row_index == 1
    assert detection.confidence == 0.3


def test_suggest_column_mapping_keeps_channel_out_of_description():
    mapping = suggest_column_mapping(["Date", "Channel", "Transaction", "Withdrawal", "Deposit", "Balance"])
    assert mapping["description"] == "Transaction"
    assert mapping["channel"] == "Channel"
    assert mapping["withdrawal"] == "Withdrawal"


def test_auto_parse_counts_bad_rows_in_diagnostics():
    parsed = parse_bank_statement_auto(KBIZ_CSV, "statement.csv")
    assert parsed.format_type == "kbiz"
    assert not parsed.requires_manual_mapping
    assert len(parsed.transactions) == 2
    assert parsed.transactions[0].deposit == Decimal("1000.00")
    assert parsed.transactions[1].withdrawal == Decimal("250.50")
    assert parsed.date_range == (date(2026, 3, 1), date(2026, 3, 2))
    assert parsed.diagnostics.total_rows == 4
    assert parsed.diagnostics.invalid_date_count == 1
    assert parsed.diagnostics.invalid_amount_count == 1


def test_auto_parse_with_metadata_rows():
    parsed = parse_bank_statement_auto(KPLUS_WITH_METADATA_CSV, "kplus.csv")
    assert parsed.header_row_index == 2
    assert len(parsed.transactions) == 1
    txn = parsed.transactions[0]
    assert txn.description == "Transfer in"
    assert txn.deposit == Decimal("1000.00")
    assert txn.balance == Decimal("5000.00")


def test_unknown_columns_require_manual_mapping():
    parsed = parse_bank_statement_auto(b"Foo,Bar\n1,2\n", "odd.csv")
    assert parsed.format_type == "unknown"
    assert parsed.requires_manual_mapping
    assert parsed.transactions == []


def test_manual_mapping():
    content = b"When,What,Out,In\n05/03/2026,Coffee,45,\n"
    parsed = parse_bank_statement_manual(
        content,
        "odd.csv",
        {"txn_date": "When", "description": "What", "withdrawal": "Out", "deposit": "In"},
    )
    assert parsed.format_type == "manual"
    assert len(parsed.transactions) == 1
    assert parsed.transactions[0].withdrawal == Decimal("45")
    assert parsed.transactions[0].txn_date == date(2026, 3, 5)


ADS_CSV = (
    "Date,Campaign name,Cost,GMV,Orders\n"
    "2026-03-01,Summer Sale,100.50,500,5\n"
    "2026-03-02,Summer Sale,50,0,0\n"
    "Total,,150.50,500,5\n"
).encode("utf-8")


def test_parse_ads_report():
    report = parse_ads_report(ADS_CSV, "ads.csv")
    assert report.report_type == "product"
    assert len(report.rows) == 2
    assert report.skipped_rows == 1
    assert report.total_spend == Decimal("150.50")
    assert report.total_orders == 5
    assert report.rows[0].roas == Decimal("4.98")
    summary = report.summary()
    assert summary["days_count"] == 2
    assert summary["date_min"] == "2026-03-01"


def test_ads_report_missing_required_columns():
    with pytest.raises(ReportFormatError) as exc_info:
        parse_ads_report(b"Campaign,Clicks\nfoo,1\n", "ads.csv")
    assert len(exc_info.value.missing) == 2


def test_ads_report_skips_out_of_range_serial_dates():
    assert parse_report_date("20260301") is None
    assert parse_report_date("45000") == date(2023, 3, 15)

    report = parse_ads_report(b"Date,Campaign name,Cost\n20260301,Camp A,100\n2026-03-02,Camp A,50\n", "ads.csv")
    assert [row.ad_date for row in report.rows] == [date(2026, 3, 2)]
    assert report.skipped_rows == 1
