import io

import pandas as pd
import pytest

from backoffice.core.errors import ActionError
from backoffice.lib.spreadsheet import SpreadsheetError, norm_col, read_table
from backoffice.services import bank as bank_service


def test_norm_col():
    assert norm_col("  Withdrawal (THB): ") == "withdrawal thb"
    assert norm_col("ยอด   คงเหลือ") == "ยอด คงเหลือ"


def test_csv_rows_are_trimmed():
    rows = read_table(b"Date,Amount,,\n01/03/2026, 10 ,\n", "statement.csv")
    assert rows == [["Date", "Amount"], ["01/03/2026", "10"]]


def test_xlsx_first_sheet_is_read():
    buffer = io.BytesIO()
    pd.DataFrame([["Date", "Amount"], ["01/03/2026", "10"]]).to_excel(buffer, header=False, index=False)
    assert read_table(buffer.getvalue(), "statement.xlsx") == [["Date", "Amount"], ["01/03/2026", "10"]]


@pytest.mark.parametrize("filename", ["statement.xls", "statement.xlsx"])
def test_unreadable_workbook_is_a_spreadsheet_error(filename):
    with pytest.raises(SpreadsheetError):
        read_table(b"not a workbook", filename)


def test_unreadable_workbook_upload_is_rejected():
    with pytest.raises(ActionError) as exc_info:
        bank_service.preview_bank_statement(b"not a workbook", "statement.xls")
    assert exc_info.value.code == "bank.file_unreadable"
