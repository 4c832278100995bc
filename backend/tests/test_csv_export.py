import csv
import io

from backoffice.lib.csv_export import UTF8_BOM, build_csv, escape_csv_field, to_csv_row


def test_plain_values_are_not_quoted():
    assert escape_csv_field("Rent") == "Rent"
    assert escape_csv_field(None) == ""
    assert escape_csv_field(12.5) == "12.5"


def test_commas_and_quotes_are_quoted():
    assert escape_csv_field("a,b") == '"a,b"'
    assert escape_csv_field('say "hi"') == '"say ""hi"""'


def test_formula_prefix_is_neutralised():
    assert escape_csv_field("=SUM(A1:A2)") == "\"'=SUM(A1:A2)\""
    assert escape_csv_field("-5") == "\"'-5\""
    assert escape_csv_field("@cmd") == "\"'@cmd\""


def test_build_csv_with_bom():
    csv_text = build_csv(["Date", "Amount"], [["2026-03-01", "10.00"]], bom=True)
    assert csv_text.startswith(UTF8_BOM)
    assert csv_text[len(UTF8_BOM):].split("\n") == ["Date,Amount", "2026-03-01,10.00"]


def test_lone_dash_placeholder_is_kept():
    assert escape_csv_field("-") == "-"
    assert to_csv_row(["Manual Entry", "-", "note"]) == "Manual Entry,-,note"


def test_output_reads_back_with_csv_module():
    cells = ["Rent, March", 'say "hi"', "line one\nline two", "ค่าเช่า", "-", "12.50", ""]
    text = build_csv(["a", "b", "c", "d", "e", "f", "g"], [cells], bom=True)

    parsed = list(csv.reader(io.StringIO(text[len(UTF8_BOM):])))
    assert parsed[0] == ["a", "b", "c", "d", "e", "f", "g"]
    assert parsed[1] == cells


def test_prefixed_cells_read_back_with_quote():
    parsed = list(csv.reader(io.StringIO(build_csv(["v"], [["=1+1"], ["-5"]]))))
    assert [row[0] for row in parsed[1:]] == ["'=1+1", "'-5"]
