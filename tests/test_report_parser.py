import pytest

from kdp_insights import report_parser
from kdp_insights.errors import EmptyFile, NoDataRows, UnrecognizedColumns, UnsupportedFileType
from kdp_insights.report_parser import (
    COLUMN_CANDIDATES,
    detect_columns,
    hash_import_from_string,
    month_label,
    normalize_header,
    normalize_title,
    parse_csv_line,
    parse_number,
    parse_report,
    rows_from_table,
    select_sheets,
    to_month_key,
)

from conftest import COZY_CSV, workbook_bytes


def test_normalize_header_collapses_punctuation():
    assert normalize_header("  Net Units-Sold (Total) ") == "net units sold total"
    assert normalize_header(None) == ""


def test_normalize_title_is_case_and_space_insensitive():
    assert normalize_title("The Great Escape") == normalize_title("the   great escape")
    assert normalize_title("  Tabs\tand\nNewlines ") == "tabs and newlines"


def test_parse_csv_line_quotes_and_doubled_quotes():
    assert parse_csv_line('a, "b, c" ,"say ""hi"""') == ["a", "b, c", 'say "hi"']
    assert parse_csv_line("x,,y") == ["x", "", "y"]


@pytest.mark.parametrize("value,expected", [
    ("2024-01-15", "2024-01"),
    ("2024-01", "2024-01"),
    ("2024/03/09", "2024-03"),
    ("2024/11", "2024-11"),
    ("March 2024", "2024-03"),
    ("Jan 15, 2024", "2024-01"),
    ("2024-02-10 00:00:00", "2024-02"),
    ("not a date", None),
    ("today", None),
    ("", None),
    (None, None),
])
def test_to_month_key(value, expected):
    assert to_month_key(value) == expected


@pytest.mark.parametrize("value,expected", [
    ("$1,234.50", 1234.5),
    ("-3.25", -3.25),
    ("USD 10", 10.0),
    ("abc", 0.0),
    ("1.2.3", 0.0),
    ("", 0.0),
    (None, 0.0),
])
def test_parse_number(value, expected):
    assert parse_number(value) == pytest.approx(expected)


def test_detect_columns_follows_candidate_priority():
    headers = ["ASIN Title", "Order Date", "Ordered Units", "Net Units Sold", "Estimated Earnings"]
    cols = detect_columns(headers)
    assert cols == {"title": 0, "units": 3, "royalty": 4, "date": 1}


def test_detect_columns_missing_field_is_negative():
    cols = detect_columns(["Book", "Amount"])
    assert cols["title"] == -1
    assert cols["date"] == -1
    assert cols["royalty"] == 1


def test_candidate_order_is_data():
    assert list(COLUMN_CANDIDATES) == ["title", "units", "royalty", "date"]
    assert COLUMN_CANDIDATES["units"][0] == "net units sold"


def test_rows_from_table_drops_rows_without_title_or_month():
    table = [
        ["Title", "Month", "Royalty"],
        ["Book A", "2024-01", "5"],
        ["", "2024-01", "5"],
        ["Book B", "not a date", "5"],
        ["Book C", "March 2024", "7.5"],
    ]
    rows = rows_from_table(table, "t.csv")
    assert [(r.source_title, r.month, r.units, r.royalty) for r in rows] == [
        ("Book A", "2024-01", 0, 5.0),
        ("Book C", "2024-03", 0, 7.5),
    ]


def test_rows_from_table_unrecognized_yields_nothing():
    assert rows_from_table([["Foo", "Bar"], ["1", "2"]], "t.csv") == []


def test_parse_csv_report_example():
    report = parse_report(COZY_CSV, "kdp.csv")
    assert len(report.rows) == 2
    assert report.rows[0].title_key == "cozy mysteries vol 1"
    assert report.rows[0].units == 30
    assert report.rows[0].royalty == pytest.approx(102.5)
    assert {r.month for r in report.rows} == {"2024-01"}
    assert report.file_name == "kdp.csv"


def test_csv_fingerprint_ignores_line_endings_and_blank_lines():
    crlf = COZY_CSV.replace(b"\n", b"\r\n\r\n")
    assert parse_report(crlf, "a.csv").import_hash == parse_report(COZY_CSV, "b.csv").import_hash


def test_csv_fingerprint_only_covers_prefix(monkeypatch):
    monkeypatch.setattr(report_parser, "CSV_HASH_LINE_LIMIT", 2)
    longer = COZY_CSV + b"Cozy Mysteries Vol 1,2024-02-01,1,1.00\n"
    assert parse_report(longer, "a.csv").import_hash == parse_report(COZY_CSV, "a.csv").import_hash


def test_hash_is_signed_32_bit_rolling_hash():
    assert hash_import_from_string("") == "0"
    assert hash_import_from_string("a") == "97"
    assert hash_import_from_string("ab") == str(97 * 31 + 98)
    value = int(hash_import_from_string("x" * 500))
    assert -2 ** 31 <= value < 2 ** 31


def test_empty_and_header_only_csv():
    with pytest.raises(EmptyFile):
        parse_report(b"   \n\n", "a.csv")
    with pytest.raises(NoDataRows):
        parse_report(b"Title,Date,Royalty\n\n", "a.csv")


def test_csv_without_required_columns():
    with pytest.raises(UnrecognizedColumns):
        parse_report(b"Book,When\nX,2024-01\n", "a.csv")


def test_unsupported_extension():
    with pytest.raises(UnsupportedFileType):
        parse_report(b"whatever", "report.pdf")


def test_extensionless_and_content_type_use_csv_mode():
    assert len(parse_report(COZY_CSV, "export").rows) == 2
    assert len(parse_report(COZY_CSV, "export.txt", content_type="text/csv").rows) == 2


def test_select_sheets_prefers_combined_sales():
    assert select_sheets(["Royalties", "Combined Sales - eBook"]) == ["Combined Sales - eBook"]
    assert select_sheets(["Royalties", "Orders"]) == ["Royalties", "Orders"]


def test_xlsx_reads_only_combined_sales_sheet():
    content = workbook_bytes({
        "Royalties": [
            ["Title", "Royalty Date", "Royalty"],
            ["Ignored Book", "2024-01-01", "99"],
        ],
        "Combined Sales - eBook": [
            ["Title", "Month", "Units Sold", "Royalty"],
            ["Cozy Mysteries Vol 1", "2024-02", "3", "9.99"],
            [None, None, None, None],
            ["Cozy Mysteries Vol 1", "2024-03", "1", "3.33"],
        ],
    })
    report = parse_report(content, "dashboard.xlsx")
    assert [r.source_title for r in report.rows] == ["Cozy Mysteries Vol 1"] * 2
    assert [r.month for r in report.rows] == ["2024-02", "2024-03"]
    assert report.import_hash == parse_report(content, "copy.xlsx").import_hash


def test_xlsx_skips_unrecognized_sheets_but_keeps_others():
    content = workbook_bytes({
        "Notes": [["Some", "Text"], ["a", "b"]],
        "Sales": [["Title", "Date", "Earnings"], ["Book A", "2024-05-02", "4"]],
    })
    report = parse_report(content, "multi.xlsx")
    assert len(report.rows) == 1
    assert report.rows[0].royalty == pytest.approx(4.0)


def test_xlsx_with_no_recognizable_sheet():
    content = workbook_bytes({"Notes": [["Some", "Text"], ["a", "b"]]})
    with pytest.raises(UnrecognizedColumns):
        parse_report(content, "notes.xlsx")


def test_corrupt_workbook_is_unsupported():
    with pytest.raises(UnsupportedFileType):
        parse_report(b"PK\x03\x04 definitely not a workbook", "broken.xlsx")
    with pytest.raises(UnsupportedFileType):
        parse_report(b"plain text", "legacy.xls")


def test_xlsx_fingerprint_matches_browser_json():
    # Browser value of JSON.stringify(rows) hashed: 50.0 serializes as 50, non-ASCII unescaped
    content = workbook_bytes({
        "Sales": [
            ["Title", "Date", "Units Sold", "Royalty"],
            ["Book A", "2024-01-15", 30, 50.0],
            ["Café Noir", "2024-02-03", 2, 12.5],
        ],
    })
    report = parse_report(content, "kdp.xlsx")
    assert [r.royalty for r in report.rows] == [50.0, 12.5]
    assert report.import_hash == "938123361"


def test_row_seed_writes_integral_royalty_as_int():
    seed = report_parser._rows_hash_seed(
        rows_from_table([["Title", "Date", "Units Sold", "Royalty"], ["Book A", "2024-01-15", "30", "50.0"]], "t")
    )
    assert seed == '[{"sourceTitle":"Book A","titleKey":"book a","units":30,"royalty":50,"month":"2024-01"}]'
    assert hash_import_from_string(seed) == "1296013539"


@pytest.mark.parametrize("key, expected", [
    ("2024-03", "Mar 2024"),
    ("2024-12", "Dec 2024"),
    ("2024-13", "Jan 2025"),
    ("2024-00", "Dec 2023"),
    ("2024-99", "Mar 2032"),
])
def test_month_label_rolls_month_overflow(key, expected):
    assert month_label(key) == expected


def test_to_month_key_keeps_overflowing_month():
    assert to_month_key("2024-13-01") == "2024-13"
