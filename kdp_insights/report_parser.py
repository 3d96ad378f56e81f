"""
KDP Insights - Report Parser
Turns raw KDP sales exports (CSV or Excel workbooks) into clean sales rows.

Header naming in these exports drifts between report versions, so columns are
located by substring match against an ordered candidate list rather than by
exact name.
"""

import io
import json
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import EmptyFile, NoDataRows, UnrecognizedColumns, UnsupportedFileType
from .models import ParsedRow

logger = logging.getLogger(__name__)

# Fingerprint covers a bounded prefix of the report only
CSV_HASH_LINE_LIMIT = 2000
XLSX_HASH_ROW_LIMIT = 3000

# Field -> candidate header substrings, highest priority first
COLUMN_CANDIDATES: Dict[str, List[str]] = {
    "title": ["title", "book title", "asin title", "name"],
    "units": ["net units sold", "units sold", "paid units", "units", "qty", "quantity", "ordered units"],
    "royalty": ["royalty", "estimated earnings", "earnings", "amount", "revenue"],
    "date": ["royalty date", "order date", "month", "transaction date", "date"],
}

REQUIRED_FIELDS = ("title", "royalty", "date")

PREFERRED_SHEET_MARKER = "combined sales"

_ISO_MONTH = re.compile(r"^\d{4}-\d{2}(-\d{2})?$")
_SLASH_MONTH = re.compile(r"^\d{4}/\d{2}(/\d{2})?$")
_MONTH_YEAR = re.compile(r"^([A-Za-z]+)\s+(\d{4})$")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")
_WHITESPACE_RUN = re.compile(r"\s+")


@dataclass
class ParsedReport:
    rows: List[ParsedRow]
    import_hash: str
    file_name: str


def normalize_header(header: Any) -> str:
    return _NON_ALNUM_RUN.sub(" ", str(header or "").lower().strip()).strip()


def normalize_title(title: Any) -> str:
    """Title key used for catalog matching: lowercased, whitespace collapsed."""
    return _WHITESPACE_RUN.sub(" ", str(title or "").lower()).strip()


def to_month_key(value: Any) -> Optional[str]:
    """Resolve a date cell to a YYYY-MM key, or None when it is not a date."""
    trimmed = str(value or "").strip()
    if not trimmed:
        return None

    if _ISO_MONTH.match(trimmed):
        return trimmed[:7]

    if _SLASH_MONTH.match(trimmed):
        return trimmed.replace("/", "-")[:7]

    if any(ch.isdigit() for ch in trimmed):
        parsed = pd.to_datetime(trimmed, errors="coerce", utc=True)
        if not pd.isna(parsed):
            return f"{parsed.year:04d}-{parsed.month:02d}"

    match = _MONTH_YEAR.match(trimmed)
    if match:
        for fmt in ("%B %d %Y", "%b %d %Y"):
            try:
                parsed = datetime.strptime(f"{match.group(1)} 1 {match.group(2)}", fmt)
            except ValueError:
                continue
            return f"{parsed.year:04d}-{parsed.month:02d}"

    return None


def month_label(month_key: str) -> str:
    """'2024-03' -> 'Mar 2024'. Month overflow rolls into the next year (2024-13 -> Jan 2025)."""
    year, month = (int(part) for part in month_key.split("-")[:2])
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    if not 1 <= year <= 9999:
        return month_key
    return date(year, month, 1).strftime("%b %Y")


def parse_number(value: Any) -> float:
    cleaned = _NON_NUMERIC.sub("", str(value if value is not None else ""))
    if not cleaned:
        return 0.0
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    return number if np.isfinite(number) else 0.0


def parse_csv_line(line: str) -> List[str]:
    """Split one line on commas; a doubled quote inside quotes is a literal quote."""
    cells = []
    current = []
    in_quotes = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            cells.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1

    cells.append("".join(current))
    return [cell.strip() for cell in cells]


def hash_import_from_string(source: str) -> str:
    """Rolling hash*31 + code unit with signed 32-bit wraparound."""
    data = source.encode("utf-16-le", errors="surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        h = (h * 31 + (data[i] | (data[i + 1] << 8))) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return str(h)


def detect_columns(headers: Sequence[Any]) -> Dict[str, int]:
    """Index of the first header matching each field's candidates, -1 if none."""
    normalized = [normalize_header(h) for h in headers]

    def find(candidates: List[str]) -> int:
        for candidate in candidates:
            for idx, header in enumerate(normalized):
                if candidate in header:
                    return idx
        return -1

    return {field: find(candidates) for field, candidates in COLUMN_CANDIDATES.items()}


def _cell(row: Sequence[Any], idx: int) -> str:
    if idx < 0 or idx >= len(row):
        return ""
    value = row[idx]
    return "" if value is None else str(value)


def rows_from_table(table_rows: List[List[Any]], source_name: str) -> List[ParsedRow]:
    """Normalize one table (header row first). Unrecognized tables yield no rows."""
    if not table_rows:
        raise NoDataRows(f"No data rows found in {source_name}.")

    headers = [str(h or "").strip() for h in table_rows[0]]
    cols = detect_columns(headers)

    missing = [field for field in REQUIRED_FIELDS if cols[field] < 0]
    if missing:
        logger.warning(f"Skipping {source_name}: no column for {missing}")
        return []

    parsed = []
    for row in table_rows[1:]:
        title = _cell(row, cols["title"]).strip()
        month = to_month_key(_cell(row, cols["date"]))
        if not title or not month:
            continue

        parsed.append(ParsedRow(
            source_title=title,
            title_key=normalize_title(title),
            units=int(parse_number(_cell(row, cols["units"]))) if cols["units"] >= 0 else 0,
            royalty=parse_number(_cell(row, cols["royalty"])),
            month=month,
        ))

    return parsed


def _decode(content: bytes) -> str:
    if isinstance(content, str):
        return content
    return content.decode("utf-8-sig", errors="replace")


def parse_csv_report(content: bytes, file_name: str) -> ParsedReport:
    raw = _decode(content)
    if not raw.strip():
        raise EmptyFile("This CSV file is empty.")

    lines = [line for line in raw.replace("\r", "").split("\n") if line.strip()]
    if len(lines) < 2:
        raise NoDataRows("CSV has no data rows.")

    table_rows = [parse_csv_line(line) for line in lines]
    rows = rows_from_table(table_rows, file_name)
    if not rows:
        raise UnrecognizedColumns()

    logger.info(f"Parsed {len(rows)} rows from {file_name}")
    return ParsedReport(
        rows=rows,
        import_hash=hash_import_from_string("\n".join(lines[:CSV_HASH_LINE_LIMIT])),
        file_name=file_name,
    )


def select_sheets(sheet_names: List[str]) -> List[str]:
    preferred = [name for name in sheet_names if PREFERRED_SHEET_MARKER in normalize_header(name)]
    return preferred or list(sheet_names)


def _sheet_rows(frame: pd.DataFrame) -> List[List[str]]:
    frame = frame.fillna("")
    rows = []
    for values in frame.astype(str).values.tolist():
        if any(cell.strip() for cell in values):
            rows.append(values)
    return rows


def _json_number(value: float) -> Any:
    # JSON.stringify writes 50.0 as 50
    return int(value) if float(value).is_integer() else value


def _rows_hash_seed(rows: List[ParsedRow]) -> str:
    """Compact JSON of the leading parsed rows, serialized the way a browser would."""
    payload = []
    for row in rows[:XLSX_HASH_ROW_LIMIT]:
        entry = row.as_dict()
        entry["royalty"] = _json_number(entry["royalty"])
        payload.append(entry)
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def parse_xlsx_report(content: bytes, file_name: str) -> ParsedReport:
    if not content:
        raise EmptyFile("This spreadsheet file is empty.")

    engine = "openpyxl" if file_name.lower().endswith(".xlsx") else None
    try:
        sheets = pd.read_excel(io.BytesIO(content), sheet_name=None, header=None, dtype=str, engine=engine)
    except Exception as e:
        logger.warning(f"Could not read spreadsheet {file_name}: {e}")
        raise UnsupportedFileType(f"Could not read {file_name} as an Excel workbook.") from e

    rows: List[ParsedRow] = []
    for sheet_name in select_sheets(list(sheets.keys())):
        table_rows = _sheet_rows(sheets[sheet_name])
        if not table_rows:
            continue
        rows.extend(rows_from_table(table_rows, f"{file_name} / {sheet_name}"))

    if not rows:
        raise UnrecognizedColumns(
            "Invalid spreadsheet format. Could not find rows with Title, Royalty, and Date columns."
        )

    logger.info(f"Parsed {len(rows)} rows from {file_name}")
    return ParsedReport(rows=rows, import_hash=hash_import_from_string(_rows_hash_seed(rows)), file_name=file_name)


def parse_report(content: bytes, file_name: str, content_type: str = "") -> ParsedReport:
    """Dispatch on the file name (and content type for extensionless uploads)."""
    name = (file_name or "").lower()

    if name.endswith((".xlsx", ".xls")):
        return parse_xlsx_report(content, file_name)

    if name.endswith(".csv") or "csv" in (content_type or "") or "." not in name:
        return parse_csv_report(content, file_name)

    raise UnsupportedFileType()
