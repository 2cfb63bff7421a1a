"""Value normalization shared by the classifier, resolver and extractors."""

import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Iterable, List, Optional

import pandas as pd

_HONORIFIC = re.compile(r"^M/S\.?\s*")
_NON_ALNUM = re.compile(r"[^A-Z0-9]")
_NON_ALNUM_SPACE = re.compile(r"[^A-Z0-9\s]")

EXCEL_EPOCH = date(1899, 12, 30)
# Plausible serial range for report dates (1995-10 .. 2064-04)
SERIAL_DATE_MIN = 35000
SERIAL_DATE_MAX = 60000

_ISO_DATE = re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})")
_DMY_DATE = re.compile(r"(?<!\d)(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4}|\d{2})(?!\d)")

DERIVED_ROW_TOKENS = frozenset({"TOTAL", "GRAND", "SUBTOTAL", "SUMMARY"})


def normalize(name: Any) -> str:
    """Canonical entity key: uppercase, no leading M/S, alphanumerics only."""
    if name is None:
        return ""
    text = str(name).strip().upper()
    text = _HONORIFIC.sub("", text)
    return _NON_ALNUM.sub("", text)


def name_tokens(name: Any) -> List[str]:
    """Word tokens of a name after honorific and punctuation removal."""
    if name is None:
        return []
    text = _HONORIFIC.sub("", str(name).strip().upper())
    return _NON_ALNUM_SPACE.sub("", text).split()


def clean_text(value: Any) -> Optional[str]:
    """Cell as trimmed text, or None when blank."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def parse_number(value: Any) -> Optional[float]:
    """Parse a numeric cell, tolerating thousands separators and (negatives)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and math.isnan(value) else float(value)

    text = str(value).strip().replace(',', '').replace('₹', '').replace(' ', '')
    if not text or text in {'-', '--'}:
        return None
    negative = text.startswith('(') and text.endswith(')')
    text = text.strip('()')
    try:
        number = float(text)
    except ValueError:
        return None
    return -number if negative else number


def number_or_zero(value: Any) -> float:
    number = parse_number(value)
    return number if number is not None else 0.0


def parse_int(value: Any) -> Optional[int]:
    """Integer cell value; None for anything that is not a whole number."""
    number = parse_number(value)
    if number is None or not float(number).is_integer():
        return None
    return int(number)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def round2(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


def excel_serial_to_date(serial: float) -> date:
    """Excel serial day number to a calendar date (1900 date system)."""
    return EXCEL_EPOCH + timedelta(days=round_half_up(serial))


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date_text(text: str) -> Optional[date]:
    """Find an ISO or DD/MM/YYYY-family date inside free text."""
    match = _ISO_DATE.search(text)
    if match:
        found = _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        if found:
            return found

    match = _DMY_DATE.search(text)
    if match:
        day, month, year = int(match.group(1)), int(match.group(2)), match.group(3)
        year_num = int(year) + 2000 if len(year) == 2 else int(year)
        found = _safe_date(year_num, month, day)
        if found:
            return found
    return None


def parse_date(value: Any) -> Optional[date]:
    """Parse a date cell: Excel serials, ISO/day-first strings, then a lenient fallback."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if isinstance(value, float) and math.isnan(value):
            return None
        if value <= 0:
            return None
        return excel_serial_to_date(value)

    text = str(value).strip()
    if not text:
        return None
    found = parse_date_text(text)
    if found:
        return found

    parsed = pd.to_datetime(text, dayfirst=True, errors='coerce')
    if pd.isna(parsed):
        return None
    return parsed.date()


def find_report_date(rows: List[List[Any]], max_rows: int = 20, stop_row: Optional[int] = None) -> Optional[date]:
    """Scan the leading rows for a report date; first match wins."""
    limit = min(max_rows, len(rows))
    if stop_row is not None:
        limit = min(limit, stop_row)

    for row in rows[:limit]:
        for cell in row:
            if cell is None or isinstance(cell, bool):
                continue
            if isinstance(cell, (int, float)):
                if SERIAL_DATE_MIN <= cell <= SERIAL_DATE_MAX:
                    return excel_serial_to_date(cell)
                continue
            found = parse_date_text(str(cell))
            if found:
                return found
    return None


def row_text(row: Iterable[Any]) -> str:
    """Upper-cased text of all non-empty cells in a row."""
    return " ".join(str(c).strip().upper() for c in row if c is not None and str(c).strip())


def is_blank_row(row: Iterable[Any]) -> bool:
    return all(c is None or not str(c).strip() for c in row)


def is_derived_row(row: Iterable[Any]) -> bool:
    """Sheet-level aggregate lines (totals, summaries) are not data."""
    tokens = set(re.split(r"[^A-Z0-9]+", row_text(row)))
    return not DERIVED_ROW_TOKENS.isdisjoint(tokens)
