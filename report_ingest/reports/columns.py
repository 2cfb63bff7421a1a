"""Header row location and semantic column lookup."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from structlog import get_logger

from report_ingest.database.models import ReportType
from report_ingest.exceptions import MissingColumnError
from report_ingest.processors.workbook import RawSheet
from report_ingest.reports.normalization import parse_number

logger = get_logger()

_HEADER_JUNK = re.compile(r"[^A-Z0-9<>%/\-\s]")
_HYPHEN = re.compile(r"\s*-\s*")
_ANGLE = re.compile(r"([<>])\s*")
_SPACES = re.compile(r"\s+")


def normalize_header(value: Any) -> str:
    """Uppercase header text with punctuation folded to single spaces."""
    if value is None:
        return ""
    text = _HEADER_JUNK.sub(" ", str(value).upper())
    text = _HYPHEN.sub("-", text)
    text = _ANGLE.sub(r"\1 ", text)
    return _SPACES.sub(" ", text).strip()


def _is_number(cell: Any) -> bool:
    return isinstance(cell, (int, float)) and not isinstance(cell, bool)


@dataclass(frozen=True)
class HeaderSpec:
    """Keyword conjunction that identifies a header row."""
    all_of: Tuple[str, ...]
    any_of: Tuple[str, ...] = ()
    min_cells: int = 1
    merged: bool = False

    def matches(self, row: Sequence[Any]) -> bool:
        filled = [c for c in row if c is not None and str(c).strip()]
        if len(filled) < self.min_cells or any(_is_number(c) for c in filled):
            return False
        text = " ".join(normalize_header(c) for c in filled)
        if not all(keyword in text for keyword in self.all_of):
            return False
        return not self.any_of or any(keyword in text for keyword in self.any_of)


HEADER_SPECS: Dict[ReportType, HeaderSpec] = {
    ReportType.PJP: HeaderSpec(all_of=("USER ID",)),
    ReportType.COLLECTION: HeaderSpec(all_of=("VOUCHER", "DATE", "PARTY")),
    ReportType.PROJECTION: HeaderSpec(all_of=("ZONE",), min_cells=3, merged=True),
    ReportType.PROJECTION_VS_ACTUAL: HeaderSpec(all_of=("ZONE",), min_cells=3, merged=True),
    ReportType.OUTSTANDING: HeaderSpec(all_of=("DEALER",), any_of=("PENDING", "OUTSTANDING", "TOTAL"), min_cells=2),
}


@dataclass
class ColumnMap:
    """Normalized header text per column position for one header block."""
    report_type: ReportType
    header_row: int
    data_start: int
    headers: List[str] = field(default_factory=list)
    sheet_name: Optional[str] = None

    def find(self, *keywords: str, exclude: Sequence[str] = ()) -> Optional[int]:
        """First column whose header contains every keyword and no excluded one."""
        wanted = [normalize_header(k) for k in keywords]
        unwanted = [normalize_header(k) for k in exclude]
        for idx, header in enumerate(self.headers):
            if not header:
                continue
            if all(k in header for k in wanted) and not any(k in header for k in unwanted):
                return idx
        return None

    def find_any(self, *alternatives: Sequence[str], exclude: Sequence[str] = ()) -> Optional[int]:
        """Try keyword groups in order; return the first column found."""
        for keywords in alternatives:
            idx = self.find(*keywords, exclude=exclude)
            if idx is not None:
                return idx
        return None

    def require(self, *alternatives: Sequence[str], exclude: Sequence[str] = ()) -> int:
        """Like find_any, but a missing column abandons the sheet for this type."""
        idx = self.find_any(*alternatives, exclude=exclude)
        if idx is None:
            raise MissingColumnError(
                self.report_type.value,
                [" ".join(group) for group in alternatives],
                sheet_name=self.sheet_name
            )
        return idx


class ColumnResolver:
    """Locates header rows inside a raw grid and maps columns by keyword."""

    def __init__(self, scan_limit: Optional[int] = None):
        self.scan_limit = scan_limit

    def locate_headers(self, sheet: RawSheet, report_type: ReportType, start: int = 0) -> List[int]:
        """All row indexes matching the header predicate for the report type."""
        spec = HEADER_SPECS[report_type]
        end = len(sheet.rows) if self.scan_limit is None else min(len(sheet.rows), self.scan_limit)
        return [idx for idx in range(start, end) if spec.matches(sheet.rows[idx])]

    def locate_header(self, sheet: RawSheet, report_type: ReportType, start: int = 0) -> Optional[int]:
        spec = HEADER_SPECS[report_type]
        end = len(sheet.rows) if self.scan_limit is None else min(len(sheet.rows), self.scan_limit)
        for idx in range(start, end):
            if spec.matches(sheet.rows[idx]):
                return idx
        return None

    def resolve(self, sheet: RawSheet, report_type: ReportType, start: int = 0) -> ColumnMap:
        """Column map for the first header block; raises when there is none."""
        header_row = self.locate_header(sheet, report_type, start)
        if header_row is None:
            spec = HEADER_SPECS[report_type]
            raise MissingColumnError(report_type.value, spec.all_of + spec.any_of, sheet_name=sheet.name)
        return self.build_map(sheet, report_type, header_row)

    def resolve_all(self, sheet: RawSheet, report_type: ReportType) -> List[ColumnMap]:
        """Column maps for every repeated header block in the sheet."""
        return [self.build_map(sheet, report_type, row) for row in self.locate_headers(sheet, report_type)]

    def build_map(self, sheet: RawSheet, report_type: ReportType, header_row: int) -> ColumnMap:
        spec = HEADER_SPECS[report_type]
        top = list(sheet.rows[header_row])
        width = sheet.column_count

        below = None
        if spec.merged and header_row + 1 < len(sheet.rows):
            candidate = sheet.rows[header_row + 1]
            if self._is_subheader(top, candidate):
                below = list(candidate)

        headers: List[str] = []
        if below is None:
            headers = [normalize_header(top[c] if c < len(top) else None) for c in range(width)]
            data_start = header_row + 1
        else:
            carried = None
            for c in range(width):
                upper = top[c] if c < len(top) else None
                lower = below[c] if c < len(below) else None
                if upper is not None:
                    carried = upper
                elif lower is not None and carried is not None:
                    # merged span: the top label covers this column too
                    upper = carried
                headers.append(normalize_header(f"{upper or ''} {lower or ''}"))
            data_start = header_row + 2

        logger.debug(
            "header_resolved",
            sheet=sheet.name,
            report_type=report_type.value,
            header_row=header_row,
            merged=below is not None,
            headers=headers
        )
        return ColumnMap(
            report_type=report_type,
            header_row=header_row,
            data_start=data_start,
            headers=headers,
            sheet_name=sheet.name
        )

    @staticmethod
    def _is_subheader(top: Sequence[Any], row: Sequence[Any]) -> bool:
        """
        A second header line holds only text labels, never figures.

        Text that parses as a number counts as a figure. The row must also
        label at least one column left empty above, as a merged span does.
        """
        filled = [c for c in row if c is not None and str(c).strip()]
        if not filled or any(parse_number(c) is not None for c in filled):
            return False
        return any(
            cell is not None and str(cell).strip() and (c >= len(top) or top[c] is None)
            for c, cell in enumerate(row)
        )
