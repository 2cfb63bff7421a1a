"""Base classes for report row transformers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterator, List, Optional, Tuple

from structlog import get_logger

from report_ingest.database.models import UNKNOWN_INSTITUTION, Institution, ReportType
from report_ingest.instrumentation.metrics import ROWS_DROPPED
from report_ingest.processors.workbook import Cell, RawSheet
from report_ingest.reports.columns import ColumnMap, ColumnResolver
from report_ingest.reports.normalization import is_blank_row, is_derived_row
from report_ingest.reports.resolver import EntityResolutionCache

logger = get_logger()


@dataclass
class SheetContext:
    """Everything a transformer needs to know about where a sheet came from."""
    message_id: str
    file_name: str
    cache: EntityResolutionCache
    institution: Optional[Institution] = None
    today: date = field(default_factory=date.today)

    @property
    def institution_code(self) -> str:
        return self.institution.value if self.institution else UNKNOWN_INSTITUTION

    def source_fields(self) -> Dict[str, Any]:
        return {
            'source_message_id': self.message_id,
            'source_file_name': self.file_name,
        }


@dataclass
class ExtractionResult:
    """Records produced from one sheet, keyed by report table column names."""
    report_type: ReportType
    records: List[Dict[str, Any]] = field(default_factory=list)
    dropped: int = 0


class BaseReportExtractor(ABC):
    """Base class for all report row transformers."""

    report_type: ReportType = ReportType.UNKNOWN

    def __init__(self, column_resolver: Optional[ColumnResolver] = None):
        self.columns = column_resolver or ColumnResolver()

    @abstractmethod
    def extract(self, sheet: RawSheet, context: SheetContext) -> ExtractionResult:
        """Transform a classified sheet into domain records."""
        pass

    def data_rows(
        self,
        sheet: RawSheet,
        column_map: ColumnMap,
        end: Optional[int] = None
    ) -> Iterator[Tuple[int, List[Cell]]]:
        """Yield (row index, row) below the header, skipping blank and aggregate lines."""
        stop = len(sheet.rows) if end is None else min(end, len(sheet.rows))
        for idx in range(column_map.data_start, stop):
            row = sheet.rows[idx]
            if is_blank_row(row) or is_derived_row(row):
                continue
            yield idx, row

    @staticmethod
    def value(row: List[Cell], col: Optional[int]) -> Cell:
        if col is None or col >= len(row):
            return None
        return row[col]

    def drop_row(self, sheet: RawSheet, row_idx: int, reason: str, **details) -> None:
        """Record a rejected row; processing of the sheet continues."""
        ROWS_DROPPED.labels(report_type=self.report_type.value, reason=reason).inc()
        logger.warning(
            "row_dropped",
            report_type=self.report_type.value,
            sheet=sheet.name,
            row=row_idx + 1,
            reason=reason,
            **details
        )
