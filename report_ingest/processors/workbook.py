"""Spreadsheet attachment extraction into raw cell grids."""

import io
import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd
from structlog import get_logger

from report_ingest.exceptions import UnsupportedFileError, WorkbookReadError

logger = get_logger()

Cell = Optional[Union[str, int, float]]

RAW_PAYLOAD_SCHEMA_VERSION = 1


@dataclass
class RawSheet:
    """One worksheet as an ordered grid of nullable scalar cells."""
    name: str
    rows: List[List[Cell]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return max((len(row) for row in self.rows), default=0)

    def cell(self, row_idx: int, col_idx: Optional[int]) -> Cell:
        """Return a cell, or None when the position is outside the grid."""
        if col_idx is None or row_idx >= len(self.rows):
            return None
        row = self.rows[row_idx]
        return row[col_idx] if col_idx < len(row) else None


def to_cell(value: Any) -> Cell:
    """Convert a pandas/openpyxl value into a nullable scalar cell."""
    if value is None:
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        if pd.isna(value):
            return None
        return value.strftime("%Y-%m-%d")
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, (bool, np.bool_)):
        return int(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        number = float(value)
        if math.isnan(number) or math.isinf(number):
            return None
        return int(number) if number.is_integer() else number
    text = str(value).strip()
    return text or None


class WorkbookExtractor:
    """Turns spreadsheet bytes into one RawSheet per non-empty worksheet."""

    supported_extensions = ['.xlsx', '.xlsm', '.xls', '.csv']

    @classmethod
    def can_process(cls, file_name: str) -> bool:
        """Check if the attachment name carries a spreadsheet extension."""
        return Path(file_name or "").suffix.lower() in cls.supported_extensions

    def extract(self, content: bytes, file_name: str) -> List[RawSheet]:
        """Extract every worksheet; a failing worksheet never aborts the file."""
        if not self.can_process(file_name):
            raise UnsupportedFileError(file_name)
        if not content:
            raise WorkbookReadError(file_name, "empty attachment")

        if Path(file_name).suffix.lower() == '.csv':
            return self._extract_csv(content, file_name)

        try:
            excel_file = pd.ExcelFile(io.BytesIO(content))
        except Exception as e:
            raise WorkbookReadError(file_name, str(e)) from e

        sheets: List[RawSheet] = []
        for sheet_name in excel_file.sheet_names:
            try:
                df = excel_file.parse(sheet_name, header=None)
                rows = self._frame_to_rows(df)
                if not rows:
                    logger.info("worksheet_empty_skipped", file_name=file_name, sheet=sheet_name)
                    continue
                sheets.append(RawSheet(name=str(sheet_name), rows=rows))
            except Exception as e:
                logger.warning(
                    "worksheet_extraction_failed",
                    file_name=file_name,
                    sheet=sheet_name,
                    error=str(e)
                )

        logger.info("workbook_extracted", file_name=file_name, sheets=len(sheets))
        return sheets

    def _extract_csv(self, content: bytes, file_name: str) -> List[RawSheet]:
        try:
            df = pd.read_csv(io.BytesIO(content), header=None, skip_blank_lines=False)
        except Exception as e:
            raise WorkbookReadError(file_name, str(e)) from e
        rows = self._frame_to_rows(df)
        return [RawSheet(name=Path(file_name).stem, rows=rows)] if rows else []

    def _frame_to_rows(self, df: pd.DataFrame) -> List[List[Cell]]:
        """Convert a header-less frame to rows, dropping trailing blank rows."""
        if df.empty:
            return []
        rows = [[to_cell(v) for v in record] for record in df.itertuples(index=False, name=None)]
        while rows and all(c is None for c in rows[-1]):
            rows.pop()
        return rows


def build_raw_payload(
    sheets: List[RawSheet],
    message_id: str,
    file_name: str,
    subject: Optional[str] = None,
    sender: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the lossless archive document for an attachment."""
    received_at = datetime.now(timezone.utc)
    return {
        'payload_id': str(uuid.uuid4()),
        'payload_name': f"{file_name}_{int(received_at.timestamp() * 1000)}",
        'schema_version': RAW_PAYLOAD_SCHEMA_VERSION,
        'source': {
            'message_id': message_id,
            'file_name': file_name,
            'subject': subject,
            'sender': sender,
            'received_at': received_at.isoformat(),
        },
        'workbook': {
            'sheet_count': len(sheets),
            'sheets': [
                {
                    'name': sheet.name,
                    'row_count': sheet.row_count,
                    'column_count': sheet.column_count,
                    'rows': [
                        {'row_index': idx + 1, 'values': list(row)}
                        for idx, row in enumerate(sheet.rows)
                    ],
                }
                for sheet in sheets
            ],
        },
    }
