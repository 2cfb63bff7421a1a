"""Outstanding balance / aging sheet transformer."""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from structlog import get_logger

from report_ingest.database.models import ReportType
from report_ingest.processors.workbook import RawSheet
from report_ingest.reports.columns import ColumnMap
from report_ingest.reports.extractors.base import BaseReportExtractor, ExtractionResult, SheetContext
from report_ingest.reports.normalization import clean_text, find_report_date, normalize, parse_number

logger = get_logger()

# (record field, header keyword alternatives)
AGING_BUCKETS: List[Tuple[str, Sequence[Tuple[str, ...]]]] = [
    ('less_than_10_days', (("< 10",), ("BELOW 10",), ("LESS THAN 10",), ("0-10",))),
    ('days_10_to_15', (("10-15",),)),
    ('days_15_to_21', (("15-21",),)),
    ('days_21_to_30', (("21-30",),)),
    ('days_30_to_45', (("30-45",),)),
    ('days_45_to_60', (("45-60",),)),
    ('days_60_to_75', (("60-75",),)),
    ('days_75_to_90', (("75-90",),)),
    ('greater_than_90_days', (("> 90",), ("ABOVE 90",), ("MORE THAN 90",))),
]


def dealer_key(verified_dealer_id: Optional[int], dealer_name: str) -> str:
    """Natural key part identifying a dealer, resolved or not."""
    if verified_dealer_id is not None:
        return f"ID:{verified_dealer_id}"
    return f"NAME:{normalize(dealer_name)}"


class OutstandingExtractor(BaseReportExtractor):
    """Outstanding balances; every repeated header block in the sheet is read."""

    report_type = ReportType.OUTSTANDING

    def extract(self, sheet: RawSheet, context: SheetContext) -> ExtractionResult:
        blocks = self.columns.resolve_all(sheet, self.report_type)
        if not blocks:
            # raises MissingColumnError with the header keywords
            self.columns.resolve(sheet, self.report_type)

        report_date = find_report_date(sheet.rows, stop_row=blocks[0].header_row) or context.today
        institution = context.institution_code

        entries: Dict[str, Dict[str, Any]] = {}
        dropped = 0
        for position, columns in enumerate(blocks):
            end = blocks[position + 1].header_row if position + 1 < len(blocks) else None
            block_dropped = self._read_block(sheet, columns, end, context, report_date, institution, entries)
            dropped += block_dropped

        logger.info(
            "outstanding_sheet_transformed",
            sheet=sheet.name,
            report_date=report_date.isoformat(),
            blocks=len(blocks),
            dealers=len(entries),
            dropped=dropped
        )
        return ExtractionResult(report_type=self.report_type, records=list(entries.values()), dropped=dropped)

    def _read_block(
        self,
        sheet: RawSheet,
        columns: ColumnMap,
        end: Optional[int],
        context: SheetContext,
        report_date,
        institution: str,
        entries: Dict[str, Dict[str, Any]]
    ) -> int:
        dealer_col = columns.require(("DEALER", "NAME"), ("DEALER",))
        pending_col = columns.require(("PENDING",), ("OUTSTANDING",), ("TOTAL",))
        security_col = columns.find("SECURITY")
        bucket_cols = {name: columns.find_any(*alternatives) for name, alternatives in AGING_BUCKETS}

        dropped = 0
        for row_idx, row in self.data_rows(sheet, columns, end=end):
            amounts = {name: parse_number(self.value(row, col)) for name, col in bucket_cols.items()}
            pending = parse_number(self.value(row, pending_col))
            security = parse_number(self.value(row, security_col))
            if pending is None and security is None and all(v is None for v in amounts.values()):
                # title or spacer line between blocks
                continue

            dealer_name = clean_text(self.value(row, dealer_col))
            if not normalize(dealer_name):
                self.drop_row(sheet, row_idx, "missing_dealer")
                dropped += 1
                continue

            verified_dealer_id = context.cache.resolve_dealer(dealer_name)
            key = dealer_key(verified_dealer_id, dealer_name)
            greater_than_90 = amounts['greater_than_90_days']

            entries[key] = {
                'report_date': report_date,
                'institution': institution,
                'dealer_key': key,
                'temp_dealer_name': dealer_name,
                'verified_dealer_id': verified_dealer_id,
                'security_deposit_amt': security,
                'pending_amt': pending,
                **amounts,
                'is_overdue': bool(greater_than_90 and greater_than_90 > 0),
                **context.source_fields(),
            }
        return dropped
