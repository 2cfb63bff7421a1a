"""Projection vs actual sheet transformer."""

from typing import Any, Dict, Tuple

from structlog import get_logger

from report_ingest.database.models import ReportType
from report_ingest.processors.workbook import RawSheet
from report_ingest.reports.extractors.base import BaseReportExtractor, ExtractionResult, SheetContext
from report_ingest.reports.normalization import clean_text, find_report_date, number_or_zero, round2

logger = get_logger()

# Derived "X VS Y" columns in the sheet are recomputed, never read
_NOT_DERIVED = ("VS",)


def compute_derived(
    order_projection: float,
    actual_order: float,
    do_done: float,
    collection_projection: float,
    actual_collection: float
) -> Dict[str, float]:
    """Comparison metrics recomputed from the raw projection and actual figures."""
    percent = round2(actual_collection / collection_projection * 100) if collection_projection else 0.0
    return {
        'projection_vs_actual_order_mt': order_projection - actual_order,
        'actual_order_vs_do_mt': actual_order - do_done,
        'short_fall': collection_projection - actual_collection,
        'percent': percent,
    }


class ProjectionVsActualExtractor(BaseReportExtractor):
    """Projection vs actual snapshot; zone cells are carried down."""

    report_type = ReportType.PROJECTION_VS_ACTUAL

    def extract(self, sheet: RawSheet, context: SheetContext) -> ExtractionResult:
        columns = self.columns.resolve(sheet, self.report_type)

        zone_col = columns.require(("ZONE",))
        dealer_col = columns.require(("DEALER",), ("PARTY",))
        order_projection_col = columns.require(
            ("ORDER PROJECTION",), ("ORDER", "PROJECTION"), exclude=_NOT_DERIVED
        )
        actual_order_col = columns.require(("ACTUAL ORDER",), ("ORDER", "ACTUAL"), exclude=_NOT_DERIVED)
        do_done_col = columns.require(("DO DONE",), ("DO", "DONE"), exclude=_NOT_DERIVED)
        collection_projection_col = columns.require(
            ("COLLECTION PROJECTION",), ("COLLECTION", "PROJECTION"), exclude=_NOT_DERIVED
        )
        actual_collection_col = columns.require(
            ("ACTUAL COLLECTION",), ("COLLECTION", "ACTUAL"), exclude=_NOT_DERIVED
        )

        report_date = find_report_date(sheet.rows, stop_row=columns.header_row) or context.today
        institution = context.institution_code

        snapshot: Dict[Tuple[Any, ...], Dict[str, Any]] = {}
        current_zone = None
        dropped = 0

        for row_idx, row in self.data_rows(sheet, columns):
            zone_cell = clean_text(self.value(row, zone_col))
            if zone_cell:
                current_zone = zone_cell

            figures = {
                'order_projection_mt': number_or_zero(self.value(row, order_projection_col)),
                'actual_order_received_mt': number_or_zero(self.value(row, actual_order_col)),
                'do_done_mt': number_or_zero(self.value(row, do_done_col)),
                'collection_projection': number_or_zero(self.value(row, collection_projection_col)),
                'actual_collection': number_or_zero(self.value(row, actual_collection_col)),
            }

            dealer_name = clean_text(self.value(row, dealer_col))
            if not dealer_name:
                if any(figures.values()):
                    self.drop_row(sheet, row_idx, "missing_dealer")
                    dropped += 1
                continue

            record = {
                'report_date': report_date,
                'institution': institution,
                'zone': current_zone or "",
                'dealer_name': dealer_name,
                **figures,
                **compute_derived(
                    figures['order_projection_mt'],
                    figures['actual_order_received_mt'],
                    figures['do_done_mt'],
                    figures['collection_projection'],
                    figures['actual_collection'],
                ),
                'verified_dealer_id': context.cache.resolve_dealer(dealer_name),
                **context.source_fields(),
            }
            snapshot[(report_date, dealer_name, institution)] = record

        logger.info(
            "projection_vs_actual_sheet_transformed",
            sheet=sheet.name,
            report_date=report_date.isoformat(),
            rows=len(snapshot),
            dropped=dropped
        )
        return ExtractionResult(report_type=self.report_type, records=list(snapshot.values()), dropped=dropped)
