"""Sales/collection projection sheet transformer."""

from typing import Any, Dict, Tuple

from structlog import get_logger

from report_ingest.database.models import ReportType
from report_ingest.processors.workbook import RawSheet
from report_ingest.reports.extractors.base import BaseReportExtractor, ExtractionResult, SheetContext
from report_ingest.reports.normalization import clean_text, find_report_date, number_or_zero

logger = get_logger()


class ProjectionExtractor(BaseReportExtractor):
    """
    Projection rows aggregated per (zone, dealer).

    Rows that resolve to the same dealer within a zone are summed; unresolved
    rows are grouped by the raw order/collection dealer name pair.
    """

    report_type = ReportType.PROJECTION

    def extract(self, sheet: RawSheet, context: SheetContext) -> ExtractionResult:
        columns = self.columns.resolve(sheet, self.report_type)

        zone_col = columns.require(("ZONE",))
        order_dealer_col = columns.require(("ORDER", "DEALER"), ("ORDER", "NAME"), ("ORDER", "PARTY"))
        order_qty_col = columns.require(("ORDER", "QNTY"), ("ORDER", "QTY"), ("ORDER", "MT"))
        collection_dealer_col = columns.require(
            ("COLLECTION", "DEALER"), ("COLLECTION", "NAME"), ("COLLECTION", "PARTY")
        )
        collection_amount_col = columns.require(("COLLECTION", "AMOUNT"), ("COLLECTION", "AMT"))
        promoter_col = columns.find_any(("SALES PROMOTER",), ("PROMOTER",))

        report_date = find_report_date(sheet.rows, stop_row=columns.header_row) or context.today
        institution = context.institution_code

        grouped: Dict[Tuple[Any, ...], Dict[str, Any]] = {}
        current_zone = None

        for _, row in self.data_rows(sheet, columns):
            zone_cell = clean_text(self.value(row, zone_col))
            if zone_cell:
                current_zone = zone_cell
            zone = current_zone or ""

            order_name = clean_text(self.value(row, order_dealer_col)) or ""
            collection_name = clean_text(self.value(row, collection_dealer_col)) or ""
            if not order_name and not collection_name:
                continue

            order_qty = number_or_zero(self.value(row, order_qty_col))
            collection_amount = number_or_zero(self.value(row, collection_amount_col))

            dealer_id = context.cache.resolve_dealer(order_name) or context.cache.resolve_dealer(collection_name)
            key = (zone, dealer_id) if dealer_id is not None else (zone, order_name, collection_name)

            existing = grouped.get(key)
            if existing is not None:
                existing['order_qty_mt'] += order_qty
                existing['collection_amount'] += collection_amount
                continue

            promoter = clean_text(self.value(row, promoter_col))
            grouped[key] = {
                'institution': institution,
                'report_date': report_date,
                'zone': zone,
                'order_dealer_name': order_name,
                'order_qty_mt': order_qty,
                'collection_dealer_name': collection_name,
                'collection_amount': collection_amount,
                'sales_promoter_user_id': context.cache.resolve_user(promoter) if promoter else None,
                'verified_dealer_id': dealer_id,
                **context.source_fields(),
            }

        logger.info(
            "projection_sheet_transformed",
            sheet=sheet.name,
            report_date=report_date.isoformat(),
            rows=len(grouped)
        )
        return ExtractionResult(report_type=self.report_type, records=list(grouped.values()))
