"""Collection voucher sheet transformer."""

from typing import Any, Dict, Tuple

from structlog import get_logger

from report_ingest.database.models import ReportType
from report_ingest.processors.workbook import RawSheet
from report_ingest.reports.extractors.base import BaseReportExtractor, ExtractionResult, SheetContext
from report_ingest.reports.normalization import clean_text, parse_date, parse_number

logger = get_logger()


class CollectionExtractor(BaseReportExtractor):
    """Collection vouchers; a repeated voucher keeps the last row seen."""

    report_type = ReportType.COLLECTION

    def extract(self, sheet: RawSheet, context: SheetContext) -> ExtractionResult:
        columns = self.columns.resolve(sheet, self.report_type)

        voucher_col = columns.require(("VOUCHER", "NO"), ("VOUCHER", "NUMBER"), ("VOUCHER",), exclude=("DATE",))
        date_col = columns.require(("VOUCHER", "DATE"), ("DATE",))
        party_col = columns.require(("PARTY",))
        amount_col = columns.find_any(("AMOUNT",), ("AMT",), ("CREDIT",))
        bank_col = columns.find("BANK")
        remarks_col = columns.find_any(("REMARK",), ("NARRATION",))
        promoter_col = columns.find_any(("SALES PROMOTER",), ("PROMOTER",), ("SALESMAN",))
        zone_col = columns.find("ZONE")
        district_col = columns.find("DISTRICT")

        institution = context.institution_code
        vouchers: Dict[Tuple[str, str], Dict[str, Any]] = {}
        dropped = 0

        for row_idx, row in self.data_rows(sheet, columns):
            voucher_no = clean_text(self.value(row, voucher_col))
            if not voucher_no:
                self.drop_row(sheet, row_idx, "missing_voucher_no")
                dropped += 1
                continue

            raw_date = self.value(row, date_col)
            voucher_date = parse_date(raw_date)
            if voucher_date is None:
                self.drop_row(sheet, row_idx, "invalid_voucher_date", value=raw_date)
                dropped += 1
                continue

            party_name = clean_text(self.value(row, party_col))
            if not party_name:
                self.drop_row(sheet, row_idx, "missing_party")
                dropped += 1
                continue

            promoter = clean_text(self.value(row, promoter_col))
            vouchers[(voucher_no, institution)] = {
                'institution': institution,
                'voucher_no': voucher_no,
                'voucher_date': voucher_date,
                'amount': parse_number(self.value(row, amount_col)),
                'bank_account': clean_text(self.value(row, bank_col)),
                'remarks': clean_text(self.value(row, remarks_col)),
                'party_name': party_name,
                'sales_promoter_name': promoter,
                'sales_promoter_user_id': context.cache.resolve_user(promoter) if promoter else None,
                'zone': clean_text(self.value(row, zone_col)),
                'district': clean_text(self.value(row, district_col)),
                'verified_dealer_id': context.cache.resolve_dealer(party_name),
                **context.source_fields(),
            }

        logger.info(
            "collection_sheet_transformed",
            sheet=sheet.name,
            vouchers=len(vouchers),
            dropped=dropped
        )
        return ExtractionResult(report_type=self.report_type, records=list(vouchers.values()), dropped=dropped)
