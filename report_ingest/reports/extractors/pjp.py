"""PJP (journey plan) sheet transformer."""

from structlog import get_logger

from report_ingest.database.models import ReportType
from report_ingest.processors.workbook import RawSheet
from report_ingest.reports.extractors.base import BaseReportExtractor, ExtractionResult, SheetContext
from report_ingest.reports.normalization import clean_text, parse_date, parse_int

logger = get_logger()

DEFAULT_VISIT_TYPE = "Visit"
DEFAULT_STATUS = "Assigned"


class PJPExtractor(BaseReportExtractor):
    """Turns journey plan rows into daily visit tasks."""

    report_type = ReportType.PJP

    def extract(self, sheet: RawSheet, context: SheetContext) -> ExtractionResult:
        columns = self.columns.resolve(sheet, self.report_type)

        user_col = columns.require(("USER ID",))
        date_col = columns.find_any(("TASK DATE",), ("DATE",))
        zone_col = columns.find("ZONE")
        area_col = columns.find("AREA")
        route_col = columns.find("ROUTE")
        responsible_col = columns.find_any(("RESPONSIBLE",), ("ASSIGNED BY",))
        objective_col = columns.find_any(("OBJECTIVE",), ("DESCRIPTION",))
        type_col = columns.find("TYPE")
        dealer_col = columns.find_any(("COUNTER",), ("DEALER", "NAME"), ("DEALER",), ("PARTY",))
        mobile_col = columns.find_any(("MOBILE",), ("PHONE",), ("CONTACT",))
        week_col = columns.find("WEEK")
        visits_col = columns.find_any(("REQUIRED",), ("VISIT", "COUNT"), ("NO OF VISIT",))

        result = ExtractionResult(report_type=self.report_type)
        for row_idx, row in self.data_rows(sheet, columns):
            raw_user = self.value(row, user_col)
            user_id = parse_int(raw_user)
            if user_id is None:
                self.drop_row(sheet, row_idx, "invalid_user_id", value=raw_user)
                result.dropped += 1
                continue

            task_date = parse_date(self.value(row, date_col)) or context.today
            dealer_name = clean_text(self.value(row, dealer_col)) or ""
            responsible = clean_text(self.value(row, responsible_col))
            visits = parse_int(self.value(row, visits_col))

            result.records.append({
                'user_id': user_id,
                'assigned_by_user_id': context.cache.resolve_user(responsible) if responsible else None,
                'verified_dealer_id': context.cache.resolve_dealer(dealer_name) if dealer_name else None,
                'task_date': task_date,
                'visit_type': clean_text(self.value(row, type_col)) or DEFAULT_VISIT_TYPE,
                'status': DEFAULT_STATUS,
                'dealer_name': dealer_name,
                'dealer_mobile': clean_text(self.value(row, mobile_col)),
                'responsible_person': responsible,
                'zone': clean_text(self.value(row, zone_col)),
                'area': clean_text(self.value(row, area_col)) or "",
                'route': clean_text(self.value(row, route_col)) or "",
                'description': clean_text(self.value(row, objective_col)) or "",
                'week': clean_text(self.value(row, week_col)),
                'required_visit_count': visits if visits and visits > 0 else 1,
                'institution': context.institution_code,
                **context.source_fields(),
            })

        logger.info(
            "pjp_sheet_transformed",
            sheet=sheet.name,
            tasks=len(result.records),
            dropped=result.dropped
        )
        return result
