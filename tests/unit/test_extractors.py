"""Unit tests for the per-report row transformers."""

from datetime import date

import pytest
from prometheus_client import REGISTRY
from structlog.testing import capture_logs

from report_ingest.database.models import Institution, ReportType
from report_ingest.exceptions import MissingColumnError
from report_ingest.reports.extractors import (
    CollectionExtractor,
    OutstandingExtractor,
    PJPExtractor,
    ProjectionExtractor,
    ProjectionVsActualExtractor,
    get_extractor,
)
from report_ingest.reports.extractors.outstanding import dealer_key
from report_ingest.reports.extractors.projection_vs_actual import compute_derived

TODAY = date(2026, 10, 18)


def test_get_extractor():
    assert isinstance(get_extractor(ReportType.PJP), PJPExtractor)
    assert isinstance(get_extractor(ReportType.OUTSTANDING), OutstandingExtractor)
    assert get_extractor(ReportType.UNKNOWN) is None


class TestPJPExtractor:
    """Test journey plan rows."""

    @pytest.fixture
    def pjp_sheet(self, make_sheet):
        return make_sheet([
            ["USER ID", "DATE", "COUNTER NAME", "RESPONSIBLE", "VISIT TYPE", "REQUIRED VISIT", "ZONE"],
            [101, 45678, "Sharma & Co", "Anil Sharma", None, 2, "EAST"],
            ["ABC", 45678, "Gupta Traders", None, "Meeting", None, "EAST"],
            [102, None, "Unknown Shop", None, "Meeting", 0, None],
            [None, None, "Grand Total", None, None, 3, None],
        ], name="PJP")

    def test_rows_become_tasks(self, pjp_sheet, sheet_context):
        result = PJPExtractor().extract(pjp_sheet, sheet_context(institution=Institution.JSB))

        assert len(result.records) == 2
        assert result.dropped == 1

        first, second = result.records
        assert first["user_id"] == 101
        assert first["task_date"] == date(2025, 1, 21)
        assert first["verified_dealer_id"] == 1
        assert first["assigned_by_user_id"] == 11
        assert first["visit_type"] == "Visit"
        assert first["status"] == "Assigned"
        assert first["required_visit_count"] == 2
        assert first["zone"] == "EAST"
        assert first["institution"] == "JSB"
        assert first["source_message_id"] == "msg-1"

        assert second["user_id"] == 102
        assert second["task_date"] == TODAY
        assert second["verified_dealer_id"] is None
        assert second["visit_type"] == "Meeting"
        assert second["required_visit_count"] == 1

    def test_invalid_user_id_logged(self, pjp_sheet, sheet_context):
        labels = {"report_type": "PJP", "reason": "invalid_user_id"}
        before = REGISTRY.get_sample_value("report_ingest_rows_dropped_total", labels) or 0.0

        with capture_logs() as logs:
            PJPExtractor().extract(pjp_sheet, sheet_context())

        assert REGISTRY.get_sample_value("report_ingest_rows_dropped_total", labels) == before + 1

        drops = [entry for entry in logs if entry["event"] == "row_dropped"]
        assert len(drops) == 1
        assert drops[0]["reason"] == "invalid_user_id"
        assert drops[0]["value"] == "ABC"
        assert drops[0]["row"] == 3
        assert drops[0]["log_level"] == "warning"

    def test_missing_user_id_column(self, make_sheet, sheet_context):
        sheet = make_sheet([["DATE", "DEALER"], ["01/01/2025", "Sharma"]])
        with pytest.raises(MissingColumnError):
            PJPExtractor().extract(sheet, sheet_context())


class TestCollectionExtractor:
    """Test collection vouchers."""

    def test_last_voucher_wins_and_bad_rows_dropped(self, make_sheet, sheet_context):
        sheet = make_sheet([
            ["VOUCHER NO", "VOUCHER DATE", "PARTY NAME", "AMOUNT", "BANK", "SALES PROMOTER"],
            ["V-1", "15/01/2025", "Sharma & Co", "1,000", "SBI", "Ravi Kumar"],
            ["V-2", 45678, "Unknown Party", 500, None, None],
            ["V-1", "16/01/2025", "Sharma & Co", 1200, "SBI", None],
            [None, "16/01/2025", "X", 1, None, None],
            ["V-3", "someday", "X", 1, None, None],
            ["V-4", "16/01/2025", None, 1, None, None],
        ])

        result = CollectionExtractor().extract(sheet, sheet_context(institution=Institution.JUD))

        assert result.dropped == 3
        assert [r["voucher_no"] for r in result.records] == ["V-1", "V-2"]

        v1, v2 = result.records
        assert v1["voucher_date"] == date(2025, 1, 16)
        assert v1["amount"] == 1200.0
        assert v1["verified_dealer_id"] == 1
        assert v1["sales_promoter_user_id"] is None
        assert v1["institution"] == "JUD"

        assert v2["voucher_date"] == date(2025, 1, 21)
        assert v2["verified_dealer_id"] is None

    def test_drop_reasons(self, make_sheet, sheet_context):
        sheet = make_sheet([
            ["VOUCHER NO", "VOUCHER DATE", "PARTY NAME"],
            [None, "16/01/2025", "X"],
            ["V-3", "someday", "X"],
            ["V-4", "16/01/2025", None],
        ])
        with capture_logs() as logs:
            CollectionExtractor().extract(sheet, sheet_context())

        reasons = [entry["reason"] for entry in logs if entry["event"] == "row_dropped"]
        assert reasons == ["missing_voucher_no", "invalid_voucher_date", "missing_party"]


class TestProjectionExtractor:
    """Test projection aggregation."""

    def test_merged_header_and_aggregation(self, make_sheet, sheet_context):
        sheet = make_sheet([
            ["JSB Projection 15/01/2025"],
            ["ZONE", "ORDER", None, "COLLECTION", None, "SALES PROMOTER"],
            [None, "DEALER", "QNTY", "DEALER", "AMOUNT", None],
            ["EAST", "Sharma & Co", 10, "Sharma & Co", 5000, "Ravi Kumar"],
            [None, "M/s Sharma & Co.", 15, None, 2500, None],
            ["WEST", "Local Shop", 5, "Local Shop", 100, None],
            [None, None, None, None, None, None],
            ["Total", None, 30, None, 7600, None],
        ])

        result = ProjectionExtractor().extract(sheet, sheet_context(institution=Institution.JSB))

        assert len(result.records) == 2
        east, west = result.records
        assert east["report_date"] == date(2025, 1, 15)
        assert east["zone"] == "EAST"
        assert east["verified_dealer_id"] == 1
        assert east["order_qty_mt"] == 25
        assert east["collection_amount"] == 7500
        assert east["sales_promoter_user_id"] == 10
        assert east["institution"] == "JSB"

        assert west["zone"] == "WEST"
        assert west["verified_dealer_id"] is None
        assert west["order_dealer_name"] == "Local Shop"

    def test_report_date_defaults_to_today(self, make_sheet, sheet_context):
        sheet = make_sheet([
            ["ZONE", "ORDER DEALER", "ORDER QTY", "COLLECTION DEALER", "COLLECTION AMT"],
            ["EAST", "Gupta Traders", 4, "Gupta Traders", 40],
        ])
        result = ProjectionExtractor().extract(sheet, sheet_context())
        assert result.records[0]["report_date"] == TODAY
        assert result.records[0]["institution"] == "UNKNOWN"

    def test_text_figures_keep_first_row(self, make_sheet, sheet_context):
        sheet = make_sheet([
            ["ZONE", "ORDER DEALER", "ORDER QTY", "COLLECTION DEALER", "COLLECTION AMT"],
            ["EAST", "Gupta Traders", "4", "Gupta Traders", "40"],
            ["EAST", "Local Shop", "5", "Local Shop", "50"],
        ])

        result = ProjectionExtractor().extract(sheet, sheet_context())

        assert [r["order_dealer_name"] for r in result.records] == ["Gupta Traders", "Local Shop"]
        assert result.records[0]["order_qty_mt"] == 4
        assert result.records[0]["verified_dealer_id"] == 2

    def test_missing_required_column(self, make_sheet, sheet_context):
        sheet = make_sheet([["ZONE", "DEALER", "AMOUNT"], ["EAST", "Sharma", 100]])
        with pytest.raises(MissingColumnError):
            ProjectionExtractor().extract(sheet, sheet_context())


class TestProjectionVsActualExtractor:
    """Test projection vs actual snapshots."""

    def test_text_figures_under_single_row_header(self, make_sheet, sheet_context):
        sheet = make_sheet([
            [
                "ZONE", "DEALER NAME", "ORDER PROJECTION", "ACTUAL ORDER", "DO DONE",
                "COLLECTION PROJECTION", "ACTUAL COLLECTION",
            ],
            ["EAST", "Sharma & Co", "100", "80", "70", "300", "200"],
            [None, "Gupta Traders", "50", "50", "50", "1,000", "500"],
        ])

        result = ProjectionVsActualExtractor().extract(sheet, sheet_context())

        assert [r["dealer_name"] for r in result.records] == ["Sharma & Co", "Gupta Traders"]
        sharma, gupta = result.records
        assert sharma["zone"] == "EAST"
        assert sharma["order_projection_mt"] == 100
        assert sharma["verified_dealer_id"] == 1
        assert gupta["zone"] == "EAST"
        assert gupta["collection_projection"] == 1000
        assert gupta["percent"] == 50.0

    def test_compute_derived(self):
        derived = compute_derived(100, 80, 70, 300, 200)
        assert derived == {
            'projection_vs_actual_order_mt': 20,
            'actual_order_vs_do_mt': 10,
            'short_fall': 100,
            'percent': 66.67,
        }

    def test_zero_collection_projection(self):
        assert compute_derived(0, 0, 0, 0, 50)["percent"] == 0.0

    def test_rows(self, make_sheet, sheet_context):
        sheet = make_sheet([
            ["JUD Projection vs Actual as on 20/01/2025"],
            [
                "ZONE", "DEALER NAME", "ORDER PROJECTION", "ACTUAL ORDER", "DO DONE",
                "PROJECTION VS ACTUAL ORDER", "COLLECTION PROJECTION", "ACTUAL COLLECTION",
            ],
            ["EAST", "Gupta Traders", 100, 80, 70, 999, 300, 200],
            [None, "Verma Cement Agency", 50, 50, 50, 0, 0, 0],
            [None, None, 5, 0, 0, 0, 0, 0],
            [None, None, 0, 0, 0, 0, 0, 0],
        ])

        result = ProjectionVsActualExtractor().extract(sheet, sheet_context(institution=Institution.JUD))

        assert result.dropped == 1
        assert len(result.records) == 2
        gupta, verma = result.records

        assert gupta["report_date"] == date(2025, 1, 20)
        assert gupta["projection_vs_actual_order_mt"] == 20
        assert gupta["actual_order_vs_do_mt"] == 10
        assert gupta["short_fall"] == 100
        assert gupta["percent"] == 66.67
        assert gupta["verified_dealer_id"] == 2

        assert verma["zone"] == "EAST"
        assert verma["percent"] == 0.0
        assert verma["verified_dealer_id"] == 3


class TestOutstandingExtractor:
    """Test outstanding balances across header blocks."""

    def test_dealer_key(self):
        assert dealer_key(7, "whatever") == "ID:7"
        assert dealer_key(None, "M/s. New Traders") == "NAME:NEWTRADERS"

    def test_repeated_blocks(self, make_sheet, sheet_context):
        sheet = make_sheet([
            ["JSB Outstanding as on 15/01/2025"],
            ["DEALER NAME", "SECURITY DEPOSIT", "PENDING AMOUNT", "< 10 DAYS", "10-15 DAYS", "> 90 DAYS"],
            ["Sharma & Co", 5000, 12000, 2000, 0, 1000],
            ["Unlisted Stores", None, 800, 800, None, None],
            ["Grand Total", 5000, 12800, 2800, 0, 1000],
            ["JUD Block"],
            ["DEALER NAME", "OUTSTANDING", "> 90 DAYS"],
            ["Gupta Traders", 300, 0],
            ["***", 100, None],
        ])

        result = OutstandingExtractor().extract(sheet, sheet_context(institution=Institution.JSB))

        assert result.dropped == 1
        by_key = {record["dealer_key"]: record for record in result.records}
        assert set(by_key) == {"ID:1", "NAME:UNLISTEDSTORES", "ID:2"}

        sharma = by_key["ID:1"]
        assert sharma["report_date"] == date(2025, 1, 15)
        assert sharma["security_deposit_amt"] == 5000
        assert sharma["pending_amt"] == 12000
        assert sharma["less_than_10_days"] == 2000
        assert sharma["days_10_to_15"] == 0
        assert sharma["greater_than_90_days"] == 1000
        assert sharma["days_30_to_45"] is None
        assert sharma["is_overdue"] is True

        unlisted = by_key["NAME:UNLISTEDSTORES"]
        assert unlisted["verified_dealer_id"] is None
        assert unlisted["temp_dealer_name"] == "Unlisted Stores"
        assert unlisted["is_overdue"] is False

        gupta = by_key["ID:2"]
        assert gupta["pending_amt"] == 300
        assert gupta["is_overdue"] is False

    def test_no_header(self, make_sheet, sheet_context):
        sheet = make_sheet([["Party", "Balance"], ["Sharma", 10]])
        with pytest.raises(MissingColumnError):
            OutstandingExtractor().extract(sheet, sheet_context())
