"""Prometheus metrics instrumentation for report ingestion."""

import logging

from prometheus_client import Counter, Gauge, Info, start_http_server

logger = logging.getLogger(__name__)

# Custom business metrics
MESSAGES_PROCESSED = Counter(
    'report_ingest_messages_processed_total',
    'Mailbox messages handled by the worker',
    ['status']
)

SHEETS_CLASSIFIED = Counter(
    'report_ingest_sheets_classified_total',
    'Worksheets classified, by decided report type',
    ['report_type']
)

RECORDS_UPSERTED = Counter(
    'report_ingest_records_upserted_total',
    'Records written through the upsert engine',
    ['report_type']
)

ROWS_DROPPED = Counter(
    'report_ingest_rows_dropped_total',
    'Sheet rows rejected during transformation',
    ['report_type', 'reason']
)

FILES_ARCHIVED = Counter(
    'report_ingest_files_archived_total',
    'Attachments archived verbatim because no sheet was classified'
)

REPORT_TABLE_ROWS = Gauge(
    'report_ingest_table_rows',
    'Row count of a report table around an upsert batch',
    ['report_type', 'institution', 'phase']
)

WORKER_STATE = Gauge(
    'report_ingest_worker_state',
    'Mail worker state (0=idle, 1=running, 2=sleeping, 3=stopped)'
)

SYSTEM_INFO = Info(
    'report_ingest_system_info',
    'System information and version'
)


def start_metrics_server(port: int) -> bool:
    """Expose /metrics on the given port; a port of 0 disables the endpoint."""
    if not port:
        logger.info("Metrics endpoint disabled")
        return False

    start_http_server(port)
    SYSTEM_INFO.info({'service': 'report-ingest'})
    logger.info(f"Prometheus metrics exposed on port {port}")
    return True
