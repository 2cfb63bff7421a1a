"""ORM storage for ingested report records."""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session
from structlog import get_logger

from report_ingest.config import load_settings
from report_ingest.database.models import (
    CollectionReport,
    DailyTask,
    EmailReport,
    OutstandingReport,
    ProjectionReport,
    ProjectionVsActualReport,
    ReportType,
)
from report_ingest.exceptions import UnsupportedDialectError
from report_ingest.instrumentation.metrics import FILES_ARCHIVED, RECORDS_UPSERTED, REPORT_TABLE_ROWS

logger = get_logger()
settings = load_settings()


@dataclass(frozen=True)
class UpsertTarget:
    """Table, natural key, and columns left untouched on conflict."""
    model: Any
    conflict_columns: Tuple[str, ...]
    preserve_columns: Tuple[str, ...] = ()


UPSERT_TARGETS: Dict[ReportType, UpsertTarget] = {
    ReportType.PJP: UpsertTarget(
        DailyTask,
        ("user_id", "task_date", "dealer_name", "visit_type", "area", "route", "description"),
        # task progress belongs to the field app once assigned
        preserve_columns=("status",),
    ),
    ReportType.COLLECTION: UpsertTarget(CollectionReport, ("voucher_no", "institution")),
    ReportType.PROJECTION: UpsertTarget(
        ProjectionReport,
        ("report_date", "order_dealer_name", "collection_dealer_name", "institution", "zone"),
    ),
    ReportType.PROJECTION_VS_ACTUAL: UpsertTarget(
        ProjectionVsActualReport,
        ("report_date", "dealer_name", "institution"),
    ),
    ReportType.OUTSTANDING: UpsertTarget(OutstandingReport, ("report_date", "dealer_key", "institution")),
}

ARCHIVE_TARGET = UpsertTarget(EmailReport, ("message_id", "file_name"))

_NEVER_UPDATED = ("id", "created_at")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def dedupe_rows(rows: Iterable[Dict[str, Any]], key_columns: Tuple[str, ...]) -> List[Dict[str, Any]]:
    """Collapse rows sharing a natural key; the last one wins, first-seen order kept."""
    unique: Dict[Tuple[Any, ...], Dict[str, Any]] = {}
    for row in rows:
        unique[tuple(row.get(col) for col in key_columns)] = row
    return list(unique.values())


class ReportStorage:
    """Conflict-aware writer for report tables and the raw archive."""

    def __init__(
        self,
        db: Session,
        chunk_size: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """Initialize storage with database session."""
        self.db = db
        self.chunk_size = chunk_size or settings.get("UPSERT_CHUNK_SIZE", 1000)
        self.clock = clock

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise UnsupportedDialectError(dialect)

    def _execute_upsert(self, target: UpsertTarget, rows: List[Dict[str, Any]]) -> int:
        now = self.clock()
        prepared = [{**row, "id": uuid.uuid4(), "updated_at": now} for row in rows]

        written = 0
        for start in range(0, len(prepared), self.chunk_size):
            chunk = prepared[start:start + self.chunk_size]
            stmt = self._insert(target.model).values(chunk)
            skip = set(target.conflict_columns) | set(target.preserve_columns) | set(_NEVER_UPDATED)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(target.conflict_columns),
                set_={
                    column: stmt.excluded[column]
                    for column in chunk[0].keys()
                    if column not in skip
                }
            )
            self.db.execute(stmt)
            written += len(chunk)
        return written

    def count_rows(self, report_type: ReportType, institutions: Iterable[Optional[str]]) -> Dict[str, int]:
        """Row counts per institution; side-channel only."""
        model = UPSERT_TARGETS[report_type].model
        wanted = set(institutions)
        result = self.db.execute(
            select(model.institution, func.count()).group_by(model.institution)
        ).all()
        counts = {str(inst): 0 for inst in wanted}
        for institution, count in result:
            if institution in wanted:
                counts[str(institution)] = count
        return counts

    def _record_counts(self, report_type: ReportType, phase: str, counts: Dict[str, int]) -> None:
        for institution, count in counts.items():
            REPORT_TABLE_ROWS.labels(
                report_type=report_type.value,
                institution=institution,
                phase=phase
            ).set(count)

    def upsert(self, report_type: ReportType, rows: List[Dict[str, Any]]) -> int:
        """Insert or merge records of one report type on their natural key."""
        target = UPSERT_TARGETS[report_type]
        unique = dedupe_rows(rows, target.conflict_columns)
        if not unique:
            return 0

        institutions = {row.get("institution") for row in unique}
        before = self.count_rows(report_type, institutions)
        self._record_counts(report_type, "before", before)

        written = self._execute_upsert(target, unique)
        self.db.flush()

        after = self.count_rows(report_type, institutions)
        self._record_counts(report_type, "after", after)
        RECORDS_UPSERTED.labels(report_type=report_type.value).inc(written)

        logger.info(
            "report_rows_upserted",
            report_type=report_type.value,
            table=target.model.__tablename__,
            received=len(rows),
            written=written,
            count_before=before,
            count_after=after
        )
        return written

    def archive(
        self,
        message_id: str,
        file_name: str,
        payload: Dict[str, Any],
        subject: Optional[str] = None,
        sender: Optional[str] = None,
        institution: Optional[str] = None,
        report_name: Optional[str] = None,
        report_date: Optional[date] = None
    ) -> None:
        """Store an unclassified attachment verbatim; a retried message replaces its archive."""
        row = {
            "message_id": message_id,
            "file_name": file_name or "",
            "subject": subject,
            "sender": sender,
            "payload": payload,
            "processed": False,
            "institution": institution,
            "report_name": report_name,
            "report_date": report_date,
        }
        self._execute_upsert(ARCHIVE_TARGET, [row])
        self.db.flush()
        FILES_ARCHIVED.inc()

        logger.info(
            "attachment_archived",
            message_id=message_id,
            file_name=file_name,
            sheets=payload.get("workbook", {}).get("sheet_count")
        )
