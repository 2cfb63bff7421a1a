"""Report ingestion service - attachment to persisted records."""

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from structlog import get_logger

from report_ingest.database.connection import session_scope
from report_ingest.database.models import ReportType
from report_ingest.exceptions import ReportIngestError, log_error_with_context
from report_ingest.instrumentation.metrics import SHEETS_CLASSIFIED
from report_ingest.processors.workbook import RawSheet, WorkbookExtractor, build_raw_payload
from report_ingest.reports.classifiers import ReportClassifier, detect_institution
from report_ingest.reports.extractors import SheetContext, get_extractor
from report_ingest.reports.normalization import find_report_date
from report_ingest.reports.resolver import EntityResolutionCache
from report_ingest.reports.storage.orm import ReportStorage
from report_ingest.services.mailbox import MailAttachment, MailMessage

logger = get_logger()


@dataclass
class SheetOutcome:
    sheet_name: str
    report_type: ReportType = ReportType.UNKNOWN
    institution: Optional[str] = None
    records: int = 0
    dropped: int = 0
    error: Optional[str] = None


@dataclass
class FileOutcome:
    file_name: str
    sheets: List[SheetOutcome] = field(default_factory=list)
    archived: bool = False
    error: Optional[str] = None

    @property
    def classified(self) -> bool:
        return any(sheet.report_type != ReportType.UNKNOWN for sheet in self.sheets)


@dataclass
class MessageOutcome:
    message_id: str
    files: List[FileOutcome] = field(default_factory=list)


class ReportIngestionService:
    """Runs attachments through extraction, classification, transformation and upsert."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        entity_cache: EntityResolutionCache,
        extractor: Optional[WorkbookExtractor] = None,
        classifier: Optional[ReportClassifier] = None,
        storage_factory: Callable[[Session], ReportStorage] = ReportStorage,
        today: Callable[[], date] = date.today
    ):
        self.session_factory = session_factory
        self.entity_cache = entity_cache
        self.extractor = extractor or WorkbookExtractor()
        self.classifier = classifier or ReportClassifier()
        self.storage_factory = storage_factory
        self.today = today

    def process_message(self, message: MailMessage, attachments: Sequence[MailAttachment]) -> MessageOutcome:
        """
        Ingest every spreadsheet attachment of a message.

        A file that cannot be read is logged and skipped; the remaining files
        of the message are still processed.
        """
        outcome = MessageOutcome(message_id=message.id)
        for attachment in attachments:
            if not WorkbookExtractor.can_process(attachment.name):
                logger.info("attachment_skipped_not_spreadsheet", message_id=message.id, name=attachment.name)
                continue

            try:
                file_outcome = self.process_file(
                    attachment.content,
                    attachment.name,
                    message_id=message.id,
                    subject=message.subject,
                    sender=message.sender
                )
            except ReportIngestError as e:
                log_error_with_context(logger, e, {"message_id": message.id, "file_name": attachment.name})
                file_outcome = FileOutcome(file_name=attachment.name, error=e.message)
            outcome.files.append(file_outcome)
        return outcome

    def process_file(
        self,
        content: bytes,
        file_name: str,
        message_id: str,
        subject: Optional[str] = None,
        sender: Optional[str] = None
    ) -> FileOutcome:
        """Process one attachment; each sheet commits or fails on its own."""
        sheets = self.extractor.extract(content, file_name)
        outcome = FileOutcome(file_name=file_name)

        for sheet in sheets:
            outcome.sheets.append(self._process_sheet(sheet, file_name, message_id, subject))

        if not outcome.classified:
            self._archive(sheets, file_name, message_id, subject, sender)
            outcome.archived = True

        logger.info(
            "attachment_processed",
            message_id=message_id,
            file_name=file_name,
            sheets=len(outcome.sheets),
            records=sum(s.records for s in outcome.sheets),
            failed_sheets=sum(1 for s in outcome.sheets if s.error),
            archived=outcome.archived
        )
        return outcome

    def _process_sheet(
        self,
        sheet: RawSheet,
        file_name: str,
        message_id: str,
        subject: Optional[str]
    ) -> SheetOutcome:
        outcome = SheetOutcome(sheet_name=sheet.name)
        try:
            classified = self.classifier.classify(sheet, subject=subject, file_name=file_name)
            outcome.report_type = classified.report_type
            outcome.institution = classified.institution.value if classified.institution else None
            SHEETS_CLASSIFIED.labels(report_type=classified.report_type.value).inc()

            extractor = get_extractor(classified.report_type)
            if extractor is None:
                logger.info("sheet_skipped_unknown", file_name=file_name, sheet=sheet.name)
                return outcome

            context = SheetContext(
                message_id=message_id,
                file_name=file_name,
                cache=self.entity_cache,
                institution=classified.institution,
                today=self.today()
            )
            result = extractor.extract(sheet, context)
            outcome.dropped = result.dropped

            with session_scope(self.session_factory) as db:
                outcome.records = self.storage_factory(db).upsert(result.report_type, result.records)

        except OperationalError:
            # database unreachable: let the message stay unread for the next cycle
            raise
        except ReportIngestError as e:
            log_error_with_context(logger, e, {"file_name": file_name, "sheet": sheet.name})
            outcome.error = e.message
        except Exception as e:
            logger.error(
                "sheet_processing_failed",
                message_id=message_id,
                file_name=file_name,
                sheet=sheet.name,
                report_type=outcome.report_type.value,
                error=str(e),
                exc_info=True
            )
            outcome.error = str(e)
        return outcome

    def _archive(
        self,
        sheets: List[RawSheet],
        file_name: str,
        message_id: str,
        subject: Optional[str],
        sender: Optional[str]
    ) -> None:
        payload = build_raw_payload(sheets, message_id=message_id, file_name=file_name, subject=subject, sender=sender)
        institution = detect_institution([subject, file_name])
        report_date = find_report_date(sheets[0].rows) if sheets else None

        with session_scope(self.session_factory) as db:
            self.storage_factory(db).archive(
                message_id=message_id,
                file_name=file_name,
                payload=payload,
                subject=subject,
                sender=sender,
                institution=institution.value if institution else None,
                report_name=Path(file_name).stem,
                report_date=report_date
            )
