"""Mailbox polling worker."""

import asyncio
from enum import Enum
from typing import Optional

from structlog import get_logger

from report_ingest.exceptions import ReportIngestError, log_error_with_context
from report_ingest.instrumentation.metrics import MESSAGES_PROCESSED, WORKER_STATE
from report_ingest.services.ingestion_service import ReportIngestionService
from report_ingest.services.mailbox import MailboxGateway, MailMessage

logger = get_logger()


class WorkerState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    SLEEPING = "SLEEPING"
    STOPPED = "STOPPED"


_STATE_GAUGE = {
    WorkerState.IDLE: 0,
    WorkerState.RUNNING: 1,
    WorkerState.SLEEPING: 2,
    WorkerState.STOPPED: 3,
}


class MailWorker:
    """
    Polls the mailbox and drains unread report messages one at a time.

    A cycle that found messages is followed immediately by another; an empty
    cycle sleeps for the idle interval and a failed cycle for the error
    backoff. Both sleeps end early on wake() or stop().
    """

    def __init__(
        self,
        gateway: MailboxGateway,
        ingestion_service: ReportIngestionService,
        processed_folder_id: Optional[str] = None,
        idle_interval: float = 15.0,
        error_backoff: float = 30.0
    ):
        self.gateway = gateway
        self.ingestion_service = ingestion_service
        self.processed_folder_id = processed_folder_id
        self.idle_interval = idle_interval
        self.error_backoff = error_backoff

        self._state = WorkerState.IDLE
        self._stop_requested = False
        self._signal: Optional[asyncio.Event] = None

    @property
    def state(self) -> WorkerState:
        return self._state

    def _set_state(self, state: WorkerState) -> None:
        self._state = state
        WORKER_STATE.set(_STATE_GAUGE[state])

    async def start(self) -> None:
        """Run the polling loop until stop() is called."""
        if self._state in (WorkerState.RUNNING, WorkerState.SLEEPING):
            logger.warning("mail_worker_already_running")
            return

        self._stop_requested = False
        self._signal = asyncio.Event()
        logger.info("mail_worker_started", idle_interval=self.idle_interval, error_backoff=self.error_backoff)

        while not self._stop_requested:
            self._set_state(WorkerState.RUNNING)
            try:
                processed_any = await self.process_inbox()
            except Exception as e:
                logger.error("mail_cycle_failed", error=str(e), exc_info=True)
                await self._sleep(self.error_backoff)
                continue

            if not processed_any:
                await self._sleep(self.idle_interval)

        self._set_state(WorkerState.STOPPED)
        logger.info("mail_worker_stopped")

    def stop(self) -> None:
        """Request a stop; an in-flight message finishes first."""
        self._stop_requested = True
        if self._signal is not None:
            self._signal.set()
        if self._state == WorkerState.IDLE:
            self._set_state(WorkerState.STOPPED)

    def wake(self) -> None:
        """Cut the current sleep short; ignored unless sleeping."""
        if self._state == WorkerState.SLEEPING and self._signal is not None:
            self._signal.set()

    async def _sleep(self, seconds: float) -> None:
        if self._stop_requested:
            return
        self._set_state(WorkerState.SLEEPING)
        self._signal.clear()
        try:
            await asyncio.wait_for(self._signal.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def process_inbox(self) -> bool:
        """One poll-and-drain cycle; True when at least one message was handled."""
        messages = await self.gateway.list_unread_with_attachments()
        if not messages:
            return False

        logger.info("mail_cycle_messages", count=len(messages))
        handled = 0
        for message in messages:
            if self._stop_requested:
                break
            try:
                await self._handle_message(message)
                handled += 1
                MESSAGES_PROCESSED.labels(status="processed").inc()
            except Exception as e:
                MESSAGES_PROCESSED.labels(status="failed").inc()
                if isinstance(e, ReportIngestError):
                    log_error_with_context(logger, e, {"message_id": message.id})
                else:
                    logger.error("mail_message_failed", message_id=message.id, error=str(e), exc_info=True)
        return handled > 0

    async def _handle_message(self, message: MailMessage) -> None:
        attachments = await self.gateway.get_attachments(message.id)
        if not attachments:
            logger.info("mail_without_attachments", message_id=message.id)
            await self.gateway.mark_as_read(message.id)
            return

        logger.info("mail_processing", message_id=message.id, subject=message.subject, attachments=len(attachments))
        outcome = self.ingestion_service.process_message(message, attachments)

        await self.gateway.mark_as_read(message.id)
        if self.processed_folder_id:
            await self.gateway.move_mail(message.id, self.processed_folder_id)

        logger.info(
            "mail_processed",
            message_id=message.id,
            files=len(outcome.files),
            archived=sum(1 for f in outcome.files if f.archived)
        )
