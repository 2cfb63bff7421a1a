"""Command line entry points for report ingestion."""

import asyncio
import hashlib
import logging
import signal
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

import click
import structlog

from report_ingest.config import settings
from report_ingest.database.connection import get_session_factory, init_schema
from report_ingest.exceptions import ReportIngestError
from report_ingest.instrumentation.metrics import start_metrics_server
from report_ingest.reports.resolver import EntityResolutionCache, SqlDirectoryReader
from report_ingest.services.ingestion_service import ReportIngestionService
from report_ingest.services.mail_worker import MailWorker
from report_ingest.services.mailbox import GraphMailboxGateway

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Route stdlib and structlog output through one JSON-rendering handler."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(message)s", stream=sys.stdout)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def build_ingestion_service() -> ReportIngestionService:
    session_factory = get_session_factory()
    cache = EntityResolutionCache(
        SqlDirectoryReader(session_factory),
        ttl=timedelta(seconds=settings["ENTITY_CACHE_TTL_SECONDS"])
    )
    return ReportIngestionService(session_factory, cache)


def manual_message_id(path: Path, content: bytes) -> str:
    """Stable id for a manual run so re-ingesting the same file stays idempotent."""
    return f"manual:{path.name}:{hashlib.sha256(content).hexdigest()[:16]}"


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
def cli(log_level: Optional[str]):
    """Mailbox report ingestion tools."""
    configure_logging(log_level or settings["LOG_LEVEL"])


@cli.command()
def worker():
    """Poll the shared mailbox and ingest report attachments until interrupted."""
    asyncio.run(_run_worker())


async def _run_worker() -> None:
    service = build_ingestion_service()
    gateway = GraphMailboxGateway.from_settings(settings)
    mail_worker = MailWorker(
        gateway,
        service,
        processed_folder_id=settings.get("PROCESSED_FOLDER_ID"),
        idle_interval=settings["IDLE_POLL_SECONDS"],
        error_backoff=settings["ERROR_BACKOFF_SECONDS"]
    )
    start_metrics_server(settings.get("METRICS_PORT", 0))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, mail_worker.stop)
        except NotImplementedError:
            logger.warning(f"Signal handler for {sig.name} not supported on this platform")

    try:
        await mail_worker.start()
    finally:
        await gateway.close()


@cli.command('ingest-file')
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--subject', default=None, help='Subject line used for the classification hint')
@click.option('--message-id', default=None, help='Source message id recorded on every row')
def ingest_file(path: Path, subject: Optional[str], message_id: Optional[str]):
    """Run a local spreadsheet through the same pipeline as the worker."""
    content = path.read_bytes()
    message_id = message_id or manual_message_id(path, content)
    service = build_ingestion_service()

    try:
        outcome = service.process_file(content, path.name, message_id=message_id, subject=subject)
    except ReportIngestError as e:
        click.echo(f"✗ Error: {e.message}")
        sys.exit(1)

    for sheet in outcome.sheets:
        status = f"✗ {sheet.error}" if sheet.error else "✓"
        click.echo(
            f"  {sheet.sheet_name}: {sheet.report_type.value} "
            f"[{sheet.institution or '-'}] records={sheet.records} dropped={sheet.dropped} {status}"
        )
    if outcome.archived:
        click.echo("No sheet classified - file archived for review")


@cli.command('init-db')
def init_db():
    """Create all tables in the configured database."""
    init_schema()
    click.echo("Database schema created")


if __name__ == "__main__":
    cli()
