"""Pytest configuration and shared fixtures."""

import io
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Sequence

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from report_ingest.database.connection import Base
from report_ingest.database.models import User, VerifiedDealer
from report_ingest.processors.workbook import RawSheet
from report_ingest.reports.extractors.base import SheetContext
from report_ingest.reports.resolver import DealerEntry, EntityResolutionCache, SqlDirectoryReader, UserEntry

TODAY = date(2026, 10, 18)

DEALERS = [
    DealerEntry(id=1, dealer_party_name="M/s. Sharma & Co.", dealer_code="D001", zone="EAST"),
    DealerEntry(id=2, dealer_party_name="Gupta Traders", dealer_code="D002", zone="EAST"),
    DealerEntry(id=3, dealer_party_name="Verma Cement Agency", dealer_code="D003", zone="WEST"),
]

USERS = [
    UserEntry(id=10, first_name="Ravi", last_name="Kumar"),
    UserEntry(id=11, first_name="Anil", last_name="Sharma"),
    UserEntry(id=12, first_name="Ravi", last_name="Kumar Singh"),
    UserEntry(id=13, first_name="Priya", last_name=None),
]


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class StaticDirectory:
    """In-memory directory reader that counts reloads."""

    def __init__(self, dealers=None, users=None):
        self.dealers = list(DEALERS if dealers is None else dealers)
        self.users = list(USERS if users is None else users)
        self.loads = 0

    def load_dealers(self) -> List[DealerEntry]:
        self.loads += 1
        return list(self.dealers)

    def load_users(self) -> List[UserEntry]:
        return list(self.users)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def static_directory() -> StaticDirectory:
    return StaticDirectory()


@pytest.fixture
def memory_cache(static_directory, clock) -> EntityResolutionCache:
    """Entity cache over the in-memory directory."""
    return EntityResolutionCache(static_directory, ttl=timedelta(seconds=300), clock=clock)


@pytest.fixture
def sheet_context(memory_cache):
    """Factory for a SheetContext bound to the in-memory cache."""
    def _make(institution=None, file_name="report.xlsx", message_id="msg-1"):
        return SheetContext(
            message_id=message_id,
            file_name=file_name,
            cache=memory_cache,
            institution=institution,
            today=TODAY
        )
    return _make


@pytest.fixture
def make_sheet():
    def _make(rows: Sequence[Sequence], name: str = "Sheet1") -> RawSheet:
        return RawSheet(name=name, rows=[list(row) for row in rows])
    return _make


@pytest.fixture
def make_workbook():
    """Build .xlsx bytes from {sheet name: rows}."""
    def _make(sheets: Dict[str, Sequence[Sequence]]) -> bytes:
        workbook = Workbook()
        workbook.remove(workbook.active)
        for name, rows in sheets.items():
            worksheet = workbook.create_sheet(title=name)
            for row in rows:
                worksheet.append(list(row))
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()
    return _make


@pytest.fixture
def test_db_engine():
    """Create a test database engine using SQLite in memory."""
    from report_ingest.database import models  # noqa: F401

    engine = create_engine(
        "sqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return sessionmaker(bind=test_db_engine, expire_on_commit=False)


@pytest.fixture
def test_db_session(session_factory):
    """Create a test database session with proper cleanup."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def seeded_directory(session_factory):
    """Populate the dealer and user directory tables."""
    with session_factory() as session:
        for dealer in DEALERS:
            session.add(VerifiedDealer(
                id=dealer.id,
                dealer_party_name=dealer.dealer_party_name,
                dealer_code=dealer.dealer_code,
                zone=dealer.zone
            ))
        for user in USERS:
            session.add(User(id=user.id, first_name=user.first_name, last_name=user.last_name))
        session.commit()


@pytest.fixture
def db_cache(session_factory, seeded_directory, clock) -> EntityResolutionCache:
    """Entity cache reading the seeded SQL directory."""
    return EntityResolutionCache(SqlDirectoryReader(session_factory), clock=clock)
