"""Database models for report ingestion."""

import uuid
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.sql import func

from report_ingest.database.connection import Base


class ReportType(str, Enum):
    """Business report types carried by mailbox attachments."""
    PJP = "PJP"
    COLLECTION = "COLLECTION"
    PROJECTION = "PROJECTION"
    PROJECTION_VS_ACTUAL = "PROJECTION_VS_ACTUAL"
    OUTSTANDING = "OUTSTANDING"
    UNKNOWN = "UNKNOWN"


class Institution(str, Enum):
    """Counterpart organizations whose reports are ingested."""
    JSB = "JSB"
    JUD = "JUD"


# Stored when a sheet carries no institution marker; keeps natural keys non-null.
UNKNOWN_INSTITUTION = "UNKNOWN"


# ---------------------------------------------------------------------------
# Directory tables (read by the entity resolution cache)
# ---------------------------------------------------------------------------

class User(Base):
    """Field user directory entry."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    first_name = Column(String(255))
    last_name = Column(String(255))
    email = Column(String(255))


class VerifiedDealer(Base):
    """Canonical dealer directory entry."""
    __tablename__ = "verified_dealers"

    id = Column(Integer, primary_key=True)
    dealer_code = Column(String(255))
    dealer_party_name = Column(String(255))
    zone = Column(String(255))
    area = Column(String(255))


# ---------------------------------------------------------------------------
# Report tables (written by the upsert engine)
# ---------------------------------------------------------------------------

class DailyTask(Base):
    """Visit assignment produced from a PJP sheet."""
    __tablename__ = "daily_tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, nullable=False)
    assigned_by_user_id = Column(Integer)
    verified_dealer_id = Column(Integer, ForeignKey("verified_dealers.id", ondelete="SET NULL"))
    task_date = Column(Date, nullable=False)
    visit_type = Column(String(50), nullable=False, default="Visit")
    status = Column(String(50), nullable=False, default="Assigned")

    # Snapshot of the sheet row
    dealer_name = Column(String(255), nullable=False, default="")
    dealer_mobile = Column(String(50))
    responsible_person = Column(String(255))
    zone = Column(String(120))
    area = Column(String(255), nullable=False, default="")
    route = Column(String(500), nullable=False, default="")
    description = Column(String(500), nullable=False, default="")  # objective column
    week = Column(String(50))
    required_visit_count = Column(Integer, default=1)
    institution = Column(String(10))

    # Source
    source_message_id = Column(Text)
    source_file_name = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "user_id", "task_date", "dealer_name", "visit_type", "area", "route", "description",
            name="uq_daily_task_visit"
        ),
        Index("ix_daily_tasks_task_date", "task_date"),
    )


class CollectionReport(Base):
    """Collection voucher row."""
    __tablename__ = "collection_reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    institution = Column(String(10), nullable=False)
    voucher_no = Column(String(100), nullable=False)
    voucher_date = Column(Date, nullable=False)
    amount = Column(Float)
    bank_account = Column(String(255))
    remarks = Column(String(500))
    party_name = Column(String(255), nullable=False)
    sales_promoter_name = Column(String(255))
    sales_promoter_user_id = Column(Integer)
    zone = Column(String(100))
    district = Column(String(100))
    verified_dealer_id = Column(Integer, ForeignKey("verified_dealers.id", ondelete="SET NULL"))

    source_message_id = Column(Text)
    source_file_name = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("voucher_no", "institution", name="uq_collection_voucher_inst"),
        Index("ix_collection_voucher_date", "voucher_date"),
    )


class ProjectionReport(Base):
    """Sales and collection projection (planning) row."""
    __tablename__ = "projection_reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    institution = Column(String(10), nullable=False)
    report_date = Column(Date, nullable=False)
    zone = Column(String(100), nullable=False)
    order_dealer_name = Column(String(255), nullable=False, default="")
    order_qty_mt = Column(Float)
    collection_dealer_name = Column(String(255), nullable=False, default="")
    collection_amount = Column(Float)
    sales_promoter_user_id = Column(Integer)
    verified_dealer_id = Column(Integer, ForeignKey("verified_dealers.id", ondelete="SET NULL"))

    source_message_id = Column(Text)
    source_file_name = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "report_date", "order_dealer_name", "collection_dealer_name", "institution", "zone",
            name="uq_projection_snapshot"
        ),
        Index("ix_projection_report_date", "report_date"),
    )


class ProjectionVsActualReport(Base):
    """Projection versus actual snapshot row."""
    __tablename__ = "projection_vs_actual_reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    report_date = Column(Date, nullable=False)
    institution = Column(String(10), nullable=False)
    zone = Column(String(120), nullable=False, default="")
    dealer_name = Column(String(255), nullable=False)
    order_projection_mt = Column(Float)
    actual_order_received_mt = Column(Float)
    do_done_mt = Column(Float)
    projection_vs_actual_order_mt = Column(Float)
    actual_order_vs_do_mt = Column(Float)
    collection_projection = Column(Float)
    actual_collection = Column(Float)
    short_fall = Column(Float)
    percent = Column(Float)
    verified_dealer_id = Column(Integer, ForeignKey("verified_dealers.id", ondelete="SET NULL"))

    source_message_id = Column(Text)
    source_file_name = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("report_date", "dealer_name", "institution", name="uq_proj_actual_snapshot"),
        Index("ix_proj_actual_zone", "zone"),
    )


class OutstandingReport(Base):
    """Outstanding balance with aging buckets per dealer."""
    __tablename__ = "outstanding_reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    report_date = Column(Date, nullable=False)
    institution = Column(String(10), nullable=False)
    dealer_key = Column(String(300), nullable=False)  # ID:<dealer id> or NAME:<normalized name>
    temp_dealer_name = Column(Text)
    verified_dealer_id = Column(Integer, ForeignKey("verified_dealers.id", ondelete="SET NULL"))

    security_deposit_amt = Column(Float)
    pending_amt = Column(Float)
    less_than_10_days = Column(Float)
    days_10_to_15 = Column(Float)
    days_15_to_21 = Column(Float)
    days_21_to_30 = Column(Float)
    days_30_to_45 = Column(Float)
    days_45_to_60 = Column(Float)
    days_60_to_75 = Column(Float)
    days_75_to_90 = Column(Float)
    greater_than_90_days = Column(Float)
    is_overdue = Column(Boolean, default=False)

    source_message_id = Column(Text)
    source_file_name = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("report_date", "dealer_key", "institution", name="uq_outstanding_entry"),
        Index("ix_outstanding_verified_dealer", "verified_dealer_id"),
    )


class EmailReport(Base):
    """Verbatim archive of an attachment none of whose sheets could be classified."""
    __tablename__ = "email_reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    message_id = Column(Text, nullable=False)
    subject = Column(Text)
    sender = Column(Text)
    file_name = Column(Text, nullable=False, default="")
    payload = Column(JSON, nullable=False)
    processed = Column(Boolean, default=False)
    institution = Column(String(10))
    report_name = Column(Text)
    report_date = Column(Date)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("message_id", "file_name", name="uq_email_report_file"),
        Index("ix_email_reports_message", "message_id"),
    )
