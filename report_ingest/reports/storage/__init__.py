"""Persistence of transformed report records."""

from .orm import ReportStorage, UPSERT_TARGETS

__all__ = ["ReportStorage", "UPSERT_TARGETS"]
