"""Spreadsheet attachment processors."""

from .workbook import RawSheet, WorkbookExtractor, build_raw_payload

__all__ = ["RawSheet", "WorkbookExtractor", "build_raw_payload"]
