"""Mailbox report ingestion."""

__version__ = "0.1.0"
