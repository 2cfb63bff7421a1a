"""Mailbox access, ingestion orchestration and the polling worker."""
