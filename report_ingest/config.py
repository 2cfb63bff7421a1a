import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(encoding='utf-8')  # do not print secrets


def _get_database_url() -> str:
    """Get database URL, normalizing the postgres driver to psycopg3."""
    url = os.getenv("DATABASE_URL", "").strip()
    if url.startswith("postgresql+psycopg2://"):
        return url.replace("postgresql+psycopg2://", "postgresql+psycopg://")
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://")
    return url


def _read_runtime_yaml() -> dict:
    p = BASE_DIR / "config" / "runtime.yaml"
    if p.exists():
        with p.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
            if isinstance(data, dict):
                return data
    return {}


def _env_number(name: str, default, cast=float):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return cast(default)
    try:
        return cast(raw)
    except ValueError:
        return cast(default)


def load_settings() -> dict:
    rt = _read_runtime_yaml()

    ingestion_cfg = rt.get("ingestion") or {}
    mailbox_cfg = rt.get("mailbox") or {}

    settings = {
        # tracked defaults, env overrides runtime.yaml
        "IDLE_POLL_SECONDS": _env_number("IDLE_POLL_SECONDS", ingestion_cfg.get("idle_poll_seconds", 15)),
        "ERROR_BACKOFF_SECONDS": _env_number("ERROR_BACKOFF_SECONDS", ingestion_cfg.get("error_backoff_seconds", 30)),
        "ENTITY_CACHE_TTL_SECONDS": _env_number("ENTITY_CACHE_TTL_SECONDS", ingestion_cfg.get("entity_cache_ttl_seconds", 300)),
        "UPSERT_CHUNK_SIZE": _env_number("UPSERT_CHUNK_SIZE", ingestion_cfg.get("upsert_chunk_size", 1000), int),
        "UNREAD_PAGE_SIZE": _env_number("UNREAD_PAGE_SIZE", mailbox_cfg.get("unread_page_size", 25), int),
        "GRAPH_TIMEOUT_SECONDS": _env_number("GRAPH_TIMEOUT_SECONDS", mailbox_cfg.get("timeout_seconds", 60)),
        "LOG_LEVEL": (os.getenv("LOG_LEVEL") or rt.get("log_level") or "INFO").upper(),
        "METRICS_PORT": _env_number("METRICS_PORT", rt.get("metrics_port", 0), int),
        # secrets & identifiers (env ONLY)
        "DATABASE_URL": _get_database_url(),
        "TENANT_ID": os.getenv("TENANT_ID"),
        "CLIENT_ID": os.getenv("CLIENT_ID"),
        "CLIENT_SECRET": os.getenv("CLIENT_SECRET"),
        "MAILBOX": os.getenv("MAILBOX"),
        "PROCESSED_FOLDER_ID": os.getenv("PROCESSED_FOLDER_ID"),
    }
    return settings


settings = load_settings()
