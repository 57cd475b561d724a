"""Configuration via environment variables."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def get_database_url() -> str:
    """Return the DATABASE_URL from the environment."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        msg = "DATABASE_URL environment variable is required"
        raise ValueError(msg)
    return url


def get_document_store_path() -> Path:
    """Return the DOCUMENT_STORE_PATH, defaulting to ./data/documents.

    Always resolves to an absolute path to avoid issues if the
    working directory changes during execution.
    """
    return Path(os.environ.get("DOCUMENT_STORE_PATH", "./data/documents")).resolve()


def get_document_base_url() -> str | None:
    """Return the public base URL for stored documents, if one is configured."""
    return os.environ.get("DOCUMENT_BASE_URL") or None


def get_anthropic_api_key() -> str:
    """Return the ANTHROPIC_API_KEY from the environment."""
    key = os.environ.get("ANTHROPIC_API_KEY")
    if not key:
        msg = "ANTHROPIC_API_KEY environment variable is required"
        raise ValueError(msg)
    return key


def get_llm_model() -> str:
    """Return the LLM model identifier.

    Defaults to claude-haiku-4-5-20251001.
    """
    return os.environ.get("LLM_MODEL", "claude-haiku-4-5-20251001")


def get_extraction_timeout() -> float:
    """Return the per-step timeout, in seconds, for extraction sessions.

    Reads EXTRACTION_TIMEOUT (default 120). Upload, analysis and database
    calls made by a session are each bounded by this value.
    """
    raw = os.environ.get("EXTRACTION_TIMEOUT", "120")
    try:
        timeout = float(raw)
    except ValueError:
        msg = f"EXTRACTION_TIMEOUT must be a number, got {raw!r}"
        raise ValueError(msg) from None
    if timeout <= 0:
        msg = f"EXTRACTION_TIMEOUT must be positive, got {raw!r}"
        raise ValueError(msg)
    return timeout
