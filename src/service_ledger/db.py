"""Database connection helpers."""

from __future__ import annotations

from importlib.resources import files
from typing import Any

import psycopg
from psycopg.rows import dict_row

from service_ledger.config import get_database_url


async def get_connection() -> psycopg.AsyncConnection[dict[str, Any]]:
    """Create and return a new autocommit database connection.

    Each statement commits on its own; multi-step writes rely on the
    compensation done in :mod:`service_ledger.persistence`.
    """
    return await psycopg.AsyncConnection.connect(
        get_database_url(), autocommit=True, row_factory=dict_row
    )


def load_schema() -> str:
    """Return the bundled SQL schema."""
    return files("service_ledger").joinpath("schema.sql").read_text(encoding="utf-8")


async def apply_schema(conn: psycopg.AsyncConnection[Any]) -> None:
    """Create the service-ledger tables if they do not exist."""
    await conn.execute(load_schema())  # type: ignore[arg-type]
