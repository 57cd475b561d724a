"""CLI entry point for service-ledger."""

from __future__ import annotations

import asyncio
import json
import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import UUID

import click

from service_ledger.config import get_document_base_url, get_document_store_path
from service_ledger.db import apply_schema, get_connection
from service_ledger.errors import ServiceLedgerError
from service_ledger.models import DocumentFile
from service_ledger.persistence import ServiceRecordStore
from service_ledger.repository import PostgresServiceRecordRepository
from service_ledger.session import ExtractionSession
from service_ledger.store import LocalFileStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pydantic import BaseModel


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Service Ledger: vehicle service records from receipts."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("init-db")
def init_db() -> None:
    """Create the database tables."""

    async def run(repository: PostgresServiceRecordRepository) -> None:
        await apply_schema(repository.conn)

    _run(run)
    click.echo("Database schema applied.")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--vehicle-id", type=click.UUID, required=True, help="Vehicle to file under."
)
@click.option("--save", is_flag=True, help="Save the extracted record.")
def extract(file: Path, vehicle_id: UUID, save: bool) -> None:
    """Extract a service record from a receipt or invoice FILE."""
    content_type = mimetypes.guess_type(file.name)[0] or "application/octet-stream"
    document = DocumentFile(
        filename=file.name, content_type=content_type, data=file.read_bytes()
    )

    async def run(repository: PostgresServiceRecordRepository) -> None:
        session = ExtractionSession(
            LocalFileStore(get_document_store_path(), get_document_base_url()),
            ServiceRecordStore(repository),
        )
        result = await session.analyze(document, vehicle_id)
        _echo_json(result)
        if save:
            saved = await session.save(vehicle_id)
            click.echo(f"Saved service record {saved.record.id}")

    _run(run)


@cli.command()
@click.argument("record_id", type=click.UUID)
def show(record_id: UUID) -> None:
    """Show a service record and its items."""

    async def run(repository: PostgresServiceRecordRepository) -> None:
        saved = await ServiceRecordStore(repository).get(record_id)
        if saved is None:
            raise click.ClickException(f"Service record {record_id} not found.")
        _echo_json(saved)

    _run(run)


@cli.command()
@click.argument("record_id", type=click.UUID)
def delete(record_id: UUID) -> None:
    """Delete a service record and its items."""

    async def run(repository: PostgresServiceRecordRepository) -> None:
        await ServiceRecordStore(repository).delete(record_id)

    _run(run)
    click.echo(f"Deleted service record {record_id}")


def _run(
    command: Callable[[PostgresServiceRecordRepository], Awaitable[Any]],
) -> None:
    """Run an async command against a fresh database connection."""

    async def main() -> None:
        conn = await get_connection()
        async with conn:
            await command(PostgresServiceRecordRepository(conn))

    try:
        asyncio.run(main())
    except (ServiceLedgerError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_json(model: BaseModel) -> None:
    click.echo(json.dumps(model.model_dump(mode="json"), indent=2))
