"""Row-level storage for service records, items and uploaded documents."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from psycopg import sql
from psycopg.types.json import Jsonb

from service_ledger.models import ServiceItem, ServiceRecord, UploadedDocument

if TYPE_CHECKING:
    from uuid import UUID

    import psycopg

    from service_ledger.models import ServiceItemDraft, ServiceRecordDraft

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = (
    "vehicle_id",
    "service_date",
    "service_provider",
    "mileage",
    "total_cost",
    "notes",
)


class ServiceRecordRepository(Protocol):
    """Protocol for the relational store behind the persistence adapter.

    Each method is atomic on its own; failures propagate as exceptions.
    """

    async def insert_record(self, draft: ServiceRecordDraft) -> ServiceRecord: ...

    async def update_record(
        self, record_id: UUID, draft: ServiceRecordDraft
    ) -> ServiceRecord | None: ...

    async def delete_record(self, record_id: UUID) -> bool: ...

    async def get_record(self, record_id: UUID) -> ServiceRecord | None: ...

    async def list_records(self, vehicle_id: UUID) -> list[ServiceRecord]: ...

    async def insert_items(
        self, record_id: UUID, drafts: list[ServiceItemDraft]
    ) -> list[ServiceItem]: ...

    async def delete_items(self, record_id: UUID) -> None: ...

    async def list_items(self, record_id: UUID) -> list[ServiceItem]: ...

    async def insert_document(self, values: dict[str, Any]) -> UploadedDocument: ...

    async def link_document(self, document_id: UUID, record_id: UUID) -> bool: ...


class PostgresServiceRecordRepository:
    """ServiceRecordRepository over a psycopg async connection with dict rows."""

    def __init__(self, conn: psycopg.AsyncConnection[dict[str, Any]]) -> None:
        self.conn = conn

    async def insert_record(self, draft: ServiceRecordDraft) -> ServiceRecord:
        row = await self._insert_returning("service_records", _record_values(draft))
        return ServiceRecord.model_validate(row)

    async def update_record(
        self, record_id: UUID, draft: ServiceRecordDraft
    ) -> ServiceRecord | None:
        values = _record_values(draft)
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(col), sql.Placeholder())
            for col in values
        )
        query = sql.SQL(
            "UPDATE service_records SET {assignments}, updated_at = now() "
            "WHERE id = %s RETURNING *"
        ).format(assignments=assignments)
        async with self.conn.cursor() as cur:
            await cur.execute(query, (*values.values(), record_id))
            row = await cur.fetchone()
        return ServiceRecord.model_validate(row) if row is not None else None

    async def delete_record(self, record_id: UUID) -> bool:
        async with self.conn.cursor() as cur:
            await cur.execute("DELETE FROM service_records WHERE id = %s", (record_id,))
            return cur.rowcount > 0

    async def get_record(self, record_id: UUID) -> ServiceRecord | None:
        async with self.conn.cursor() as cur:
            await cur.execute(
                "SELECT * FROM service_records WHERE id = %s", (record_id,)
            )
            row = await cur.fetchone()
        return ServiceRecord.model_validate(row) if row is not None else None

    async def list_records(self, vehicle_id: UUID) -> list[ServiceRecord]:
        async with self.conn.cursor() as cur:
            await cur.execute(
                "SELECT * FROM service_records WHERE vehicle_id = %s "
                "ORDER BY service_date DESC, created_at DESC",
                (vehicle_id,),
            )
            rows = await cur.fetchall()
        return [ServiceRecord.model_validate(row) for row in rows]

    async def insert_items(
        self, record_id: UUID, drafts: list[ServiceItemDraft]
    ) -> list[ServiceItem]:
        items: list[ServiceItem] = []
        async with self.conn.transaction():
            for draft in drafts:
                values = {"service_record_id": record_id, **draft.model_dump()}
                row = await self._insert_returning("service_items", values)
                items.append(ServiceItem.model_validate(row))
        return items

    async def delete_items(self, record_id: UUID) -> None:
        await self.conn.execute(
            "DELETE FROM service_items WHERE service_record_id = %s", (record_id,)
        )

    async def list_items(self, record_id: UUID) -> list[ServiceItem]:
        async with self.conn.cursor() as cur:
            await cur.execute(
                "SELECT * FROM service_items WHERE service_record_id = %s "
                "ORDER BY created_at, id",
                (record_id,),
            )
            rows = await cur.fetchall()
        return [ServiceItem.model_validate(row) for row in rows]

    async def insert_document(self, values: dict[str, Any]) -> UploadedDocument:
        values = dict(values)
        if values.get("analysis_result") is not None:
            values["analysis_result"] = Jsonb(values["analysis_result"])
        row = await self._insert_returning("documents", values)
        return UploadedDocument.model_validate(row)

    async def link_document(self, document_id: UUID, record_id: UUID) -> bool:
        async with self.conn.cursor() as cur:
            await cur.execute(
                "UPDATE documents SET service_record_id = %s, updated_at = now() "
                "WHERE id = %s",
                (record_id, document_id),
            )
            return cur.rowcount > 0

    async def _insert_returning(
        self, table: str, values: dict[str, Any]
    ) -> dict[str, Any]:
        columns = sql.SQL(", ").join(sql.Identifier(col) for col in values)
        placeholders = sql.SQL(", ").join(sql.Placeholder() for _ in values)
        query = sql.SQL(
            "INSERT INTO {table} ({columns}) VALUES ({values}) RETURNING *"
        ).format(
            table=sql.Identifier(table),
            columns=columns,
            values=placeholders,
        )
        async with self.conn.cursor() as cur:
            await cur.execute(query, tuple(values.values()))
            row = await cur.fetchone()
        if row is None:
            msg = f"INSERT into {table} returned no row"
            raise RuntimeError(msg)
        logger.debug("Inserted %s row %s", table, row.get("id"))
        return row


def _record_values(draft: ServiceRecordDraft) -> dict[str, Any]:
    values = draft.model_dump(include=set(_RECORD_COLUMNS))
    return {col: values[col] for col in _RECORD_COLUMNS}
