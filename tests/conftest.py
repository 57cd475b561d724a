"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

import pytest

from service_ledger.models import (
    DocumentFile,
    ServiceItem,
    ServiceRecord,
    UploadedDocument,
)

if TYPE_CHECKING:
    from pathlib import Path

    from service_ledger.models import ServiceItemDraft, ServiceRecordDraft


class InMemoryRepository:
    """ServiceRecordRepository keeping rows in dicts.

    Add a method name to ``fail_on`` to make that call raise RuntimeError, or
    to ``delays`` to make it sleep first. ``entered[name]`` is set once the
    call has started.
    """

    def __init__(self) -> None:
        self.records: dict[UUID, ServiceRecord] = {}
        self.items: dict[UUID, ServiceItem] = {}
        self.documents: dict[UUID, UploadedDocument] = {}
        self.fail_on: set[str] = set()
        self.calls: list[str] = []
        self.delays: dict[str, float] = {}
        self.entered: defaultdict[str, asyncio.Event] = defaultdict(asyncio.Event)

    async def _enter(self, name: str) -> None:
        self.calls.append(name)
        self.entered[name].set()
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        if name in self.fail_on:
            msg = f"{name} failed"
            raise RuntimeError(msg)

    async def insert_record(self, draft: ServiceRecordDraft) -> ServiceRecord:
        await self._enter("insert_record")
        now = datetime.now(tz=UTC)
        assert draft.vehicle_id is not None
        record = ServiceRecord(
            id=uuid4(),
            created_at=now,
            updated_at=now,
            **draft.model_dump(),
        )
        self.records[record.id] = record
        return record

    async def update_record(
        self, record_id: UUID, draft: ServiceRecordDraft
    ) -> ServiceRecord | None:
        await self._enter("update_record")
        existing = self.records.get(record_id)
        if existing is None:
            return None
        record = existing.model_copy(
            update={**draft.model_dump(), "updated_at": datetime.now(tz=UTC)}
        )
        self.records[record_id] = record
        return record

    async def delete_record(self, record_id: UUID) -> bool:
        await self._enter("delete_record")
        if self.records.pop(record_id, None) is None:
            return False
        for item_id in [
            i.id for i in self.items.values() if i.service_record_id == record_id
        ]:
            del self.items[item_id]
        return True

    async def get_record(self, record_id: UUID) -> ServiceRecord | None:
        await self._enter("get_record")
        return self.records.get(record_id)

    async def list_records(self, vehicle_id: UUID) -> list[ServiceRecord]:
        await self._enter("list_records")
        records = [r for r in self.records.values() if r.vehicle_id == vehicle_id]
        return sorted(records, key=lambda r: r.service_date, reverse=True)

    async def insert_items(
        self, record_id: UUID, drafts: list[ServiceItemDraft]
    ) -> list[ServiceItem]:
        await self._enter("insert_items")
        now = datetime.now(tz=UTC)
        created = [
            ServiceItem(
                id=uuid4(),
                service_record_id=record_id,
                created_at=now,
                updated_at=now,
                **draft.model_dump(),
            )
            for draft in drafts
        ]
        for item in created:
            self.items[item.id] = item
        return created

    async def delete_items(self, record_id: UUID) -> None:
        await self._enter("delete_items")
        for item_id in [
            i.id for i in self.items.values() if i.service_record_id == record_id
        ]:
            del self.items[item_id]

    async def list_items(self, record_id: UUID) -> list[ServiceItem]:
        await self._enter("list_items")
        return [i for i in self.items.values() if i.service_record_id == record_id]

    async def insert_document(self, values: dict[str, Any]) -> UploadedDocument:
        await self._enter("insert_document")
        document = UploadedDocument(
            id=uuid4(),
            created_at=datetime.now(tz=UTC),
            service_record_id=None,
            **values,
        )
        self.documents[document.id] = document
        return document

    async def link_document(self, document_id: UUID, record_id: UUID) -> bool:
        await self._enter("link_document")
        document = self.documents.get(document_id)
        if document is None:
            return False
        self.documents[document_id] = document.model_copy(
            update={"service_record_id": record_id}
        )
        return True


@pytest.fixture
def repository() -> InMemoryRepository:
    """Provide an empty in-memory repository."""
    return InMemoryRepository()


@pytest.fixture
def vehicle_id() -> UUID:
    return UUID("6f1c2a9e-3b4d-4e5f-8a7b-9c0d1e2f3a4b")


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    """Provide a temporary directory as the document store root."""
    root = tmp_path / "documents"
    root.mkdir()
    return root


@pytest.fixture
def receipt_image() -> DocumentFile:
    """Provide a minimal uploaded receipt image."""
    return DocumentFile(
        filename="Quick Lube Receipt.jpg",
        content_type="image/jpeg",
        data=b"\xff\xd8\xff\xe0fake-jpeg",
    )


@pytest.fixture
def structured_payload() -> dict[str, Any]:
    """Provide a structured-format analysis payload with two items."""
    return {
        "service_record": {
            "service_date": "2025-06-15",
            "service_provider": "Quick Lube Express",
            "mileage": 48210,
            "total_cost": 124.98,
            "notes": "Rotate tires at next visit",
        },
        "service_items": [
            {
                "service_type": "Oil Change",
                "description": "5W-30 full synthetic, 5 qt",
                "cost": 89.99,
                "parts_replaced": None,
                "quantity": 1,
                "next_service_date": "2025-12-15",
                "next_service_mileage": 53210,
            },
            {
                "service_type": "Filter Replacement",
                "description": "Engine air filter",
                "cost": 34.99,
                "parts_replaced": ["Air filter CA10467"],
                "quantity": None,
                "next_service_date": None,
                "next_service_mileage": None,
            },
        ],
        "vehicle_info": {"make": "Honda", "model": "Civic", "year": 2019},
    }
