"""Persistence adapter for service records and their items.

No multi-statement transaction is assumed from the repository. ``create``
compensates a failed or cancelled item insert by deleting the new parent
row; ``update`` cannot undo its parent rewrite and reports the failure as
partial.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from service_ledger.errors import LinkUpdateError, PersistenceError, ValidationError
from service_ledger.models import SavedServiceRecord

if TYPE_CHECKING:
    from uuid import UUID

    from service_ledger.models import (
        ServiceItemDraft,
        ServiceRecordDraft,
        UploadedDocument,
    )
    from service_ledger.repository import ServiceRecordRepository

logger = logging.getLogger(__name__)


def validate_drafts(record: ServiceRecordDraft, items: list[ServiceItemDraft]) -> None:
    """Check required fields, raising ValidationError listing every problem."""
    problems: list[str] = []
    if record.vehicle_id is None:
        problems.append("A vehicle is required")
    if not record.service_date:
        problems.append("A service date is required")
    if not items:
        problems.append("At least one service item is required")
    elif not any(item.service_type.strip() for item in items):
        problems.append("At least one service item needs a service type")
    if problems:
        raise ValidationError(problems)


class ServiceRecordStore:
    """Create, replace and delete service records with their items."""

    def __init__(self, repository: ServiceRecordRepository) -> None:
        self.repository = repository

    async def create(
        self, record: ServiceRecordDraft, items: list[ServiceItemDraft]
    ) -> SavedServiceRecord:
        validate_drafts(record, items)

        try:
            saved = await self.repository.insert_record(record)
        except Exception as exc:
            logger.error("Failed to create service record", exc_info=True)
            msg = "Failed to save the service record."
            raise PersistenceError(msg) from exc

        try:
            saved_items = await self.repository.insert_items(saved.id, items)
        except Exception as exc:
            logger.error(
                "Failed to create items for service record %s", saved.id, exc_info=True
            )
            await self._discard_orphan(saved.id)
            msg = "Failed to save the service items."
            raise PersistenceError(msg) from exc
        except asyncio.CancelledError:
            logger.warning(
                "Creating items for service record %s was cancelled", saved.id
            )
            # A second cancel must not abort the cleanup
            await asyncio.shield(self._discard_orphan(saved.id))
            raise

        logger.info(
            "Created service record %s with %d item(s)", saved.id, len(saved_items)
        )
        return SavedServiceRecord(record=saved, items=saved_items)

    async def update(
        self,
        record_id: UUID,
        record: ServiceRecordDraft,
        items: list[ServiceItemDraft],
    ) -> SavedServiceRecord:
        """Rewrite a record in place and replace its whole item set."""
        if not record_id:
            raise ValidationError(["A service record id is required"])
        validate_drafts(record, items)

        try:
            saved = await self.repository.update_record(record_id, record)
        except Exception as exc:
            logger.error("Failed to update service record %s", record_id, exc_info=True)
            msg = "Failed to update the service record."
            raise PersistenceError(msg) from exc
        if saved is None:
            msg = f"Service record {record_id} does not exist."
            raise PersistenceError(msg)

        try:
            await self.repository.delete_items(record_id)
            saved_items = await self.repository.insert_items(record_id, items)
        except Exception as exc:
            # The parent row already holds the new values; items may be
            # stale or missing until the next successful update.
            logger.error(
                "Service record %s updated but its items were not replaced",
                record_id,
                exc_info=True,
            )
            msg = "The service record was updated but its items could not be saved."
            raise PersistenceError(msg, partial=True) from exc
        except asyncio.CancelledError:
            logger.error(
                "Service record %s updated but replacing its items was cancelled",
                record_id,
            )
            raise

        logger.info(
            "Updated service record %s with %d item(s)", record_id, len(saved_items)
        )
        return SavedServiceRecord(record=saved, items=saved_items)

    async def delete(self, record_id: UUID) -> None:
        """Delete a record; its items go with it through the cascade."""
        if not record_id:
            raise ValidationError(["A service record id is required"])
        try:
            deleted = await self.repository.delete_record(record_id)
        except Exception as exc:
            logger.error("Failed to delete service record %s", record_id, exc_info=True)
            msg = "Failed to delete the service record."
            raise PersistenceError(msg) from exc
        if not deleted:
            logger.warning("Service record %s was already gone", record_id)

    async def get(self, record_id: UUID) -> SavedServiceRecord | None:
        try:
            record = await self.repository.get_record(record_id)
            if record is None:
                return None
            items = await self.repository.list_items(record_id)
        except Exception as exc:
            msg = "Failed to load the service record."
            raise PersistenceError(msg) from exc
        return SavedServiceRecord(record=record, items=items)

    async def list_for_vehicle(self, vehicle_id: UUID) -> list[SavedServiceRecord]:
        """Return a vehicle's records, newest service date first."""
        try:
            records = await self.repository.list_records(vehicle_id)
            return [
                SavedServiceRecord(
                    record=record, items=await self.repository.list_items(record.id)
                )
                for record in records
            ]
        except Exception as exc:
            msg = "Failed to load service records."
            raise PersistenceError(msg) from exc

    async def record_document(self, values: dict[str, Any]) -> UploadedDocument:
        """Store the metadata and analysis result of an uploaded document."""
        try:
            return await self.repository.insert_document(values)
        except Exception as exc:
            logger.error("Failed to record uploaded document", exc_info=True)
            msg = "Failed to save the uploaded document."
            raise PersistenceError(msg) from exc

    async def link_document(self, document_id: UUID, record_id: UUID) -> None:
        """Point an uploaded document at the service record created from it."""
        try:
            linked = await self.repository.link_document(document_id, record_id)
        except Exception as exc:
            msg = f"Failed to link document {document_id} to record {record_id}."
            raise LinkUpdateError(msg) from exc
        if not linked:
            msg = f"Document {document_id} does not exist."
            raise LinkUpdateError(msg)
        logger.info("Linked document %s to service record %s", document_id, record_id)

    async def _discard_orphan(self, record_id: UUID) -> None:
        """Best-effort delete of a parent row left without items."""
        try:
            await self.repository.delete_record(record_id)
        except Exception:
            logger.error(
                "Failed to clean up service record %s after its items were not saved",
                record_id,
                exc_info=True,
            )
