"""Domain and draft models for vehicle service records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field


@dataclass
class DocumentFile:
    """An uploaded receipt or invoice file."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class ServiceRecordDraft(BaseModel):
    """Unsaved service visit awaiting user confirmation.

    ``vehicle_id`` stays unset until the caller binds the active vehicle.
    """

    vehicle_id: UUID | None = None
    service_date: date
    service_provider: str = ""
    mileage: int | None = Field(default=None, ge=0)
    total_cost: Decimal | None = Field(default=None, ge=0)
    notes: str = ""


class ServiceItemDraft(BaseModel):
    """Unsaved service action within a visit."""

    service_type: str = ""
    description: str = ""
    cost: Decimal | None = Field(default=None, ge=0)
    quantity: int = Field(default=1, gt=0)
    parts_replaced: list[str] = Field(default_factory=list)
    next_service_date: date | None = None
    next_service_mileage: int | None = Field(default=None, ge=0)


class ServiceRecord(BaseModel):
    """Service record as stored in the database."""

    id: UUID
    vehicle_id: UUID
    service_date: date
    service_provider: str | None
    mileage: int | None
    total_cost: Decimal | None
    notes: str | None
    created_at: datetime
    updated_at: datetime

    def as_draft(self) -> ServiceRecordDraft:
        """Return an editable draft carrying this record's values."""
        return ServiceRecordDraft(
            vehicle_id=self.vehicle_id,
            service_date=self.service_date,
            service_provider=self.service_provider or "",
            mileage=self.mileage,
            total_cost=self.total_cost,
            notes=self.notes or "",
        )


class ServiceItem(BaseModel):
    """Service item as stored in the database."""

    id: UUID
    service_record_id: UUID
    service_type: str
    description: str | None
    cost: Decimal | None
    quantity: int
    parts_replaced: list[str] | None
    next_service_date: date | None
    next_service_mileage: int | None
    created_at: datetime
    updated_at: datetime

    def as_draft(self) -> ServiceItemDraft:
        return ServiceItemDraft(
            service_type=self.service_type,
            description=self.description or "",
            cost=self.cost,
            quantity=self.quantity,
            parts_replaced=list(self.parts_replaced or []),
            next_service_date=self.next_service_date,
            next_service_mileage=self.next_service_mileage,
        )


class SavedServiceRecord(BaseModel):
    """A persisted service record together with its items."""

    record: ServiceRecord
    items: list[ServiceItem]


class UploadedDocument(BaseModel):
    """Uploaded receipt or invoice as stored in the database."""

    id: UUID
    vehicle_id: UUID
    file_name: str
    file_type: str
    file_size: int
    file_url: str
    storage_key: str
    analyzed: bool
    analysis_result: dict[str, Any] | None
    service_record_id: UUID | None
    created_at: datetime


class ExtractionResult(BaseModel):
    """Normalized drafts produced from one analysis payload."""

    record: ServiceRecordDraft
    items: list[ServiceItemDraft]
    source_format: Literal["structured", "legacy"]
    service_type: str | None = None
    summary: str = ""
