"""Normalize raw analysis payloads into service record drafts.

Two payload shapes are understood:

* structured: ``{"service_record": {...}, "service_items": [...]}``, already
  close to the database schema and mapped field for field. It may arrive
  wrapped in a ``rawStructuredData`` key.
* legacy: loosely placed blocks (``maintenanceInfo``, ``serviceInfo``,
  ``otherInfo.services`` and friends) resolved through the helpers in
  :mod:`service_ledger.inference`.

The shape is decided once, by :func:`detect_format`; everything downstream
works on the resulting :class:`StructuredPayload` or :class:`LegacyPayload`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from service_ledger import inference as inf
from service_ledger.errors import ExtractionFormatError
from service_ledger.models import ExtractionResult, ServiceItemDraft, ServiceRecordDraft

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_TYPE = "Other Service"
LEGACY_SERVICE_TYPE = "Maintenance"

LEGACY_KEYS = frozenset(
    {
        "maintenanceInfo",
        "serviceInfo",
        "otherInfo",
        "services",
        "vehicle",
        "payment",
        "service_information",
    }
)


@dataclass(frozen=True)
class StructuredPayload:
    record: Mapping[str, Any]
    items: list[Mapping[str, Any]]
    raw: Mapping[str, Any]


@dataclass(frozen=True)
class LegacyPayload:
    raw: Mapping[str, Any]


AnalysisPayload = StructuredPayload | LegacyPayload


def detect_format(payload: Any) -> AnalysisPayload:
    """Classify a raw payload, raising ExtractionFormatError if it is unusable."""
    if not payload or not isinstance(payload, Mapping):
        msg = "The document analysis returned no data."
        raise ExtractionFormatError(msg)

    for candidate in (payload.get("rawStructuredData"), payload):
        if not isinstance(candidate, Mapping):
            continue
        record = candidate.get("service_record")
        items = candidate.get("service_items")
        if isinstance(record, Mapping) and isinstance(items, list):
            return StructuredPayload(
                record=record,
                items=[i for i in items if isinstance(i, Mapping)],
                raw=candidate,
            )

    if LEGACY_KEYS & payload.keys():
        return LegacyPayload(raw=payload)

    msg = "The document analysis result is in an unrecognized format."
    raise ExtractionFormatError(msg)


def normalize(payload: Any, *, today: date | None = None) -> ExtractionResult:
    """Turn one raw analysis payload into a record draft and its item drafts.

    The draft's ``vehicle_id`` is left unset. Raises ExtractionFormatError when
    the payload is empty, unrecognized, yields no service items, or carries
    values that fail draft validation.
    """
    shape = detect_format(payload)
    try:
        if isinstance(shape, StructuredPayload):
            result = _from_structured(shape, today)
        else:
            result = _from_legacy(shape, today)
    except PydanticValidationError as exc:
        fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err["loc"])
        msg = f"The extracted data has invalid values ({fields or 'unknown field'})."
        raise ExtractionFormatError(msg) from exc

    logger.debug(
        "Normalized %s payload into %d item(s)", result.source_format, len(result.items)
    )
    return result


def _from_structured(shape: StructuredPayload, today: date | None) -> ExtractionResult:
    rec = shape.record
    total = inf.to_decimal(rec.get("total_cost"))
    if total is None:
        total = inf.sum_item_costs(shape.items)

    record = ServiceRecordDraft(
        service_date=inf.parse_date(rec.get("service_date")) or today or date.today(),
        service_provider=inf.text(rec.get("service_provider")),
        mileage=inf.to_int(rec.get("mileage")),
        total_cost=total,
        notes=inf.text(rec.get("notes")),
    )

    items = [_structured_item(item) for item in shape.items]
    if not items:
        items = _generic_items(
            description=inf.text(rec.get("description")),
            cost=total,
            service_type=DEFAULT_SERVICE_TYPE,
            parts=[],
        )

    return ExtractionResult(
        record=record,
        items=items,
        source_format="structured",
        service_type=inf.infer_service_type(shape.raw),
        summary=inf.infer_service_description(shape.raw),
    )


def _structured_item(item: Mapping[str, Any]) -> ServiceItemDraft:
    return ServiceItemDraft(
        service_type=inf.text(item.get("service_type")) or DEFAULT_SERVICE_TYPE,
        description=inf.text(item.get("description")),
        cost=inf.to_decimal(item.get("cost")),
        quantity=inf.entry_quantity(item),
        parts_replaced=inf.as_texts(item.get("parts_replaced")),
        next_service_date=inf.parse_date(item.get("next_service_date")),
        next_service_mileage=inf.to_int(item.get("next_service_mileage")),
    )


def _from_legacy(shape: LegacyPayload, today: date | None) -> ExtractionResult:
    raw = shape.raw
    total = inf.infer_total_cost(raw)

    record = ServiceRecordDraft(
        service_date=inf.infer_service_date(raw, today=today),
        service_provider=inf.infer_service_provider(raw),
        mileage=inf.infer_mileage(raw),
        total_cost=total,
        notes=inf.infer_notes(raw),
    )

    entries = inf.service_entries(raw)
    if len(entries) == 1:
        # A lone item also owns the payload-level parts list
        items = [_legacy_item(entries[0], inf.infer_parts_replaced(raw))]
    else:
        items = [_legacy_item(e, inf.infer_item_parts(e)) for e in entries]

    if not items:
        items = _generic_items(
            description=_legacy_description(raw),
            cost=total,
            service_type=_legacy_type_hint(raw),
            parts=inf.infer_parts_replaced(raw),
        )

    return ExtractionResult(
        record=record,
        items=items,
        source_format="legacy",
        service_type=inf.infer_service_type(raw),
        summary=inf.infer_service_description(raw),
    )


def _legacy_item(entry: Mapping[str, Any], parts: list[str]) -> ServiceItemDraft:
    return ServiceItemDraft(
        service_type=inf.entry_label(entry) or LEGACY_SERVICE_TYPE,
        description=inf.text(entry.get("description")),
        cost=inf.entry_price(entry),
        quantity=inf.entry_quantity(entry),
        parts_replaced=parts,
        next_service_date=inf.parse_date(
            inf.first_present(
                entry.get("nextServiceDate"), entry.get("next_service_date")
            )
        ),
        next_service_mileage=inf.to_int(
            inf.first_present(
                entry.get("nextServiceMileage"), entry.get("next_service_mileage")
            )
        ),
    )


def _legacy_description(raw: Mapping[str, Any]) -> str:
    return inf.text(
        inf.first_present(
            inf.block(raw, "maintenanceInfo").get("description"),
            inf.block(raw, "serviceInfo").get("description"),
            raw.get("description"),
        )
    )


def _legacy_type_hint(raw: Mapping[str, Any]) -> str:
    hint = inf.text(
        inf.first_present(
            inf.block(raw, "maintenanceInfo").get("serviceType"),
            inf.block(raw, "serviceInfo").get("serviceType"),
            raw.get("service_type"),
            raw.get("serviceType"),
        )
    )
    if hint:
        return hint
    if inf.block(raw, "maintenanceInfo") or inf.block(raw, "serviceInfo"):
        return LEGACY_SERVICE_TYPE
    return DEFAULT_SERVICE_TYPE


def _generic_items(
    *,
    description: str,
    cost: Decimal | None,
    service_type: str,
    parts: list[str],
) -> list[ServiceItemDraft]:
    """Synthesize the single catch-all item used when no line items were found."""
    if not description and cost is None:
        msg = "No service items could be identified in the document."
        raise ExtractionFormatError(msg)
    return [
        ServiceItemDraft(
            service_type=service_type,
            description=description,
            cost=cost,
            parts_replaced=parts,
        )
    ]
