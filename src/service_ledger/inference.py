"""Field inference over loosely shaped analysis payloads.

Each ``infer_*`` helper resolves one normalized value by consulting a fixed
list of candidate locations in priority order. Payloads are plain JSON-like
mappings. Legacy payloads may nest their blocks (``vehicle``, ``payment``,
``services``, ...) either at the top level or inside ``otherInfo``; both are
searched, top level first. Nothing here mutates its input.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

logger = logging.getLogger(__name__)

Payload = Mapping[str, Any]

PRIORITY_SERVICE_TYPES = ("Oil Change", "Maintenance", "Repair", "Inspection")

_ODOMETER_KEYS = ("odometer_km", "odometer_miles", "odometer")
_FILTER_ID_KEYS = ("filter_model", "filter")


# -- value coercion --------------------------------------------------------


def text(value: Any) -> str:
    """Return ``value`` as stripped text, or "" for non-scalar values."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, int | float | Decimal):
        return str(value)
    return ""


def to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int | float):
        # Through str so 89.99 stays 89.99 rather than its binary expansion
        result = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = value.strip().lstrip("$").replace(",", "")
        if not cleaned:
            return None
        try:
            result = Decimal(cleaned)
        except InvalidOperation:
            logger.debug("Ignoring non-numeric amount %r", value)
            return None
    else:
        return None
    return result if result.is_finite() else None


def to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        if not cleaned:
            return None
        try:
            return int(float(cleaned))
        except ValueError:
            logger.debug("Ignoring non-numeric integer %r", value)
            return None
    return None


def parse_date(value: Any) -> date | None:
    """Parse an ISO calendar date, tolerating a trailing time component."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            logger.debug("Ignoring unparseable date %r", value)
    return None


def as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list | tuple) else []


def as_texts(value: Any) -> list[str]:
    """Return the non-empty text entries of a list value, in order."""
    return [t for t in (text(v) for v in as_list(value)) if t]


def unique_texts(values: Iterable[Any]) -> list[str]:
    """Return non-empty text values in first-seen order without repeats."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        t = text(value)
        if t and t not in seen:
            seen.add(t)
            result.append(t)
    return result


def first_present(*values: Any) -> Any:
    """Return the first value that is not None, blank text or an empty container."""
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        if isinstance(value, list | tuple | dict) and not value:
            continue
        return value
    return None


# -- payload navigation ----------------------------------------------------


def lookup(payload: Payload, name: str) -> Any:
    """Return ``payload[name]``, falling back to ``payload["otherInfo"][name]``."""
    value = payload.get(name)
    if value is not None:
        return value
    other = payload.get("otherInfo")
    if isinstance(other, Mapping):
        return other.get(name)
    return None


def block(payload: Payload, name: str) -> Mapping[str, Any]:
    """Return the named sub-object of the payload, or an empty mapping."""
    value = lookup(payload, name)
    return value if isinstance(value, Mapping) else {}


def service_entries(payload: Payload) -> list[Mapping[str, Any]]:
    """Return the recognized service line items of a payload.

    Sources, first non-empty wins: ``service_items``, ``services``, the
    ``maintenanceInfo`` block when it lists replaced parts, then
    ``serviceInfo.items``.
    """
    for candidate in (payload.get("service_items"), lookup(payload, "services")):
        entries = [e for e in as_list(candidate) if isinstance(e, Mapping)]
        if entries:
            return entries

    maintenance = block(payload, "maintenanceInfo")
    if as_list(maintenance.get("partsReplaced")):
        return [maintenance]

    items = block(payload, "serviceInfo").get("items")
    return [e for e in as_list(items) if isinstance(e, Mapping)]


def entry_label(entry: Mapping[str, Any]) -> str:
    return text(
        first_present(
            entry.get("category"), entry.get("serviceType"), entry.get("service_type")
        )
    )


def entry_price(entry: Mapping[str, Any]) -> Decimal | None:
    return to_decimal(first_present(entry.get("price"), entry.get("cost")))


def entry_quantity(entry: Mapping[str, Any]) -> int:
    quantity = to_int(entry.get("quantity"))
    return quantity if quantity is not None and quantity > 0 else 1


def entry_parts(entry: Mapping[str, Any]) -> list[str]:
    return as_texts(
        first_present(entry.get("parts_replaced"), entry.get("partsReplaced"))
    )


# -- field helpers ---------------------------------------------------------


def infer_service_date(payload: Payload, *, today: date | None = None) -> date:
    """Resolve the service date, defaulting to today so a record is always creatable."""
    candidates = (
        block(payload, "maintenanceInfo").get("serviceDate"),
        block(payload, "serviceInfo").get("serviceDate"),
        block(payload, "service_information").get("service_date"),
        lookup(payload, "service_date"),
        lookup(payload, "serviceDate"),
    )
    for candidate in candidates:
        parsed = parse_date(candidate)
        if parsed is not None:
            return parsed
    return today or date.today()


def infer_mileage(payload: Payload) -> int | None:
    vehicle = block(payload, "vehicle")
    candidates = [vehicle.get(key) for key in _ODOMETER_KEYS]
    candidates.append(block(payload, "maintenanceInfo").get("mileage"))
    candidates.append(block(payload, "serviceInfo").get("mileage"))
    for candidate in candidates:
        mileage = to_int(candidate)
        if mileage is not None and mileage >= 0:
            return mileage
    return None


def sum_item_costs(entries: Iterable[Mapping[str, Any]]) -> Decimal | None:
    """Sum price x quantity over entries; None when no entry carries a price."""
    total = Decimal(0)
    priced = False
    for entry in entries:
        price = entry_price(entry)
        if price is None:
            continue
        priced = True
        total += price * entry_quantity(entry)
    return total if priced else None


def infer_total_cost(payload: Payload) -> Decimal | None:
    explicit = (
        block(payload, "payment").get("total"),
        block(payload, "serviceInfo").get("totalCost"),
        block(payload, "maintenanceInfo").get("cost"),
    )
    for candidate in explicit:
        total = to_decimal(candidate)
        if total is not None:
            return total
    return sum_item_costs(service_entries(payload))


def infer_service_provider(payload: Payload) -> str:
    candidates = (
        block(payload, "service_information").get("service_provider"),
        block(payload, "serviceInfo").get("serviceProvider"),
        block(payload, "maintenanceInfo").get("serviceProvider"),
        lookup(payload, "service_provider"),
        lookup(payload, "provider"),
        lookup(payload, "location"),
    )
    for candidate in candidates:
        provider = text(candidate)
        if provider:
            return provider
    return ""


def infer_notes(payload: Payload) -> str:
    return text(
        first_present(
            block(payload, "maintenanceInfo").get("notes"),
            block(payload, "serviceInfo").get("notes"),
            block(payload, "additional_information").get("notes"),
            lookup(payload, "notes"),
        )
    )


def infer_item_parts(entry: Mapping[str, Any]) -> list[str]:
    """Parts listed on one entry plus filter and fluid replacements it implies."""
    parts: list[Any] = list(entry_parts(entry))
    label = entry_label(entry)

    haystack = f"{label} {text(entry.get('description'))}".lower()
    if "filter" in haystack:
        filter_id = first_present(*(text(entry.get(k)) for k in _FILTER_ID_KEYS))
        if filter_id:
            parts.append(f"Filter: {filter_id}")

    fluid = text(entry.get("fluid"))
    if fluid:
        parts.append(f"{label or 'Fluid'}: {fluid}")

    return unique_texts(parts)


def infer_parts_replaced(payload: Payload) -> list[str]:
    parts: list[Any] = []
    parts.extend(as_list(lookup(payload, "parts_replaced")))
    parts.extend(as_list(lookup(payload, "partsReplaced")))
    parts.extend(as_list(block(payload, "maintenanceInfo").get("partsReplaced")))
    for entry in service_entries(payload):
        parts.extend(infer_item_parts(entry))
    return unique_texts(parts)


def infer_service_type(payload: Payload) -> str | None:
    """Resolve a single headline service type across all recognized entries."""
    labels = [
        label
        for label in (
            entry_label(e) or text(e.get("description"))
            for e in service_entries(payload)
        )
        if label
    ]
    distinct = unique_texts(labels)
    if not distinct:
        return None
    if len(distinct) == 1:
        return distinct[0]

    for term in PRIORITY_SERVICE_TYPES:
        for label in labels:
            if term.lower() in label.lower():
                return label

    return ", ".join(distinct)


def infer_service_description(payload: Payload) -> str:
    return ", ".join(
        part
        for part in (
            text(e.get("description")) or entry_label(e)
            for e in service_entries(payload)
        )
        if part
    )
