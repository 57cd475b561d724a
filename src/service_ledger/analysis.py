"""LLM-based service document analysis using pydantic-ai."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field
from pydantic_ai import Agent, BinaryContent

from service_ledger.config import get_anthropic_api_key, get_llm_model
from service_ledger.errors import AnalysisError
from service_ledger.models import DocumentFile

logger = logging.getLogger(__name__)

SERVICE_TYPES = (
    "Oil Change",
    "Filter Replacement",
    "Brake Service",
    "Tire Service",
    "Engine Service",
    "Transmission Service",
    "Cooling System",
    "Electrical System",
    "Suspension",
    "Exhaust System",
    "Fuel System",
    "Air Conditioning",
    "Battery Service",
    "Inspection",
    "Diagnostic",
    "Fluid Service",
    "Belt/Hose Service",
    "Tune-Up",
    "Emission Service",
    "Other Service",
)

_SYSTEM_PROMPT = """\
You are an expert automotive service document analyzer. Given a receipt or \
invoice from a vehicle service visit, extract every service performed.

- service_record: the visit as a whole. service_date (YYYY-MM-DD), \
service_provider (the exact business name), mileage (odometer reading as a \
number), total_cost (the amount charged, numeric), notes (warranty info, \
recommendations, anything else worth keeping).
- service_items: one entry per distinct service performed. service_type \
must be one of the standard types listed below. description should be \
specific: oil grade, filter model, part numbers. cost is numeric. \
parts_replaced lists replaced parts. quantity, next_service_date and \
next_service_mileage when the document states them.
- vehicle_info: make, model, year, vin and license_plate if visible.

Create separate items for separate services: an oil change with a new \
filter is two items, "Oil Change" and "Filter Replacement". Convert all \
dates to YYYY-MM-DD and all money to plain numbers without currency \
symbols. Use null for anything the document does not state.

Standard service types: {service_types}\
""".format(service_types=", ".join(f'"{t}"' for t in SERVICE_TYPES))

_USER_PROMPT = "Extract the service information from this document."


class AnalyzedServiceRecord(BaseModel):
    """Visit-level fields as returned by the model, before normalization."""

    service_date: str | None = None
    service_provider: str | None = None
    mileage: int | None = None
    total_cost: float | None = None
    notes: str | None = None


class AnalyzedServiceItem(BaseModel):
    service_type: str | None = None
    description: str | None = None
    cost: float | None = None
    parts_replaced: list[str] | None = None
    quantity: int | None = None
    next_service_date: str | None = None
    next_service_mileage: int | None = None


class AnalyzedVehicle(BaseModel):
    make: str | None = None
    model: str | None = None
    year: int | None = None
    vin: str | None = None
    license_plate: str | None = None


class ServiceAnalysis(BaseModel):
    """Structured-format analysis payload produced by the LLM."""

    service_record: AnalyzedServiceRecord
    service_items: list[AnalyzedServiceItem] = Field(default_factory=list)
    vehicle_info: AnalyzedVehicle | None = None


def create_analysis_agent() -> Agent[None, ServiceAnalysis]:
    """Create a pydantic-ai Agent configured for service document analysis."""
    # Ensure API key is available (fail fast)
    get_anthropic_api_key()

    model_name = get_llm_model()
    return Agent(
        f"anthropic:{model_name}",
        output_type=ServiceAnalysis,
        system_prompt=_SYSTEM_PROMPT,
    )


async def analyze_document(
    document: DocumentFile,
    *,
    agent: Agent[None, ServiceAnalysis] | None = None,
) -> dict[str, Any]:
    """Analyze an uploaded document and return the raw JSON-compatible payload.

    Images and PDFs are sent as binary content, text documents as text.
    Raises AnalysisError for unsupported files or a failed model call.
    Accepts an optional agent for dependency injection in tests.
    """
    prompt = _build_prompt(document)

    if agent is None:
        try:
            agent = create_analysis_agent()
        except ValueError as exc:
            raise AnalysisError(str(exc)) from exc

    try:
        result: Any = await agent.run(prompt)
    except Exception as exc:
        logger.warning("Analysis of %s failed", document.filename, exc_info=True)
        msg = f"Document analysis failed: {exc}"
        raise AnalysisError(msg) from exc

    output: ServiceAnalysis = result.output
    logger.debug(
        "Analysis of %s returned %d item(s)",
        document.filename,
        len(output.service_items),
    )
    return output.model_dump(mode="json")


def _build_prompt(document: DocumentFile) -> list[str | BinaryContent]:
    """Build the user prompt for a document, rejecting unsupported types."""
    content_type = document.content_type.lower()

    if content_type.startswith("image/") or content_type == "application/pdf":
        return [
            _USER_PROMPT,
            BinaryContent(data=document.data, media_type=content_type),
        ]

    if content_type.startswith("text/"):
        body = document.data.decode("utf-8", errors="replace").strip()
        return [
            "\n".join(
                [
                    _USER_PROMPT,
                    f"File: {document.filename}",
                    "",
                    "--- Document Text ---",
                    body or "(no text content)",
                ]
            )
        ]

    msg = "Unsupported file type. Please upload an image or PDF."
    raise AnalysisError(msg)
