"""Lifecycle of one document extraction attempt.

An :class:`ExtractionSession` walks a single upload through
``IDLE -> UPLOADING -> ANALYZING -> AWAITING_CONFIRMATION -> SAVING ->
SAVED -> IDLE``. Any failure moves it to ``ERROR``. Only one upload,
analysis or save may be in flight per session at a time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from service_ledger.analysis import analyze_document
from service_ledger.config import get_extraction_timeout
from service_ledger.errors import (
    AnalysisError,
    LinkUpdateError,
    PersistenceError,
    ServiceLedgerError,
    SessionBusyError,
    SessionStateError,
    UploadError,
    ValidationError,
)
from service_ledger.normalizer import normalize

if TYPE_CHECKING:
    from uuid import UUID

    from service_ledger.models import (
        DocumentFile,
        ExtractionResult,
        SavedServiceRecord,
        ServiceItemDraft,
        ServiceRecordDraft,
        UploadedDocument,
    )
    from service_ledger.persistence import ServiceRecordStore
    from service_ledger.store import FileStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

Analyzer = Callable[["DocumentFile"], Awaitable[dict[str, Any]]]


class SessionState(Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    ANALYZING = "analyzing"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


_IN_FLIGHT = frozenset(
    {SessionState.UPLOADING, SessionState.ANALYZING, SessionState.SAVING}
)


class ExtractionSession:
    """Drive one receipt from upload through user confirmation to a saved record.

    Collaborators are injected: ``file_store`` keeps the uploaded file,
    ``analyzer`` turns it into a raw payload, and ``records`` persists the
    confirmed drafts and the uploaded document's metadata. Every collaborator
    call is bounded by ``timeout`` seconds (EXTRACTION_TIMEOUT by default).
    ``on_change`` is called with the new state after every transition.
    """

    def __init__(
        self,
        file_store: FileStore,
        records: ServiceRecordStore,
        *,
        analyzer: Analyzer = analyze_document,
        timeout: float | None = None,
        on_change: Callable[[SessionState], None] | None = None,
    ) -> None:
        self.file_store = file_store
        self.records = records
        self.analyzer = analyzer
        self.timeout = timeout if timeout is not None else get_extraction_timeout()
        self.on_change = on_change

        self.state = SessionState.IDLE
        self.error: str | None = None
        self.result: ExtractionResult | None = None
        self.document: UploadedDocument | None = None
        self.storage_key: str | None = None
        self._task: asyncio.Task[Any] | None = None

    @property
    def busy(self) -> bool:
        return self.state in _IN_FLIGHT

    async def analyze(
        self, document: DocumentFile, vehicle_id: UUID
    ) -> ExtractionResult:
        """Upload and analyze a document, leaving its drafts awaiting confirmation.

        On failure the session moves to ERROR with a user-facing message, any
        partial draft is cleared, and the error is re-raised. A timed-out upload
        cannot stop its worker thread, so the file may still land in the store
        with no document row pointing at it.
        """
        self._check_not_busy()
        if self.state not in (SessionState.IDLE, SessionState.ERROR):
            msg = "Discard the current extraction before analyzing another document."
            raise SessionStateError(msg)

        self._clear()
        self._task = asyncio.current_task()
        try:
            self._transition(SessionState.UPLOADING)
            self.storage_key = await self._step(
                asyncio.to_thread(self.file_store.save, vehicle_id, document),
                UploadError,
                "Uploading the document",
            )

            self._transition(SessionState.ANALYZING)
            payload = await self._step(
                self.analyzer(document), AnalysisError, "Analyzing the document"
            )
            self.document = await self._step(
                self.records.record_document(
                    self._document_values(document, vehicle_id, payload)
                ),
                PersistenceError,
                "Saving the document",
            )
            result = normalize(payload)
        except asyncio.CancelledError:
            logger.info("Extraction of %s cancelled", document.filename)
            self._clear()
            self._transition(SessionState.IDLE)
            raise
        except Exception as exc:
            logger.warning("Extraction of %s failed: %s", document.filename, exc)
            self._clear()
            self.error = str(exc)
            self._transition(SessionState.ERROR)
            raise
        finally:
            self._task = None

        self.result = result
        self._transition(SessionState.AWAITING_CONFIRMATION)
        return result

    def update_draft(
        self,
        record: ServiceRecordDraft | None = None,
        items: list[ServiceItemDraft] | None = None,
    ) -> ExtractionResult:
        """Apply the user's edits to the pending drafts."""
        self._check_not_busy()
        if self.result is None or self.state not in (
            SessionState.AWAITING_CONFIRMATION,
            SessionState.ERROR,
        ):
            msg = "There is no extracted record to edit."
            raise SessionStateError(msg)

        update: dict[str, Any] = {}
        if record is not None:
            update["record"] = record
        if items is not None:
            update["items"] = list(items)
        self.result = self.result.model_copy(update=update)
        self.error = None
        self._transition(SessionState.AWAITING_CONFIRMATION)
        return self.result

    async def save(self, vehicle_id: UUID) -> SavedServiceRecord:
        """Persist the confirmed drafts for ``vehicle_id`` and link the document.

        A ValidationError leaves the drafts awaiting confirmation; any other
        failure moves to ERROR keeping the drafts so the save can be retried.
        Once the record is stored the save can no longer be cancelled, and a
        failed document link is logged without failing it.
        """
        self._check_not_busy()
        if self.result is None or self.state not in (
            SessionState.AWAITING_CONFIRMATION,
            SessionState.ERROR,
        ):
            msg = "There is no extracted record to save."
            raise SessionStateError(msg)

        record = self.result.record.model_copy(update={"vehicle_id": vehicle_id})
        items = list(self.result.items)

        self.error = None
        self._task = asyncio.current_task()
        self._transition(SessionState.SAVING)
        try:
            saved = await self._step(
                self.records.create(record, items),
                PersistenceError,
                "Saving the service record",
            )
        except asyncio.CancelledError:
            self._transition(SessionState.AWAITING_CONFIRMATION)
            raise
        except ValidationError as exc:
            self.error = str(exc)
            self._transition(SessionState.AWAITING_CONFIRMATION)
            raise
        except Exception as exc:
            self.error = str(exc)
            self._transition(SessionState.ERROR)
            raise
        finally:
            self._task = None

        try:
            if self.document is not None:
                await self._link_document(self.document.id, saved.record.id)
        finally:
            self._finish()
        return saved

    def discard(self) -> None:
        """Drop any pending drafts or error and return to IDLE."""
        self._check_not_busy()
        self._clear()
        if self.state is not SessionState.IDLE:
            self._transition(SessionState.IDLE)

    def cancel(self) -> bool:
        """Cancel the in-flight upload, analysis or save, if there is one.

        A save stops being cancellable once its record has been written.
        """
        if self._task is None or not self.busy:
            return False
        self._task.cancel()
        return True

    async def _link_document(self, document_id: UUID, record_id: UUID) -> None:
        try:
            await self._step(
                self.records.link_document(document_id, record_id),
                LinkUpdateError,
                "Linking the document",
            )
        except LinkUpdateError:
            logger.warning(
                "Service record %s saved but document %s was not linked",
                record_id,
                document_id,
                exc_info=True,
            )

    async def _step(
        self,
        awaitable: Awaitable[T],
        error_type: Callable[[str], ServiceLedgerError],
        action: str,
    ) -> T:
        """Await one collaborator call under the timeout, mapping its failures."""
        try:
            async with asyncio.timeout(self.timeout):
                return await awaitable
        except ServiceLedgerError:
            raise
        except TimeoutError as exc:
            raise error_type(f"{action} timed out.") from exc
        except Exception as exc:
            raise error_type(f"{action} failed: {exc}") from exc

    def _document_values(
        self, document: DocumentFile, vehicle_id: UUID, payload: dict[str, Any]
    ) -> dict[str, Any]:
        key = self.storage_key or ""
        return {
            "vehicle_id": vehicle_id,
            "file_name": document.filename,
            "file_type": document.content_type,
            "file_size": document.size,
            "file_url": self.file_store.public_url(key),
            "storage_key": key,
            "analyzed": True,
            "analysis_result": payload,
        }

    def _check_not_busy(self) -> None:
        if self.busy:
            msg = "An extraction is already in progress."
            raise SessionBusyError(msg)

    def _finish(self) -> None:
        self._transition(SessionState.SAVED)
        self._clear()
        self._transition(SessionState.IDLE)

    def _clear(self) -> None:
        self.result = None
        self.document = None
        self.storage_key = None
        self.error = None

    def _transition(self, state: SessionState) -> None:
        logger.debug("Extraction session %s -> %s", self.state.value, state.value)
        self.state = state
        if self.on_change is not None:
            self.on_change(state)
