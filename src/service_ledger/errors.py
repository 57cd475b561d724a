"""Error types raised by the extraction and persistence layers.

Every error carries a message that can be shown to the user as-is.
"""

from __future__ import annotations


class ServiceLedgerError(Exception):
    """Base class for all service-ledger errors."""


class ExtractionFormatError(ServiceLedgerError):
    """The analysis payload was empty or matched no known format."""


class UploadError(ServiceLedgerError):
    """Storing the uploaded document failed."""


class AnalysisError(ServiceLedgerError):
    """The document analysis call failed."""


class ValidationError(ServiceLedgerError):
    """A draft failed the required-field checks before persistence."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("; ".join(problems))


class PersistenceError(ServiceLedgerError):
    """A database insert, update or delete failed.

    ``partial`` is true when a multi-step write failed after an earlier
    step had already been committed.
    """

    def __init__(self, message: str, *, partial: bool = False) -> None:
        self.partial = partial
        super().__init__(message)


class LinkUpdateError(ServiceLedgerError):
    """Linking an uploaded document to its service record failed."""


class SessionStateError(ServiceLedgerError):
    """The operation is not valid in the session's current state."""


class SessionBusyError(SessionStateError):
    """Another upload, analysis or save is already in flight."""
