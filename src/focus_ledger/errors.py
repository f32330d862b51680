"""Exception types raised by the ledger, correlator and collaborators."""

from __future__ import annotations


class FocusLedgerError(Exception):
    """Base class for all domain errors."""


class ValidationError(FocusLedgerError):
    """Bad input rejected before any state change."""


class InvalidStateTransition(FocusLedgerError):
    """A mutation would leave the ledger or correlator inconsistent."""


class NotFoundError(FocusLedgerError):
    """No activity or distraction event exists for the given id."""


class CollaboratorUnavailable(FocusLedgerError):
    """The narration parser or insight generator failed or was unreachable."""


class PersistenceWriteFailure(FocusLedgerError):
    """A snapshot could not be written to the blob store."""


class SubmissionInProgress(FocusLedgerError):
    """A second submission arrived while the first was still pending."""


class ReasonRequired(ValidationError):
    """A verdict contradicts the app's usual use and no reason was given."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"a reason is required for event {event_id}")
        self.event_id = event_id
