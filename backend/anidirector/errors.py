"""Error taxonomy shared by the persistence and generation layers."""

from __future__ import annotations


class StoryboardError(Exception):
    """Base class for every error raised by Ani-Director."""


class ValidationError(StoryboardError):
    """A backup document (or other external input) is malformed.

    Raised before any state is touched, so a failed import never leaves a
    partial merge behind.
    """


class NotFoundError(StoryboardError):
    """A referenced scene, character or project id does not exist."""


class PersistenceError(StoryboardError):
    """The storage layer is unavailable or a transaction failed."""


class GenerationError(StoryboardError):
    """Structured collaborator error with status code and transient flag.

    Transient errors (rate limits, timeouts, 5xx) are eligible for a single
    bounded retry. Permanent errors (credential or permission failures) are not.
    """

    def __init__(self, message: str, status_code: int = 0, transient: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient


class BatchInProgressError(StoryboardError):
    """A batch run was requested while another one is still running."""
