"""Exception taxonomy for scrape jobs."""

from __future__ import annotations


class ScraperError(RuntimeError):
    """Base class for all scraper failures."""


class UnknownJobType(ScraperError, ValueError):
    """Raised when a job names a source with no registered strategy."""

    def __init__(self, job_type: str, known: list[str] | None = None) -> None:
        self.job_type = job_type
        self.known = list(known or [])
        message = f"Unknown job type: {job_type}"
        if self.known:
            message += f" (supported: {', '.join(self.known)})"
        super().__init__(message)


class NavigationExhausted(ScraperError):
    """Raised when every candidate URL failed to load recognisable content."""

    def __init__(self, target: str, attempted: list[str], last_error: BaseException | None) -> None:
        self.target = target
        self.attempted = list(attempted)
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else "Unknown error"
        super().__init__(f"Could not access {target}. {detail}")


class CandidateRejected(ScraperError):
    """Raised when a loaded page fails its success predicate."""


class UnitParseError(ScraperError):
    """Raised when a single unit cannot be parsed; the batch continues."""


class BatchExtractionError(ScraperError):
    """Raised when primary extraction fails for the whole page."""


class PersistenceError(ScraperError):
    """Raised when the content store cannot write a row."""


class InvalidJobTransition(ScraperError):
    """Raised when a job status change would leave the lifecycle graph."""

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Job {job_id} cannot move from {current} to {requested}")


class RecordValidationError(ScraperError, ValueError):
    """Raised when a unit does not match the payload shape of its source."""


class BrowserSessionError(ScraperError):
    """Raised when a browser session cannot be started or used."""


__all__ = [
    "BatchExtractionError",
    "BrowserSessionError",
    "CandidateRejected",
    "InvalidJobTransition",
    "NavigationExhausted",
    "PersistenceError",
    "RecordValidationError",
    "ScraperError",
    "UnitParseError",
    "UnknownJobType",
]
