"""Error taxonomy for a bulk-creation run.

Resource-scoped errors (validation, unknown names, submission failures) are
caught by the batch engine and turned into `error` events. Run-level errors
(manifest, template loading at startup, configuration) abort before any
resource is created.
"""

from __future__ import annotations

from collections.abc import Sequence


class BypassError(Exception):
    """Base class for all errors raised by this package."""


class ManifestError(BypassError):
    """The input file could not be read or has an unsupported shape."""


class TemplateError(BypassError):
    """A description template could not be loaded."""


class InputValidationError(BypassError):
    """A resource is structurally invalid; no request is sent for it."""

    def __init__(self, problems: Sequence[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


def list_sample(names: Sequence[str], limit: int = 5) -> str:
    """Return a short, sorted preview of available names for error hints."""

    unique = sorted(set(names))
    preview = ", ".join(unique[:limit])
    if len(unique) > limit:
        return f"{preview} … (+{len(unique) - limit})"
    return preview


class NameNotFound(BypassError):
    """A member, team or workflow state name is unknown in the workspace."""

    def __init__(self, *, resource_type: str, name: str, available: Sequence[str] = ()) -> None:
        self.resource_type = resource_type
        self.name = name
        self.available = list(available)
        message = f"unknown {resource_type} '{name}'"
        if self.available:
            message += f". Available: {list_sample(self.available)}"
        super().__init__(message)


class SubmissionError(BypassError):
    """A request to the Shortcut API failed terminally."""


class SubmissionRejected(SubmissionError):
    """Non-retryable response (4xx other than 429, or a malformed body)."""

    def __init__(self, *, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"Shortcut API error (HTTP {status}): {message}")


class RateLimitedOrUnavailable(SubmissionError):
    """Retryable status codes persisted through every retry attempt."""

    def __init__(self, *, status: int, attempts: int) -> None:
        self.status = status
        self.attempts = attempts
        super().__init__(
            f"Shortcut API still rate limited or unavailable (HTTP {status}) "
            f"after {attempts} attempts"
        )


class NetworkFailure(SubmissionError):
    """Transport-level failures persisted through every retry attempt."""

    def __init__(self, *, attempts: int, cause: BaseException) -> None:
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Network error after {attempts} attempts: {cause}")
