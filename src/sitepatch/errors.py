"""Error hierarchy for sitepatch."""
from __future__ import annotations


class SitePatchError(Exception):
    """Base error for all sitepatch errors."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ConfigurationError(SitePatchError):
    """Invalid configuration value."""


class ParseError(SitePatchError):
    """Raised when a root document cannot be processed at all."""


class SelectorError(SitePatchError):
    """Raised when a selector falls outside the supported grammar."""


class InvalidTransitionError(SitePatchError):
    """A job was asked to leave a state it cannot leave."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(f"Job {job_id}: cannot move from {current!r} to {target!r}")
        self.job_id = job_id
        self.current = current
        self.target = target


# ---------------------------------------------------------------------------
# Oracle failures
# ---------------------------------------------------------------------------


class OracleError(SitePatchError):
    """One backend of the model chain failed; the chain moves on."""

    def __init__(
        self,
        message: str,
        *,
        model: str = "",
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.model = model


class OracleTimeoutError(OracleError):
    """The backend did not answer within the per-call timeout."""


class OracleTransportError(OracleError):
    """Connection-level failure talking to the backend."""


class OracleHTTPError(OracleError):
    """The backend answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        model: str = "",
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, model=model, cause=cause)
        self.status_code = status_code


class OracleOutputError(OracleError):
    """The backend answered, but not with usable JSON output."""
