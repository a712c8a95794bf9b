# influx_catalog/errors.py
# Typed failures raised by every component. Library exceptions (influxdb_client, urllib3)
# are translated into these at the component boundary so callers only handle one family.
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Set


class CatalogError(Exception):
    """Base exception for all influx-catalog errors.

    Attributes:
        message: human readable message
        code: stable error code for programmatic handling
        details: extra context for debugging
    """

    code = "CATALOG_ERROR"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(CatalogError):
    """Required configuration is missing or empty."""

    code = "CONFIG_ERROR"

    def __init__(self, message: str, keys: Iterable[str] = ()):
        keys = list(keys)
        super().__init__(message, details={"keys": keys})
        self.keys = keys


class SessionClosedError(CatalogError):
    code = "SESSION_CLOSED"


class InvalidPointError(CatalogError):
    """A point could not be constructed. Raised locally, nothing is sent."""

    code = "INVALID_POINT"


# -------------------- Onboarding -------------------- #
class OnboardingError(CatalogError):
    code = "ONBOARDING_ERROR"


class OnboardingNotPermittedError(OnboardingError):
    """The instance does not accept API onboarding; provision the account out-of-band."""

    code = "ONBOARDING_NOT_PERMITTED"


class AlreadyOnboardedError(OnboardingNotPermittedError):
    """The instance already has its initial user, organization and bucket."""

    code = "ALREADY_ONBOARDED"


# -------------------- Writes -------------------- #
class WriteError(CatalogError):
    code = "WRITE_ERROR"

    def __init__(self, message: str, status: Optional[int] = None, lines: Iterable[str] = ()):
        lines = list(lines)
        super().__init__(message, details={"status": status, "lines": len(lines)})
        self.status = status
        self.lines = lines


class WriteTransportError(WriteError):
    """The batch never reached the database or the database could not take it. Safe to flush again."""

    code = "WRITE_TRANSPORT"
    retryable = True


class WriteRejectedError(WriteError):
    """The database refused the payload (e.g. field type conflict). Not retryable without changes."""

    code = "WRITE_REJECTED"


# -------------------- Queries -------------------- #
class QueryErrorKind(str, Enum):
    MALFORMED = "malformed"
    TRANSPORT = "transport"


class QueryError(CatalogError):
    code = "QUERY_ERROR"

    def __init__(self, message: str, kind: QueryErrorKind, query: Optional[str] = None,
                 status: Optional[int] = None):
        super().__init__(message, details={"kind": kind.value, "status": status})
        self.kind = kind
        self.query = query
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.kind is QueryErrorKind.TRANSPORT


# -------------------- Waiting / cancellation -------------------- #
class OperationCancelledError(CatalogError):
    """A blocking call hit its deadline or its cancel signal."""

    code = "CANCELLED"
    retryable = True


class VisibilityTimeoutError(CatalogError):
    """Written measurements never became visible within the wait budget."""

    code = "VISIBILITY_TIMEOUT"

    def __init__(self, expected: Set[str], observed: Set[str]):
        self.expected = set(expected)
        self.observed = set(observed)
        self.missing = self.expected - self.observed
        super().__init__(
            f"{len(self.missing)} of {len(self.expected)} measurement(s) not visible: "
            f"{', '.join(sorted(self.missing))}",
            details={"missing": sorted(self.missing)},
        )


class ServerNotReadyError(CatalogError):
    code = "SERVER_NOT_READY"
