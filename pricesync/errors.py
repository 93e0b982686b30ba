"""Error taxonomy shared by the sync core, the store and the marketplace adapter."""

from typing import Optional


class PriceSyncError(Exception):
    """Base class for all price sync errors."""


class ValidationError(PriceSyncError):
    """Malformed input: a bad outbound payload, an unexpected response shape, or bad form data."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class RemoteError(PriceSyncError):
    """Non-2xx (or unreachable) response from an external HTTP contract."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"{status_code}: {body}")
        self.status_code = status_code
        self.body = body


class QuotaExceededError(PriceSyncError):
    """Sandbox quota denial; the run is never created."""

    def __init__(self, used: int, limit: int, reason: str = "quota_exceeded"):
        super().__init__(f"{reason}: {used}/{limit} test requests used")
        self.used = used
        self.limit = limit
        self.reason = reason


class PersistenceError(PriceSyncError):
    """A store operation failed."""


class NotFoundError(PersistenceError):
    """A keyed record does not exist."""

    def __init__(self, table: str, record_id: str):
        super().__init__(f"{table} {record_id} not found")
        self.table = table
        self.record_id = record_id


def from_pydantic(exc, context: str) -> ValidationError:
    """Convert a pydantic ValidationError into ours, keeping the error list."""
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    return ValidationError(f"{context}: {details}", errors=exc.errors())
