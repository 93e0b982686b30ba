"""Test request quota for sandbox runs."""

import logging
from dataclasses import dataclass
from typing import Optional

from pricesync import metrics
from pricesync.config import settings
from pricesync.db.models import SandboxSettings
from pricesync.db.store import RecordStore
from pricesync.errors import QuotaExceededError

logger = logging.getLogger(__name__)

QUOTA_EXCEEDED = "quota_exceeded"


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    used: int
    limit: int
    reason: Optional[str] = None


def check_quota(used: int, limit: int) -> QuotaDecision:
    """Deny once ``used`` has reached ``limit``."""
    if used >= limit:
        return QuotaDecision(False, used, limit, QUOTA_EXCEEDED)
    return QuotaDecision(True, used, limit)


class SandboxQuotaGuard:
    """
    Counts sandbox runs per user against ``max_test_requests``.

    The in-memory counter is the authority within a process: the check and
    the increment in ``try_consume`` happen with no suspension point between
    them, so two runs can never both pass on the last remaining request.
    Persisted settings seed the counter and receive the new value afterwards.
    """

    def __init__(self, store: Optional[RecordStore] = None, default_limit: Optional[int] = None):
        self.store = store
        if default_limit is None:
            default_limit = settings.sandbox_max_test_requests
        self.default_limit = default_limit
        self._used: dict[str, int] = {}

    def usage(self, user_id: str, sandbox: Optional[SandboxSettings] = None) -> tuple[int, int]:
        """Current (used, limit) for a user."""
        persisted = sandbox.test_requests_used if sandbox is not None else 0
        used = max(self._used.get(user_id, 0), persisted or 0)
        limit = sandbox.max_test_requests if sandbox is not None else self.default_limit
        return used, limit

    def try_consume(self, user_id: str, sandbox: Optional[SandboxSettings] = None) -> QuotaDecision:
        """Allow and count one run, or deny without counting."""
        used, limit = self.usage(user_id, sandbox)
        decision = check_quota(used, limit)
        if not decision.allowed:
            metrics.record_quota_denied()
            logger.info(f"Sandbox quota exhausted for user {user_id}: {used}/{limit}")
            return decision

        self._used[user_id] = used + 1
        if sandbox is not None:
            sandbox.test_requests_used = used + 1
        return decision

    async def acquire(self, user_id: str, sandbox: Optional[SandboxSettings] = None) -> QuotaDecision:
        """
        Consume one run for ``user_id``; persist the counter when settings exist.

        Raises:
            QuotaExceededError: If the user has no test requests left
        """
        decision = self.try_consume(user_id, sandbox)
        if not decision.allowed:
            raise QuotaExceededError(decision.used, decision.limit, decision.reason)
        if sandbox is not None and self.store is not None:
            await self.store.update(
                SandboxSettings, sandbox.id, {"test_requests_used": sandbox.test_requests_used}
            )
        return decision

    async def reset(self, user_id: str, sandbox: Optional[SandboxSettings] = None) -> None:
        """Set the user's counter back to zero."""
        self._used[user_id] = 0
        if sandbox is not None:
            sandbox.test_requests_used = 0
            if self.store is not None:
                await self.store.update(SandboxSettings, sandbox.id, {"test_requests_used": 0})
        logger.info(f"Sandbox counter reset for user {user_id}")
