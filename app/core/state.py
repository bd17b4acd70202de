from collections.abc import Callable
from datetime import datetime, timedelta

from loguru import logger

from app.core import dates
from app.models.schemas import PendingOperation


class ConversationStateStore:
    """In-memory pending operation per user.

    Entries vanish on restart. ``set`` always replaces whatever the user had
    pending, and ``get`` drops entries whose deadline has passed.
    """

    def __init__(self, clock: Callable[[], datetime] = dates.now):
        self._clock = clock
        self._pending: dict[str, PendingOperation] = {}

    def now(self) -> datetime:
        return self._clock()

    def deadline(self, ttl_seconds: float) -> tuple[datetime, datetime]:
        """Return ``(created_at, expires_at)`` for a new operation."""
        created = self._clock()
        return created, created + timedelta(seconds=ttl_seconds)

    def get(self, user_id: str) -> PendingOperation | None:
        op = self._pending.get(user_id)
        if op is None:
            return None
        if op.expires_at <= self._clock():
            logger.info("Pending {} for user {} expired", op.kind, user_id)
            del self._pending[user_id]
            return None
        return op

    def set(self, user_id: str, op: PendingOperation) -> None:
        stale = self._pending.get(user_id)
        if stale is not None and stale is not op:
            logger.debug("Replacing pending {} for user {}", stale.kind, user_id)
        self._pending[user_id] = op

    def clear(self, user_id: str) -> None:
        self._pending.pop(user_id, None)

    def discard(self, user_id: str, op: PendingOperation) -> bool:
        """Remove ``op`` if it is still the user's entry, expired or not."""
        if self._pending.get(user_id) is not op:
            return False
        del self._pending[user_id]
        return True

    def __len__(self) -> int:
        return len(self._pending)
