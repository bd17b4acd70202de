import asyncio
from collections.abc import Callable

from loguru import logger


class ReplyWaiters:
    """Handlers suspended until the same user sends a matching reply.

    A waiting handler registers a future per user; :meth:`offer` resolves it
    when an inbound message passes the filter. Only one waiter per user.
    """

    def __init__(self):
        self._waiting: dict[str, tuple[Callable[[str], bool], asyncio.Future]] = {}

    async def wait(
        self, user_id: str, accept: Callable[[str], bool], timeout: float
    ) -> str | None:
        future = asyncio.get_running_loop().create_future()
        stale = self._waiting.get(user_id)
        if stale is not None and not stale[1].done():
            stale[1].set_result(None)
        self._waiting[user_id] = (accept, future)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            logger.info("No reply from user {} within {}s", user_id, timeout)
            return None
        finally:
            current = self._waiting.get(user_id)
            if current is not None and current[1] is future:
                del self._waiting[user_id]

    def release(self, user_id: str) -> None:
        """Resolve the user's waiter with ``None`` so its handler stops waiting."""
        entry = self._waiting.pop(user_id, None)
        if entry is not None and not entry[1].done():
            entry[1].set_result(None)
            logger.info("Released reply waiter for user {}", user_id)

    def offer(self, user_id: str, text: str) -> bool:
        """Hand ``text`` to a waiting handler; ``True`` if it was consumed."""
        entry = self._waiting.get(user_id)
        if entry is None:
            return False
        accept, future = entry
        if future.done() or not accept(text):
            return False
        future.set_result(text)
        return True

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._waiting
