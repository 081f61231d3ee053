"""Redis claim lock so one (message, channel) is dispatched at a time."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import UUID

from redis import Redis
from redis.exceptions import LockNotOwnedError
from redis.lock import Lock

from dispatch_service.errors import DispatchInProgress

logger = logging.getLogger(__name__)


class DispatchClaim:
    """A held dispatch lock. ``refresh`` pushes the expiry out again."""

    def __init__(self, lock: Lock, log_ctx: dict[str, Any]) -> None:
        self._lock = lock
        self._log_ctx = log_ctx

    def refresh(self) -> bool:
        """Reset the TTL to its full length. False if the lock was lost."""
        try:
            self._lock.reacquire()
        except LockNotOwnedError:
            logger.warning("Dispatch lock expired mid-run", extra=self._log_ctx)
            return False
        return True

    def release(self) -> None:
        try:
            self._lock.release()
        except LockNotOwnedError:
            logger.warning(
                "Dispatch lock expired before release", extra=self._log_ctx
            )


class DispatchLock:
    """Non-blocking per-(message, channel) lock.

    Two dispatch calls for the same message and channel would both see the
    same pending recipients and send twice. The lock expires after
    ``timeout_seconds`` so a crashed run cannot wedge a message; a live run
    keeps it by calling ``DispatchClaim.refresh`` as it goes.
    """

    KEY_PREFIX = "dispatch"

    def __init__(self, redis_client: Redis, timeout_seconds: int = 300) -> None:
        self._redis = redis_client
        self._timeout = timeout_seconds

    def key(self, message_id: UUID, channel: str) -> str:
        return f"{self.KEY_PREFIX}:{message_id}:{channel}"

    @contextmanager
    def hold(self, message_id: UUID, channel: str) -> Iterator[DispatchClaim]:
        """Hold the lock for the duration of the block.

        Raises DispatchInProgress if another run already holds it.
        """
        log_ctx = {"message_id": str(message_id), "channel": channel}
        lock = self._redis.lock(
            self.key(message_id, channel), timeout=self._timeout, blocking=False
        )
        if not lock.acquire():
            logger.warning("Dispatch already running", extra=log_ctx)
            raise DispatchInProgress(
                "A dispatch for this message and channel is already running",
                messageId=str(message_id),
                channel=channel,
            )
        claim = DispatchClaim(lock, log_ctx)
        try:
            yield claim
        finally:
            claim.release()
