"""Push token maintenance driven by provider feedback."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from shared.db.repositories import PushTokenRepository

logger = logging.getLogger(__name__)


class TokenLifecycleManager:
    def __init__(self, session: Session) -> None:
        self._tokens = PushTokenRepository(session)

    def prune(self, user_id: UUID, token: str) -> int:
        """Remove a token the provider reported as permanently invalid.

        Every row carrying the token goes, whichever user registered it.
        """
        removed = self._tokens.delete_token(token)
        logger.info(
            "Pruned invalid push token",
            extra={
                "user_id": str(user_id),
                "token_suffix": token[-8:],
                "rows_removed": removed,
            },
        )
        return removed

    def register(self, user_id: UUID, token: str) -> bool:
        """Store a token for a user unless already present. True if new."""
        _, created = self._tokens.add_if_absent(user_id, token)
        if created:
            logger.info(
                "Push token registered",
                extra={"user_id": str(user_id), "token_suffix": token[-8:]},
            )
        return created
