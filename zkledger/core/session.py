"""
Explicit session context.

A Session holds the user id and the derived key for the lifetime of one
login. It is created by register/login and dropped at logout; nothing else
keeps the key. A second login for the same user replaces the session
wholesale, the key object itself is never mutated.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from zkledger.core.keys import KeyManager

logger = logging.getLogger("zkledger")


@dataclass(frozen=True)
class Session:
    user_id: int
    key: bytes = field(repr=False)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SessionManager:
    """Owns the live sessions of this client process."""

    def __init__(self, key_manager: KeyManager):
        self.key_manager = key_manager
        self._sessions: Dict[int, Session] = {}

    def _open(self, user_id, key: bytes) -> Session:
        session = Session(user_id=user_id, key=key)
        self._sessions[user_id] = session
        logger.info(f"[SESSION] Opened session for user {user_id}")
        return session

    def register(self, user_id, password: str) -> Session:
        return self._open(user_id, self.key_manager.initialize(user_id, password))

    def login(self, user_id, password: str) -> Session:
        """Raises SaltNotFoundError when the salt is missing locally."""
        return self._open(user_id, self.key_manager.resume(user_id, password))

    async def register_async(self, user_id, password: str) -> Session:
        return self._open(user_id, await self.key_manager.initialize_async(user_id, password))

    async def login_async(self, user_id, password: str) -> Session:
        return self._open(user_id, await self.key_manager.resume_async(user_id, password))

    def current(self, user_id) -> Optional[Session]:
        return self._sessions.get(user_id)

    def logout(self, session: Session, forget_salt: bool = False) -> None:
        """
        End a session.

        Args:
            session: Session to close
            forget_salt: Also remove the locally stored salt. The user will
                not be able to log in again on this client.
        """
        if self._sessions.get(session.user_id) is session:
            del self._sessions[session.user_id]
        if forget_salt:
            self.key_manager.clear(session.user_id)
        logger.info(f"[SESSION] Closed session for user {session.user_id}")
