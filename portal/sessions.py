"""Bearer tokens handed out by the privileged API's sign-in call.

A token is valid for a fixed period after sign-in; using it does not extend
it. Sign-out revokes it early.
"""
from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from .models import utcnow

_TOKEN_BYTES = 32


@dataclass(frozen=True)
class ApiSession:
    token: str
    uid: str
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class ApiSessionStore:
    """Signed-in API callers keyed by token."""

    def __init__(
        self,
        *,
        ttl: timedelta = timedelta(hours=8),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if ttl <= timedelta(0):
            raise ValueError("Token lifetime must be positive")
        self._ttl = ttl
        self._clock = clock
        self._tokens: Dict[str, ApiSession] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, uid: str) -> ApiSession:
        now = self._clock()
        session = ApiSession(
            token=secrets.token_urlsafe(_TOKEN_BYTES),
            uid=uid,
            issued_at=now,
            expires_at=now + self._ttl,
        )
        with self._lock:
            for token in [key for key, value in self._tokens.items() if value.is_expired(now)]:
                del self._tokens[token]
            self._tokens[session.token] = session
        return session

    def lookup(self, token: str) -> Optional[ApiSession]:
        with self._lock:
            session = self._tokens.get(token)
            if session is None:
                return None
            if session.is_expired(self._clock()):
                del self._tokens[token]
                return None
            return session

    def revoke(self, token: str) -> bool:
        with self._lock:
            return self._tokens.pop(token, None) is not None


__all__ = ["ApiSession", "ApiSessionStore"]
