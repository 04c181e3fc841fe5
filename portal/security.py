"""Bearer token authentication for the privileged API."""
from __future__ import annotations

from typing import Optional

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import Unauthenticated
from .sessions import ApiSessionStore


class BearerSessionAuth:
    """Resolve the caller's uid from an ``Authorization: Bearer`` header."""

    def __init__(self, sessions: ApiSessionStore):
        self._sessions = sessions
        self._bearer = HTTPBearer(auto_error=False)

    async def token(self, request: Request) -> Optional[str]:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            return None
        return credentials.credentials.strip() or None

    async def __call__(self, request: Request) -> str:
        token = await self.token(request)
        if token is None:
            raise Unauthenticated("Must be signed in")

        session = self._sessions.lookup(token)
        if session is None:
            raise Unauthenticated("Session token is invalid or has expired")
        return session.uid


__all__ = ["BearerSessionAuth"]
