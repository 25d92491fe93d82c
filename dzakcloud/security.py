"""Request authentication for customer and admin routes."""
from __future__ import annotations

import logging
import secrets
from typing import Iterable, List, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .database import Database
from .models import User
from .sessions import TokenManager

logger = logging.getLogger("dzakcloud.security")

_bearer_security = HTTPBearer(auto_error=False)


def _bearer_token(credentials: HTTPAuthorizationCredentials | None) -> Optional[str]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    token = credentials.credentials.strip()
    return token or None


class BearerAuth:
    """Resolve the signed-in customer from an ``Authorization: Bearer`` header.

    The dependencies are plain functions so FastAPI runs the user lookup in
    its thread pool.
    """

    def __init__(self, tokens: TokenManager, database: Database) -> None:
        self._tokens = tokens
        self._database = database

    def token(
        self,
        bearer: HTTPAuthorizationCredentials | None = Depends(_bearer_security),
    ) -> Optional[str]:
        return _bearer_token(bearer)

    def optional(
        self,
        bearer: HTTPAuthorizationCredentials | None = Depends(_bearer_security),
    ) -> Optional[User]:
        token = _bearer_token(bearer)
        if token is None:
            return None
        user_id = self._tokens.resolve(token)
        if user_id is None:
            return None
        return self._database.get_user(user_id)

    def __call__(
        self,
        bearer: HTTPAuthorizationCredentials | None = Depends(_bearer_security),
    ) -> User:
        token = _bearer_token(bearer)
        if token is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

        user_id = self._tokens.resolve(token)
        if user_id is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

        user = self._database.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return user


class AdminTokenAuth:
    """Bearer token check for the admin dashboard using constant-time comparisons.

    With no tokens configured every request is let through.
    """

    def __init__(self, tokens: Iterable[str]):
        token_list: List[str] = [token.strip() for token in tokens if token.strip()]
        self._tokens = token_list

    @property
    def enabled(self) -> bool:
        return bool(self._tokens)

    def __call__(
        self,
        request: Request,
        bearer: HTTPAuthorizationCredentials | None = Depends(_bearer_security),
    ) -> None:
        if not self._tokens:
            return None

        provided = _bearer_token(bearer)
        if provided is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

        for token in self._tokens:
            if secrets.compare_digest(provided.encode("utf-8"), token.encode("utf-8")):
                return None

        logger.warning("Rejected admin request to %s with an invalid token", request.url.path)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin token")


__all__ = ["AdminTokenAuth", "BearerAuth"]
