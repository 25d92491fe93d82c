"""Signed, expiring bearer tokens for customer accounts."""

from __future__ import annotations

import base64
import hashlib
import json
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from cryptography.fernet import Fernet, InvalidToken


def _derive_key(secret: str) -> bytes:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class TokenManager:
    """Issue, verify, and revoke customer bearer tokens.

    Tokens are Fernet messages carrying the user id, so they can be verified
    without a server-side lookup. Revoked tokens are remembered in memory
    until they would have expired anyway.
    """

    def __init__(self, secret: str, *, ttl: timedelta = timedelta(hours=24)) -> None:
        if not secret:
            raise ValueError("A token secret must be provided")
        if ttl.total_seconds() <= 0:
            raise ValueError("Token lifetime must be positive")
        self._fernet = Fernet(_derive_key(secret))
        self._ttl = ttl
        self._revoked: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user_id: int) -> str:
        payload = json.dumps({"sub": user_id, "jti": secrets.token_urlsafe(8)}).encode("utf-8")
        token = self._fernet.encrypt_at_time(payload, int(self._now().timestamp()))
        return token.decode("ascii")

    def resolve(self, token: str) -> Optional[int]:
        """Return the user id for a valid token, otherwise ``None``."""

        with self._lock:
            self._prune()
            if token in self._revoked:
                return None

        try:
            payload = self._fernet.decrypt_at_time(
                token.encode("ascii"),
                ttl=int(self._ttl.total_seconds()),
                current_time=int(self._now().timestamp()),
            )
        except (InvalidToken, UnicodeEncodeError):
            return None

        try:
            return int(json.loads(payload)["sub"])
        except (ValueError, KeyError, TypeError):
            return None

    def revoke(self, token: str) -> None:
        try:
            issued = self._fernet.extract_timestamp(token.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError):
            return
        expires_at = datetime.fromtimestamp(issued, tz=timezone.utc) + self._ttl
        with self._lock:
            self._revoked[token] = expires_at

    def _prune(self) -> None:
        now = self._now()
        expired = [token for token, expires_at in self._revoked.items() if expires_at <= now]
        for token in expired:
            self._revoked.pop(token, None)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = ["TokenManager"]
