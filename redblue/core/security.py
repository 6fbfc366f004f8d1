import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from redblue.core.errors import GameAuthError

logger = logging.getLogger(__name__)


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def tokens_match(expected: Optional[str], provided: Optional[str]) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode(), provided.encode())


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header value"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class AdminAuthenticator:
    """Issues and validates short-lived admin tokens against a shared password"""

    def __init__(self, password: Optional[str], token_ttl_minutes: float = 720):
        self.password = password
        self.token_ttl = timedelta(minutes=token_ttl_minutes)
        self._tokens: Dict[str, datetime] = {}  # token -> expires_at

    def login(self, password: str) -> str:
        if not self.password:
            raise GameAuthError("Admin login is disabled")
        if not tokens_match(self.password, password):
            logger.warning("Rejected admin login attempt")
            raise GameAuthError("Invalid admin password")

        self._purge_expired()
        token = generate_token()
        self._tokens[token] = datetime.now(timezone.utc) + self.token_ttl
        logger.info("Admin token issued")
        return token

    def is_valid(self, token: Optional[str]) -> bool:
        if not token:
            return False
        expires_at = self._tokens.get(token)
        if expires_at is None:
            return False
        if datetime.now(timezone.utc) >= expires_at:
            self._tokens.pop(token, None)
            return False
        return True

    def require(self, token: Optional[str]):
        if not self.is_valid(token):
            raise GameAuthError("Invalid admin token")

    def _purge_expired(self):
        now = datetime.now(timezone.utc)
        for token, expires_at in list(self._tokens.items()):
            if now >= expires_at:
                self._tokens.pop(token, None)
