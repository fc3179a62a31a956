"""
Login tokens for mediatrack.

Tokens are signed, timestamped user ids. They are issued on password-less
login and checked on every authenticated request.
"""

import logging
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

logger = logging.getLogger(__name__)


class TokenIssuer:
    """Issues and verifies signed login tokens."""

    SALT = "mediatrack-login"

    def __init__(self, secret: str, max_age_hours: int = 72):
        self.serializer = URLSafeTimedSerializer(secret, salt=self.SALT)
        self.max_age_seconds = max_age_hours * 3600

    def issue(self, user_id: str) -> str:
        return self.serializer.dumps({"user_id": user_id})

    def verify(self, token: str) -> Optional[str]:
        """
        Verify a token.

        Returns:
            The user id the token was issued for, or None if it is invalid or expired
        """
        try:
            payload = self.serializer.loads(token, max_age=self.max_age_seconds)
        except SignatureExpired:
            logger.debug("Rejected expired login token")
            return None
        except BadSignature:
            logger.debug("Rejected login token with bad signature")
            return None
        return payload.get("user_id") if isinstance(payload, dict) else None
