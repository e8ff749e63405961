# agora/security/token_manager.py
from datetime import timedelta

from flask import current_app
from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

# Email verification links carry a short-lived JWT bound to the address

VERIFY_EMAIL_PURPOSE = "verify_email"


class VerificationTokens:
    def __init__(self, expires=timedelta(days=1)):
        self.expires = expires

    def issue(self, email: str) -> str:
        return create_access_token(
            identity=email,
            expires_delta=self.expires,
            additional_claims={"purpose": VERIFY_EMAIL_PURPOSE},
        )

    def validate(self, token: str):
        """Return the email the token was issued for, or None."""
        if not token:
            return None
        try:
            decoded = decode_token(token, allow_expired=False)
        except (PyJWTError, JWTExtendedException) as e:
            current_app.logger.warning(f"Verification token rejected: {str(e)}")
            return None
        if decoded.get("purpose") != VERIFY_EMAIL_PURPOSE:
            return None
        return decoded.get("sub")
