# backend/app/core/auth/auth_service.py
"""
Authentication service for DocVault.

Issues and validates the JWT access tokens that carry caller identity
(user id + role) into the API. Credential checks happen at the identity
provider that requests tokens; this service only signs and verifies.

Usage:
    auth = AuthService()

    token = auth.create_access_token(user_id=1, role="editor")
    payload = auth.decode_token(token)

Dependencies:
    - PyJWT for JWT token handling

Configuration:
    Uses settings from config.py:
    - JWT_SECRET_KEY: Secret key for signing JWT tokens
    - JWT_ALGORITHM: Algorithm for JWT signing (default: HS256)
    - JWT_ACCESS_TOKEN_EXPIRE_MINUTES: Access token TTL
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import jwt

from app.config import settings


class AuthService:
    """
    JWT token management.

    Attributes:
        _logger: Logger instance for authentication events
        jwt_secret: Secret key for JWT signing
        jwt_algorithm: Algorithm for JWT signing
        access_token_expire: Timedelta for access token expiration
    """

    def __init__(
        self,
        jwt_secret: Optional[str] = None,
        jwt_algorithm: Optional[str] = None,
        access_token_expire_minutes: Optional[int] = None,
    ):
        self._logger = logging.getLogger("docvault.auth")

        self.jwt_secret = jwt_secret or settings.jwt_secret_key
        self.jwt_algorithm = jwt_algorithm or settings.jwt_algorithm
        self.access_token_expire = timedelta(
            minutes=access_token_expire_minutes or settings.jwt_access_token_expire_minutes
        )

        self._logger.debug(
            f"AuthService initialized (JWT algo: {self.jwt_algorithm}, "
            f"access token TTL: {self.access_token_expire})"
        )

    def create_access_token(
        self,
        user_id: int,
        role: str,
        additional_claims: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Create a JWT access token for a user.

        Token Claims:
            - sub: User ID (subject, as string)
            - role: User role (admin, editor, user, viewer)
            - type: "access"
            - exp: Expiration timestamp
            - iat: Issued at timestamp
        """
        now = datetime.utcnow()
        claims = {
            "sub": str(user_id),
            "role": role,
            "type": "access",
            "exp": now + self.access_token_expire,
            "iat": now,
        }
        if additional_claims:
            claims.update(additional_claims)

        token = jwt.encode(claims, self.jwt_secret, algorithm=self.jwt_algorithm)
        self._logger.debug(f"Created access token for user {user_id} (expires in {self.access_token_expire})")
        return token

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Decode and validate a JWT token.

        Raises:
            jwt.ExpiredSignatureError: Token has expired
            jwt.InvalidTokenError: Token is invalid (bad signature, malformed, etc.)
        """
        try:
            return jwt.decode(token, self.jwt_secret, algorithms=[self.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            self._logger.warning("Token has expired")
            raise
        except jwt.InvalidTokenError as e:
            self._logger.warning(f"Invalid token: {e}")
            raise

    def verify_token_type(self, payload: Dict[str, Any], expected_type: str) -> bool:
        token_type = payload.get("type")
        if token_type != expected_type:
            self._logger.warning(f"Token type mismatch: expected {expected_type}, got {token_type}")
            return False
        return True
