"""Security related functions."""

import logging

import jwt
from fastapi import HTTPException, status
from jwt import InvalidTokenError

from app.core.config import Settings, settings as app_settings

logger = logging.getLogger(__name__)


class TokenVerifier:
    """
    Verifies bearer tokens issued by the external identity provider.

    Token issuance is not this service's concern. When ``auth_secret_key`` is set the
    signature and expiry are checked with PyJWT; without a key the payload is only
    decoded, which is refused in production.

    :ivar secret_key: The secret used to verify JWT signatures.
    :type secret_key: str | None
    :ivar algorithm: The expected JWT algorithm.
    :type algorithm: str
    """

    def __init__(self, settings: Settings = app_settings):
        self.secret_key = settings.auth_secret_key
        self.algorithm = settings.auth_algorithm
        self.is_production = settings.is_production

    def verify_token(self, token: str) -> dict:
        """
        Decode a JWT and return its payload.

        :param token: The JWT token to be verified.
        :return: A dictionary containing the decoded payload of the token.
        :raises HTTPException: 401 when the token is invalid or cannot be verified.
        """
        try:
            if self.secret_key:
                return jwt.decode(
                    token,
                    self.secret_key,
                    algorithms=[self.algorithm],
                    options={"verify_aud": False},
                )

            if self.is_production:
                logger.error("AUTH_SECRET_KEY is not configured in production")
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Token verification is not configured",
                )

            # Development and tests: trust the payload without a signature check
            return jwt.decode(
                token,
                options={"verify_signature": False, "verify_aud": False, "verify_exp": False},
            )
        except InvalidTokenError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid authentication token: {str(e)}",
            ) from e
