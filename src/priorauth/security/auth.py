"""
Authorization Hook

Bearer-token check applied to the Patient endpoints. Disabled by default;
when enabled, requests must carry a JWT signed with the configured secret.
Trust-framework specifics (UDAP registration, token exchange) live outside
this server.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
import structlog

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class AuthorizationError(Exception):
    """Raised when a request fails the bearer-token check."""


def decode_access_token(token: str, settings) -> dict:
    """Decode and verify a JWT access token."""
    options = {"verify_aud": settings.auth.audience is not None}
    try:
        return jwt.decode(
            token,
            settings.auth.jwt_secret_key.get_secret_value(),
            algorithms=[settings.auth.jwt_algorithm],
            audience=settings.auth.audience,
            options=options,
        )
    except JWTError as e:
        raise AuthorizationError(f"Invalid access token: {e}") from e


async def authorize(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict | None:
    """
    FastAPI dependency guarding the Patient endpoints.

    Returns the token claims when authorization is enabled, otherwise None.
    """
    settings = request.app.state.context.settings
    if not settings.auth.enabled:
        return None

    if credentials is None:
        logger.warning("Missing bearer token", path=request.url.path)
        raise AuthorizationError("Make sure to use Authorization: Bearer (token)")

    claims = decode_access_token(credentials.credentials, settings)
    request.state.token_claims = claims
    return claims
