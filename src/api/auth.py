"""JWT authentication.

Tokens are issued by the surrounding product; this service only verifies
them and reads the ``sub`` claim as the user id.
"""

from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel

from src.config import Settings, get_settings

# =============================================================================
# Token Models
# =============================================================================


class TokenPayload(BaseModel):
    """Validated JWT token payload."""

    sub: str  # Subject (user ID)
    email: str | None = None
    exp: int | None = None
    iat: int | None = None


# =============================================================================
# Token Validation
# =============================================================================


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str, settings: Settings) -> TokenPayload:
    """Decode and validate a bearer token.

    With ``jwt_verify`` disabled (local development) the signature is not
    checked, but expiry still is.
    """
    # Remove "Bearer " prefix if present
    if token.startswith("Bearer "):
        token = token[7:]

    try:
        if not settings.jwt_verify:
            payload = jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": True, "verify_aud": False},
                algorithms=["HS256"],
            )
        elif settings.jwt_secret is not None:
            payload = jwt.decode(
                token,
                settings.jwt_secret.get_secret_value(),
                algorithms=["HS256"],
                audience=settings.jwt_audience,
                options={"verify_aud": settings.jwt_audience is not None},
            )
        else:
            raise _unauthorized("Token verification is not configured")

        return TokenPayload(**payload)

    except jwt.ExpiredSignatureError as e:
        raise _unauthorized("Token has expired") from e
    except jwt.InvalidAudienceError as e:
        raise _unauthorized("Invalid token audience") from e
    except jwt.PyJWTError as e:
        raise _unauthorized(f"Invalid token: {e}") from e
    except ValueError as e:
        # Payload without a usable "sub"
        raise _unauthorized("Invalid token payload") from e


# =============================================================================
# FastAPI Dependencies
# =============================================================================


async def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> TokenPayload:
    """Extract and validate JWT token from Authorization header."""
    if not authorization:
        raise _unauthorized("Authorization header required")

    return decode_token(authorization, settings)


async def get_current_user_id(
    user: TokenPayload = Depends(get_current_user),  # noqa: B008
) -> str:
    return user.sub


# Alias for clearer intent in route definitions
RequireAuth = Annotated[TokenPayload, Depends(get_current_user)]
RequireUser = Annotated[str, Depends(get_current_user_id)]
