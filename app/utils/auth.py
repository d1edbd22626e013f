"""
Verification of bearer tokens issued by the external identity provider.

This service never issues tokens itself; it only checks the signature
and pulls the caller's subject id and email out of the claims.
"""

import logging
from typing import Optional

import jwt

from app.core.config import settings

logger = logging.getLogger(__name__)


def decode_token(token: str) -> Optional[dict]:
    """Return the token claims, or None if the token is invalid or expired."""
    options = {"require": ["sub", "exp"]}
    try:
        if settings.AUTH_AUDIENCE:
            return jwt.decode(
                token,
                settings.AUTH_SECRET_KEY,
                algorithms=[settings.AUTH_ALGORITHM],
                audience=settings.AUTH_AUDIENCE,
                options=options,
            )
        return jwt.decode(
            token,
            settings.AUTH_SECRET_KEY,
            algorithms=[settings.AUTH_ALGORITHM],
            options={**options, "verify_aud": False},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired identity token")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected invalid identity token: {e}")
        return None
