"""
Firebase ID-token verification for API routes.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from firebase_admin import auth

from backend.config import Settings, get_settings
from backend.firebase import get_firebase_app
from shared.types import AuthenticatedUser

logger = logging.getLogger(__name__)


def verify_bearer_token(authorization: Optional[str]) -> AuthenticatedUser:
    """
    Verifies a Firebase ID token from an Authorization header value.

    Raises:
        HTTPException: 401 for a missing or malformed header, 403 for an
            invalid or expired token, 500 for unexpected verification errors.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="Missing or malformed authorization token. Expected 'Bearer <token>'.",
        )
    id_token = authorization[len("Bearer "):].strip()
    if not id_token:
        raise HTTPException(
            status_code=401, detail="Missing authorization token after 'Bearer ' prefix."
        )

    try:
        decoded = auth.verify_id_token(id_token, app=get_firebase_app())
    except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError) as e:
        logger.warning("Invalid ID token: %s", e)
        raise HTTPException(
            status_code=403, detail="Invalid or expired ID token. Please re-authenticate."
        )
    except Exception as e:
        logger.exception("Unexpected error verifying token: %s", e)
        raise HTTPException(
            status_code=500,
            detail="Token verification failed due to an unexpected error.",
        )

    return AuthenticatedUser(
        uid=decoded["uid"],
        email=decoded.get("email"),
        name=decoded.get("name"),
        picture=decoded.get("picture"),
    )


def get_current_user(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> Optional[AuthenticatedUser]:
    """Returns the caller, or None when auth is not required."""
    if not settings.require_auth:
        return None
    return verify_bearer_token(authorization)
