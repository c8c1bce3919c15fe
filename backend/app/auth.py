"""Bearer token helpers for API requests."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from flask import current_app, request
from jose import JWTError, jwt

ALGORITHM = "HS256"


def issue_token(user_id: str, role: str, expires_in: timedelta = timedelta(days=7)) -> str:
    """Sign a token carrying the caller's user id and global role."""
    claims = {
        "userId": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm=ALGORITHM)


def _get_token() -> Optional[str]:
    """Token from the ``token`` cookie, falling back to the Authorization header."""
    token = request.cookies.get("token")
    if token:
        return token

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):]

    return None


def get_authenticated_user_id() -> Optional[str]:
    """Return the caller's user id, or None when the token is missing or invalid."""
    token = _get_token()
    if not token:
        return None

    try:
        claims = jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[ALGORITHM])
    except JWTError:
        return None

    return claims.get("userId")
