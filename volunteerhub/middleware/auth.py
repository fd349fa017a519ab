"""
Identity provider integration.

Session tokens are HS256 JWTs issued by the identity provider; ``sub`` carries
the user id. HTTP callers send ``Authorization: Bearer <token>`` (or the
``access_token`` cookie for page loads), WebSocket callers pass ``?token=``.
"""
from datetime import datetime, timedelta
from typing import Optional
import logging

from fastapi import HTTPException, Request, WebSocket, status
from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import BaseModel

from volunteerhub.config import AUTH_ALGORITHM, AUTH_SECRET

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "access_token"


class CurrentUser(BaseModel):
    """User information extracted from JWT."""
    user_id: str
    email: Optional[str] = None


def create_access_token(user_id: str, email: Optional[str] = None, expires_in: timedelta = timedelta(days=7)) -> str:
    """Issue a session token the way the identity provider does."""
    now = datetime.utcnow()
    payload = {
        "sub": user_id,
        "email": email,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, AUTH_SECRET, algorithm=AUTH_ALGORITHM)


def decode_token(token: str) -> CurrentUser:
    """
    Validate a token and extract the user.

    Raises:
        HTTPException: If the token is invalid, expired or has no subject
    """
    if token.startswith("Bearer "):
        token = token[7:]

    try:
        payload = jwt.decode(token, AUTH_SECRET, algorithms=[AUTH_ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentUser(user_id=user_id, email=payload.get("email"))


async def get_current_user(request: Request) -> CurrentUser:
    """
    Validate JWT token from Authorization header and extract user information.

    Raises:
        HTTPException: If the header is missing or the token is invalid
    """
    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_token(auth_header)


async def get_optional_user(request: Request) -> Optional[CurrentUser]:
    """Like get_current_user, but returns None instead of raising (page loads)."""
    token = request.headers.get("authorization") or request.cookies.get(TOKEN_COOKIE)
    if not token:
        return None
    try:
        return decode_token(token)
    except HTTPException as e:
        logger.warning(f"Ignoring invalid session token: {e.detail}")
        return None


def authenticate_websocket(websocket: WebSocket) -> Optional[str]:
    """Return the user id for a WebSocket connection, or None."""
    token = websocket.query_params.get("token")
    if not token:
        logger.warning("No token provided in WebSocket connection")
        return None
    try:
        return decode_token(token).user_id
    except HTTPException as e:
        logger.warning(f"WebSocket token verification failed: {e.detail}")
        return None
