import logging
import time
import uuid
from typing import Optional

import httpx
import jwt
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from wrapped.config import settings
from wrapped.jellyfin_client import AuthenticationError, authenticate
from wrapped.models import SessionRecord
from wrapped.session_cache import session_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")
bearer = HTTPBearer(auto_error=False)

JWT_ALGORITHM = "HS256"


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


def issue_token(jti: str, user_id: str, username: str, now: Optional[float] = None) -> str:
    """Sign a token that expires together with its cached session."""
    issued_at = int(now if now is not None else time.time())
    payload = {
        "jti": jti,
        "userId": user_id,
        "username": username,
        "iat": issued_at,
        "exp": issued_at + int(settings.session_ttl.total_seconds()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])


def _payload_from(credentials: Optional[HTTPAuthorizationCredentials]) -> dict:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        return decode_token(credentials.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Unauthorized")


async def current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> SessionRecord:
    """Resolve the bearer token to the cached upstream session."""
    payload = _payload_from(credentials)
    session = session_cache.get(payload.get("jti") or "")
    if session is None:
        raise HTTPException(status_code=401, detail="Session expired")
    return session


@router.post("/login")
async def login(body: LoginRequest):
    """Validate credentials against Jellyfin and hand out a token."""
    if not body.username or not body.password:
        raise HTTPException(status_code=400, detail="Username and password are required")

    try:
        result = await authenticate(settings.jellyfin_base_url, body.username, body.password)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    except httpx.HTTPError as e:
        logger.error(f"Login request to Jellyfin failed: {e}")
        raise HTTPException(status_code=500, detail="Authentication failed")

    jti = str(uuid.uuid4())
    session_cache.create(
        jti,
        SessionRecord(
            jti=jti,
            upstream_user_id=result.user_id,
            upstream_token=result.access_token,
            username=result.username,
        ),
    )
    logger.info(f"User logged in: {result.username}")

    return {
        "token": issue_token(jti, result.user_id, result.username),
        "user": {"id": result.user_id, "name": result.username},
    }


@router.post("/logout")
async def logout(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)):
    """Drop the session; an unusable token still counts as logged out."""
    try:
        payload = _payload_from(credentials)
    except HTTPException:
        return {"success": True}
    if payload.get("jti"):
        session_cache.delete(payload["jti"])
    return {"success": True}


@router.get("/verify")
async def verify(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)):
    try:
        payload = _payload_from(credentials)
    except HTTPException:
        raise HTTPException(status_code=401, detail="Invalid token")
    if session_cache.get(payload.get("jti") or "") is None:
        raise HTTPException(status_code=401, detail="Session expired")
    return {
        "valid": True,
        "user": {"id": payload.get("userId"), "name": payload.get("username")},
    }
