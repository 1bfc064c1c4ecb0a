# app/core/security.py
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import jwt
from pydantic import ValidationError as PydanticValidationError
from app.core.config import settings
from app.schemas.auth import ActorSession

# Tokens are minted by the identity provider; this service only verifies them.
ALGO = "HS256"
bearer = HTTPBearer(auto_error=False)

def _decode_token(creds: Optional[HTTPAuthorizationCredentials]) -> dict:
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return jwt.decode(creds.credentials, settings.jwt_secret, algorithms=[ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

def session_from_claims(payload: dict) -> ActorSession:
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    try:
        return ActorSession(
            id=str(sub),
            name=payload.get("name") or str(sub),
            role=payload.get("role") or "citizen",
        )
    except PydanticValidationError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

def get_current_actor(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> ActorSession:
    return session_from_claims(_decode_token(creds))

def get_optional_actor(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Optional[ActorSession]:
    if not creds:
        return None
    try:
        payload = jwt.decode(creds.credentials, settings.jwt_secret, algorithms=[ALGO])
    except jwt.InvalidTokenError:
        return None
    try:
        return session_from_claims(payload)
    except HTTPException:
        return None
