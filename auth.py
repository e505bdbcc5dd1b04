from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from config import settings
from exceptions import AuthenticationError, PermissionDenied

security = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, email: Optional[str] = None, email_verified: bool = True) -> str:
    """Mints a token shaped like the ones the auth provider issues (dev tooling and tests)."""
    payload = {
        "sub": user_id,
        "email": email,
        "email_verified": email_verified,
        "exp": datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        "iat": datetime.utcnow(),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.PyJWTError:
        raise AuthenticationError("Invalid token")
    if not payload.get("sub"):
        raise AuthenticationError("Invalid token")
    # Verified email is required before granting app access
    if not payload.get("email_verified", False):
        raise PermissionDenied("Please verify your email before continuing")
    return {"user_id": payload["sub"], "email": payload.get("email")}


def require_user(creds: HTTPAuthorizationCredentials = Depends(security)):
    if creds is None:
        raise AuthenticationError("Not authenticated")
    return decode_token(creds.credentials)
