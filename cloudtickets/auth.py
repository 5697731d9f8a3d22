"""
Request authentication: JWT bearer tokens for people, static API keys for
gate devices. Login and registration live outside this service; it only
verifies what they issue.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from cloudtickets.config import Settings, get_settings
from cloudtickets.database import get_db
from cloudtickets.models import Device

JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = 24

ROLE_ADMIN = "ADMIN"
ROLE_STAFF = "STAFF"
ROLE_CLIENT = "CLIENT"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    id: int
    role: str


def create_jwt_token(user_id: int, role: str, secret: str, expires_in: timedelta = None) -> str:
    now = datetime.now(timezone.utc)
    data = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + (expires_in or timedelta(hours=JWT_EXPIRY_HOURS)),
    }
    return jwt.encode(data, secret, algorithm=JWT_ALGORITHM)


def verify_jwt_token(token: str, secret: str) -> Optional[dict]:
    """Verify and decode a JWT token. Returns payload or None."""
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="NOT_AUTHENTICATED")

    payload = verify_jwt_token(credentials.credentials, settings.JWT_SECRET)
    if payload is None:
        raise HTTPException(status_code=401, detail="INVALID_TOKEN")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="INVALID_TOKEN")

    return CurrentUser(id=user_id, role=payload.get("role") or ROLE_CLIENT)


def require_roles(*roles: str):
    def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="FORBIDDEN")
        return user

    return dependency


def get_current_device(
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Device:
    if not x_api_key:
        raise HTTPException(status_code=401, detail="NO_API_KEY")

    device = db.query(Device).filter(Device.api_key == x_api_key).first()
    if device is None or not device.active:
        raise HTTPException(status_code=401, detail="INVALID_DEVICE")

    return device
