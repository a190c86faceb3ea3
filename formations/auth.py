import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import Cookie, Depends, Header, Request
from jose import JWTError, jwt
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from formations.config import Settings
from formations.database import get_db
from formations.errors import AuthFailure
from formations.models import AdminUser

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "admin-token"


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


def generate_token(user: AdminUser, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user.id),
        "userId": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(hours=settings.jwt_expires_hours),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def authenticate_admin(db: Session, username: str, password: str) -> Optional[AdminUser]:
    user = db.scalars(
        select(AdminUser).where(
            or_(AdminUser.username == username, AdminUser.email == username),
            AdminUser.is_active.is_(True),
        )
    ).first()
    if user is None or not verify_password(password, user.password_hash):
        return None
    user.last_login = datetime.now(timezone.utc)
    db.commit()
    return user


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def require_admin(
    request: Request,
    authorization: Optional[str] = Header(None),
    admin_token: Optional[str] = Cookie(None, alias=TOKEN_COOKIE),
    db: Session = Depends(get_db),
) -> AdminUser:
    """Resolve the signed-in admin from the cookie or a bearer token."""
    settings: Settings = request.app.state.settings
    token = _bearer(authorization) or admin_token
    if not token:
        raise AuthFailure()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        user_id = int(claims["userId"])
    except (JWTError, KeyError, TypeError, ValueError):
        logger.warning("admin token rejected path=%s", request.url.path)
        raise AuthFailure() from None

    user = db.get(AdminUser, user_id)
    if user is None or not user.is_active:
        raise AuthFailure()
    return user
