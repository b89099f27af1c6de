from __future__ import annotations

import hashlib
import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from pubquiz.database import get_db
from pubquiz.models import AccessToken, User, utcnow

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(db: Session, user: User, name: str = "auth_token") -> str:
    """
    Create a new opaque bearer token for user.
    Only the sha256 digest is stored; the plain value is returned once.
    """
    plain = f"{user.id}|{secrets.token_urlsafe(40)}"
    db.add(AccessToken(user_id=user.id, name=name, token_hash=_token_digest(plain)))
    db.flush()
    return plain


def revoke_tokens(db: Session, user: User) -> int:
    result = db.execute(delete(AccessToken).where(AccessToken.user_id == user.id))
    logger.info("Revoked %s token(s) for user %s", result.rowcount, user.id)
    return result.rowcount


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    user = db.scalar(select(User).where(User.email == email.strip().lower()))
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def user_for_token(db: Session, token: str) -> Optional[User]:
    access = db.scalar(select(AccessToken).where(AccessToken.token_hash == _token_digest(token)))
    if not access:
        return None
    access.last_used_at = utcnow()
    db.flush()
    return access.user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    user = user_for_token(db, credentials.credentials)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


def require_admin(user: User, detail: str) -> None:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
