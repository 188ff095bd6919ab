"""
Authentication

Password signup/login with bcrypt hashes and opaque bearer session tokens.
Route handlers only see the `get_current_user` and `require_admin`
dependencies: a verified User, or a 401/403 before the handler runs.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

import config
from schemas import LoginRequest, SessionResponse, SignupRequest, User
from storage import Storage, get_storage

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def _admin_flag(email: str) -> dict:
    # listed emails are promoted; others keep whatever flag they already have
    return {"is_admin": True} if email in config.ADMIN_EMAILS else {}


def start_session(storage: Storage, user: User) -> SessionResponse:
    sid = secrets.token_urlsafe(32)
    expire = datetime.now(timezone.utc) + timedelta(hours=config.SESSION_TTL_HOURS)
    storage.create_session(sid, user.id, expire)
    return SessionResponse(token=sid, expires_at=expire, user=user)


def signup(storage: Storage, payload: SignupRequest) -> SessionResponse:
    email = payload.email.lower()
    if storage.get_user_record(email):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = storage.upsert_user(str(ObjectId()), {
        "email": email,
        "first_name": payload.first_name,
        "last_name": payload.last_name,
        "password_hash": pwd_context.hash(payload.password),
        **_admin_flag(email),
    })
    logger.info("Registered user %s", user.id)
    return start_session(storage, user)


def login(storage: Storage, payload: LoginRequest) -> SessionResponse:
    email = payload.email.lower()
    record = storage.get_user_record(email)
    if not record or not pwd_context.verify(payload.password, record.get("password_hash") or ""):
        logger.info("Failed login for %s", email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user = storage.upsert_user(record["id"], {"email": email, **_admin_flag(email)})
    return start_session(storage, user)


def _as_utc(value: datetime) -> datetime:
    # pymongo hands back naive UTC datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    storage: Storage = Depends(get_storage),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    session = storage.get_session(credentials.credentials)
    if not session or _as_utc(session["expire"]) <= datetime.now(timezone.utc):
        raise HTTPException(status_code=401, detail="Unauthorized")
    user = storage.get_user(session["user_id"])
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return user
