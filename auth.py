"""
Session provider: registration, login and per-request session validation.

Sessions are opaque random tokens stored in the session collection. A
request presents one either as "Authorization: Bearer <token>" or through
the session_token cookie set at login.
"""
import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

import bcrypt
from fastapi import Cookie, Depends, Header, Request
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import as_utc, utcnow
from errors import Conflict, Unauthenticated, ValidationError
from schemas import PASSWORD_MIN_LENGTH

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"

# bcrypt only looks at the first 72 bytes of a password.
_BCRYPT_MAX_BYTES = 72


def hash_password(pw: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(pw.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(pw: str, hashed: str) -> bool:
    pw_bytes = pw.encode("utf-8")
    if len(pw_bytes) > _BCRYPT_MAX_BYTES:
        return False
    return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))


class SessionProvider:
    def __init__(
        self,
        db: Database,
        session_ttl: timedelta = timedelta(days=7),
        update_age: timedelta = timedelta(days=1),
        bcrypt_rounds: int = 12,
    ):
        self.db = db
        self.session_ttl = session_ttl
        self.update_age = update_age
        self.bcrypt_rounds = bcrypt_rounds

    def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        name = (name or "").strip()
        email = email.strip().lower()
        if not name:
            raise ValidationError("Name is required")
        if len(password) < PASSWORD_MIN_LENGTH:
            raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
        if len(password.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            raise ValidationError(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes")
        if self.db["user"].find_one({"email": email}):
            raise Conflict("Email already registered")

        now = utcnow()
        doc = {
            "name": name,
            "email": email,
            "password_hash": hash_password(password, self.bcrypt_rounds),
            "avatar": None,
            "bio": None,
            "created_at": now,
            "updated_at": now,
        }
        try:
            res = self.db["user"].insert_one(doc)
        except DuplicateKeyError:
            raise Conflict("Email already registered")
        doc["_id"] = res.inserted_id
        logger.info("Registered user %s", res.inserted_id)
        return doc

    def login(self, email: str, password: str) -> Tuple[str, Dict[str, Any]]:
        user = self.db["user"].find_one({"email": email.strip().lower()})
        if not user or not verify_password(password, user.get("password_hash", "")):
            raise Unauthenticated("Invalid credentials")
        token = secrets.token_urlsafe(32)
        now = utcnow()
        self.db["session"].insert_one({
            "token": token,
            "user_id": user["_id"],
            "created_at": now,
            "updated_at": now,
            "expires_at": now + self.session_ttl,
        })
        return token, user

    def validate(self, token: Optional[str]) -> Dict[str, Any]:
        """Return the user owning a live session, refreshing its expiry when due."""
        if not token:
            raise Unauthenticated("Missing token")
        session = self.db["session"].find_one({"token": token})
        if not session:
            raise Unauthenticated("Invalid token")
        now = utcnow()
        if as_utc(session["expires_at"]) < now:
            self.db["session"].delete_one({"_id": session["_id"]})
            raise Unauthenticated("Session expired")
        user = self.db["user"].find_one({"_id": session["user_id"]})
        if not user:
            raise Unauthenticated("User not found")
        if now - as_utc(session["updated_at"]) >= self.update_age:
            self.db["session"].update_one(
                {"_id": session["_id"]},
                {"$set": {"updated_at": now, "expires_at": now + self.session_ttl}},
            )
        return user

    def logout(self, token: Optional[str]) -> None:
        if token:
            self.db["session"].delete_one({"token": token})


# -----------------------------
# Dependencies
# -----------------------------

def get_sessions(request: Request) -> SessionProvider:
    return request.app.state.sessions


def session_token(
    authorization: Optional[str] = Header(default=None),
    session_cookie: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE),
) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    return session_cookie


def get_current_user(
    token: Optional[str] = Depends(session_token),
    sessions: SessionProvider = Depends(get_sessions),
) -> Dict[str, Any]:
    return sessions.validate(token)
