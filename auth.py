"""
Admin authentication: password hashing, signed session tokens and the
session lifecycle.

A successful ``sign_in`` yields an ``AdminSession``. That object is what the
HTTP layer hands to admin routes; there is no process-wide "current user".
Sign-in and sign-out are published on an ``EventChannel`` so other parts of
the application can react without polling.
"""
import base64
import hashlib
import hmac
import json
import os
import secrets
import time
from typing import Literal, Optional

from loguru import logger
from pydantic import BaseModel
from pymongo.database import Database

from database import create_document, oid_to_str, to_object_id
from errors import InvalidCredentialsError
from events import EventChannel
from schemas import AdminUser, Session

USERS = "adminuser"
SESSIONS = "session"

DEFAULT_SESSION_TTL = 60 * 60 * 8  # 8 hours
PBKDF2_ITERATIONS = 260_000


class AdminSession(BaseModel):
    user_id: str
    email: str
    role: str
    token: str
    expires_at: int

    @property
    def expires_in(self) -> int:
        return max(self.expires_at - int(time.time()), 0)


class AuthEvent(BaseModel):
    kind: Literal["signed_in", "signed_out"]
    user_id: str
    email: str


# -----------------------------
# Passwords
# -----------------------------

def hash_password(password: str, salt: Optional[str] = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        algorithm, iterations, salt, expected = password_hash.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    candidate = hash_password(password, salt=salt, iterations=int(iterations))
    return hmac.compare_digest(candidate.split("$")[-1], expected)


# -----------------------------
# Tokens
# -----------------------------

def _b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _unb64(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def sign_token(payload: dict, secret: str) -> str:
    data = json.dumps(payload, separators=(",", ":")).encode()
    sig = hmac.new(secret.encode(), data, hashlib.sha256).digest()
    return _b64(data) + "." + _b64(sig)


def verify_token(token: str, secret: str) -> Optional[dict]:
    """Decoded payload, or None if the token is malformed, forged or expired."""
    try:
        data_b64, sig_b64 = token.split(".")
        data = _unb64(data_b64)
        sig = _unb64(sig_b64)
    except (ValueError, TypeError):
        return None
    expected = hmac.new(secret.encode(), data, hashlib.sha256).digest()
    if not hmac.compare_digest(sig, expected):
        return None
    try:
        payload = json.loads(data.decode())
    except ValueError:
        return None
    if payload.get("exp") and time.time() > payload["exp"]:
        return None
    return payload


# -----------------------------
# Sessions
# -----------------------------

class AuthService:
    def __init__(self, database: Database, secret: str, events: EventChannel, ttl_seconds: int = DEFAULT_SESSION_TTL):
        self.database = database
        self.secret = secret
        self.events = events
        self.ttl_seconds = ttl_seconds

    def create_admin(self, email: str, name: str, password: str) -> str:
        user = AdminUser(email=email.strip().lower(), name=name, password_hash=hash_password(password))
        _id = create_document(self.database, USERS, user)
        logger.info("Created admin user {}", user.email)
        return _id

    def sign_in(self, email: str, password: str) -> AdminSession:
        user = self.database[USERS].find_one({"email": email.strip().lower()})
        # Same error for unknown email and wrong password
        if not user or not user.get("is_active", True) or not verify_password(password, user.get("password_hash", "")):
            logger.warning("Failed sign-in for {}", email)
            raise InvalidCredentialsError()
        if user.get("role") != "admin":
            raise InvalidCredentialsError("Admin access required")

        user_id = str(user["_id"])
        expires_at = int(time.time()) + self.ttl_seconds
        token = sign_token(
            {"sub": user_id, "role": user["role"], "exp": expires_at, "jti": secrets.token_hex(8)},
            self.secret,
        )
        create_document(self.database, SESSIONS, Session(user_id=user_id, token=token, expires_at=expires_at), timestamps=("created_at",))

        session = AdminSession(user_id=user_id, email=user["email"], role=user["role"], token=token, expires_at=expires_at)
        self.events.publish(AuthEvent(kind="signed_in", user_id=user_id, email=session.email))
        return session

    def resolve(self, token: Optional[str]) -> Optional[AdminSession]:
        if not token:
            return None
        payload = verify_token(token, self.secret)
        if payload is None:
            return None
        stored = self.database[SESSIONS].find_one({"token": token})
        if stored is None:
            return None
        if stored["expires_at"] < time.time():
            self.database[SESSIONS].delete_one({"_id": stored["_id"]})
            return None
        user = oid_to_str(self.database[USERS].find_one({"_id": to_object_id(stored["user_id"])}))
        if not user or not user.get("is_active", True):
            return None
        return AdminSession(
            user_id=user["id"],
            email=user["email"],
            role=user.get("role", "admin"),
            token=token,
            expires_at=stored["expires_at"],
        )

    def sign_out(self, session: AdminSession) -> None:
        self.database[SESSIONS].delete_one({"token": session.token})
        self.events.publish(AuthEvent(kind="signed_out", user_id=session.user_id, email=session.email))


def admin_secret() -> str:
    return os.getenv("ADMIN_SECRET", "change-me")


def session_ttl() -> int:
    return int(os.getenv("SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL))
