"""
Identity for the storefront: password hashing, bearer tokens and SessionProvider.

SessionProvider tracks who is signed in for one StoreSession and tells its
listeners (the cart) whenever that changes.
"""
import os
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from database import DataService
from errors import AuthError, AuthErrorKind, Conflict, EmailTaken, RemoteFailure
from logging_setup import get_logger
from schemas import Credentials, Identity, Profile

SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 12))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
logger = get_logger("auth")

IdentityListener = Callable[[Optional[Identity]], None]


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    to_encode.setdefault("jti", secrets.token_hex(16))
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, "Could not validate credentials")


def _identity_from(row: Dict[str, Any]) -> Identity:
    return Identity(id=row["id"], email=row["email"], role=row.get("role", "customer"))


class SessionProvider:
    def __init__(self, data: DataService):
        self._data = data
        self._identity: Optional[Identity] = None
        self._profile: Optional[Profile] = None
        self._token: Optional[str] = None
        self._listeners: List[IdentityListener] = []

    def current_identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def profile(self) -> Optional[Profile]:
        return self._profile

    @property
    def access_token(self) -> Optional[str]:
        return self._token

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a callback for identity changes and return its unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, credentials: Credentials) -> Identity:
        email = credentials.email.lower()
        row = self._lookup({"email": email})
        if not row or not self._password_matches(credentials.password, row.get("password_hash")):
            logger.info("sign_in_rejected", email=email)
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, "Incorrect email or password")
        identity = _identity_from(row)
        token = create_access_token({"sub": identity.id, "role": identity.role})
        self._establish(identity, Profile(**row), token)
        return identity

    def sign_up(self, credentials: Credentials) -> Identity:
        email = credentials.email.lower()
        if self._lookup({"email": email}):
            raise EmailTaken()
        try:
            row = self._data.insert(
                "profiles",
                {
                    "email": email,
                    "full_name": credentials.full_name or email.split("@")[0],
                    "role": "customer",
                    "password_hash": get_password_hash(credentials.password),
                },
            )
        except Conflict as e:
            raise EmailTaken() from e
        except RemoteFailure as e:
            raise AuthError(AuthErrorKind.NETWORK_ERROR, e.message) from e
        logger.info("signed_up", user_id=row["id"])
        return self.sign_in(credentials)

    def sign_out(self) -> None:
        if self._identity is None:
            return
        logger.info("signed_out", user_id=self._identity.id)
        self._identity = None
        self._profile = None
        self._token = None
        self._notify(None)

    def revoke(self) -> None:
        """Sign out and refuse the current token from now on."""
        if self._token is not None:
            payload = decode_access_token(self._token)
            if payload.get("jti"):
                try:
                    self._data.insert(
                        "revoked_tokens",
                        {"jti": payload["jti"], "user_id": payload.get("sub"), "expires_at": payload["exp"]},
                    )
                    self._data.delete("revoked_tokens", {"expires_at": {"$lt": int(time.time())}})
                except RemoteFailure as e:
                    raise AuthError(AuthErrorKind.NETWORK_ERROR, e.message) from e
                logger.info("token_revoked", user_id=payload.get("sub"))
        self.sign_out()

    def restore(self, token: str) -> Identity:
        """Re-establish the identity carried by a bearer token."""
        payload = decode_access_token(token)
        user_id = payload.get("sub")
        if not user_id or self._is_revoked(payload.get("jti")):
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, "Could not validate credentials")
        row = self._lookup({"id": user_id})
        if not row:
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, "Could not validate credentials")
        identity = _identity_from(row)
        self._establish(identity, Profile(**row), token)
        return identity

    def refresh_profile(self) -> Optional[Profile]:
        if self._identity is None:
            return None
        row = self._lookup({"id": self._identity.id})
        self._profile = Profile(**row) if row else None
        return self._profile

    def _lookup(self, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self._data.select_one("profiles", filters)
        except RemoteFailure as e:
            raise AuthError(AuthErrorKind.NETWORK_ERROR, e.message) from e

    def _is_revoked(self, jti: Optional[str]) -> bool:
        if not jti:
            return False
        try:
            return self._data.count("revoked_tokens", {"jti": jti}) > 0
        except RemoteFailure as e:
            raise AuthError(AuthErrorKind.NETWORK_ERROR, e.message) from e

    @staticmethod
    def _password_matches(password: str, password_hash: Optional[str]) -> bool:
        if not password_hash:
            return False
        try:
            return verify_password(password, password_hash)
        except ValueError as e:
            raise AuthError(AuthErrorKind.UNKNOWN, "Stored credentials are unreadable") from e

    def _establish(self, identity: Identity, profile: Profile, token: str) -> None:
        changed = self._identity is None or self._identity.id != identity.id
        self._identity = identity
        self._profile = profile
        self._token = token
        if changed:
            logger.info("signed_in", user_id=identity.id, role=identity.role)
            self._notify(identity)

    def _notify(self, identity: Optional[Identity]) -> None:
        for listener in list(self._listeners):
            try:
                listener(identity)
            except Exception:
                logger.exception("identity_listener_failed")
                raise
