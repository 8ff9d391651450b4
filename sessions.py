"""
Per-shopper context objects.

A StoreSession is built when a shopper signs in (or presents a token after a
restart) and torn down when they sign out, which also revokes the token.
SessionRegistry keeps one per user so concurrent requests share the same cart
view and checkout guard.
"""
import threading
from typing import Dict, Optional

from auth import SessionProvider, decode_access_token
from cart import CartManager
from checkout import CheckoutSequencer
from database import DataService
from errors import AuthError, AuthErrorKind, Forbidden, Unauthenticated
from schemas import Credentials, Identity


class StoreSession:
    def __init__(self, data: DataService):
        self.data = data
        self.auth = SessionProvider(data)
        self.cart = CartManager(data)
        self.checkout = CheckoutSequencer(data, self.cart, self.auth)
        self._unsubscribe = self.auth.subscribe(self.cart.load)

    @property
    def identity(self) -> Optional[Identity]:
        return self.auth.current_identity()

    def require_identity(self) -> Identity:
        identity = self.identity
        if identity is None:
            raise Unauthenticated()
        return identity

    def require_admin(self) -> Identity:
        identity = self.require_identity()
        if identity.role != "admin":
            raise Forbidden()
        return identity

    def close(self) -> None:
        self.auth.sign_out()
        self._unsubscribe()
        self.cart.load(None)


class SessionRegistry:
    def __init__(self):
        self._sessions: Dict[str, StoreSession] = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._sessions)

    def get(self, user_id: str) -> Optional[StoreSession]:
        with self._lock:
            return self._sessions.get(user_id)

    def open(self, data: DataService, credentials: Credentials, sign_up: bool = False) -> StoreSession:
        store = StoreSession(data)
        if sign_up:
            store.auth.sign_up(credentials)
        else:
            store.auth.sign_in(credentials)
        return self._register(store)

    def resolve(self, data: DataService, token: str) -> StoreSession:
        """Return the session for a bearer token, rebuilding it if this process has none."""
        user_id = decode_access_token(token).get("sub")
        if not user_id:
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, "Could not validate credentials")
        store = self.get(user_id)
        if store is None:
            store = StoreSession(data)
            store.auth.restore(token)
            return self._register(store)
        store.auth.restore(token)
        return store

    def sign_out(self, store: StoreSession) -> None:
        """Revoke the store's token and drop its session."""
        user_id = store.require_identity().id
        store.auth.revoke()
        self.close(user_id)

    def close(self, user_id: str) -> None:
        with self._lock:
            store = self._sessions.pop(user_id, None)
        if store is not None:
            store.close()

    def _register(self, store: StoreSession) -> StoreSession:
        identity = store.require_identity()
        with self._lock:
            existing = self._sessions.setdefault(identity.id, store)
        if existing is not store:
            existing.auth.restore(store.auth.access_token)
            store.close()
        return existing
