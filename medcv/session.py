"""
Session/Identity Provider – login, logout and restoring a persisted session.

The persisted state is two named slots (token and serialized identity) in a
small JSON file. Only ``SessionProvider`` writes it.
"""

import json
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import jwt

from medcv.config import IDENTITY_SLOT, SESSION_FILE, TOKEN_SLOT
from medcv.errors import AuthError, GatewayError, MalformedResponseError
from medcv.models import Identity

SessionListener = Callable[[Optional[Identity]], None]


class SessionStore:
    """JSON file holding the ``authToken`` and ``userData`` slots."""

    def __init__(self, path: Path = SESSION_FILE):
        self.path = Path(path)

    def read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        return data if isinstance(data, dict) else {}

    def write(self, token: str, identity: Identity) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as fh:
            json.dump({TOKEN_SLOT: token, IDENTITY_SLOT: json.dumps(identity.to_dict())}, fh)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()

    def token(self) -> Optional[str]:
        try:
            return self.read().get(TOKEN_SLOT) or None
        except (OSError, ValueError):
            return None


def token_expired(token: str) -> bool:
    """True only for a decodable JWT whose ``exp`` has passed; opaque tokens never expire here."""
    try:
        jwt.decode(token, options={"verify_signature": False, "verify_exp": True})
    except jwt.ExpiredSignatureError:
        return True
    except jwt.InvalidTokenError:
        # Not a JWT, or claims we cannot read: let the backend decide.
        return False
    return False


class SessionProvider:
    """Holds the active Identity and notifies subscribers when it changes."""

    def __init__(self, gateway, store: SessionStore):
        self.gateway = gateway
        self.store = store
        self.identity: Optional[Identity] = None
        self._listeners: List[SessionListener] = []

    @property
    def token(self) -> Optional[str]:
        return self.store.token() if self.identity else None

    def subscribe(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def _set_identity(self, identity: Optional[Identity]) -> None:
        self.identity = identity
        for listener in self._listeners:
            listener(identity)

    # ── Operations ───────────────────────────────────────────────────

    def restore(self) -> Optional[Identity]:
        """Reload a persisted session; absence or a damaged store is silent."""
        try:
            slots = self.store.read()
            token = slots.get(TOKEN_SLOT)
            raw_identity = slots.get(IDENTITY_SLOT)
            identity = Identity.from_dict(json.loads(raw_identity)) if raw_identity else None
        except (OSError, ValueError, TypeError, AttributeError):
            token, identity = None, None

        if token and identity and token_expired(token):
            self.store.clear()
            token = None

        self._set_identity(identity if token and identity else None)
        return self.identity

    def login(self, email: str, password: str) -> Identity:
        """Authenticate via the gateway; raises AuthError and changes nothing on failure."""
        try:
            token, identity = self.gateway.login(email, password)
        except MalformedResponseError as e:
            raise AuthError(f"Malformed server response: {e}") from e
        except GatewayError as e:
            if e.status_code in (400, 401, 403):
                raise AuthError("Invalid credentials") from e
            raise AuthError(f"Could not reach the server: {e}") from e

        self.store.write(token, identity)
        self._set_identity(identity)
        return identity

    def logout(self) -> None:
        """Best-effort sign-out; always clears the local session."""
        try:
            self.gateway.logout()
        except GatewayError as e:
            print(f"[WARN] Sign-out notification failed: {e}", file=sys.stderr)
        self.store.clear()
        self._set_identity(None)
