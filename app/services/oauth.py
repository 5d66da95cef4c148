"""
OAuth helpers: state nonces, PKCE, token expiry and callback parsing.
"""
import base64
import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

from app.config import get_settings
from app.schemas.integration import IntegrationType

settings = get_settings()

EXPIRY_LEEWAY = timedelta(minutes=5)


def generate_state() -> str:
    """Random hex nonce for the OAuth ``state`` parameter."""
    return secrets.token_hex(32)


def verify_state(state: str, expected_state: str) -> bool:
    """Constant-time state comparison; mismatched lengths are just unequal."""
    return hmac.compare_digest(state.encode("utf-8"), expected_state.encode("utf-8"))


def calculate_expires_at(expires_in: int | None) -> datetime | None:
    if not expires_in:
        return None
    return datetime.now(timezone.utc) + timedelta(seconds=expires_in)


def is_token_expired(expires_at: datetime | None) -> bool:
    """True when the token expires within the next five minutes."""
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= datetime.now(timezone.utc) + EXPIRY_LEEWAY


def generate_code_verifier() -> str:
    """PKCE code verifier (RFC 7636)."""
    return secrets.token_urlsafe(32)


def generate_code_challenge(verifier: str) -> str:
    """S256 PKCE challenge: unpadded base64url of the verifier's SHA-256."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass
class CallbackParams:
    """Query parameters an OAuth provider redirects back with."""
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None


def parse_callback_params(url: str) -> CallbackParams:
    query = parse_qs(urlparse(url).query)

    def first(name: str) -> str | None:
        values = query.get(name)
        return values[0] if values else None

    return CallbackParams(
        code=first("code"),
        state=first("state"),
        error=first("error"),
        error_description=first("error_description"),
    )


@dataclass
class PendingAuthorization:
    """Who started an OAuth flow, and for which integration."""
    user_id: str
    integration_type: IntegrationType
    created_at: float


class OAuthStateStore:
    """
    In-memory map of outstanding OAuth states.

    Entries expire after ``ttl_seconds``. A single process only; a shared
    deployment needs an external store.
    """

    def __init__(self, ttl_seconds: int | None = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.oauth_state_ttl_seconds
        self._states: dict[str, PendingAuthorization] = {}

    def set(self, state: str, user_id: str, integration_type: IntegrationType) -> None:
        self._states[state] = PendingAuthorization(
            user_id=user_id,
            integration_type=integration_type,
            created_at=time.monotonic(),
        )
        self.cleanup()

    def get(self, state: str) -> PendingAuthorization | None:
        entry = self._states.get(state)
        if entry is None:
            return None
        if self._expired(entry):
            del self._states[state]
            return None
        return entry

    def pop(self, state: str) -> PendingAuthorization | None:
        """Return and forget the entry; states are single-use."""
        entry = self.get(state)
        self._states.pop(state, None)
        return entry

    def delete(self, state: str) -> None:
        self._states.pop(state, None)

    def cleanup(self) -> None:
        for state in [s for s, entry in self._states.items() if self._expired(entry)]:
            del self._states[state]

    def __len__(self) -> int:
        return len(self._states)

    def _expired(self, entry: PendingAuthorization) -> bool:
        return time.monotonic() - entry.created_at > self.ttl_seconds


oauth_state_store = OAuthStateStore()
