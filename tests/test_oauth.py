"""
Tests for OAuth helpers.
"""
import base64
import hashlib
from datetime import datetime, timedelta, timezone

from app.schemas.integration import IntegrationType
from app.services import oauth
from app.services.oauth import (
    OAuthStateStore,
    calculate_expires_at,
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
    is_token_expired,
    parse_callback_params,
    verify_state,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_generate_state_is_random_hex():
    first, second = generate_state(), generate_state()

    assert first != second
    assert len(first) == 64
    int(first, 16)


def test_verify_state():
    state = generate_state()

    assert verify_state(state, state) is True
    assert verify_state(state, generate_state()) is False
    assert verify_state(state, state[:-1]) is False


def test_pkce_challenge_matches_rfc_example():
    # RFC 7636, appendix B
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

    assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_pkce_verifier_round_trip():
    verifier = generate_code_verifier()
    challenge = generate_code_challenge(verifier)

    assert 43 <= len(verifier) <= 128
    assert "=" not in challenge
    padded = challenge + "=" * (-len(challenge) % 4)
    assert base64.urlsafe_b64decode(padded) == hashlib.sha256(verifier.encode()).digest()


def test_calculate_expires_at():
    assert calculate_expires_at(None) is None
    assert calculate_expires_at(0) is None

    expires_at = calculate_expires_at(3600)
    remaining = expires_at - datetime.now(timezone.utc)
    assert timedelta(minutes=59) < remaining <= timedelta(hours=1)


def test_is_token_expired_uses_five_minute_leeway():
    now = datetime.now(timezone.utc)

    assert is_token_expired(None) is False
    assert is_token_expired(now - timedelta(seconds=1)) is True
    assert is_token_expired(now + timedelta(minutes=4)) is True
    assert is_token_expired(now + timedelta(minutes=10)) is False


def test_is_token_expired_treats_naive_datetimes_as_utc():
    naive = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)

    assert is_token_expired(naive) is False


def test_parse_callback_params():
    params = parse_callback_params(
        "http://localhost:5000/api/v1/integrations/hubspot/callback?code=abc&state=xyz"
    )

    assert params.code == "abc"
    assert params.state == "xyz"
    assert params.error is None


def test_parse_callback_params_error():
    params = parse_callback_params(
        "https://app.example.com/cb?error=access_denied&error_description=User+declined&state=s1"
    )

    assert params.code is None
    assert params.error == "access_denied"
    assert params.error_description == "User declined"
    assert params.state == "s1"


def test_state_store_pop_is_single_use():
    store = OAuthStateStore(ttl_seconds=60)
    store.set("s1", "user-1", IntegrationType.HUBSPOT)

    entry = store.pop("s1")
    assert entry.user_id == "user-1"
    assert entry.integration_type is IntegrationType.HUBSPOT
    assert store.pop("s1") is None
    assert len(store) == 0


def test_state_store_expires_entries(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(oauth.time, "monotonic", clock)
    store = OAuthStateStore(ttl_seconds=60)

    store.set("old", "user-1", IntegrationType.TRELLO)
    clock.now += 30
    assert store.get("old") is not None

    clock.now += 31
    assert store.get("old") is None
    assert len(store) == 0


def test_state_store_cleanup_on_set(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(oauth.time, "monotonic", clock)
    store = OAuthStateStore(ttl_seconds=10)

    store.set("a", "user-1", IntegrationType.BIGIN)
    clock.now += 11
    store.set("b", "user-2", IntegrationType.BIGIN)

    assert len(store) == 1
    assert store.get("b").user_id == "user-2"


def test_state_store_delete():
    store = OAuthStateStore(ttl_seconds=60)
    store.set("s1", "user-1", IntegrationType.TEAMS)
    store.delete("s1")
    store.delete("missing")

    assert store.get("s1") is None


def test_state_store_default_ttl_from_settings():
    assert OAuthStateStore().ttl_seconds == 600
