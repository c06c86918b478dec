"""
Unit tests for token revocation.
"""

import uuid
from datetime import datetime, timezone

import pytest

from grievance_desk import auth


@pytest.fixture
def denylist(monkeypatch):
    fresh = {}
    monkeypatch.setattr(auth, "_token_blacklist", fresh)
    return fresh


def _token() -> str:
    return auth.create_access_token({"_id": str(uuid.uuid4()), "role": "citizen"})


def test_revoked_token_kept_until_expiry(denylist):
    token = _token()
    auth.revoke_token(token)
    assert denylist[token] > datetime.now(timezone.utc).timestamp()


def test_prune_drops_only_expired_entries(denylist, monkeypatch):
    monkeypatch.setattr(auth, "DENYLIST_PRUNE_THRESHOLD", 2)
    earlier = _token()
    auth.revoke_token(earlier)
    denylist["stale-token"] = datetime.now(timezone.utc).timestamp() - 60
    latest = _token()
    auth.revoke_token(latest)
    assert "stale-token" not in denylist
    assert earlier in denylist
    assert latest in denylist


def test_many_unexpired_revocations_all_stay(denylist, monkeypatch):
    monkeypatch.setattr(auth, "DENYLIST_PRUNE_THRESHOLD", 3)
    tokens = [_token() for _ in range(6)]
    for t in tokens:
        auth.revoke_token(t)
    assert set(tokens) <= set(denylist)


def test_undecodable_token_not_stored(denylist):
    auth.revoke_token("not.a.jwt")
    assert denylist == {}
