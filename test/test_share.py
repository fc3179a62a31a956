"""
Unit tests for ShareManager.
"""

import os
import re
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from mediatrack.catalog import MediaCatalog
from mediatrack.collection import CollectionManager
from mediatrack.database import Database
from mediatrack.entries import EntryManager
from mediatrack.errors import ForbiddenError, NotFoundError, UnknownShareKindError
from mediatrack.models import Collection, EntryFields, MediaSpec, ShareToken
from mediatrack.share import ShareManager, add_months, generate_token
from mediatrack.user import UserManager


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    db = Database(db_path=path)
    yield db
    db.close()
    os.unlink(path)


@pytest.fixture
def components(temp_db):
    entries = EntryManager(temp_db)
    collections = CollectionManager(temp_db)
    return {
        "catalog": MediaCatalog(temp_db),
        "entries": entries,
        "collections": collections,
        "shares": ShareManager(temp_db, collections, entries),
        "users": UserManager(temp_db),
    }


@pytest.fixture
def alice(components):
    return components["users"].get_or_create_user("alice@example.com", "Alice")


def add_entry(components, user, title, status="planned"):
    media = components["catalog"].create(MediaSpec(type="movie", title=title))
    return components["entries"].create(user.id, media.id, EntryFields(status=status))


def test_generate_token_format():
    token = generate_token()
    assert re.fullmatch(r"[0-9a-f]{32}", token)
    assert generate_token() != token


def test_add_months():
    assert add_months(datetime(2024, 1, 15), 1) == datetime(2024, 2, 15)
    assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
    assert add_months(datetime(2023, 12, 5), 1) == datetime(2024, 1, 5)
    assert add_months(datetime(2024, 5, 31), 13) == datetime(2025, 6, 30)


def test_issue_sets_one_month_expiry(components):
    share = components["shares"].issue("profile", "user-1")

    assert share.kind == "profile"
    assert share.target_id == "user-1"
    assert len(share.token) == 32
    assert share.expires_at == add_months(share.created_at, 1)

    stored = components["shares"].repository.get_by_token(share.token)
    assert stored == share


def test_resolve_unknown_token(components):
    with pytest.raises(NotFoundError):
        components["shares"].resolve("0" * 32)


def test_resolve_collection_is_live(components, alice):
    """Resolution returns the collection's entries at resolve time, not issue time."""
    first = add_entry(components, alice, "Dune")
    collection = components["collections"].create(alice.id, "Favourites", entry_ids=[first.id])
    share = components["shares"].share_collection(collection.id, alice.id)

    second = add_entry(components, alice, "Arrival")
    components["collections"].add_entries(collection.id, alice.id, [second.id])

    resolved = components["shares"].resolve(share.token)
    assert isinstance(resolved, Collection)
    assert resolved.id == collection.id
    assert [entry.media.title for entry in resolved.entries] == ["Dune", "Arrival"]


def test_share_collection_requires_owner(components, alice):
    bob = components["users"].get_or_create_user("bob@example.com")
    collection = components["collections"].create(alice.id, "Mine")

    with pytest.raises(ForbiddenError):
        components["shares"].share_collection(collection.id, bob.id)
    with pytest.raises(NotFoundError):
        components["shares"].share_collection("missing", alice.id)


def test_resolve_profile_matches_list_by_user(components, alice):
    add_entry(components, alice, "Dune", "completed")
    add_entry(components, alice, "Arrival", "dropped")
    add_entry(components, alice, "Solaris", "planned")

    share = components["shares"].share_profile(alice.id)
    resolved = components["shares"].resolve(share.token)

    assert resolved == components["entries"].list_by_user(alice.id, None, None)
    assert len(resolved) == 3


def test_resolve_snapshot_kind_is_unknown(components):
    share = components["shares"].issue("snapshot", "some-snapshot")
    with pytest.raises(UnknownShareKindError):
        components["shares"].resolve(share.token)


def test_expired_token_still_resolves_by_default(components, alice):
    share = components["shares"].share_profile(alice.id)
    later = share.expires_at + timedelta(days=1)

    with patch("mediatrack.share.utcnow", return_value=later):
        assert components["shares"].is_expired(share)
        assert components["shares"].resolve(share.token) == []


def test_expiry_enforced_when_configured(temp_db, components, alice):
    shares = ShareManager(
        temp_db, components["collections"], components["entries"], enforce_expiry=True
    )
    share = shares.share_profile(alice.id)
    assert shares.resolve(share.token) == []

    with patch("mediatrack.share.utcnow", return_value=share.expires_at):
        with pytest.raises(NotFoundError):
            shares.resolve(share.token)


def test_is_expired_without_expiry(components):
    share = ShareToken(token="t", kind="profile", target_id="u", expires_at=None)
    assert not components["shares"].is_expired(share, datetime(2100, 1, 1, tzinfo=timezone.utc))
