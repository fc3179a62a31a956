"""
Unit tests for CollectionManager.
"""

import os
import tempfile

import pytest

from mediatrack.catalog import MediaCatalog
from mediatrack.collection import CollectionManager
from mediatrack.database import Database
from mediatrack.entries import EntryManager
from mediatrack.errors import ForbiddenError, NotFoundError, ValidationError
from mediatrack.models import EntryFields, MediaSpec
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
def collection_manager(temp_db):
    return CollectionManager(temp_db)


@pytest.fixture
def test_users(temp_db):
    users = UserManager(temp_db)
    return {
        "alice": users.get_or_create_user("alice@example.com", "Alice"),
        "bob": users.get_or_create_user("bob@example.com", "Bob"),
    }


@pytest.fixture
def alice_entries(temp_db, test_users):
    """Three entries owned by Alice."""
    catalog = MediaCatalog(temp_db)
    entries = EntryManager(temp_db)
    result = []
    for title in ["Dune", "Arrival", "Solaris"]:
        media = catalog.create(MediaSpec(type="movie", title=title))
        result.append(entries.create(test_users["alice"].id, media.id, EntryFields(status="planned")))
    return result


def entry_titles(collection):
    return [entry.media.title for entry in collection.entries]


def test_create_collection(collection_manager, test_users, alice_entries):
    alice = test_users["alice"]
    collection = collection_manager.create(
        alice.id, "Sci-fi", is_public=True, entry_ids=[alice_entries[1].id, alice_entries[0].id]
    )

    assert collection.user_id == alice.id
    assert collection.title == "Sci-fi"
    assert collection.is_public is True
    assert entry_titles(collection) == ["Arrival", "Dune"]


def test_create_requires_title(collection_manager, test_users):
    with pytest.raises(ValidationError):
        collection_manager.create(test_users["alice"].id, " ")


def test_add_entries_appends_in_order(collection_manager, test_users, alice_entries):
    alice = test_users["alice"]
    collection = collection_manager.create(alice.id, "Queue", entry_ids=[alice_entries[2].id])

    collection = collection_manager.add_entries(
        collection.id, alice.id, [alice_entries[0].id, alice_entries[1].id]
    )
    assert entry_titles(collection) == ["Solaris", "Dune", "Arrival"]


def test_add_entries_idempotent(collection_manager, test_users, alice_entries):
    """Adding an entry twice leaves it in the collection exactly once, in place."""
    alice = test_users["alice"]
    collection = collection_manager.create(alice.id, "Queue")

    collection_manager.add_entries(collection.id, alice.id, [alice_entries[0].id])
    collection_manager.add_entries(collection.id, alice.id, [alice_entries[1].id])
    collection = collection_manager.add_entries(collection.id, alice.id, [alice_entries[0].id])

    assert [entry.id for entry in collection.entries] == [alice_entries[0].id, alice_entries[1].id]


def test_add_entries_checks_owner(collection_manager, test_users, alice_entries):
    bob = test_users["bob"]
    bobs = collection_manager.create(bob.id, "Bob's list")

    with pytest.raises(ForbiddenError):
        collection_manager.add_entries(bobs.id, bob.id, [alice_entries[0].id])

    alices = collection_manager.create(test_users["alice"].id, "Alice's list")
    with pytest.raises(ForbiddenError):
        collection_manager.add_entries(alices.id, bob.id, [alice_entries[0].id])


def test_add_missing_entry(collection_manager, test_users):
    collection = collection_manager.create(test_users["alice"].id, "Queue")
    with pytest.raises(NotFoundError):
        collection_manager.add_entries(collection.id, test_users["alice"].id, ["missing"])


def test_remove_entries(collection_manager, test_users, alice_entries):
    alice = test_users["alice"]
    collection = collection_manager.create(
        alice.id, "Queue", entry_ids=[entry.id for entry in alice_entries]
    )

    collection = collection_manager.remove_entries(collection.id, alice.id, [alice_entries[1].id])
    assert entry_titles(collection) == ["Dune", "Solaris"]

    # New members still go to the end
    collection = collection_manager.add_entries(collection.id, alice.id, [alice_entries[1].id])
    assert entry_titles(collection) == ["Dune", "Solaris", "Arrival"]


def test_get_private_collection(collection_manager, test_users, alice_entries):
    alice = test_users["alice"]
    collection = collection_manager.create(alice.id, "Private", entry_ids=[alice_entries[0].id])

    assert entry_titles(collection_manager.get(collection.id, alice.id)) == ["Dune"]
    with pytest.raises(ForbiddenError):
        collection_manager.get(collection.id, test_users["bob"].id)


def test_get_public_collection(collection_manager, test_users):
    collection = collection_manager.create(test_users["alice"].id, "Public", is_public=True)
    assert collection_manager.get(collection.id, test_users["bob"].id).id == collection.id
    assert collection_manager.get(collection.id).id == collection.id


def test_get_missing(collection_manager):
    with pytest.raises(NotFoundError):
        collection_manager.get_with_entries("missing")


def test_list_by_user(collection_manager, test_users):
    alice = test_users["alice"]
    collection_manager.create(alice.id, "One")
    collection_manager.create(alice.id, "Two")
    collection_manager.create(test_users["bob"].id, "Other")

    titles = [collection.title for collection in collection_manager.list_by_user(alice.id)]
    assert titles == ["Two", "One"]


def test_update(collection_manager, test_users, alice_entries):
    alice = test_users["alice"]
    collection = collection_manager.create(
        alice.id, "Old", entry_ids=[alice_entries[0].id, alice_entries[1].id]
    )

    updated = collection_manager.update(collection.id, alice.id, title="New", is_public=True)
    assert updated.title == "New"
    assert updated.is_public is True
    assert entry_titles(updated) == ["Dune", "Arrival"]

    replaced = collection_manager.update(
        collection.id, alice.id, entry_ids=[alice_entries[2].id, alice_entries[0].id]
    )
    assert replaced.title == "New"
    assert entry_titles(replaced) == ["Solaris", "Dune"]


def test_update_by_non_owner(collection_manager, test_users):
    collection = collection_manager.create(test_users["alice"].id, "Mine")
    with pytest.raises(ForbiddenError):
        collection_manager.update(collection.id, test_users["bob"].id, title="Stolen")


def test_delete(collection_manager, test_users, alice_entries):
    alice = test_users["alice"]
    collection = collection_manager.create(alice.id, "Gone", entry_ids=[alice_entries[0].id])

    with pytest.raises(ForbiddenError):
        collection_manager.delete(collection.id, test_users["bob"].id)

    collection_manager.delete(collection.id, alice.id)
    with pytest.raises(NotFoundError):
        collection_manager.get_with_entries(collection.id)


def test_deleting_entry_removes_membership(temp_db, collection_manager, test_users, alice_entries):
    alice = test_users["alice"]
    collection = collection_manager.create(
        alice.id, "Queue", entry_ids=[alice_entries[0].id, alice_entries[1].id]
    )

    EntryManager(temp_db).delete(alice_entries[0].id)
    assert entry_titles(collection_manager.get_with_entries(collection.id)) == ["Arrival"]
