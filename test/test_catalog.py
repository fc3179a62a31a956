"""
Unit tests for MediaCatalog.
"""

import os
import sqlite3
import tempfile

import pytest

from mediatrack.catalog import MediaCatalog
from mediatrack.database import Database
from mediatrack.errors import NotFoundError, StorageError, ValidationError
from mediatrack.models import MediaSpec


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
def catalog(temp_db):
    """Create a MediaCatalog instance for testing."""
    return MediaCatalog(temp_db)


def test_create_and_get_roundtrip(catalog):
    """All fields survive a create/get round trip."""
    spec = MediaSpec(
        type="movie",
        title="Dune",
        original_title="Dune: Part One",
        year=2021,
        cover_url="https://example.com/dune.jpg",
        creators={"director": ["Denis Villeneuve"]},
        genres=["sci-fi", "drama"],
        duration=155,
        metadata={"imdb": "tt1160419", "nested": {"score": 8.0}},
    )
    created = catalog.create(spec)
    fetched = catalog.get(created.id)

    assert fetched.id == created.id
    assert fetched.type == "movie"
    assert fetched.title == "Dune"
    assert fetched.original_title == "Dune: Part One"
    assert fetched.year == 2021
    assert fetched.cover_url == "https://example.com/dune.jpg"
    assert fetched.creators == {"director": ["Denis Villeneuve"]}
    assert fetched.genres == ["sci-fi", "drama"]
    assert fetched.duration == 155
    assert fetched.metadata == {"imdb": "tt1160419", "nested": {"score": 8.0}}
    assert fetched.created_at == created.created_at


def test_empty_and_absent_stay_distinct(catalog):
    """Empty maps and lists are not collapsed into None, and vice versa."""
    empty = catalog.create(MediaSpec(type="book", title="Empty", creators={}, genres=[], metadata={}))
    absent = catalog.create(MediaSpec(type="book", title="Absent"))

    fetched_empty = catalog.get(empty.id)
    assert fetched_empty.creators == {}
    assert fetched_empty.genres == []
    assert fetched_empty.metadata == {}

    fetched_absent = catalog.get(absent.id)
    assert fetched_absent.creators is None
    assert fetched_absent.genres is None
    assert fetched_absent.metadata is None
    assert fetched_absent.year is None


def test_get_missing(catalog):
    with pytest.raises(NotFoundError):
        catalog.get("does-not-exist")


def test_create_validates(catalog):
    with pytest.raises(ValidationError):
        catalog.create(MediaSpec(type="movie", title=""))
    with pytest.raises(ValidationError):
        catalog.create(MediaSpec(type="podcast", title="Nope"))


def test_duplicates_allowed(catalog):
    """The catalog does not deduplicate on create."""
    first = catalog.create(MediaSpec(type="movie", title="Dune"))
    second = catalog.create(MediaSpec(type="movie", title="Dune"))

    assert first.id != second.id
    assert len(catalog.search("Dune", "movie")) == 2


def test_search_case_insensitive_substring(catalog):
    catalog.create(MediaSpec(type="movie", title="Dune"))
    catalog.create(MediaSpec(type="book", title="Dune Messiah"))
    catalog.create(MediaSpec(type="movie", title="Arrival"))

    results = catalog.search("dUnE")
    assert [item.title for item in results] == ["Dune", "Dune Messiah"]

    results = catalog.search("une", "book")
    assert [item.title for item in results] == ["Dune Messiah"]


def test_search_case_insensitive_non_ascii(catalog):
    catalog.create(MediaSpec(type="movie", title="Дюна"))
    catalog.create(MediaSpec(type="movie", title="Amélie"))
    catalog.create(MediaSpec(type="book", title="Straße"))

    assert [item.title for item in catalog.search("дюна")] == ["Дюна"]
    assert [item.title for item in catalog.search("AMÉLIE")] == ["Amélie"]
    assert [item.title for item in catalog.search("STRASSE")] == ["Straße"]


def test_search_order_ignores_case(catalog):
    for title in ["banana", "Apple", "cherry"]:
        catalog.create(MediaSpec(type="game", title=title))

    assert [item.title for item in catalog.search("", "game")] == ["Apple", "banana", "cherry"]


def test_corrupt_json_column_fails_read(temp_db, catalog):
    """A JSON column that cannot be decoded fails the read instead of reading as absent."""
    item = catalog.create(MediaSpec(type="movie", title="Dune", genres=["sci-fi"]))

    conn = sqlite3.connect(temp_db.db_path)
    conn.execute("UPDATE media_items SET genres = ? WHERE id = ?", ("[not json", item.id))
    conn.commit()
    conn.close()

    with pytest.raises(StorageError):
        catalog.get(item.id)
    with pytest.raises(StorageError):
        catalog.search("Dune")


def test_search_no_match_returns_empty_list(catalog):
    catalog.create(MediaSpec(type="movie", title="Dune"))
    assert catalog.search("Solaris") == []


def test_search_ordered_by_title(catalog):
    for title in ["Zelda", "Axiom", "Metroid"]:
        catalog.create(MediaSpec(type="game", title=title))

    assert [item.title for item in catalog.search("", "game")] == ["Axiom", "Metroid", "Zelda"]


def test_search_capped_at_twenty(catalog):
    for i in range(25):
        catalog.create(MediaSpec(type="tv", title="Show %02d" % i))

    results = catalog.search("Show")
    assert len(results) == 20
    assert results[0].title == "Show 00"


def test_search_treats_wildcards_literally(catalog):
    catalog.create(MediaSpec(type="movie", title="100% Wolf"))
    catalog.create(MediaSpec(type="movie", title="1000 Wolves"))

    assert [item.title for item in catalog.search("100%")] == ["100% Wolf"]
    assert catalog.search("_") == []


def test_find_exact(catalog):
    catalog.create(MediaSpec(type="movie", title="Dune Part Two"))
    assert catalog.find_exact("Dune", "movie") is None

    dune = catalog.create(MediaSpec(type="movie", title="Dune"))
    assert catalog.find_exact("Dune", "movie").id == dune.id
    assert catalog.find_exact("Dune", "book") is None


def test_update(catalog):
    item = catalog.create(MediaSpec(type="movie", title="Dnue", year=2020))
    updated = catalog.update(item.id, MediaSpec(type="movie", title="Dune", year=2021))

    assert updated.id == item.id
    fetched = catalog.get(item.id)
    assert fetched.title == "Dune"
    assert fetched.year == 2021
    assert fetched.created_at == item.created_at


def test_update_missing(catalog):
    with pytest.raises(NotFoundError):
        catalog.update("missing", MediaSpec(type="movie", title="Dune"))
