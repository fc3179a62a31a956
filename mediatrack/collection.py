"""
Collection management for mediatrack.

Collections are named, ordered groupings of one user's entries. Membership is
stored by position; appending gives each new member the next position.
"""

import logging
import uuid
from typing import List, Optional

from .database import CollectionRepository, Database, EntryRepository, utcnow
from .errors import ForbiddenError, NotFoundError, ValidationError
from .models import Collection


class CollectionManager:
    """Manages collections and their membership, scoped to the owning user."""

    def __init__(self, database: Database):
        """
        Initialize CollectionManager.

        Args:
            database: Database instance for persistence
        """
        self.database = database
        self.repository = CollectionRepository(database)
        self.entry_repository = EntryRepository(database)
        self.logger = logging.getLogger(__name__)

    def _get_owned(self, collection_id: str, user_id: str) -> Collection:
        collection = self.repository.get_by_id(collection_id)
        if collection is None:
            raise NotFoundError("Collection not found")
        if collection.user_id != user_id:
            raise ForbiddenError("You can only modify your own collections")
        return collection

    def _check_entries(self, entry_ids: List[str], user_id: str) -> None:
        """Every entry must exist and belong to the collection owner."""
        for entry_id in entry_ids:
            entry = self.entry_repository.get_by_id(entry_id)
            if entry is None:
                raise NotFoundError("Entry not found: %s" % entry_id)
            if entry.user_id != user_id:
                raise ForbiddenError("Entry %s belongs to another user" % entry_id)

    def create(
        self,
        user_id: str,
        title: str,
        is_public: bool = False,
        entry_ids: Optional[List[str]] = None,
    ) -> Collection:
        """
        Create a collection, optionally seeded with entries in the given order.

        Args:
            user_id: Owner of the collection
            title: Collection title
            is_public: Whether non-owners may read it
            entry_ids: Initial members (optional)

        Returns:
            The created collection with its entries
        """
        if not title or not title.strip():
            raise ValidationError("title is required")
        if entry_ids:
            self._check_entries(entry_ids, user_id)

        collection = Collection(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            is_public=is_public,
            created_at=utcnow(),
        )
        self.repository.create(collection)
        if entry_ids:
            self.repository.add_entries(collection.id, entry_ids)
        self.logger.info("Created collection %s (%s) for user %s", collection.id, title, user_id)
        return self.get_with_entries(collection.id)

    def get(self, collection_id: str, user_id: Optional[str] = None) -> Collection:
        """
        Get a collection with its entries.

        Public collections are readable by anyone; private ones only by the owner.
        """
        collection = self.get_with_entries(collection_id)
        if not collection.is_public and collection.user_id != user_id:
            raise ForbiddenError("This collection is private")
        return collection

    def get_with_entries(self, collection_id: str) -> Collection:
        """Resolve a collection and its current members, ordered by position."""
        collection = self.repository.get_by_id(collection_id)
        if collection is None:
            raise NotFoundError("Collection not found")
        collection.entries = self.repository.get_entries(collection_id)
        return collection

    def list_by_user(self, user_id: str) -> List[Collection]:
        """A user's collections, newest first (without entries)."""
        return self.repository.list_by_user(user_id)

    def update(
        self,
        collection_id: str,
        user_id: str,
        title: Optional[str] = None,
        is_public: Optional[bool] = None,
        entry_ids: Optional[List[str]] = None,
    ) -> Collection:
        """
        Update title and visibility; when entry_ids is given it replaces the membership.
        """
        collection = self._get_owned(collection_id, user_id)
        if title is not None and not title.strip():
            raise ValidationError("title cannot be empty")

        new_title = title if title is not None else collection.title
        new_public = is_public if is_public is not None else collection.is_public
        self.repository.update(collection_id, new_title, new_public)

        if entry_ids is not None:
            self._check_entries(entry_ids, user_id)
            self.repository.clear_entries(collection_id)
            self.repository.add_entries(collection_id, entry_ids)

        return self.get_with_entries(collection_id)

    def delete(self, collection_id: str, user_id: str) -> None:
        self._get_owned(collection_id, user_id)
        self.repository.delete(collection_id)
        self.logger.info("Deleted collection %s", collection_id)

    def add_entries(self, collection_id: str, user_id: str, entry_ids: List[str]) -> Collection:
        """Append entries to a collection; existing members are left where they are."""
        self._get_owned(collection_id, user_id)
        self._check_entries(entry_ids, user_id)
        added = self.repository.add_entries(collection_id, entry_ids)
        self.logger.debug("Added %d entries to collection %s", added, collection_id)
        return self.get_with_entries(collection_id)

    def remove_entries(self, collection_id: str, user_id: str, entry_ids: List[str]) -> Collection:
        self._get_owned(collection_id, user_id)
        self.repository.remove_entries(collection_id, entry_ids)
        return self.get_with_entries(collection_id)
