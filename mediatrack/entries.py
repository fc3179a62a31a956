"""
Entry management for mediatrack.

An entry is one user's record of a media item: status, rating, review and
progress. Every entry handed out carries its joined media item.
"""

import logging
import uuid
from dataclasses import asdict
from typing import Any, List, Optional

from .database import Database, EntryRepository, MediaRepository, utcnow
from .errors import ForbiddenError, NotFoundError, ValidationError
from .models import STATUSES, Entry, EntryFields


def _validate_status(status: Optional[str]) -> None:
    if not status:
        raise ValidationError("status is required")
    if status not in STATUSES:
        raise ValidationError("invalid status: %s" % status)


class EntryManager:
    """Creates, reads, updates and deletes entries."""

    def __init__(self, database: Database):
        """
        Initialize EntryManager.

        Args:
            database: Database instance for persistence
        """
        self.database = database
        self.repository = EntryRepository(database)
        self.media_repository = MediaRepository(database)
        self.logger = logging.getLogger(__name__)

    def create(self, user_id: str, media_id: str, fields: EntryFields) -> Entry:
        """
        Create an entry for a user.

        Args:
            user_id: Owner of the entry
            media_id: Media item the entry refers to
            fields: Status, rating, review, progress and timestamps

        Returns:
            The created entry with its media joined

        Raises:
            NotFoundError: if the media item does not exist
        """
        _validate_status(fields.status)
        media = self.media_repository.get_by_id(media_id)
        if media is None:
            raise NotFoundError("Media item not found")

        entry = Entry(
            id=str(uuid.uuid4()),
            user_id=user_id,
            media_id=media_id,
            media=media,
            updated_at=utcnow(),
            **asdict(fields),
        )
        self.repository.create(entry)
        self.logger.debug("Created entry %s for user %s (media %s)", entry.id, user_id, media_id)
        return entry

    def get(self, entry_id: str) -> Entry:
        entry = self.repository.get_by_id(entry_id)
        if entry is None:
            raise NotFoundError("Entry not found")
        return entry

    def get_owned(self, entry_id: str, user_id: str) -> Entry:
        """Get an entry, checking it belongs to the given user."""
        entry = self.get(entry_id)
        if entry.user_id != user_id:
            raise ForbiddenError("You can only access your own entries")
        return entry

    def list_by_user(
        self, user_id: str, status: Optional[str] = None, media_type: Optional[str] = None
    ) -> List[Entry]:
        """A user's entries, most recently updated first."""
        return self.repository.list_by_user(user_id, status, media_type)

    def list_by_user_and_media(self, user_id: str, media_id: str) -> List[Entry]:
        """A user's entries for one media item, most recently updated first."""
        return self.repository.list_by_user_and_media(user_id, media_id)

    def update(self, entry_id: str, **fields: Any) -> Entry:
        """
        Update the given fields of an entry and bump its updated_at.

        Fields not passed are left untouched; passing None clears a field.
        """
        if "status" in fields:
            _validate_status(fields["status"])
        if not self.repository.update(entry_id, fields, utcnow()):
            raise NotFoundError("Entry not found")
        return self.get(entry_id)

    def replace(self, entry_id: str, fields: EntryFields) -> Entry:
        """Overwrite all user-editable fields of an entry."""
        return self.update(entry_id, **asdict(fields))

    def delete(self, entry_id: str) -> None:
        if not self.repository.delete(entry_id):
            raise NotFoundError("Entry not found")
        self.logger.debug("Deleted entry %s", entry_id)
