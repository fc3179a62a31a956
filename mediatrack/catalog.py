"""
Media catalog for mediatrack.

Stores and searches the canonical media items shared by all users.
Duplicates are allowed; nothing merges items in place.
"""

import logging
import uuid
from dataclasses import asdict
from typing import List, Optional

from .database import Database, MediaRepository, utcnow
from .errors import NotFoundError, ValidationError
from .models import MEDIA_TYPES, MediaItem, MediaSpec


def _validate_spec(spec: MediaSpec) -> None:
    if not spec.title or not spec.title.strip():
        raise ValidationError("media title is required")
    if spec.type not in MEDIA_TYPES:
        raise ValidationError("invalid media type: %s" % spec.type)


class MediaCatalog:
    """Creates, updates and searches media items."""

    def __init__(self, database: Database, search_limit: int = 20):
        """
        Initialize MediaCatalog.

        Args:
            database: Database instance for persistence
            search_limit: Maximum number of search results
        """
        self.database = database
        self.repository = MediaRepository(database)
        self.search_limit = search_limit
        self.logger = logging.getLogger(__name__)

    def create(self, spec: MediaSpec) -> MediaItem:
        """Assign a new identity to a media spec and persist it."""
        _validate_spec(spec)
        item = MediaItem(id=str(uuid.uuid4()), created_at=utcnow(), **asdict(spec))
        self.repository.create(item)
        self.logger.info("Created media item %s: %s (%s)", item.id, item.title, item.type)
        return item

    def get(self, media_id: str) -> MediaItem:
        item = self.repository.get_by_id(media_id)
        if item is None:
            raise NotFoundError("Media item not found")
        return item

    def update(self, media_id: str, spec: MediaSpec) -> MediaItem:
        """Replace the descriptive fields of an existing item."""
        _validate_spec(spec)
        current = self.get(media_id)
        item = MediaItem(id=current.id, created_at=current.created_at, **asdict(spec))
        if not self.repository.update(item):
            raise NotFoundError("Media item not found")
        self.logger.info("Updated media item %s", media_id)
        return item

    def search(self, text: str, media_type: Optional[str] = None) -> List[MediaItem]:
        """
        Case-insensitive substring search on title.

        Args:
            text: Substring to look for
            media_type: Restrict results to this type (optional)

        Returns:
            Items ordered by title, at most search_limit of them
        """
        return self.repository.search(text, media_type, limit=self.search_limit)

    def find_exact(self, title: str, media_type: str) -> Optional[MediaItem]:
        """Find an item whose title and type match exactly."""
        return self.repository.find_exact(title, media_type)
