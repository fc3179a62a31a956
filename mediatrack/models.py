"""
Data models for mediatrack.

Defines typed dataclasses for all entities used throughout the application.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

# Media types
MEDIA_TYPES = ("video", "book", "anime", "game", "tv", "movie")

# Entry statuses
STATUS_PLANNED = "planned"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_ON_HOLD = "on_hold"
STATUS_DROPPED = "dropped"
STATUSES = (
    STATUS_PLANNED,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETED,
    STATUS_ON_HOLD,
    STATUS_DROPPED,
)

# Share kinds
SHARE_COLLECTION = "collection"
SHARE_PROFILE = "profile"
SHARE_SNAPSHOT = "snapshot"

# Open key/value map holding JSON-compatible values
JSONMap = Dict[str, Any]


@dataclass
class User:
    """User entity, created on first login."""

    id: str
    email: str
    name: str
    created_at: Optional[datetime] = None


@dataclass
class MediaSpec:
    """Descriptive fields of a media item, as submitted by a client."""

    type: str
    title: str
    original_title: Optional[str] = None
    year: Optional[int] = None
    cover_url: Optional[str] = None
    creators: Optional[JSONMap] = None
    genres: Optional[List[str]] = None
    duration: Optional[int] = None
    metadata: Optional[JSONMap] = None


@dataclass
class MediaItem:
    """Canonical catalog item, shared by all users."""

    id: str
    type: str
    title: str
    original_title: Optional[str] = None
    year: Optional[int] = None
    cover_url: Optional[str] = None
    creators: Optional[JSONMap] = None
    genres: Optional[List[str]] = None
    duration: Optional[int] = None
    metadata: Optional[JSONMap] = None
    created_at: Optional[datetime] = None


@dataclass
class EntryFields:
    """User-editable fields of an entry."""

    status: str
    rating: Optional[float] = None
    review_md: Optional[str] = None
    progress: Optional[JSONMap] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass
class Entry:
    """A user's record of consuming one media item."""

    id: str
    user_id: str
    media_id: str
    status: str
    media: MediaItem
    rating: Optional[float] = None
    review_md: Optional[str] = None
    progress: Optional[JSONMap] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Collection:
    """Named, ordered grouping of a user's entries."""

    id: str
    user_id: str
    title: str
    is_public: bool = False
    created_at: Optional[datetime] = None
    entries: List[Entry] = field(default_factory=list)


@dataclass
class ShareToken:
    """Opaque token granting read access to a collection, profile or snapshot."""

    token: str
    kind: str
    target_id: str
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


@dataclass
class GuestEntry:
    """An entry held by an unauthenticated client, pointing at an existing media item."""

    media_id: str
    fields: EntryFields


@dataclass
class SyncItem:
    """One (media, entry) pair of a sync batch."""

    media: MediaSpec
    fields: EntryFields


@dataclass
class SyncItemResult:
    """Outcome of one sync item: exactly one of entry or error is set."""

    index: int
    title: str
    entry: Optional[Entry] = None
    error: Optional[str] = None
    # Failures that were recovered from before the item settled
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.entry is not None


@dataclass
class SyncResult:
    """Aggregate outcome of a sync batch."""

    items: List[SyncItemResult] = field(default_factory=list)

    @property
    def synced_entries(self) -> List[Entry]:
        return [item.entry for item in self.items if item.entry is not None]

    @property
    def count(self) -> int:
        return len(self.synced_entries)

    @property
    def errors(self) -> List[str]:
        messages: List[str] = []
        for item in self.items:
            messages.extend(item.warnings)
            if item.error:
                messages.append(item.error)
        return messages

    @property
    def message(self) -> str:
        errors = self.errors
        if errors:
            return "Synced %d entries with %d errors" % (self.count, len(errors))
        return "Entries synced successfully"


@dataclass
class ConfigEntry:
    """Configuration entry."""

    key: str
    value: str
    updated_at: Optional[datetime] = None
