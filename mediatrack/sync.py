"""
Sync reconciliation for mediatrack.

Reconciles a client-submitted batch of (media, entry) pairs against stored
records for one user. Items are processed strictly in submission order, each
on its own: a failing item is recorded and the batch carries on. There is no
transaction around the batch, so items synced before a failure stay synced.

Per item:
    1. Resolve the media item through a MediaResolver, creating it if needed.
    2. Look up the user's entries for that media item.
       - lookup failed: record the failure and create a new entry
       - found some: update the most recently updated one
       - found none: create a new entry
    3. Record the resulting entry, or the error that stopped the item.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from .catalog import MediaCatalog
from .config_manager import MEDIA_MATCH_EXACT, MEDIA_MATCH_SUBSTRING
from .entries import EntryManager
from .errors import MediaTrackError
from .models import MediaItem, MediaSpec, SyncItem, SyncItemResult, SyncResult


class MediaResolver(ABC):
    """Finds the catalog item a submitted media spec refers to, or creates one."""

    def __init__(self, catalog: MediaCatalog):
        self.catalog = catalog
        self.logger = logging.getLogger(__name__)

    @abstractmethod
    def find(self, spec: MediaSpec) -> Optional[MediaItem]:
        """Return the existing item matching spec, or None."""
        ...

    def resolve_or_create_media(self, spec: MediaSpec) -> MediaItem:
        """
        Return the matching catalog item, creating it when nothing matches.

        Raises:
            MediaTrackError: if the item has to be created and creation fails
        """
        try:
            existing = self.find(spec)
        except MediaTrackError as e:
            self.logger.warning("Media lookup for %r failed, creating instead: %s", spec.title, e)
            existing = None

        if existing is not None:
            return existing
        return self.catalog.create(spec)


class SubstringMediaResolver(MediaResolver):
    """
    Takes the first result of the catalog's title substring search.

    This can attach an entry to the wrong item when one title contains
    another (submitting "Dune" when only "Dune: Part Two" exists).
    """

    def find(self, spec: MediaSpec) -> Optional[MediaItem]:
        results = self.catalog.search(spec.title, spec.type)
        return results[0] if results else None


class ExactMediaResolver(MediaResolver):
    """Matches only items whose title and type are exactly equal."""

    def find(self, spec: MediaSpec) -> Optional[MediaItem]:
        return self.catalog.find_exact(spec.title, spec.type)


def create_media_resolver(mode: Optional[str], catalog: MediaCatalog) -> MediaResolver:
    """Build the resolver selected by the sync_media_match setting."""
    if mode == MEDIA_MATCH_EXACT:
        return ExactMediaResolver(catalog)
    if mode not in (None, "", MEDIA_MATCH_SUBSTRING):
        logging.getLogger(__name__).warning(
            "Unknown media match mode %r, using %s", mode, MEDIA_MATCH_SUBSTRING
        )
    return SubstringMediaResolver(catalog)


class SyncReconciler:
    """Stateless per-request pipeline over a sync batch."""

    def __init__(self, resolver: MediaResolver, entry_manager: EntryManager):
        """
        Initialize SyncReconciler.

        Args:
            resolver: Strategy used to match submitted media to catalog items
            entry_manager: Entry store used to find, create and update entries
        """
        self.resolver = resolver
        self.entry_manager = entry_manager
        self.logger = logging.getLogger(__name__)

    def sync(self, user_id: str, items: List[SyncItem]) -> SyncResult:
        """
        Reconcile a batch for one user.

        Args:
            user_id: Authenticated user owning the entries
            items: Batch items in submission order

        Returns:
            SyncResult with one SyncItemResult per input item
        """
        result = SyncResult()
        for index, item in enumerate(items):
            result.items.append(self._sync_item(user_id, index, item))

        self.logger.info(
            "Synced %d of %d items for user %s (%d errors)",
            result.count,
            len(items),
            user_id,
            len(result.errors),
        )
        return result

    def _sync_item(self, user_id: str, index: int, item: SyncItem) -> SyncItemResult:
        title = item.media.title
        outcome = SyncItemResult(index=index, title=title)

        try:
            media = self.resolver.resolve_or_create_media(item.media)
        except MediaTrackError as e:
            outcome.error = "Error creating media %s: %s" % (title, e)
            return outcome

        try:
            existing = self.entry_manager.list_by_user_and_media(user_id, media.id)
        except MediaTrackError as e:
            outcome.warnings.append("Error checking existing entries for media %s: %s" % (title, e))
            existing = []

        if existing:
            current = existing[0]
            try:
                outcome.entry = self.entry_manager.replace(current.id, item.fields)
            except MediaTrackError as e:
                outcome.error = "Error updating entry %s: %s" % (current.id, e)
            return outcome

        try:
            outcome.entry = self.entry_manager.create(user_id, media.id, item.fields)
        except MediaTrackError as e:
            outcome.error = "Error creating entry for media %s: %s" % (title, e)
        return outcome
