"""
Guest data handling for mediatrack.

Guests keep their entries on the client. They can ask for a snapshot share
token, and can merge their entries into an account after logging in.
"""

import logging
import uuid
from typing import List

from .entries import EntryManager
from .models import SHARE_SNAPSHOT, Entry, GuestEntry, MediaItem, ShareToken
from .share import ShareManager


class GuestManager:
    """Snapshot tokens and account merges for guest data."""

    def __init__(self, share_manager: ShareManager, entry_manager: EntryManager):
        self.share_manager = share_manager
        self.entry_manager = entry_manager
        self.logger = logging.getLogger(__name__)

    def create_snapshot(self, entries: List[GuestEntry], media: List[MediaItem]) -> ShareToken:
        """
        Issue a snapshot token for a guest's data.

        The submitted entries and media are not stored, so the token does not
        resolve to anything yet.
        """
        snapshot_id = str(uuid.uuid4())
        share = self.share_manager.issue(SHARE_SNAPSHOT, snapshot_id)
        self.logger.warning(
            "Snapshot %s issued without storing its payload (%d entries, %d media)",
            snapshot_id,
            len(entries),
            len(media),
        )
        return share

    def merge_to_account(self, user_id: str, guest_entries: List[GuestEntry]) -> List[Entry]:
        """
        Create one new entry per guest entry for the user.

        Stops at the first failure; entries created before it stay committed.
        """
        created = []
        for guest_entry in guest_entries:
            created.append(
                self.entry_manager.create(user_id, guest_entry.media_id, guest_entry.fields)
            )
        self.logger.info("Merged %d guest entries into user %s", len(created), user_id)
        return created
