"""
Share tokens for mediatrack.

A share token is an opaque random string mapped to a kind and a target id.
Resolving a token returns the live target: a collection with its current
entries, or every entry of a user's profile.

Expiry is stored on every token but only checked when enforce_expiry is set.
"""

import calendar
import logging
import secrets
from datetime import datetime
from typing import List, Optional, Union

from .collection import CollectionManager
from .database import Database, ShareRepository, utcnow
from .entries import EntryManager
from .errors import ForbiddenError, NotFoundError, UnknownShareKindError
from .models import SHARE_COLLECTION, SHARE_PROFILE, Collection, Entry, ShareToken

TOKEN_BYTES = 16


def generate_token() -> str:
    """32 hex characters from 16 cryptographically random bytes."""
    return secrets.token_hex(TOKEN_BYTES)


def add_months(value: datetime, months: int) -> datetime:
    """Shift a datetime by whole months, clamping the day to the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


class ShareManager:
    """Issues and resolves share tokens."""

    def __init__(
        self,
        database: Database,
        collection_manager: CollectionManager,
        entry_manager: EntryManager,
        expiry_months: int = 1,
        enforce_expiry: bool = False,
    ):
        """
        Initialize ShareManager.

        Args:
            database: Database instance for persistence
            collection_manager: Used to resolve collection shares
            entry_manager: Used to resolve profile shares
            expiry_months: Lifetime stored on each new token
            enforce_expiry: Reject expired tokens on resolve
        """
        self.database = database
        self.repository = ShareRepository(database)
        self.collection_manager = collection_manager
        self.entry_manager = entry_manager
        self.expiry_months = expiry_months
        self.enforce_expiry = enforce_expiry
        self.logger = logging.getLogger(__name__)

    def issue(self, kind: str, target_id: str) -> ShareToken:
        """
        Create and persist a token for a target.

        Args:
            kind: collection, profile or snapshot
            target_id: Identifier of the shared target

        Returns:
            The persisted ShareToken
        """
        now = utcnow()
        share = ShareToken(
            token=generate_token(),
            kind=kind,
            target_id=target_id,
            created_at=now,
            expires_at=add_months(now, self.expiry_months),
        )
        self.repository.create(share)
        self.logger.info("Issued %s share token for %s", kind, target_id)
        return share

    def share_collection(self, collection_id: str, user_id: str) -> ShareToken:
        """Issue a collection token; only the owner may share."""
        collection = self.collection_manager.repository.get_by_id(collection_id)
        if collection is None:
            raise NotFoundError("Collection not found")
        if collection.user_id != user_id:
            raise ForbiddenError("You can only share your own collections")
        return self.issue(SHARE_COLLECTION, collection_id)

    def share_profile(self, user_id: str) -> ShareToken:
        return self.issue(SHARE_PROFILE, user_id)

    def is_expired(self, share: ShareToken, now: Optional[datetime] = None) -> bool:
        if share.expires_at is None:
            return False
        return (now or utcnow()) >= share.expires_at

    def resolve(self, token: str) -> Union[Collection, List[Entry]]:
        """
        Resolve a token to its live target.

        Raises:
            NotFoundError: unknown token (or expired, when enforce_expiry is set)
            UnknownShareKindError: the token's kind cannot be resolved
        """
        share = self.repository.get_by_token(token)
        if share is None:
            raise NotFoundError("Share not found")

        if self.is_expired(share):
            if self.enforce_expiry:
                raise NotFoundError("Share has expired")
            self.logger.debug("Resolving expired share token of kind %s", share.kind)

        if share.kind == SHARE_COLLECTION:
            return self.collection_manager.get_with_entries(share.target_id)
        if share.kind == SHARE_PROFILE:
            return self.entry_manager.list_by_user(share.target_id)

        self.logger.warning("Cannot resolve share token of kind %s", share.kind)
        raise UnknownShareKindError("Unknown share kind: %s" % share.kind)
