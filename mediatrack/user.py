"""
User management for mediatrack.

Handles password-less user identity keyed by email address.
"""

import logging
import uuid
from typing import Optional

from .database import Database, UserRepository
from .errors import NotFoundError, ValidationError
from .models import User


class UserManager:
    """Manages user accounts."""

    def __init__(self, database: Database):
        """
        Initialize UserManager.

        Args:
            database: Database instance for persistence
        """
        self.database = database
        self.repository = UserRepository(database)
        self.logger = logging.getLogger(__name__)

    def get_or_create_user(self, email: str, name: Optional[str] = None) -> User:
        """
        Get the user registered under an email, creating it on first login.

        Args:
            email: Email address identifying the user
            name: Display name for a new user (defaults to the email)

        Returns:
            User object
        """
        email = (email or "").strip()
        if not email:
            raise ValidationError("email is required")

        user = self.repository.get_by_email(email)
        if user:
            return user

        user = self.repository.create(str(uuid.uuid4()), email, name or email)
        self.logger.info("Created user %s (%s)", user.id, email)
        return user

    def get_user(self, user_id: str) -> User:
        """
        Get a user by ID.

        Raises:
            NotFoundError: if no such user exists
        """
        user = self.repository.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user
