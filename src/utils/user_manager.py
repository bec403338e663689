"""User management utilities.

This module provides user storage, password hashing and lookups used by the
authentication routes. Users are the identity side of the enrollment
workflow: a signed-in user contributes a verified email and an account id.
"""

import logging
from typing import Optional

import bcrypt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.user import UserModel
from schemas.user import User
from utils.converters import model_to_user, normalize_email, user_to_model

logger = logging.getLogger(__name__)

# Bcrypt rounds for password hashing (higher = more secure but slower)
BCRYPT_ROUNDS = 12


class UserNotFoundError(Exception):
    """Exception raised when a user is not found."""

    pass


class UserAlreadyExistsError(Exception):
    """Exception raised when trying to create a user that already exists."""

    pass


class UserManager:
    """Manages user data persistence and operations using SQLAlchemy."""

    def __init__(self, db: Session):
        """Initialize UserManager.

        Args:
            db: SQLAlchemy Session.
        """
        self.db = db

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain text password.

        Returns:
            Hashed password (bcrypt hash string).
        """
        # Truncate password if it exceeds bcrypt's 72-byte limit
        password_bytes = password.encode("utf-8")
        if len(password_bytes) > 72:
            logger.warning(
                "Password exceeds 72 bytes (%d bytes), truncating", len(password_bytes)
            )
            password_bytes = password_bytes[:72]

        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        return bcrypt.hashpw(password_bytes, salt).decode("utf-8")

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against a bcrypt hash.

        Args:
            plain_password: Plain text password to verify.
            hashed_password: Bcrypt hash string to verify against.

        Returns:
            True if password matches, False otherwise.
        """
        password_bytes = plain_password.encode("utf-8")[:72]
        try:
            return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))
        except ValueError as e:
            logger.error("Password verification error: %s", e)
            return False

    def create_user(
        self,
        username: str,
        password: str,
        role: str,
        email: str,
        display_name: Optional[str] = None,
    ) -> User:
        """Create a new user.

        Args:
            username: Username for the new user.
            password: Plain text password.
            role: User role ('lecturer' or 'student').
            email: Email address; invitations are matched against it.
            display_name: Optional display name.

        Returns:
            Created User object.

        Raises:
            UserAlreadyExistsError: If username or email already exists.
        """
        email = normalize_email(email)
        existing = self.db.query(UserModel).filter(UserModel.username == username).first()
        if existing:
            raise UserAlreadyExistsError(f"User '{username}' already exists")
        if email and self.get_user_by_email(email) is not None:
            raise UserAlreadyExistsError(f"Email '{email}' is already registered")

        user = User(
            username=username,
            password_hash=self.hash_password(password),
            role=role,
            display_name=display_name,
            email=email,
        )

        # The unique constraint on username still catches concurrent sign-ups
        try:
            model = user_to_model(user)
            self.db.add(model)
            self.db.commit()
            self.db.refresh(model)
        except IntegrityError as e:
            self.db.rollback()
            raise UserAlreadyExistsError(f"User '{username}' already exists") from e

        logger.info("Created user: %s", username)
        return user

    def get_user_by_username(self, username: str) -> Optional[User]:
        model = self.db.query(UserModel).filter(UserModel.username == username).first()
        if model:
            return model_to_user(model)
        return None

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get a user by (normalized) email address.

        Args:
            email: Email address to look up.

        Returns:
            User object if found, None otherwise.
        """
        model = (
            self.db.query(UserModel)
            .filter(UserModel.email == normalize_email(email))
            .first()
        )
        if model:
            return model_to_user(model)
        return None

    def set_notifications_enabled(self, user_id: str, enabled: bool) -> User:
        """Turn in-app and push notifications on or off for a user.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        model = self.db.query(UserModel).filter(UserModel.user_id == user_id).first()
        if not model:
            raise UserNotFoundError(user_id)
        model.notifications_enabled = enabled
        self.db.commit()
        self.db.refresh(model)
        return model_to_user(model)
