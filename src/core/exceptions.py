"""Custom exception classes for the EduSpace enrollment service.

This module defines application-specific exceptions following Google Python
Style Guide.
"""


class EduSpaceError(Exception):
    """Base exception for all EduSpace errors."""

    pass


class ClassNotFoundError(EduSpaceError):
    """Raised when a requested class cannot be found."""

    def __init__(self, class_id: str):
        """Initialize the exception.

        Args:
            class_id: The ID of the class that was not found.
        """
        self.class_id = class_id
        super().__init__(f"Class '{class_id}' not found")


class AccessRequestNotFoundError(EduSpaceError):
    """Raised when a requested access request cannot be found."""

    def __init__(self, request_id: str):
        """Initialize the exception.

        Args:
            request_id: The ID of the access request that was not found.
        """
        self.request_id = request_id
        super().__init__(f"Access request '{request_id}' not found")


class RosterEntryNotFoundError(EduSpaceError):
    """Raised when an email is not on a class roster."""

    def __init__(self, class_id: str, email: str):
        self.class_id = class_id
        self.email = email
        super().__init__(f"Student '{email}' not found in class '{class_id}'")


class InvitationAlreadySentError(EduSpaceError):
    """Raised when a pending or accepted invitation already exists."""

    pass


class InvitationAlreadyRespondedError(EduSpaceError):
    """Raised when deciding on an invitation that is no longer pending."""

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Access request '{request_id}' is already {status}")


class InvitationPermissionError(EduSpaceError):
    """Raised when a user acts on an invitation addressed to someone else."""

    pass
