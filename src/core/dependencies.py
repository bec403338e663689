"""Dependency injection module for FastAPI.

This module provides dependency injection functions for FastAPI routes,
following Google Python Style Guide and FastAPI best practices.
"""

from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from core import database
from core.change_feed import ChangeFeed
from core.database import get_db
from utils import access_request_manager
from utils import class_manager
from utils import notification_manager
from utils import onboarding
from utils import roster_manager
from utils import user_manager
from utils.function_client import FunctionClient
from utils.invitation_inbox import InboxRegistry

# Process-wide singletons
_function_client_instance: Optional[FunctionClient] = None
_inbox_registry_instance: Optional[InboxRegistry] = None


def get_change_feed() -> ChangeFeed:
    """Get the change feed bound to the application's session factory."""
    return database.change_feed


def get_function_client() -> FunctionClient:
    """Get FunctionClient singleton instance."""
    global _function_client_instance
    if _function_client_instance is None:
        _function_client_instance = FunctionClient()
    return _function_client_instance


def get_inbox_registry() -> InboxRegistry:
    """Get InboxRegistry singleton instance.

    Returns:
        InboxRegistry holding one invitation inbox per signed-in session.
    """
    global _inbox_registry_instance
    if _inbox_registry_instance is None:
        _inbox_registry_instance = InboxRegistry(get_change_feed())
    return _inbox_registry_instance


def get_user_manager(db: Session = Depends(get_db)) -> user_manager.UserManager:
    """Get UserManager instance with request-scoped DB session.

    Args:
        db: Database session.

    Returns:
        UserManager instance.
    """
    return user_manager.UserManager(db)


def get_class_manager(db: Session = Depends(get_db)) -> class_manager.ClassManager:
    """Get ClassManager instance with request-scoped DB session."""
    return class_manager.ClassManager(db)


def get_roster_manager(db: Session = Depends(get_db)) -> roster_manager.RosterManager:
    """Get RosterManager instance with request-scoped DB session."""
    return roster_manager.RosterManager(db)


def get_notification_manager(
    db: Session = Depends(get_db),
    functions: FunctionClient = Depends(get_function_client),
) -> notification_manager.NotificationManager:
    """Get NotificationManager instance with request-scoped DB session."""
    return notification_manager.NotificationManager(db, functions)


def get_access_request_manager(
    db: Session = Depends(get_db),
    notifications: notification_manager.NotificationManager = Depends(get_notification_manager),
) -> access_request_manager.AccessRequestManager:
    """Get AccessRequestManager instance with request-scoped DB session."""
    return access_request_manager.AccessRequestManager(db, notifications)


def get_onboarding_service(
    db: Session = Depends(get_db),
    access_requests: access_request_manager.AccessRequestManager = Depends(
        get_access_request_manager
    ),
) -> onboarding.OnboardingService:
    """Get OnboardingService instance with request-scoped DB session."""
    return onboarding.OnboardingService(db, access_requests=access_requests)


# Type aliases for dependency injection
UserManagerDep = Annotated[
    user_manager.UserManager, Depends(get_user_manager)
]
ClassManagerDep = Annotated[
    class_manager.ClassManager, Depends(get_class_manager)
]
RosterManagerDep = Annotated[
    roster_manager.RosterManager, Depends(get_roster_manager)
]
NotificationManagerDep = Annotated[
    notification_manager.NotificationManager, Depends(get_notification_manager)
]
AccessRequestManagerDep = Annotated[
    access_request_manager.AccessRequestManager, Depends(get_access_request_manager)
]
OnboardingServiceDep = Annotated[
    onboarding.OnboardingService, Depends(get_onboarding_service)
]
InboxRegistryDep = Annotated[InboxRegistry, Depends(get_inbox_registry)]
