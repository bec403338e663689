"""Notification routes."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from api.routes.auth import get_current_user
from core.dependencies import NotificationManagerDep, UserManagerDep
from schemas.notification import Notification
from schemas.user import User
from utils.converters import model_to_notification

router = APIRouter(prefix="/api/notifications", tags=["Notification"])


class NotificationSettingsRequest(BaseModel):
    notifications_enabled: bool


@router.get("", response_model=List[Notification], summary="List notifications")
def list_notifications(
    notification_manager: NotificationManagerDep,
    unread_only: bool = False,
    current_user: User = Depends(get_current_user),
) -> List[Notification]:
    models = notification_manager.list_for_user(current_user.user_id, unread_only=unread_only)
    return [model_to_notification(m) for m in models]


@router.post("/{notification_id}/read", summary="Mark notification read")
def mark_read(
    notification_id: str,
    notification_manager: NotificationManagerDep,
    current_user: User = Depends(get_current_user),
) -> dict:
    if not notification_manager.mark_read(notification_id, current_user.user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return {"success": True}


@router.put("/settings", summary="Turn notifications on or off")
def update_settings(
    req: NotificationSettingsRequest,
    user_manager: UserManagerDep,
    current_user: User = Depends(get_current_user),
) -> dict:
    user = user_manager.set_notifications_enabled(current_user.user_id, req.notifications_enabled)
    return {"success": True, "notifications_enabled": user.notifications_enabled}
