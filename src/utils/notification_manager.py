"""In-app notifications and push delivery.

This is a side channel: callers in the enrollment workflow treat every method
here as best effort. Database errors are logged and rolled back, push and
email failures are only logged.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import APP_URL, INVITATION_EMAIL_FUNCTION_NAME, PUSH_FUNCTION_NAME
from models.notification import NotificationModel
from models.user import UserModel
from utils.converters import now_iso
from utils.function_client import FunctionClient

logger = logging.getLogger(__name__)

ACCESS_REQUEST = "access_request"

_NOTIFICATION_PATHS = {
    ACCESS_REQUEST: "/notifications",
    "message": "/messages",
    "assignment": "/student/assignments",
    "schedule": "/schedule",
}


def notification_url(notification_type: str, notification_id: Optional[str] = None) -> str:
    """Absolute link opened when a push notification is clicked."""
    url = f"{APP_URL}{_NOTIFICATION_PATHS.get(notification_type, '/notifications')}"
    if notification_id:
        url = f"{url}?notifId={notification_id}"
    return url


class NotificationManager:
    """Creates, lists and clears user notifications."""

    def __init__(self, db: Session, functions: Optional[FunctionClient] = None):
        self.db = db
        self.functions = functions or FunctionClient()

    def create_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: str = "general",
        related_id: Optional[str] = None,
        class_id: Optional[str] = None,
        sender_id: Optional[str] = None,
    ) -> Optional[NotificationModel]:
        """Create an in-app notification and fire a push for it.

        Users who switched notifications off get nothing.

        Returns:
            The created notification, or None if nothing was created.
        """
        try:
            recipient = self.db.query(UserModel).filter(UserModel.user_id == user_id).first()
            if recipient is not None and recipient.notifications_enabled is False:
                logger.debug("Notifications disabled for %s, skipping '%s'", user_id, title)
                return None

            notification = NotificationModel(
                id=str(uuid.uuid4()),
                recipient_id=user_id,
                title=title,
                message=message,
                type=notification_type,
                related_id=related_id,
                class_id=class_id,
                sender_id=sender_id,
                is_read=False,
                created_at=now_iso(),
            )
            self.db.add(notification)
            self.db.commit()
            self.db.refresh(notification)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Error creating notification for %s", user_id)
            return None

        self.functions.invoke(
            PUSH_FUNCTION_NAME,
            {
                "user_id": user_id,
                "title": title,
                "body": message,
                "url": notification_url(notification_type, notification.id),
                "type": notification_type,
                "tag": f"eduspace-{notification_type}-{related_id or class_id or 'general'}",
                "data": {
                    "notificationId": notification.id,
                    "classId": class_id,
                    "relatedId": related_id,
                },
            },
        )
        return notification

    def notify_access_request(
        self,
        student_id: str,
        lecturer_name: Optional[str],
        course_code: str,
        class_id: str,
        request_id: str,
    ) -> Optional[NotificationModel]:
        return self.create_notification(
            student_id,
            "Class Access Request",
            f"{lecturer_name or 'A lecturer'} has invited you to join {course_code}",
            ACCESS_REQUEST,
            related_id=request_id,
            class_id=class_id,
        )

    def notify_pending_access_request(
        self,
        student_id: str,
        lecturer_name: Optional[str],
        course_code: str,
        class_name: Optional[str],
        request_id: str,
    ) -> Optional[NotificationModel]:
        """Leave a reminder for an invitation whose prompt was dismissed.

        At most one unread reminder exists per request.
        """
        existing = self._find_unread(student_id, request_id)
        if existing is not None:
            return existing
        class_info = f" - {class_name}" if class_name else ""
        return self.create_notification(
            student_id,
            "Pending Class Invitation",
            f"{lecturer_name or 'A lecturer'} has invited you to join {course_code}{class_info}. "
            "Click to review and respond.",
            ACCESS_REQUEST,
            related_id=request_id,
        )

    def notify_invitation_rejected(
        self,
        lecturer_id: str,
        student_name: str,
        course_code: str,
        class_name: Optional[str],
        request_id: str,
        class_id: Optional[str] = None,
        sender_id: Optional[str] = None,
    ) -> Optional[NotificationModel]:
        class_info = f" - {class_name}" if class_name else ""
        return self.create_notification(
            lecturer_id,
            "Class Invitation Rejected",
            f"{student_name} has declined the invitation to join {course_code}{class_info}",
            ACCESS_REQUEST,
            related_id=request_id,
            class_id=class_id,
            sender_id=sender_id,
        )

    def send_invitation_email(
        self,
        student_email: str,
        student_name: Optional[str],
        lecturer_name: Optional[str],
        course_code: str,
        class_name: Optional[str] = None,
        semester: Optional[str] = None,
        academic_year: Optional[str] = None,
    ) -> bool:
        """Email an invitation to a student who has no account yet."""
        return self.functions.invoke(
            INVITATION_EMAIL_FUNCTION_NAME,
            {
                "studentEmail": student_email,
                "studentName": student_name,
                "lecturerName": lecturer_name or "Your Lecturer",
                "courseCode": course_code,
                "className": class_name or "",
                "semester": semester or "",
                "academicYear": academic_year or "",
            },
        )

    def mark_request_notifications_read(self, request_id: str, commit: bool = True) -> int:
        """Mark every access-request notification about ``request_id`` read."""
        notifications = (
            self.db.query(NotificationModel)
            .filter(
                NotificationModel.related_id == request_id,
                NotificationModel.type == ACCESS_REQUEST,
                NotificationModel.is_read.is_(False),
            )
            .all()
        )
        for notification in notifications:
            notification.is_read = True
        if commit and notifications:
            self.db.commit()
        return len(notifications)

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[NotificationModel]:
        query = self.db.query(NotificationModel).filter(NotificationModel.recipient_id == user_id)
        if unread_only:
            query = query.filter(NotificationModel.is_read.is_(False))
        return query.order_by(NotificationModel.created_at.desc()).all()

    def mark_read(self, notification_id: str, user_id: str) -> bool:
        """Mark one of the user's notifications read.

        Returns:
            False if the notification does not exist or belongs to someone else.
        """
        notification = (
            self.db.query(NotificationModel)
            .filter(
                NotificationModel.id == notification_id,
                NotificationModel.recipient_id == user_id,
            )
            .first()
        )
        if not notification:
            return False
        notification.is_read = True
        self.db.commit()
        return True

    def _find_unread(self, recipient_id: str, request_id: str) -> Optional[NotificationModel]:
        try:
            return (
                self.db.query(NotificationModel)
                .filter(
                    NotificationModel.recipient_id == recipient_id,
                    NotificationModel.type == ACCESS_REQUEST,
                    NotificationModel.related_id == request_id,
                    NotificationModel.is_read.is_(False),
                )
                .first()
            )
        except SQLAlchemyError:
            logger.exception("Error looking up notification for request %s", request_id)
            return None
