"""Conversions between SQLAlchemy models and pydantic schemas."""

from datetime import datetime
from typing import Optional

import pytz

from models.access_request import AccessRequestModel
from models.class_model import ClassModel
from models.class_student import ClassStudentModel
from models.notification import NotificationModel
from models.user import UserModel
from schemas.class_schema import ClassInfo, RosterEntry
from schemas.invitation import AccessRequest, ClassSummary, PendingInvitation
from schemas.notification import Notification
from schemas.user import User


def now_iso() -> str:
    return datetime.now(pytz.utc).isoformat()


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Trim and lower-case an email address; None and blanks become None."""
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


def user_to_model(user: User) -> UserModel:
    return UserModel(
        user_id=user.user_id,
        username=user.username,
        password_hash=user.password_hash,
        role=user.role,
        display_name=user.display_name,
        email=normalize_email(user.email),
        notifications_enabled=user.notifications_enabled,
        create_at=user.create_at,
    )


def model_to_user(model: UserModel) -> User:
    return User(
        user_id=model.user_id,
        username=model.username,
        password_hash=model.password_hash,
        role=model.role,
        display_name=model.display_name,
        email=model.email,
        notifications_enabled=bool(model.notifications_enabled),
        create_at=model.create_at,
    )


def model_to_class_info(model: ClassModel) -> ClassInfo:
    return ClassInfo(
        id=model.id,
        course_code=model.course_code,
        class_name=model.class_name,
        semester=model.semester,
        academic_year=model.academic_year,
        lecturer_id=model.lecturer_id,
        lecturer_name=model.lecturer_name,
        lecturer_department=model.lecturer_department,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def model_to_class_summary(model: ClassModel) -> ClassSummary:
    return ClassSummary(
        course_code=model.course_code,
        class_name=model.class_name,
        semester=model.semester,
        academic_year=model.academic_year,
        lecturer_name=model.lecturer_name,
        lecturer_department=model.lecturer_department,
    )


def model_to_roster_entry(model: ClassStudentModel) -> RosterEntry:
    return RosterEntry(
        id=model.id,
        class_id=model.class_id,
        student_id=model.student_id,
        register_number=model.register_number,
        student_name=model.student_name,
        email=model.email,
        enrollment_status=model.enrollment_status,
        import_source=model.import_source,
        added_at=model.added_at,
        enrolled_at=model.enrolled_at,
    )


def model_to_access_request(model: AccessRequestModel) -> AccessRequest:
    return AccessRequest(
        id=model.id,
        class_id=model.class_id,
        lecturer_id=model.lecturer_id,
        student_id=model.student_id,
        student_email=model.student_email,
        status=model.status,
        sent_at=model.sent_at,
        responded_at=model.responded_at,
        invitation_email_sent=bool(model.invitation_email_sent),
        invitation_email_sent_at=model.invitation_email_sent_at,
    )


def row_to_pending_invitation(row: dict) -> PendingInvitation:
    """Build an invitation from a change-feed row image (no class metadata)."""
    fields = {key: row.get(key) for key in PendingInvitation.model_fields if key in row}
    fields["invitation_email_sent"] = bool(fields.get("invitation_email_sent"))
    return PendingInvitation(**fields)


def model_to_notification(model: NotificationModel) -> Notification:
    return Notification(
        id=model.id,
        recipient_id=model.recipient_id,
        title=model.title,
        message=model.message,
        type=model.type,
        related_id=model.related_id,
        class_id=model.class_id,
        sender_id=model.sender_id,
        is_read=bool(model.is_read),
        created_at=model.created_at,
    )
