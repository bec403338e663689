"""Invitation (access request) schema definitions."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class AccessRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class EnrollmentStatus(str, Enum):
    PENDING = "pending"
    ENROLLED = "enrolled"
    REJECTED = "rejected"


class AccessRequest(BaseModel):
    id: str
    class_id: str
    lecturer_id: str
    student_id: Optional[str] = None
    student_email: str
    status: AccessRequestStatus = AccessRequestStatus.PENDING
    sent_at: Optional[str] = None
    responded_at: Optional[str] = None
    invitation_email_sent: bool = False
    invitation_email_sent_at: Optional[str] = None


class ClassSummary(BaseModel):
    """Class metadata shown next to an invitation."""

    course_code: str
    class_name: Optional[str] = None
    semester: Optional[str] = None
    academic_year: Optional[str] = None
    lecturer_name: Optional[str] = None
    lecturer_department: Optional[str] = None


class PendingInvitation(AccessRequest):
    classes: Optional[ClassSummary] = Field(
        default=None,
        description="Class metadata, looked up separately; None if the class is gone.",
    )


class ReconcileResult(BaseModel):
    """Outcome of the sign-in reconciliation."""

    had_pending: Optional[bool] = Field(
        default=None,
        description="Result of the advisory pending check; None if the check failed.",
    )
    pending_count: int = 0
    claimed: int = 0
    linked_requests: int = 0
    invitations: List[PendingInvitation] = Field(default_factory=list)


class InvitationAlert(BaseModel):
    request_id: str
    title: str
    message: str


class InboxResponse(BaseModel):
    invitations: List[PendingInvitation] = Field(default_factory=list)
    alerts: List[InvitationAlert] = Field(default_factory=list)


class ReconcileResponse(InboxResponse):
    had_pending: Optional[bool] = None
    claimed: int = 0
    linked_requests: int = 0
