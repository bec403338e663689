"""Access request (class invitation) utilities.

An access request invites one email address into one class. Requests and
roster rows are correlated only by (class_id, email); this manager keeps the
two consistent when invitations are sent and decided.

Accepted and rejected are terminal. Writes to a request carry its version, so
of two sessions deciding the same request only the first commit wins; the
second gets :class:`InvitationAlreadyRespondedError`.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from core.exceptions import (
    AccessRequestNotFoundError,
    InvitationAlreadyRespondedError,
    InvitationAlreadySentError,
    InvitationPermissionError,
    RosterEntryNotFoundError,
)
from models.access_request import AccessRequestModel
from models.class_model import ClassModel
from models.class_student import ClassStudentModel
from schemas.class_schema import InvitationResult
from schemas.invitation import AccessRequestStatus, EnrollmentStatus
from utils.class_manager import ClassManager
from utils.converters import normalize_email, now_iso
from utils.notification_manager import NotificationManager
from utils.roster_manager import RosterManager

logger = logging.getLogger(__name__)

PENDING = AccessRequestStatus.PENDING.value
ACCEPTED = AccessRequestStatus.ACCEPTED.value
REJECTED = AccessRequestStatus.REJECTED.value


class AccessRequestManager:
    """Manages the access_requests store."""

    def __init__(self, db: Session, notifications: Optional[NotificationManager] = None):
        self.db = db
        self.classes = ClassManager(db)
        self.roster = RosterManager(db)
        self.notifications = notifications or NotificationManager(db)

    # --- Queries ---

    def get_request(self, request_id: str) -> AccessRequestModel:
        model = (
            self.db.query(AccessRequestModel)
            .filter(AccessRequestModel.id == request_id)
            .first()
        )
        if not model:
            raise AccessRequestNotFoundError(request_id)
        return model

    def count_pending(self, email: str) -> int:
        return (
            self.db.query(AccessRequestModel)
            .filter(
                AccessRequestModel.student_email == normalize_email(email),
                AccessRequestModel.status == PENDING,
            )
            .count()
        )

    def list_pending(self, email: str) -> List[AccessRequestModel]:
        """Pending requests for an email, newest first."""
        return (
            self.db.query(AccessRequestModel)
            .filter(
                AccessRequestModel.student_email == normalize_email(email),
                AccessRequestModel.status == PENDING,
            )
            .order_by(AccessRequestModel.sent_at.desc())
            .all()
        )

    def list_for_class(self, class_id: str) -> List[AccessRequestModel]:
        return (
            self.db.query(AccessRequestModel)
            .filter(AccessRequestModel.class_id == class_id)
            .order_by(AccessRequestModel.sent_at.desc())
            .all()
        )

    def find_active(self, class_id: str, email: str) -> Optional[AccessRequestModel]:
        """A pending or accepted request for (class_id, email), if any.

        Duplicate pending rows are not prevented by the schema; the newest one
        wins here.
        """
        return (
            self.db.query(AccessRequestModel)
            .filter(
                AccessRequestModel.class_id == class_id,
                AccessRequestModel.student_email == normalize_email(email),
                AccessRequestModel.status.in_([PENDING, ACCEPTED]),
            )
            .order_by(AccessRequestModel.sent_at.desc())
            .first()
        )

    # --- Account linking ---

    def link_requests(self, email: str, student_id: str) -> int:
        """Set student_id on requests sent before the email had an account.

        Only rows with no student_id are touched and status is left alone.

        Returns:
            Number of requests linked.
        """
        requests = (
            self.db.query(AccessRequestModel)
            .filter(
                AccessRequestModel.student_email == normalize_email(email),
                AccessRequestModel.student_id.is_(None),
            )
            .all()
        )
        for request in requests:
            request.student_id = student_id
        if requests:
            self.db.commit()
        return len(requests)

    # --- Sending ---

    def send_invitation_to_student(self, class_id: str, email: str) -> AccessRequestModel:
        """Invite one roster student into the class.

        Raises:
            ClassNotFoundError: If the class does not exist.
            RosterEntryNotFoundError: If the email is not on the roster.
            InvitationAlreadySentError: If a pending or accepted request exists.
        """
        class_model = self.classes.get_class(class_id)
        entry = self._get_roster_entry(class_id, email)
        if self.find_active(class_id, entry.email):
            raise InvitationAlreadySentError(
                f"Invitation already sent to {entry.email}"
            )
        request = self._create_request(class_model, entry)
        self._deliver(class_model, entry, request)
        return request

    def send_invitations_to_class(self, class_id: str) -> InvitationResult:
        """Invite every roster student that has no pending or accepted request.

        Per-student failures are counted and reported, not raised.

        Raises:
            ClassNotFoundError: If the class does not exist.
        """
        class_model = self.classes.get_class(class_id)
        students = self.roster.list_for_class(class_id)
        if not students:
            return InvitationResult(message="No students found in this class")

        result = InvitationResult()
        errors = []
        for entry in students:
            try:
                if self.find_active(class_id, entry.email):
                    result.skipped += 1
                    continue
                request = self._create_request(class_model, entry)
                self._deliver(class_model, entry, request)
                result.sent += 1
            except Exception:
                self.db.rollback()
                logger.exception("Error inviting %s to class %s", entry.email, class_id)
                result.failed += 1
                errors.append(f"Failed to process {entry.email}")

        result.message = (
            f"Sent {result.sent} invitations, skipped {result.skipped} (already sent), "
            f"failed {result.failed}"
        )
        result.errors = errors or None
        return result

    def resend_invitation(self, class_id: str, email: str) -> AccessRequestModel:
        """Send an invitation again.

        A pending request is re-stamped and re-delivered. A rejected request
        stays rejected and a fresh pending request is created next to it.

        Raises:
            ClassNotFoundError: If the class does not exist.
            RosterEntryNotFoundError: If the email is not on the roster.
            InvitationAlreadySentError: If the student already accepted.
        """
        class_model = self.classes.get_class(class_id)
        entry = self._get_roster_entry(class_id, email)
        active = self.find_active(class_id, entry.email)
        if active is not None and active.status == ACCEPTED:
            raise InvitationAlreadySentError(f"{entry.email} has already accepted")

        if active is not None:
            request_id = active.id
            active.sent_at = now_iso()
            try:
                self.db.commit()
            except StaleDataError:
                # Decided or cancelled since it was read; start over on fresh state
                self.db.rollback()
                logger.info("Access request %s changed during resend, retrying", request_id)
                return self.resend_invitation(class_id, email)
            request = active
        else:
            request = self._create_request(class_model, entry)
        self._deliver(class_model, entry, request)
        return request

    def resend_invitations_to_all(self, class_id: str) -> InvitationResult:
        """Resend to every roster student that has not accepted."""
        self.classes.get_class(class_id)
        students = self.roster.list_for_class(class_id)
        if not students:
            return InvitationResult(message="No students found in this class")

        result = InvitationResult()
        errors = []
        for entry in students:
            try:
                active = self.find_active(class_id, entry.email)
                if active is not None and active.status == ACCEPTED:
                    result.skipped += 1
                    continue
                self.resend_invitation(class_id, entry.email)
                result.sent += 1
            except Exception as exc:
                self.db.rollback()
                logger.exception("Error resending to %s in class %s", entry.email, class_id)
                result.failed += 1
                errors.append(f"Failed to send to {entry.email}: {exc}")

        result.message = (
            f"Sent {result.sent} invitations, skipped {result.skipped} (already accepted), "
            f"failed {result.failed}"
        )
        result.errors = errors or None
        return result

    def cancel_request(self, request_id: str, lecturer_id: str) -> None:
        """Withdraw a pending invitation.

        Raises:
            AccessRequestNotFoundError: If the request does not exist.
            InvitationPermissionError: If the lecturer does not own the class.
            InvitationAlreadyRespondedError: If the request was already decided.
        """
        request = self.get_request(request_id)
        if request.lecturer_id != lecturer_id:
            raise InvitationPermissionError("Only the inviting lecturer can cancel this invitation")
        if request.status != PENDING:
            raise InvitationAlreadyRespondedError(request_id, request.status)
        self.db.delete(request)
        self._commit_decision(request_id)
        logger.info("Cancelled access request %s", request_id)

    # --- Decisions ---

    def accept(self, request_id: str, user_id: str, email: str) -> AccessRequestModel:
        """Accept an invitation and enroll the student.

        Raises:
            AccessRequestNotFoundError: If the request does not exist.
            InvitationPermissionError: If the invitation is for another email.
            InvitationAlreadyRespondedError: If it is no longer pending.
        """
        request = self._get_decidable(request_id, email)
        request.status = ACCEPTED
        request.student_id = user_id
        request.responded_at = now_iso()
        self.roster.set_enrollment_status(
            request.class_id, request.student_email, EnrollmentStatus.ENROLLED,
            student_id=user_id, commit=False,
        )
        self.notifications.mark_request_notifications_read(request_id, commit=False)
        self._commit_decision(request_id)
        self.db.refresh(request)
        logger.info("Access request %s accepted by %s", request_id, user_id)
        return request

    def reject(
        self,
        request_id: str,
        user_id: str,
        email: str,
        student_name: Optional[str] = None,
    ) -> AccessRequestModel:
        """Reject an invitation and tell the lecturer.

        Raises:
            AccessRequestNotFoundError: If the request does not exist.
            InvitationPermissionError: If the invitation is for another email.
            InvitationAlreadyRespondedError: If it is no longer pending.
        """
        request = self._get_decidable(request_id, email)
        request.status = REJECTED
        request.student_id = user_id
        request.responded_at = now_iso()
        entry = self.roster.find_entry(request.class_id, request.student_email)
        self.roster.set_enrollment_status(
            request.class_id, request.student_email, EnrollmentStatus.REJECTED,
            student_id=user_id, commit=False,
        )
        self.notifications.mark_request_notifications_read(request_id, commit=False)
        self._commit_decision(request_id)
        self.db.refresh(request)
        logger.info("Access request %s rejected by %s", request_id, user_id)

        class_model = self.classes.find_class(request.class_id)
        if class_model is not None:
            name = student_name or (entry.student_name if entry else None) or request.student_email
            self.notifications.notify_invitation_rejected(
                class_model.lecturer_id,
                name,
                class_model.course_code,
                class_model.class_name,
                request_id,
                class_id=class_model.id,
                sender_id=user_id,
            )
        return request

    # --- Helpers ---

    def _get_roster_entry(self, class_id: str, email: str) -> ClassStudentModel:
        entry = self.roster.find_entry(class_id, email)
        if not entry:
            raise RosterEntryNotFoundError(class_id, normalize_email(email) or "")
        return entry

    def _get_decidable(self, request_id: str, email: str) -> AccessRequestModel:
        request = self.get_request(request_id)
        if request.student_email != normalize_email(email):
            raise InvitationPermissionError("This invitation was sent to a different email")
        if request.status != PENDING:
            raise InvitationAlreadyRespondedError(request_id, request.status)
        return request

    def _commit_decision(self, request_id: str) -> None:
        """Commit a decision or cancellation on a request read as pending.

        Raises:
            AccessRequestNotFoundError: If the request was deleted meanwhile.
            InvitationAlreadyRespondedError: If another session decided it first.
        """
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            current = (
                self.db.query(AccessRequestModel)
                .filter(AccessRequestModel.id == request_id)
                .first()
            )
            if current is None:
                raise AccessRequestNotFoundError(request_id)
            logger.info("Access request %s was already %s", request_id, current.status)
            raise InvitationAlreadyRespondedError(request_id, current.status)

    def _create_request(
        self, class_model: ClassModel, entry: ClassStudentModel
    ) -> AccessRequestModel:
        request = AccessRequestModel(
            id=str(uuid.uuid4()),
            class_id=class_model.id,
            lecturer_id=class_model.lecturer_id,
            student_id=entry.student_id,
            student_email=entry.email,
            status=PENDING,
            sent_at=now_iso(),
            invitation_email_sent=False,
        )
        self.db.add(request)
        self.db.commit()
        self.db.refresh(request)
        logger.info("Created access request %s for %s in class %s", request.id, entry.email, class_model.id)
        return request

    def _deliver(
        self,
        class_model: ClassModel,
        entry: ClassStudentModel,
        request: AccessRequestModel,
    ) -> None:
        """Tell the student about a request: in-app if registered, else email."""
        if entry.student_id:
            self.notifications.notify_access_request(
                entry.student_id,
                class_model.lecturer_name,
                class_model.course_code,
                class_model.id,
                request.id,
            )
            return

        sent = self.notifications.send_invitation_email(
            entry.email,
            entry.student_name,
            class_model.lecturer_name,
            class_model.course_code,
            class_name=class_model.class_name,
            semester=class_model.semester,
            academic_year=class_model.academic_year,
        )
        if sent:
            request_id = request.id
            request.invitation_email_sent = True
            request.invitation_email_sent_at = now_iso()
            try:
                self.db.commit()
            except StaleDataError:
                self.db.rollback()
                logger.warning("Access request %s changed before the email flag was saved", request_id)
