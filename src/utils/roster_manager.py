"""Class roster (class_students) utilities.

Roster rows are keyed independently of platform identity. A row added before
its student has an account keeps ``student_id`` NULL until the email signs in
and :meth:`RosterManager.claim_entries` links it.
"""

import logging
import uuid
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from models.class_student import ClassStudentModel
from schemas.class_schema import AddStudentRequest
from schemas.invitation import EnrollmentStatus
from utils.converters import normalize_email, now_iso

logger = logging.getLogger(__name__)


class RosterManager:
    """Manages class roster rows."""

    def __init__(self, db: Session):
        self.db = db

    def find_entry(self, class_id: str, email: str) -> Optional[ClassStudentModel]:
        return (
            self.db.query(ClassStudentModel)
            .filter(
                ClassStudentModel.class_id == class_id,
                ClassStudentModel.email == normalize_email(email),
            )
            .first()
        )

    def list_for_class(self, class_id: str) -> List[ClassStudentModel]:
        return (
            self.db.query(ClassStudentModel)
            .filter(ClassStudentModel.class_id == class_id)
            .order_by(ClassStudentModel.register_number)
            .all()
        )

    def add_student(
        self,
        class_id: str,
        register_number: str,
        email: str,
        student_name: Optional[str] = None,
        student_id: Optional[str] = None,
        import_source: str = "manual",
    ) -> Tuple[ClassStudentModel, bool]:
        """Add a student to a class roster.

        Args:
            class_id: Class to add the student to.
            register_number: Institution register number.
            email: Student email; invitations are addressed to it.
            student_name: Optional display name.
            student_id: Account id if the email already has an account.
            import_source: Where the row came from ('manual', 'csv', ...).

        Returns:
            Tuple of (roster row, created). ``created`` is False when the email
            was already on the roster, in which case the existing row is
            returned unchanged.
        """
        email = normalize_email(email)
        if not email:
            raise ValueError("Student email cannot be empty")
        existing = self.find_entry(class_id, email)
        if existing:
            return existing, False

        entry = ClassStudentModel(
            id=str(uuid.uuid4()),
            class_id=class_id,
            student_id=student_id,
            register_number=register_number.strip(),
            student_name=student_name,
            email=email,
            enrollment_status=EnrollmentStatus.PENDING.value,
            import_source=import_source,
            added_at=now_iso(),
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry, True

    def import_students(
        self,
        class_id: str,
        students: Iterable[AddStudentRequest],
        import_source: str = "import",
        resolve_account=None,
    ) -> Tuple[int, int]:
        """Bulk-add students, skipping emails already on the roster.

        Args:
            class_id: Class to import into.
            students: Rows to import.
            import_source: Recorded on every created row.
            resolve_account: Optional callable mapping an email to an account
                id (or None) so registered students are linked immediately.

        Returns:
            Tuple of (added, skipped).
        """
        added = 0
        skipped = 0
        for student in students:
            email = normalize_email(student.email)
            if not email or not student.register_number.strip():
                skipped += 1
                continue
            student_id = resolve_account(email) if resolve_account else None
            _, created = self.add_student(
                class_id,
                student.register_number,
                email,
                student_name=student.student_name,
                student_id=student_id,
                import_source=import_source,
            )
            if created:
                added += 1
            else:
                skipped += 1
        logger.info("Imported %d students into class %s (%d skipped)", added, class_id, skipped)
        return added, skipped

    def claim_entries(self, email: str, student_id: str) -> int:
        """Link every unclaimed roster row for ``email`` to ``student_id``.

        Rows that already carry a student_id, whether the same or another
        account, are never modified, so running this again is a no-op.

        Returns:
            Number of rows claimed by this call.
        """
        entries = (
            self.db.query(ClassStudentModel)
            .filter(
                ClassStudentModel.email == normalize_email(email),
                ClassStudentModel.student_id.is_(None),
            )
            .all()
        )
        for entry in entries:
            entry.student_id = student_id
        if entries:
            self.db.commit()
            logger.info("Claimed %d roster entries for %s", len(entries), email)
        return len(entries)

    def set_enrollment_status(
        self,
        class_id: str,
        email: str,
        status: EnrollmentStatus,
        student_id: Optional[str] = None,
        commit: bool = True,
    ) -> int:
        """Move the roster rows correlated with (class_id, email) to ``status``.

        Unclaimed rows are claimed by ``student_id`` on the way. Enrolled rows
        stay enrolled: rejecting a duplicate invitation never withdraws an
        enrollment, and accepting again keeps the original ``enrolled_at``.

        Returns:
            Number of rows whose status changed.
        """
        entries = (
            self.db.query(ClassStudentModel)
            .filter(
                ClassStudentModel.class_id == class_id,
                ClassStudentModel.email == normalize_email(email),
            )
            .all()
        )
        now = now_iso()
        updated = 0
        for entry in entries:
            if entry.student_id is None and student_id is not None:
                entry.student_id = student_id
            if entry.enrollment_status == EnrollmentStatus.ENROLLED.value:
                continue
            entry.enrollment_status = status.value
            if status == EnrollmentStatus.ENROLLED:
                entry.enrolled_at = now
            updated += 1
        if commit:
            self.db.commit()
        return updated
