"""Class management utilities."""

import logging
import uuid
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from core.exceptions import ClassNotFoundError
from models.class_model import ClassModel
from models.class_student import ClassStudentModel
from schemas.invitation import ClassSummary, EnrollmentStatus
from utils.converters import model_to_class_summary, now_iso

logger = logging.getLogger(__name__)


class ClassManager:
    """Manages classes owned by lecturers."""

    def __init__(self, db: Session):
        self.db = db

    def create_class(
        self,
        course_code: str,
        lecturer_id: str,
        lecturer_name: Optional[str] = None,
        class_name: Optional[str] = None,
        semester: Optional[str] = None,
        academic_year: Optional[str] = None,
        lecturer_department: Optional[str] = None,
    ) -> ClassModel:
        """Create a new class owned by ``lecturer_id``."""
        now = now_iso()
        class_model = ClassModel(
            id=str(uuid.uuid4()),
            course_code=course_code,
            class_name=class_name,
            semester=semester,
            academic_year=academic_year,
            lecturer_id=lecturer_id,
            lecturer_name=lecturer_name,
            lecturer_department=lecturer_department,
            created_at=now,
            updated_at=now,
        )
        self.db.add(class_model)
        self.db.commit()
        self.db.refresh(class_model)
        logger.info("Created class %s (%s) for lecturer %s", class_model.id, course_code, lecturer_id)
        return class_model

    def get_class(self, class_id: str) -> ClassModel:
        model = self.find_class(class_id)
        if not model:
            raise ClassNotFoundError(class_id)
        return model

    def find_class(self, class_id: str) -> Optional[ClassModel]:
        return self.db.query(ClassModel).filter(ClassModel.id == class_id).first()

    def get_class_summaries(self, class_ids: Iterable[str]) -> Dict[str, ClassSummary]:
        """Look up display metadata for several classes at once.

        Unknown ids are simply absent from the result.
        """
        ids = list(set(class_ids))
        if not ids:
            return {}
        models = self.db.query(ClassModel).filter(ClassModel.id.in_(ids)).all()
        return {model.id: model_to_class_summary(model) for model in models}

    def list_classes_for_lecturer(self, lecturer_id: str) -> List[ClassModel]:
        return (
            self.db.query(ClassModel)
            .filter(ClassModel.lecturer_id == lecturer_id)
            .order_by(ClassModel.created_at.desc())
            .all()
        )

    def list_classes_for_student(self, student_id: str) -> List[ClassModel]:
        """Classes the student is enrolled in (accepted invitation)."""
        return (
            self.db.query(ClassModel)
            .join(ClassStudentModel, ClassStudentModel.class_id == ClassModel.id)
            .filter(
                ClassStudentModel.student_id == student_id,
                ClassStudentModel.enrollment_status == EnrollmentStatus.ENROLLED.value,
            )
            .order_by(ClassModel.created_at.desc())
            .all()
        )

    def delete_class(self, class_id: str, lecturer_id: str) -> None:
        """Delete a class and its roster and invitations.

        Only the owning lecturer can delete the class.

        Args:
            class_id: Class ID to delete.
            lecturer_id: Lecturer ID (must match class owner).

        Raises:
            ClassNotFoundError: If class not found.
            ValueError: If user is not the owner.
        """
        class_model = self.get_class(class_id)
        if class_model.lecturer_id != lecturer_id:
            raise ValueError("Only the class lecturer can delete the class")

        # Cascades remove roster rows and access requests through the ORM
        self.db.delete(class_model)
        self.db.commit()
        logger.info("Deleted class: %s", class_id)
