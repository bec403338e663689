"""Class roster database model.

A roster row can exist before its student has an account: ``student_id`` stays
NULL until the owning email signs in and the entry is claimed.
"""

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship
from .base import Base


class ClassStudentModel(Base):
    __tablename__ = "class_students"

    id = Column(String, primary_key=True, index=True)
    class_id = Column(String, ForeignKey("classes.id", ondelete="CASCADE"), index=True, nullable=False)
    student_id = Column(String, index=True, nullable=True)
    register_number = Column(String, nullable=False)
    student_name = Column(String, nullable=True)
    email = Column(String, index=True, nullable=False)
    enrollment_status = Column(String, nullable=False, default="pending")  # pending/enrolled/rejected
    import_source = Column(String, nullable=True)  # 'manual', 'csv', ...
    added_at = Column(String, nullable=False)
    enrolled_at = Column(String, nullable=True)

    class_ = relationship("ClassModel", back_populates="students")
