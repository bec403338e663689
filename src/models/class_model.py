from sqlalchemy import Column, String
from sqlalchemy.orm import relationship
from .base import Base


class ClassModel(Base):
    __tablename__ = "classes"

    id = Column(String, primary_key=True, index=True)
    course_code = Column(String, nullable=False)
    class_name = Column(String, nullable=True)
    semester = Column(String, nullable=True)
    academic_year = Column(String, nullable=True)
    lecturer_id = Column(String, index=True, nullable=False)
    lecturer_name = Column(String, nullable=True)
    lecturer_department = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)

    students = relationship(
        "ClassStudentModel",
        back_populates="class_",
        cascade="all, delete-orphan",
    )
    access_requests = relationship(
        "AccessRequestModel",
        back_populates="class_",
        cascade="all, delete-orphan",
    )
