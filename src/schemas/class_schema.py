"""Class and roster schema definitions."""

from typing import List, Optional

from pydantic import BaseModel, Field


class CreateClassRequest(BaseModel):
    course_code: str
    class_name: Optional[str] = None
    semester: Optional[str] = None
    academic_year: Optional[str] = None
    lecturer_department: Optional[str] = None


class ClassInfo(BaseModel):
    id: str
    course_code: str
    class_name: Optional[str] = None
    semester: Optional[str] = None
    academic_year: Optional[str] = None
    lecturer_id: str
    lecturer_name: Optional[str] = None
    lecturer_department: Optional[str] = None
    created_at: str
    updated_at: str


class RosterEntry(BaseModel):
    """A student's record in a class, possibly not yet linked to an account."""

    id: str
    class_id: str
    student_id: Optional[str] = None
    register_number: str
    student_name: Optional[str] = None
    email: str
    enrollment_status: str = "pending"
    import_source: Optional[str] = None
    added_at: str
    enrolled_at: Optional[str] = None


class AddStudentRequest(BaseModel):
    register_number: str
    email: str
    student_name: Optional[str] = None


class ImportStudentsRequest(BaseModel):
    students: List[AddStudentRequest] = Field(default_factory=list)
    import_source: str = "import"


class ImportStudentsResponse(BaseModel):
    added: int
    skipped: int


class InvitationResult(BaseModel):
    """Outcome of sending invitations to several students."""

    success: bool = True
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    message: str = ""
    errors: Optional[List[str]] = None
