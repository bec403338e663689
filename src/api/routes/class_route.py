"""Class, roster and invitation-sending routes (lecturer side)."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from api.routes.auth import get_current_user
from core.dependencies import (
    AccessRequestManagerDep,
    ClassManagerDep,
    RosterManagerDep,
    UserManagerDep,
)
from core.exceptions import (
    AccessRequestNotFoundError,
    ClassNotFoundError,
    InvitationAlreadyRespondedError,
    InvitationAlreadySentError,
    InvitationPermissionError,
    RosterEntryNotFoundError,
)
from schemas.class_schema import (
    AddStudentRequest,
    ClassInfo,
    CreateClassRequest,
    ImportStudentsRequest,
    ImportStudentsResponse,
    InvitationResult,
    RosterEntry,
)
from schemas.invitation import AccessRequest
from schemas.user import User
from utils.class_manager import ClassManager
from utils.converters import (
    model_to_access_request,
    model_to_class_info,
    model_to_roster_entry,
)

router = APIRouter(prefix="/api/classes", tags=["Class"])


def _require_lecturer(current_user: User) -> None:
    if current_user.role != "lecturer":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only lecturers can manage classes.",
        )


def _get_owned_class(class_manager: ClassManager, class_id: str, current_user: User):
    _require_lecturer(current_user)
    try:
        class_model = class_manager.get_class(class_id)
    except ClassNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Class not found",
        )
    if class_model.lecturer_id != current_user.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the class lecturer can do this.",
        )
    return class_model


@router.post("", response_model=ClassInfo, summary="Create class")
def create_class(
    req: CreateClassRequest,
    class_manager: ClassManagerDep,
    current_user: User = Depends(get_current_user),
) -> ClassInfo:
    _require_lecturer(current_user)
    course_code = req.course_code.strip()
    if not course_code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Course code cannot be empty.",
        )
    class_model = class_manager.create_class(
        course_code,
        current_user.user_id,
        lecturer_name=current_user.display_name or current_user.username,
        class_name=req.class_name,
        semester=req.semester,
        academic_year=req.academic_year,
        lecturer_department=req.lecturer_department,
    )
    return model_to_class_info(class_model)


@router.get("", response_model=List[ClassInfo], summary="List classes")
def list_classes(
    class_manager: ClassManagerDep,
    current_user: User = Depends(get_current_user),
) -> List[ClassInfo]:
    """Lecturers see the classes they own, students the ones they are enrolled in."""
    if current_user.role == "lecturer":
        models = class_manager.list_classes_for_lecturer(current_user.user_id)
    else:
        models = class_manager.list_classes_for_student(current_user.user_id)
    return [model_to_class_info(model) for model in models]


@router.get("/{class_id}", response_model=ClassInfo, summary="Get class")
def get_class(
    class_id: str,
    class_manager: ClassManagerDep,
    current_user: User = Depends(get_current_user),
) -> ClassInfo:
    return model_to_class_info(_get_owned_class(class_manager, class_id, current_user))


@router.delete("/{class_id}", summary="Delete class")
def delete_class(
    class_id: str,
    class_manager: ClassManagerDep,
    current_user: User = Depends(get_current_user),
) -> dict:
    _get_owned_class(class_manager, class_id, current_user)
    class_manager.delete_class(class_id, current_user.user_id)
    return {"success": True, "message": "Class deleted successfully"}


@router.post("/{class_id}/students", response_model=RosterEntry, summary="Add student")
def add_student(
    class_id: str,
    req: AddStudentRequest,
    class_manager: ClassManagerDep,
    roster_manager: RosterManagerDep,
    user_manager: UserManagerDep,
    current_user: User = Depends(get_current_user),
) -> RosterEntry:
    """Add one student to the roster.

    A student who already has an account is linked right away; otherwise the
    row waits to be claimed at their first sign-in.
    """
    _get_owned_class(class_manager, class_id, current_user)
    account = user_manager.get_user_by_email(req.email)
    try:
        entry, _ = roster_manager.add_student(
            class_id,
            req.register_number,
            req.email,
            student_name=req.student_name,
            student_id=account.user_id if account else None,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        )
    return model_to_roster_entry(entry)


@router.post(
    "/{class_id}/students/import",
    response_model=ImportStudentsResponse,
    summary="Import students",
)
def import_students(
    class_id: str,
    req: ImportStudentsRequest,
    class_manager: ClassManagerDep,
    roster_manager: RosterManagerDep,
    user_manager: UserManagerDep,
    current_user: User = Depends(get_current_user),
) -> ImportStudentsResponse:
    _get_owned_class(class_manager, class_id, current_user)

    def resolve_account(email: str):
        account = user_manager.get_user_by_email(email)
        return account.user_id if account else None

    added, skipped = roster_manager.import_students(
        class_id, req.students, import_source=req.import_source,
        resolve_account=resolve_account,
    )
    return ImportStudentsResponse(added=added, skipped=skipped)


@router.get("/{class_id}/students", response_model=List[RosterEntry], summary="List roster")
def list_students(
    class_id: str,
    class_manager: ClassManagerDep,
    roster_manager: RosterManagerDep,
    current_user: User = Depends(get_current_user),
) -> List[RosterEntry]:
    _get_owned_class(class_manager, class_id, current_user)
    return [model_to_roster_entry(e) for e in roster_manager.list_for_class(class_id)]


@router.post(
    "/{class_id}/invitations",
    response_model=InvitationResult,
    summary="Invite the whole roster",
)
def send_invitations(
    class_id: str,
    class_manager: ClassManagerDep,
    access_request_manager: AccessRequestManagerDep,
    current_user: User = Depends(get_current_user),
) -> InvitationResult:
    _get_owned_class(class_manager, class_id, current_user)
    return access_request_manager.send_invitations_to_class(class_id)


@router.post(
    "/{class_id}/invitations/resend",
    response_model=InvitationResult,
    summary="Resend to everyone who has not accepted",
)
def resend_invitations(
    class_id: str,
    class_manager: ClassManagerDep,
    access_request_manager: AccessRequestManagerDep,
    current_user: User = Depends(get_current_user),
) -> InvitationResult:
    _get_owned_class(class_manager, class_id, current_user)
    return access_request_manager.resend_invitations_to_all(class_id)


@router.post(
    "/{class_id}/students/{email}/invite",
    response_model=AccessRequest,
    summary="Invite one student",
)
def invite_student(
    class_id: str,
    email: str,
    class_manager: ClassManagerDep,
    access_request_manager: AccessRequestManagerDep,
    current_user: User = Depends(get_current_user),
) -> AccessRequest:
    _get_owned_class(class_manager, class_id, current_user)
    try:
        request = access_request_manager.send_invitation_to_student(class_id, email)
    except RosterEntryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except InvitationAlreadySentError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return model_to_access_request(request)


@router.post(
    "/{class_id}/students/{email}/resend",
    response_model=AccessRequest,
    summary="Resend to one student",
)
def resend_invitation(
    class_id: str,
    email: str,
    class_manager: ClassManagerDep,
    access_request_manager: AccessRequestManagerDep,
    current_user: User = Depends(get_current_user),
) -> AccessRequest:
    _get_owned_class(class_manager, class_id, current_user)
    try:
        request = access_request_manager.resend_invitation(class_id, email)
    except RosterEntryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except InvitationAlreadySentError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return model_to_access_request(request)


@router.get(
    "/{class_id}/access-requests",
    response_model=List[AccessRequest],
    summary="List invitations of a class",
)
def list_access_requests(
    class_id: str,
    class_manager: ClassManagerDep,
    access_request_manager: AccessRequestManagerDep,
    current_user: User = Depends(get_current_user),
) -> List[AccessRequest]:
    _get_owned_class(class_manager, class_id, current_user)
    return [model_to_access_request(r) for r in access_request_manager.list_for_class(class_id)]


@router.delete("/{class_id}/access-requests/{request_id}", summary="Cancel an invitation")
def cancel_access_request(
    class_id: str,
    request_id: str,
    class_manager: ClassManagerDep,
    access_request_manager: AccessRequestManagerDep,
    current_user: User = Depends(get_current_user),
) -> dict:
    _get_owned_class(class_manager, class_id, current_user)
    try:
        request = access_request_manager.get_request(request_id)
        if request.class_id != class_id:
            raise AccessRequestNotFoundError(request_id)
        access_request_manager.cancel_request(request_id, current_user.user_id)
    except AccessRequestNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except InvitationPermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except InvitationAlreadyRespondedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return {"success": True, "message": "Invitation cancelled"}
