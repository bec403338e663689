"""Invitation routes (student side).

The reconcile endpoint is meant to be called right after sign-in. The
presented list, dismissals and alerts belong to the session of the bearer
token; the pending endpoint always reads the database.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from api.routes.auth import get_current_user, get_session_expiry, get_session_id
from core.dependencies import (
    AccessRequestManagerDep,
    ClassManagerDep,
    InboxRegistryDep,
    NotificationManagerDep,
    OnboardingServiceDep,
)
from core.exceptions import (
    AccessRequestNotFoundError,
    InvitationAlreadyRespondedError,
    InvitationPermissionError,
)
from schemas.invitation import (
    AccessRequest,
    InboxResponse,
    InvitationAlert,
    PendingInvitation,
    ReconcileResponse,
)
from schemas.user import User
from utils.access_request_manager import AccessRequestManager
from utils.class_manager import ClassManager
from utils.converters import model_to_access_request
from utils.invitation_inbox import InboxRegistry, InvitationInbox
from utils.onboarding import OnboardingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invitations", tags=["Invitation"])


def _require_email(current_user: User) -> str:
    if not current_user.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Your account has no email address.",
        )
    return current_user.email


def _with_classes(
    invitations: List[PendingInvitation], class_manager: ClassManager
) -> List[PendingInvitation]:
    """Fill in class metadata for invitations that arrived without it."""
    missing = [inv.class_id for inv in invitations if inv.classes is None]
    if not missing:
        return invitations
    try:
        summaries = class_manager.get_class_summaries(missing)
    except SQLAlchemyError:
        logger.exception("Error fetching class details for invitations")
        return invitations
    return [
        inv if inv.classes is not None
        else inv.model_copy(update={"classes": summaries.get(inv.class_id)})
        for inv in invitations
    ]


def _build_alert(invitation: PendingInvitation) -> InvitationAlert:
    summary = invitation.classes
    if summary is None:
        message = "You have been invited to join a class"
    else:
        class_info = f" - {summary.class_name}" if summary.class_name else ""
        message = (
            f"{summary.lecturer_name or 'A lecturer'} has invited you to join "
            f"{summary.course_code}{class_info}"
        )
    return InvitationAlert(request_id=invitation.id, title="New Class Invitation", message=message)


def _inbox_response(inbox: InvitationInbox, class_manager: ClassManager) -> InboxResponse:
    inbox.pump()
    alerts = _with_classes(inbox.take_alerts(), class_manager)
    return InboxResponse(
        invitations=_with_classes(inbox.presented(), class_manager),
        alerts=[_build_alert(inv) for inv in alerts],
    )


async def _loaded_inbox(
    inboxes: InboxRegistry,
    onboarding: OnboardingService,
    current_user: User,
    session_id: str,
    expires_at: Optional[float],
) -> InvitationInbox:
    """The session's inbox, reconciled once if it is new."""
    email = _require_email(current_user)
    inbox = inboxes.open(session_id, email, expires_at=expires_at)
    if not inbox.loaded:
        await inbox.refresh(lambda: onboarding.reconcile(email, current_user.user_id))
    return inbox


@router.post("/reconcile", response_model=ReconcileResponse, summary="Reconcile after sign-in")
async def reconcile(
    onboarding: OnboardingServiceDep,
    class_manager: ClassManagerDep,
    inboxes: InboxRegistryDep,
    current_user: User = Depends(get_current_user),
    session_id: str = Depends(get_session_id),
    expires_at: Optional[float] = Depends(get_session_expiry),
) -> ReconcileResponse:
    """Claim roster rows for the signed-in email and load its invitations."""
    email = _require_email(current_user)
    inbox = inboxes.open(session_id, email, expires_at=expires_at)
    result = await inbox.refresh(lambda: onboarding.reconcile(email, current_user.user_id))
    body = _inbox_response(inbox, class_manager)
    if result is None:
        return ReconcileResponse(**body.model_dump())
    return ReconcileResponse(
        **body.model_dump(),
        had_pending=result.had_pending,
        claimed=result.claimed,
        linked_requests=result.linked_requests,
    )


@router.get("/pending", response_model=List[PendingInvitation], summary="All pending invitations")
def list_pending(
    onboarding: OnboardingServiceDep,
    current_user: User = Depends(get_current_user),
) -> List[PendingInvitation]:
    """Authoritative list, dismissed invitations included."""
    return onboarding.load_pending(_require_email(current_user))


@router.get("/presented", response_model=InboxResponse, summary="Invitations to prompt for")
async def list_presented(
    onboarding: OnboardingServiceDep,
    class_manager: ClassManagerDep,
    inboxes: InboxRegistryDep,
    current_user: User = Depends(get_current_user),
    session_id: str = Depends(get_session_id),
    expires_at: Optional[float] = Depends(get_session_expiry),
) -> InboxResponse:
    inbox = await _loaded_inbox(inboxes, onboarding, current_user, session_id, expires_at)
    return _inbox_response(inbox, class_manager)


@router.post("/{request_id}/dismiss", response_model=InboxResponse, summary="Dismiss the prompt")
async def dismiss(
    request_id: str,
    onboarding: OnboardingServiceDep,
    class_manager: ClassManagerDep,
    notification_manager: NotificationManagerDep,
    inboxes: InboxRegistryDep,
    current_user: User = Depends(get_current_user),
    session_id: str = Depends(get_session_id),
    expires_at: Optional[float] = Depends(get_session_expiry),
) -> InboxResponse:
    """Stop prompting for an invitation this session; it stays pending."""
    inbox = await _loaded_inbox(inboxes, onboarding, current_user, session_id, expires_at)
    inbox.pump()
    invitation = next((inv for inv in inbox.pending() if inv.id == request_id), None)
    if invitation is None or not inbox.dismiss(request_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No pending invitation with this id",
        )

    # Leave a reminder in the notification list
    try:
        class_model = class_manager.find_class(invitation.class_id)
    except SQLAlchemyError:
        logger.exception("Error fetching class %s for reminder", invitation.class_id)
        class_model = None
    if class_model is not None:
        notification_manager.notify_pending_access_request(
            current_user.user_id,
            class_model.lecturer_name,
            class_model.course_code,
            class_model.class_name,
            request_id,
        )
    return _inbox_response(inbox, class_manager)


@router.post("/{request_id}/reopen", response_model=InboxResponse, summary="Prompt again")
async def reopen(
    request_id: str,
    onboarding: OnboardingServiceDep,
    class_manager: ClassManagerDep,
    inboxes: InboxRegistryDep,
    current_user: User = Depends(get_current_user),
    session_id: str = Depends(get_session_id),
    expires_at: Optional[float] = Depends(get_session_expiry),
) -> InboxResponse:
    inbox = await _loaded_inbox(inboxes, onboarding, current_user, session_id, expires_at)
    inbox.pump()
    inbox.reopen(request_id)
    return _inbox_response(inbox, class_manager)


def _decide(
    accept: bool,
    request_id: str,
    access_request_manager: AccessRequestManager,
    inboxes: InboxRegistry,
    current_user: User,
    session_id: str,
) -> AccessRequest:
    email = _require_email(current_user)
    try:
        if accept:
            request = access_request_manager.accept(request_id, current_user.user_id, email)
        else:
            request = access_request_manager.reject(
                request_id, current_user.user_id, email,
                student_name=current_user.display_name,
            )
    except AccessRequestNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except InvitationPermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except InvitationAlreadyRespondedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    inbox = inboxes.get(session_id)
    if inbox is not None:
        inbox.pump()
    return model_to_access_request(request)


@router.post("/{request_id}/accept", response_model=AccessRequest, summary="Accept invitation")
def accept(
    request_id: str,
    access_request_manager: AccessRequestManagerDep,
    inboxes: InboxRegistryDep,
    current_user: User = Depends(get_current_user),
    session_id: str = Depends(get_session_id),
) -> AccessRequest:
    return _decide(True, request_id, access_request_manager, inboxes, current_user, session_id)


@router.post("/{request_id}/reject", response_model=AccessRequest, summary="Reject invitation")
def reject(
    request_id: str,
    access_request_manager: AccessRequestManagerDep,
    inboxes: InboxRegistryDep,
    current_user: User = Depends(get_current_user),
    session_id: str = Depends(get_session_id),
) -> AccessRequest:
    return _decide(False, request_id, access_request_manager, inboxes, current_user, session_id)
