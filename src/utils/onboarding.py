"""Sign-in reconciliation of invitations and roster rows.

When a user signs in, invitations and roster rows may already exist for their
email, created before the account did. :meth:`OnboardingService.reconcile`
links those rows to the account and loads the invitations still waiting for
a decision.

The three steps run in order but are not atomic. Each step catches its own
database errors, logs them and yields an empty value, so a failed claim never
hides invitations and a failed load never undoes a claim. Running the
reconciliation again completes whatever a previous run could not.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schemas.invitation import PendingInvitation, ReconcileResult
from utils.access_request_manager import AccessRequestManager
from utils.class_manager import ClassManager
from utils.converters import model_to_access_request, normalize_email
from utils.roster_manager import RosterManager

logger = logging.getLogger(__name__)


class OnboardingService:
    """Runs the check / claim / load sequence for a signed-in email."""

    def __init__(
        self,
        db: Session,
        access_requests: Optional[AccessRequestManager] = None,
        roster: Optional[RosterManager] = None,
        classes: Optional[ClassManager] = None,
    ):
        self.db = db
        self.access_requests = access_requests or AccessRequestManager(db)
        self.roster = roster or RosterManager(db)
        self.classes = classes or ClassManager(db)

    def reconcile(self, email: str, identity: str) -> ReconcileResult:
        """Reconcile an authenticated email with its invitations.

        Args:
            email: Verified email address of the signed-in user.
            identity: Account id of the signed-in user.

        Returns:
            ReconcileResult with the claim counts and the pending invitations
            as observed by this call. Never raises for database errors.
        """
        email = normalize_email(email)
        if not email:
            return ReconcileResult(had_pending=False)

        pending_count = self.check_pending(email)
        if pending_count:
            logger.info("Found %d pending invitations for %s", pending_count, email)

        claimed, linked = self.claim(email, identity)

        # A failed check (None) still loads; a count of zero has nothing to load
        invitations: List[PendingInvitation] = []
        if pending_count != 0:
            invitations = self.load_pending(email)

        return ReconcileResult(
            had_pending=None if pending_count is None else pending_count > 0,
            pending_count=len(invitations) if pending_count is None else pending_count,
            claimed=claimed,
            linked_requests=linked,
            invitations=invitations,
        )

    def check_pending(self, email: str) -> Optional[int]:
        """Count pending invitations; None if the count failed."""
        try:
            return self.access_requests.count_pending(email)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Error checking pending invitations for %s", email)
            return None

    def claim(self, email: str, identity: str) -> Tuple[int, int]:
        """Link unclaimed roster rows and requests to ``identity``.

        Returns:
            Tuple of (roster rows claimed, requests linked); a failed part
            counts as zero.
        """
        claimed = linked = 0
        try:
            claimed = self.roster.claim_entries(email, identity)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Error claiming roster entries for %s", email)
        try:
            linked = self.access_requests.link_requests(email, identity)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Error linking access requests for %s", email)
        if claimed or linked:
            logger.info(
                "Linked %d roster entries and %d requests to account %s",
                claimed, linked, identity,
            )
        return claimed, linked

    def load_pending(self, email: str) -> List[PendingInvitation]:
        """Load pending invitations with their class metadata.

        Class metadata is a separate lookup; an invitation whose class cannot
        be found is still returned, without metadata.
        """
        try:
            requests = self.access_requests.list_pending(email)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Error fetching pending invitations for %s", email)
            return []

        try:
            summaries = self.classes.get_class_summaries(r.class_id for r in requests)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Error fetching class details for %s", email)
            summaries = {}

        invitations = []
        seen = set()
        for request in requests:
            if request.id in seen:
                continue
            seen.add(request.id)
            invitation = PendingInvitation(
                **model_to_access_request(request).model_dump(),
                classes=summaries.get(request.class_id),
            )
            invitations.append(invitation)
        return invitations
