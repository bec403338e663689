"""Session-scoped view of a student's pending invitations.

An :class:`InvitationInbox` mirrors the pending invitations of one email and
decides which of them to present. It is fed from two sides:

* reconciliation results (:meth:`InvitationInbox.refresh` / ``merge``), and
* change events from the access_requests feed, pulled with ``pump`` while
  a request for the session is handled (``apply`` handles one event).

Both apply idempotent set operations: insert-if-absent and remove-if-present.
An id that was seen leaving the pending state is remembered and never
re-added, so a reconciliation that read the row just before it was decided
cannot resurrect it.

Dismissing only hides an invitation for this session. The dismissal set is
kept apart from the pending list, lives behind a :class:`DismissalStore` and
has no effect on the server.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional, Set

from starlette.concurrency import run_in_threadpool

from core.change_feed import ChangeEvent, ChangeFeed, ChangeKind, Subscription
from schemas.invitation import AccessRequestStatus, PendingInvitation, ReconcileResult
from utils.converters import normalize_email, row_to_pending_invitation

logger = logging.getLogger(__name__)

ACCESS_REQUESTS_TABLE = "access_requests"
PENDING = AccessRequestStatus.PENDING.value


class DismissalStore(ABC):
    """Persistence hooks for a dismissal set."""

    @abstractmethod
    def load(self) -> Set[str]:
        """Return the stored ids."""

    @abstractmethod
    def save(self, ids: Set[str]) -> None:
        """Replace the stored ids."""


class MemoryDismissalStore(DismissalStore):
    """Dismissal store that lives as long as the process."""

    def __init__(self, initial: Optional[Iterable[str]] = None):
        self._ids: Set[str] = set(initial or ())

    def load(self) -> Set[str]:
        return set(self._ids)

    def save(self, ids: Set[str]) -> None:
        self._ids = set(ids)


class DismissalSet:
    """Read-modify-write set of dismissed request ids over a store."""

    def __init__(self, store: Optional[DismissalStore] = None):
        self._store = store or MemoryDismissalStore()
        self._lock = threading.Lock()

    def add(self, request_id: str) -> bool:
        with self._lock:
            ids = self._store.load()
            if request_id in ids:
                return False
            ids.add(request_id)
            self._store.save(ids)
            return True

    def discard(self, request_id: str) -> bool:
        with self._lock:
            ids = self._store.load()
            if request_id not in ids:
                return False
            ids.remove(request_id)
            self._store.save(ids)
            return True

    def snapshot(self) -> Set[str]:
        with self._lock:
            return self._store.load()

    def __contains__(self, request_id: str) -> bool:
        return request_id in self.snapshot()


class InvitationInbox:
    """Pending and presented invitations for one email in one session."""

    def __init__(
        self,
        email: str,
        subscription: Subscription,
        dismissals: Optional[DismissalSet] = None,
        on_alert: Optional[Callable[[PendingInvitation], None]] = None,
    ):
        self.email = normalize_email(email)
        self._subscription = subscription
        self._dismissals = dismissals or DismissalSet()
        self._on_alert = on_alert
        self._lock = threading.Lock()
        self._pending: Dict[str, PendingInvitation] = {}
        self._settled: Set[str] = set()
        self._alerted: Set[str] = set()
        self._alerts: List[PendingInvitation] = []
        self._closed = False
        self.loaded = False

    @classmethod
    def open(
        cls,
        feed: ChangeFeed,
        email: str,
        dismissals: Optional[DismissalSet] = None,
        on_alert: Optional[Callable[[PendingInvitation], None]] = None,
    ) -> "InvitationInbox":
        """Subscribe to the email's access requests and return a new inbox."""
        email = normalize_email(email)
        subscription = feed.subscribe(ACCESS_REQUESTS_TABLE, "student_email", email)
        return cls(email, subscription, dismissals=dismissals, on_alert=on_alert)

    @property
    def closed(self) -> bool:
        return self._closed

    # --- Presentation ---

    def pending(self) -> List[PendingInvitation]:
        """Every pending invitation known to the inbox, newest first."""
        with self._lock:
            invitations = list(self._pending.values())
        return sorted(invitations, key=lambda inv: inv.sent_at or "", reverse=True)

    def presented(self) -> List[PendingInvitation]:
        """Pending invitations that have not been dismissed this session."""
        dismissed = self._dismissals.snapshot()
        return [inv for inv in self.pending() if inv.id not in dismissed]

    def is_pending(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._pending

    def is_presented(self, request_id: str) -> bool:
        return self.is_pending(request_id) and request_id not in self._dismissals

    def dismissed_ids(self) -> Set[str]:
        return self._dismissals.snapshot()

    def dismiss(self, request_id: str) -> bool:
        """Hide a pending invitation for the rest of the session.

        Returns:
            False if the id is not pending here (nothing to dismiss).
        """
        if not self.is_pending(request_id):
            return False
        self._dismissals.add(request_id)
        return True

    def reopen(self, request_id: str) -> bool:
        """Undo a dismissal.

        Returns:
            True if the invitation is presentable again.
        """
        self._dismissals.discard(request_id)
        return self.is_pending(request_id)

    def take_alerts(self) -> List[PendingInvitation]:
        """Return and forget invitations that arrived since the last call."""
        with self._lock:
            alerts, self._alerts = self._alerts, []
        return alerts

    # --- Updates ---

    def merge(self, invitations: Iterable[PendingInvitation]) -> int:
        """Add loaded invitations that are not known yet.

        Returns:
            Number of invitations added.
        """
        added = 0
        with self._lock:
            if self._closed:
                return 0
            for invitation in invitations:
                if invitation.status != AccessRequestStatus.PENDING:
                    continue
                if invitation.id in self._settled:
                    continue
                current = self._pending.get(invitation.id)
                if current is None:
                    self._pending[invitation.id] = invitation
                    added += 1
                elif current.classes is None and invitation.classes is not None:
                    self._pending[invitation.id] = current.model_copy(
                        update={"classes": invitation.classes}
                    )
        return added

    def apply(self, change: ChangeEvent) -> None:
        """Apply one change event from the access_requests feed."""
        if change.table != ACCESS_REQUESTS_TABLE:
            return
        request_id = change.row_id
        if request_id is None:
            return

        alert = None
        with self._lock:
            if self._closed:
                return
            if change.kind == ChangeKind.DELETE:
                self._remove(request_id)
            elif not self._still_ours(change.new):
                self._remove(request_id)
            elif change.kind == ChangeKind.INSERT:
                alert = self._insert(row_to_pending_invitation(change.new))
            else:
                current = self._pending.get(request_id)
                updated = row_to_pending_invitation(change.new)
                if current is not None:
                    self._pending[request_id] = updated.model_copy(
                        update={"classes": current.classes}
                    )
                elif request_id not in self._settled:
                    self._pending[request_id] = updated

        if alert is not None and self._on_alert is not None:
            try:
                self._on_alert(alert)
            except Exception:
                logger.exception("Invitation alert handler failed for %s", alert.id)

    def pump(self) -> int:
        """Apply every queued change event without blocking.

        Returns:
            Number of events applied.
        """
        changes = self._subscription.drain()
        for change in changes:
            self.apply(change)
        return len(changes)

    async def refresh(self, loader: Callable[[], ReconcileResult]) -> Optional[ReconcileResult]:
        """Run a reconciliation off the event loop and merge its result.

        If the inbox is closed while the loader runs, the result is dropped.

        Args:
            loader: Blocking callable returning a ReconcileResult.

        Returns:
            The loader's result, or None if the inbox was closed.
        """
        if self._closed:
            return None
        result = await run_in_threadpool(loader)
        if self._closed:
            logger.debug("Inbox for %s closed during refresh, dropping result", self.email)
            return None
        # Decisions that landed while loading must win over the loaded snapshot
        self.pump()
        self.merge(result.invitations)
        self.loaded = True
        return result

    def close(self) -> None:
        """Stop applying results and unsubscribe from the feed."""
        with self._lock:
            self._closed = True
        self._subscription.close()

    # --- Internals (caller holds the lock) ---

    def _still_ours(self, row: Optional[dict]) -> bool:
        return (
            row is not None
            and row.get("status") == PENDING
            and normalize_email(row.get("student_email")) == self.email
        )

    def _remove(self, request_id: str) -> None:
        self._pending.pop(request_id, None)
        self._settled.add(request_id)

    def _insert(self, invitation: PendingInvitation) -> Optional[PendingInvitation]:
        if invitation.id in self._settled or invitation.id in self._pending:
            return None
        self._pending[invitation.id] = invitation
        if invitation.id in self._alerted:
            return None
        self._alerted.add(invitation.id)
        self._alerts.append(invitation)
        return invitation


class InboxRegistry:
    """Inboxes of the signed-in sessions, keyed by session id.

    Each inbox lives as long as its session token: it is closed on logout,
    and an inbox whose token has expired is closed the next time any session
    opens or looks up an inbox.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        dismissal_store_factory: Optional[Callable[[str], DismissalStore]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._feed = feed
        self._store_factory = dismissal_store_factory or (lambda session_key: MemoryDismissalStore())
        self._clock = clock
        self._lock = threading.Lock()
        self._inboxes: Dict[str, InvitationInbox] = {}
        self._expires: Dict[str, float] = {}

    def open(
        self,
        session_key: str,
        email: str,
        expires_at: Optional[float] = None,
    ) -> InvitationInbox:
        """Return the session's inbox, creating it on first use.

        Args:
            session_key: Session id of the bearer token.
            email: Email the inbox follows.
            expires_at: Token expiry as a Unix timestamp; None never expires.
        """
        email = normalize_email(email)
        with self._lock:
            expired = self._pop_expired()
            inbox = self._inboxes.get(session_key)
            if inbox is None or inbox.email != email or inbox.closed:
                if inbox is not None:
                    expired.append(inbox)
                inbox = InvitationInbox.open(
                    self._feed,
                    email,
                    dismissals=DismissalSet(self._store_factory(session_key)),
                )
                self._inboxes[session_key] = inbox
            if expires_at is not None:
                self._expires[session_key] = expires_at
        self._close_all(expired)
        return inbox

    def get(self, session_key: str) -> Optional[InvitationInbox]:
        with self._lock:
            expired = self._pop_expired()
            inbox = self._inboxes.get(session_key)
        self._close_all(expired)
        return inbox

    def close(self, session_key: str) -> None:
        with self._lock:
            inbox = self._inboxes.pop(session_key, None)
            self._expires.pop(session_key, None)
        if inbox is not None:
            inbox.close()

    def close_expired(self) -> int:
        """Close the inboxes of expired sessions.

        Returns:
            Number of inboxes closed.
        """
        with self._lock:
            expired = self._pop_expired()
        self._close_all(expired)
        return len(expired)

    def close_all(self) -> None:
        with self._lock:
            inboxes = list(self._inboxes.values())
            self._inboxes.clear()
            self._expires.clear()
        self._close_all(inboxes)

    def __len__(self) -> int:
        with self._lock:
            return len(self._inboxes)

    # Caller holds the lock
    def _pop_expired(self) -> List[InvitationInbox]:
        now = self._clock()
        stale = [key for key, expires_at in self._expires.items() if expires_at <= now]
        inboxes = []
        for key in stale:
            del self._expires[key]
            inbox = self._inboxes.pop(key, None)
            if inbox is not None:
                logger.debug("Session %s expired, closing its invitation inbox", key)
                inboxes.append(inbox)
        return inboxes

    @staticmethod
    def _close_all(inboxes: Iterable[InvitationInbox]) -> None:
        for inbox in inboxes:
            inbox.close()
