"""Change notifications for committed database writes.

Models registered with :func:`track_changes` record an insert/update/delete
event on their session while it flushes. A :class:`ChangeFeed` bound to a
session factory publishes those events once the session commits and discards
them on rollback, so subscribers only ever see durable changes, in commit
order.

Subscribers receive a :class:`Subscription`: a filtered queue of typed
:class:`ChangeEvent` values. Consumers pull; nothing runs in the background.
The invitation routes drain their session's subscription through
``InvitationInbox.pump`` while handling each request.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import event, inspect
from sqlalchemy.orm import object_session

logger = logging.getLogger(__name__)

_PENDING_KEY = "change_feed.pending"


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """A committed change to one row.

    Attributes:
        table: Table name of the changed row.
        kind: INSERT, UPDATE or DELETE.
        new: Row image after the change (None for deletes).
        old: Row image before the change (None for inserts).
    """

    table: str
    kind: ChangeKind
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    @property
    def row(self) -> Dict[str, Any]:
        """The most recent image of the row."""
        if self.new is not None:
            return self.new
        return self.old or {}

    @property
    def row_id(self) -> Optional[Any]:
        return self.row.get("id")


class Subscription:
    """Filtered stream of change events for one subscriber."""

    def __init__(
        self,
        feed: "ChangeFeed",
        table: str,
        column: str,
        value: Any,
    ):
        self.table = table
        self.column = column
        self.value = value
        self._feed = feed
        self._events: "queue.Queue[ChangeEvent]" = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        for image in (change.new, change.old):
            if image is not None and image.get(self.column) == self.value:
                return True
        return False

    def put(self, change: ChangeEvent) -> None:
        if not self.closed:
            self._events.put_nowait(change)

    def drain(self) -> List[ChangeEvent]:
        """Return every queued event without blocking."""
        events = []
        while True:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        self._feed.unsubscribe(self)
        self.drain()


class ChangeFeed:
    """Fan-out of committed row changes to subscribers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []

    def subscribe(self, table: str, column: str, value: Any) -> Subscription:
        """Subscribe to changes of rows in ``table`` where ``column == value``.

        A row matches if either its old or its new image matches, so a
        subscriber also sees the update that moves a row out of its filter.
        """
        subscription = Subscription(self, table, column, value)
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug("Subscribed to %s where %s=%s", table, column, value)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
        subscription.close()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, change: ChangeEvent) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(change)]
        for subscription in targets:
            subscription.put(change)

    def bind(self, session_factory: Any) -> None:
        """Publish the changes of every session created by ``session_factory``."""
        if event.contains(session_factory, "after_commit", self._on_commit):
            return
        event.listen(session_factory, "after_commit", self._on_commit)
        event.listen(session_factory, "after_rollback", _discard_pending)

    def _on_commit(self, session) -> None:
        changes = session.info.pop(_PENDING_KEY, [])
        for change in changes:
            logger.debug("Publishing %s on %s id=%s", change.kind.value, change.table, change.row_id)
            self.publish(change)


def track_changes(model_cls: Any) -> None:
    """Record inserts, updates and deletes of ``model_cls`` for publication.

    Only unit-of-work changes are seen; bulk ``query.update()`` and
    ``query.delete()`` bypass mapper events.
    """
    if event.contains(model_cls, "after_insert", _record_insert):
        return
    event.listen(model_cls, "after_insert", _record_insert)
    event.listen(model_cls, "before_update", _record_update)
    event.listen(model_cls, "before_delete", _record_delete)
    # _load_previous_value is a no-op; registering it with active_history=True
    # makes SQLAlchemy load the old value on set, even for expired attributes
    for attr in inspect(model_cls).column_attrs:
        event.listen(getattr(model_cls, attr.key), "set", _load_previous_value, active_history=True)


def _row_image(mapper, target) -> Dict[str, Any]:
    return {attr.key: getattr(target, attr.key) for attr in mapper.column_attrs}


def _previous_image(mapper, target) -> Dict[str, Any]:
    state = inspect(target)
    image = {}
    for attr in mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.deleted:
            image[attr.key] = history.deleted[0]
        else:
            image[attr.key] = getattr(target, attr.key)
    return image


def _load_previous_value(target, value, oldvalue, initiator) -> None:
    pass


def _stash(target, change: ChangeEvent) -> None:
    session = object_session(target)
    if session is None:
        return
    session.info.setdefault(_PENDING_KEY, []).append(change)


def _record_insert(mapper, connection, target) -> None:
    _stash(
        target,
        ChangeEvent(mapper.local_table.name, ChangeKind.INSERT, new=_row_image(mapper, target)),
    )


def _record_update(mapper, connection, target) -> None:
    session = object_session(target)
    if session is None or not session.is_modified(target, include_collections=False):
        return
    _stash(
        target,
        ChangeEvent(
            mapper.local_table.name,
            ChangeKind.UPDATE,
            new=_row_image(mapper, target),
            old=_previous_image(mapper, target),
        ),
    )


def _record_delete(mapper, connection, target) -> None:
    _stash(
        target,
        ChangeEvent(mapper.local_table.name, ChangeKind.DELETE, old=_row_image(mapper, target)),
    )


def _discard_pending(session) -> None:
    session.info.pop(_PENDING_KEY, None)
