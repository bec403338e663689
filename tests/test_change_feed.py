from core.change_feed import ChangeEvent, ChangeFeed, ChangeKind
from models.access_request import AccessRequestModel


def test_insert_is_published_after_commit(db, feed, make_class):
    class_model = make_class()
    subscription = feed.subscribe("access_requests", "student_email", "a@x.com")
    try:
        request = AccessRequestModel(
            id="R1",
            class_id=class_model.id,
            lecturer_id="L1",
            student_email="a@x.com",
            status="pending",
            sent_at="2026-01-01T00:00:00+00:00",
        )
        db.add(request)
        db.flush()
        assert subscription.drain() == []

        db.commit()
        events = subscription.drain()
        assert len(events) == 1
        assert events[0].kind == ChangeKind.INSERT
        assert events[0].row_id == "R1"
        assert events[0].new["status"] == "pending"
        assert events[0].old is None
    finally:
        subscription.close()


def test_update_carries_old_and_new_images(db, feed, make_class, make_request):
    class_model = make_class()
    request = make_request(class_model.id, "a@x.com", request_id="R1")
    subscription = feed.subscribe("access_requests", "student_email", "a@x.com")
    try:
        # Expired by the fixture's commit, so the old value has to be loaded on set
        request.status = "accepted"
        db.commit()
        (change,) = subscription.drain()
        assert change.kind == ChangeKind.UPDATE
        assert change.old["status"] == "pending"
        assert change.new["status"] == "accepted"
    finally:
        subscription.close()


def test_delete_is_published_with_old_image(db, feed, make_class, make_request):
    class_model = make_class()
    request = make_request(class_model.id, "a@x.com", request_id="R1")
    subscription = feed.subscribe("access_requests", "student_email", "a@x.com")
    try:
        db.delete(request)
        db.commit()
        (change,) = subscription.drain()
        assert change.kind == ChangeKind.DELETE
        assert change.new is None
        assert change.row_id == "R1"
    finally:
        subscription.close()


def test_rollback_discards_changes(db, feed, make_class):
    class_model = make_class()
    subscription = feed.subscribe("access_requests", "student_email", "a@x.com")
    try:
        db.add(
            AccessRequestModel(
                id="R1",
                class_id=class_model.id,
                lecturer_id="L1",
                student_email="a@x.com",
                status="pending",
            )
        )
        db.flush()
        db.rollback()
        db.commit()
        assert subscription.drain() == []
    finally:
        subscription.close()


def test_subscribers_only_see_their_filter(db, feed, make_class, make_request):
    class_model = make_class()
    mine = feed.subscribe("access_requests", "student_email", "a@x.com")
    other = feed.subscribe("access_requests", "student_email", "b@x.com")
    try:
        make_request(class_model.id, "a@x.com")
        assert len(mine.drain()) == 1
        assert other.drain() == []
    finally:
        mine.close()
        other.close()


def test_unchanged_flush_publishes_nothing(db, feed, make_class, make_request):
    class_model = make_class()
    request = make_request(class_model.id, "a@x.com")
    subscription = feed.subscribe("access_requests", "student_email", "a@x.com")
    try:
        request.status = request.status
        db.commit()
        assert subscription.drain() == []
    finally:
        subscription.close()


def test_closed_subscription_is_removed_and_silent():
    feed = ChangeFeed()
    subscription = feed.subscribe("access_requests", "student_email", "a@x.com")
    assert feed.subscriber_count == 1

    subscription.close()
    assert feed.subscriber_count == 0
    feed.publish(
        ChangeEvent("access_requests", ChangeKind.INSERT, new={"id": "R1", "student_email": "a@x.com"})
    )
    assert subscription.drain() == []
    assert subscription.closed


def test_close_discards_queued_events():
    feed = ChangeFeed()
    subscription = feed.subscribe("access_requests", "student_email", "a@x.com")
    feed.publish(
        ChangeEvent("access_requests", ChangeKind.INSERT, new={"id": "R1", "student_email": "a@x.com"})
    )

    subscription.close()

    assert subscription.drain() == []
