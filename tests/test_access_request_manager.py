import pytest

from core.exceptions import (
    AccessRequestNotFoundError,
    ClassNotFoundError,
    InvitationAlreadyRespondedError,
    InvitationAlreadySentError,
    InvitationPermissionError,
    RosterEntryNotFoundError,
)
from models.access_request import AccessRequestModel
from models.class_student import ClassStudentModel
from models.notification import NotificationModel
from utils.access_request_manager import AccessRequestManager
from utils.invitation_inbox import InvitationInbox
from utils.notification_manager import NotificationManager


@pytest.fixture
def manager(db, functions):
    return AccessRequestManager(db, NotificationManager(db, functions))


def _notifications_for(db, user_id):
    db.expire_all()
    return db.query(NotificationModel).filter_by(recipient_id=user_id).all()


def test_send_to_class_creates_one_request_per_student(db, manager, functions, make_class, make_user, make_roster_entry):
    class_model = make_class()
    registered = make_user("reg@x.com")
    make_roster_entry(class_model.id, "reg@x.com", student_id=registered.user_id)
    make_roster_entry(class_model.id, "new@x.com", student_name="New Student")

    result = manager.send_invitations_to_class(class_model.id)

    assert (result.sent, result.skipped, result.failed) == (2, 0, 0)
    requests = {r.student_email: r for r in manager.list_for_class(class_model.id)}
    assert requests["reg@x.com"].student_id == registered.user_id
    assert requests["new@x.com"].invitation_email_sent is True
    assert len(_notifications_for(db, registered.user_id)) == 1
    assert functions.names().count("send-class-invitation-email") == 1
    assert "send-push" in functions.names()


def test_send_to_class_skips_students_already_invited(manager, make_class, make_roster_entry):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")

    manager.send_invitations_to_class(class_model.id)
    result = manager.send_invitations_to_class(class_model.id)

    assert (result.sent, result.skipped) == (0, 1)
    assert len(manager.list_for_class(class_model.id)) == 1


def test_send_to_empty_class(manager, make_class):
    result = manager.send_invitations_to_class(make_class().id)
    assert result.sent == 0
    assert result.message == "No students found in this class"


def test_send_to_missing_class_raises(manager):
    with pytest.raises(ClassNotFoundError):
        manager.send_invitations_to_class("nope")


def test_send_to_student_requires_roster_entry(manager, make_class):
    with pytest.raises(RosterEntryNotFoundError):
        manager.send_invitation_to_student(make_class().id, "a@x.com")


def test_send_to_student_twice_raises(manager, make_class, make_roster_entry):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    manager.send_invitation_to_student(class_model.id, "a@x.com")

    with pytest.raises(InvitationAlreadySentError):
        manager.send_invitation_to_student(class_model.id, "A@x.com")


def test_failed_email_leaves_flag_unset(db, make_class, make_roster_entry, functions):
    functions.succeed = False
    manager = AccessRequestManager(db, NotificationManager(db, functions))
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")

    request = manager.send_invitation_to_student(class_model.id, "a@x.com")

    assert request.status == "pending"
    assert request.invitation_email_sent is False


def test_accept_enrolls_the_student(db, manager, make_class, make_roster_entry):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    request = manager.send_invitation_to_student(class_model.id, "a@x.com")

    accepted = manager.accept(request.id, "U1", "A@X.com")

    assert accepted.status == "accepted"
    assert accepted.responded_at is not None
    assert accepted.student_id == "U1"
    db.expire_all()
    entry = db.query(ClassStudentModel).filter_by(email="a@x.com").one()
    assert entry.enrollment_status == "enrolled"
    assert entry.student_id == "U1"
    assert entry.enrolled_at is not None
    assert [c.id for c in manager.classes.list_classes_for_student("U1")] == [class_model.id]


def test_accept_marks_request_notifications_read(db, manager, make_class, make_user, make_roster_entry):
    class_model = make_class()
    student = make_user("a@x.com")
    make_roster_entry(class_model.id, "a@x.com", student_id=student.user_id)
    request = manager.send_invitation_to_student(class_model.id, "a@x.com")

    manager.accept(request.id, student.user_id, "a@x.com")

    notifications = _notifications_for(db, student.user_id)
    assert len(notifications) == 1
    assert notifications[0].is_read is True


def test_decided_request_cannot_be_decided_again(manager, make_class, make_request):
    class_model = make_class()
    make_request(class_model.id, "a@x.com", request_id="R1")
    manager.accept("R1", "U1", "a@x.com")

    with pytest.raises(InvitationAlreadyRespondedError):
        manager.accept("R1", "U1", "a@x.com")
    with pytest.raises(InvitationAlreadyRespondedError):
        manager.reject("R1", "U1", "a@x.com")


def test_only_the_invited_email_can_decide(manager, make_class, make_request):
    class_model = make_class()
    make_request(class_model.id, "a@x.com", request_id="R1")

    with pytest.raises(InvitationPermissionError):
        manager.accept("R1", "U2", "b@x.com")


def test_unknown_request(manager):
    with pytest.raises(AccessRequestNotFoundError):
        manager.reject("nope", "U1", "a@x.com")


def test_reject_updates_roster_and_tells_lecturer(db, manager, make_class, make_user, make_roster_entry):
    lecturer = make_user("lect@x.com", role="lecturer")
    class_model = make_class(lecturer_id=lecturer.user_id, course_code="CS101", class_name="Intro")
    make_roster_entry(class_model.id, "a@x.com", student_name="Alice")
    request = manager.send_invitation_to_student(class_model.id, "a@x.com")

    rejected = manager.reject(request.id, "U1", "a@x.com")

    assert rejected.status == "rejected"
    db.expire_all()
    assert db.query(ClassStudentModel).filter_by(email="a@x.com").one().enrollment_status == "rejected"
    (notification,) = _notifications_for(db, lecturer.user_id)
    assert notification.title == "Class Invitation Rejected"
    assert "Alice" in notification.message
    assert "CS101 - Intro" in notification.message
    assert notification.related_id == request.id


def test_lecturer_with_notifications_off_gets_nothing(db, manager, make_class, make_user, make_roster_entry):
    lecturer = make_user("lect@x.com", role="lecturer", notifications_enabled=False)
    class_model = make_class(lecturer_id=lecturer.user_id)
    make_roster_entry(class_model.id, "a@x.com")
    request = manager.send_invitation_to_student(class_model.id, "a@x.com")

    manager.reject(request.id, "U1", "a@x.com")

    assert _notifications_for(db, lecturer.user_id) == []


def test_resend_after_reject_creates_new_pending_request(db, manager, make_class, make_roster_entry):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    first = manager.send_invitation_to_student(class_model.id, "a@x.com")
    manager.reject(first.id, "U1", "a@x.com")

    second = manager.resend_invitation(class_model.id, "a@x.com")

    assert second.id != first.id
    assert second.status == "pending"
    db.expire_all()
    assert db.query(AccessRequestModel).filter_by(id=first.id).one().status == "rejected"


def test_resend_pending_restamps_same_request(manager, make_class, make_roster_entry):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    first = manager.send_invitation_to_student(class_model.id, "a@x.com")
    first_id = first.id

    again = manager.resend_invitation(class_model.id, "a@x.com")

    assert again.id == first_id
    assert len(manager.list_for_class(class_model.id)) == 1


def test_resend_after_accept_raises(manager, make_class, make_roster_entry):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    request = manager.send_invitation_to_student(class_model.id, "a@x.com")
    manager.accept(request.id, "U1", "a@x.com")

    with pytest.raises(InvitationAlreadySentError):
        manager.resend_invitation(class_model.id, "a@x.com")


def test_resend_to_all_skips_accepted(manager, make_class, make_roster_entry):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    make_roster_entry(class_model.id, "b@x.com")
    manager.send_invitations_to_class(class_model.id)
    accepted = manager.find_active(class_model.id, "a@x.com")
    manager.accept(accepted.id, "U1", "a@x.com")

    result = manager.resend_invitations_to_all(class_model.id)

    assert (result.sent, result.skipped, result.failed) == (1, 1, 0)


def test_cancel_pending_request_reaches_inbox(db, feed, manager, make_class, make_roster_entry):
    class_model = make_class(lecturer_id="L1")
    make_roster_entry(class_model.id, "a@x.com")
    inbox = InvitationInbox.open(feed, "a@x.com")
    try:
        request = manager.send_invitation_to_student(class_model.id, "a@x.com")
        request_id = request.id
        inbox.pump()
        assert inbox.is_pending(request_id)

        manager.cancel_request(request_id, "L1")
        inbox.pump()

        assert not inbox.is_pending(request_id)
        with pytest.raises(AccessRequestNotFoundError):
            manager.get_request(request_id)
    finally:
        inbox.close()


def test_cancel_checks_owner_and_status(manager, make_class, make_request):
    class_model = make_class(lecturer_id="L1")
    make_request(class_model.id, "a@x.com", request_id="R1")

    with pytest.raises(InvitationPermissionError):
        manager.cancel_request("R1", "L2")

    manager.accept("R1", "U1", "a@x.com")
    with pytest.raises(InvitationAlreadyRespondedError):
        manager.cancel_request("R1", "L1")


def test_reject_of_duplicate_invitation_keeps_enrollment(db, manager, make_class, make_roster_entry, make_request):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    make_request(class_model.id, "a@x.com", request_id="R1")
    make_request(class_model.id, "a@x.com", request_id="R2")
    manager.accept("R1", "U1", "a@x.com")
    db.expire_all()
    enrolled_at = db.query(ClassStudentModel).filter_by(email="a@x.com").one().enrolled_at

    manager.reject("R2", "U1", "a@x.com")

    db.expire_all()
    entry = db.query(ClassStudentModel).filter_by(email="a@x.com").one()
    assert entry.enrollment_status == "enrolled"
    assert entry.enrolled_at == enrolled_at
    assert [c.id for c in manager.classes.list_classes_for_student("U1")] == [class_model.id]


def test_second_accept_keeps_enrolled_at(db, manager, make_class, make_roster_entry, make_request):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    make_request(class_model.id, "a@x.com", request_id="R1")
    make_request(class_model.id, "a@x.com", request_id="R2")
    manager.accept("R1", "U1", "a@x.com")
    db.expire_all()
    enrolled_at = db.query(ClassStudentModel).filter_by(email="a@x.com").one().enrolled_at

    manager.accept("R2", "U1", "a@x.com")

    db.expire_all()
    assert db.query(ClassStudentModel).filter_by(email="a@x.com").one().enrolled_at == enrolled_at


def test_concurrent_decisions_first_commit_wins(db, other_db, manager, make_class, make_roster_entry, make_request):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    make_request(class_model.id, "a@x.com", request_id="R1")
    other = AccessRequestManager(other_db)
    # Both clients have read the request as pending
    assert other.get_request("R1").status == "pending"

    manager.accept("R1", "U1", "a@x.com")
    with pytest.raises(InvitationAlreadyRespondedError) as excinfo:
        other.reject("R1", "U1", "a@x.com")

    assert excinfo.value.status == "accepted"
    db.expire_all()
    assert db.query(AccessRequestModel).filter_by(id="R1").one().status == "accepted"
    assert db.query(ClassStudentModel).filter_by(email="a@x.com").one().enrollment_status == "enrolled"


def test_cancel_loses_to_concurrent_accept(db, other_db, manager, make_class, make_request):
    class_model = make_class(lecturer_id="L1")
    make_request(class_model.id, "a@x.com", request_id="R1")
    other = AccessRequestManager(other_db)
    other.get_request("R1")

    manager.accept("R1", "U1", "a@x.com")
    with pytest.raises(InvitationAlreadyRespondedError):
        other.cancel_request("R1", "L1")

    db.expire_all()
    assert db.query(AccessRequestModel).filter_by(id="R1").one().status == "accepted"


def test_accept_after_concurrent_cancel(db, other_db, manager, make_class, make_request):
    class_model = make_class(lecturer_id="L1")
    make_request(class_model.id, "a@x.com", request_id="R1")
    other = AccessRequestManager(other_db)
    other.get_request("R1")

    manager.cancel_request("R1", "L1")

    with pytest.raises(AccessRequestNotFoundError):
        other.accept("R1", "U1", "a@x.com")
