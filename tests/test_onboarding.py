from sqlalchemy.exc import OperationalError

from models.access_request import AccessRequestModel
from models.class_student import ClassStudentModel
from utils.onboarding import OnboardingService


def _db_error(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("database is locked"))


def test_reconcile_claims_rows_and_loads_invitations(db, make_class, make_roster_entry, make_request):
    class_model = make_class(course_code="CS101", class_name="Intro")
    make_roster_entry(class_model.id, "a@x.com")
    make_request(class_model.id, "a@x.com", request_id="R1")

    result = OnboardingService(db).reconcile("a@x.com", "U1")

    assert result.had_pending is True
    assert result.pending_count == 1
    assert result.claimed == 1
    assert result.linked_requests == 1
    assert [inv.id for inv in result.invitations] == ["R1"]
    assert result.invitations[0].classes.course_code == "CS101"

    db.expire_all()
    entry = db.query(ClassStudentModel).filter_by(email="a@x.com").one()
    assert entry.student_id == "U1"
    assert db.query(AccessRequestModel).filter_by(id="R1").one().status == "pending"


def test_reconcile_is_idempotent(db, make_class, make_roster_entry, make_request):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    make_request(class_model.id, "a@x.com", request_id="R1")
    service = OnboardingService(db)

    first = service.reconcile("a@x.com", "U1")
    second = service.reconcile("a@x.com", "U1")

    assert first.claimed == 1
    assert second.claimed == 0
    assert second.linked_requests == 0
    assert [inv.id for inv in second.invitations] == [inv.id for inv in first.invitations]


def test_rows_claimed_by_another_account_are_untouched(db, make_class, make_roster_entry):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com", student_id="U2")

    result = OnboardingService(db).reconcile("a@x.com", "U1")

    assert result.claimed == 0
    db.expire_all()
    assert db.query(ClassStudentModel).filter_by(email="a@x.com").one().student_id == "U2"


def test_claim_runs_when_nothing_is_pending(db, make_class, make_roster_entry, make_request):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    make_request(class_model.id, "a@x.com", status="accepted")

    result = OnboardingService(db).reconcile("a@x.com", "U1")

    assert result.had_pending is False
    assert result.invitations == []
    assert result.claimed == 1


def test_email_is_normalized(db, make_class, make_roster_entry, make_request):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    make_request(class_model.id, "a@x.com", request_id="R1")

    result = OnboardingService(db).reconcile("  A@X.com ", "U1")

    assert result.claimed == 1
    assert [inv.id for inv in result.invitations] == ["R1"]


def test_blank_email_is_a_no_op(db):
    result = OnboardingService(db).reconcile("  ", "U1")
    assert result.had_pending is False
    assert result.invitations == []


def test_only_pending_requests_are_loaded(db, make_class, make_request):
    first = make_class(course_code="CS101")
    second = make_class(course_code="CS102")
    make_request(first.id, "a@x.com", request_id="R1")
    make_request(second.id, "a@x.com", status="rejected", request_id="R2")
    make_request(second.id, "b@x.com", request_id="R3")

    result = OnboardingService(db).reconcile("a@x.com", "U1")

    assert [inv.id for inv in result.invitations] == ["R1"]


def test_failed_claim_does_not_hide_invitations(db, monkeypatch, make_class, make_roster_entry, make_request):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    make_request(class_model.id, "a@x.com", request_id="R1")
    service = OnboardingService(db)
    monkeypatch.setattr(service.roster, "claim_entries", _db_error)

    result = service.reconcile("a@x.com", "U1")

    assert result.claimed == 0
    assert result.linked_requests == 1
    assert [inv.id for inv in result.invitations] == ["R1"]


def test_failed_load_keeps_the_claim(db, monkeypatch, make_class, make_roster_entry, make_request):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    make_request(class_model.id, "a@x.com", request_id="R1")
    service = OnboardingService(db)
    monkeypatch.setattr(service.access_requests, "list_pending", _db_error)

    result = service.reconcile("a@x.com", "U1")

    assert result.claimed == 1
    assert result.invitations == []
    db.expire_all()
    assert db.query(ClassStudentModel).filter_by(email="a@x.com").one().student_id == "U1"


def test_failed_check_still_claims_and_loads(db, monkeypatch, make_class, make_roster_entry, make_request):
    class_model = make_class()
    make_roster_entry(class_model.id, "a@x.com")
    make_request(class_model.id, "a@x.com", request_id="R1")
    service = OnboardingService(db)
    monkeypatch.setattr(service.access_requests, "count_pending", _db_error)

    result = service.reconcile("a@x.com", "U1")

    assert result.had_pending is None
    assert result.claimed == 1
    assert [inv.id for inv in result.invitations] == ["R1"]


def test_invitation_without_class_is_still_returned(db, make_request):
    make_request("missing-class", "a@x.com", request_id="R1")

    result = OnboardingService(db).reconcile("a@x.com", "U1")

    assert [inv.id for inv in result.invitations] == ["R1"]
    assert result.invitations[0].classes is None


def test_failed_class_lookup_keeps_invitations(db, monkeypatch, make_class, make_request):
    class_model = make_class()
    make_request(class_model.id, "a@x.com", request_id="R1")
    service = OnboardingService(db)
    monkeypatch.setattr(service.classes, "get_class_summaries", _db_error)

    result = service.reconcile("a@x.com", "U1")

    assert [inv.id for inv in result.invitations] == ["R1"]
    assert result.invitations[0].classes is None
