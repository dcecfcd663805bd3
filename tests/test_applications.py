from datetime import date, datetime

import pytest
from sqlalchemy import update

from vesitrail.exceptions import ApplicationAlreadyReviewed, BookletExhausted, ValidationError
from vesitrail.models import ApplicationStatus, ApplicationType, BookletStatus, ConcessionApplication
from vesitrail.services.applications import ApplicationService, add_months, certificate_number, validity_window
from vesitrail.services.booklets import BookletService


def test_add_months_clamps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 11, 15), 3) == date(2024, 2, 15)


def test_submit_creates_pending_application(db, student):
    application = ApplicationService.submit_application(student, period_months=3, station="Chembur")

    assert application.status == ApplicationStatus.PENDING
    assert application.period_months == 3
    assert application.page_offset is None


def test_only_one_pending_application(db, student):
    ApplicationService.submit_application(student)
    with pytest.raises(ValidationError, match="pending"):
        ApplicationService.submit_application(student)


def test_submit_rejects_bad_period(db, student):
    with pytest.raises(ValidationError):
        ApplicationService.submit_application(student, period_months=0)


def test_renewal_needs_approved_previous(db, student, admin):
    first = ApplicationService.submit_application(student)
    with pytest.raises(ValidationError, match="approved"):
        ApplicationService.submit_application(
            student, application_type=ApplicationType.RENEWAL, previous_application_id=first.id
        )


def test_approve_assigns_page_and_marks_reviewed(db, student, admin):
    booklet = BookletService.create_booklet("A0807551")
    application = ApplicationService.submit_application(student)

    ApplicationService.approve_with_booklet(application.id, admin, booklet.id)

    assert application.status == ApplicationStatus.APPROVED
    assert application.reviewed_by_id == admin.id
    assert application.concession_booklet_id == booklet.id
    assert application.page_offset == 0
    assert application.page_number == 1
    assert certificate_number(application) == "A0807551"


def test_failed_allocation_leaves_application_pending(db, student, other_student, admin):
    booklet = BookletService.create_booklet("A0000001", total_pages=1)
    ApplicationService.approve_with_booklet(
        ApplicationService.submit_application(other_student).id, admin, booklet.id
    )
    application = ApplicationService.submit_application(student)

    with pytest.raises(BookletExhausted):
        ApplicationService.approve_with_booklet(application.id, admin, booklet.id)

    db.session.refresh(application)
    assert application.status == ApplicationStatus.PENDING
    assert application.reviewed_by_id is None


def test_cannot_review_twice(db, student, admin):
    booklet = BookletService.create_booklet("A0000001")
    application = ApplicationService.submit_application(student)
    ApplicationService.approve_with_booklet(application.id, admin, booklet.id)

    with pytest.raises(ApplicationAlreadyReviewed):
        ApplicationService.approve_with_booklet(application.id, admin, booklet.id)
    with pytest.raises(ApplicationAlreadyReviewed):
        ApplicationService.reject_application(application.id, admin, "duplicate")


def test_reject_requires_reason(db, student, admin):
    application = ApplicationService.submit_application(student)
    with pytest.raises(ValidationError):
        ApplicationService.reject_application(application.id, admin, "  ")

    ApplicationService.reject_application(application.id, admin, "ID card expired")
    assert application.status == ApplicationStatus.REJECTED
    assert application.rejection_reason == "ID card expired"
    assert application.page_offset is None


def test_renewal_slip_refers_to_previous_certificate(db, student, admin):
    booklet = BookletService.create_booklet("A0000001")
    first = ApplicationService.submit_application(student, period_months=1)
    ApplicationService.approve_with_booklet(first.id, admin, booklet.id)
    first.reviewed_at = datetime(2024, 1, 31, 10, 0)
    db.session.commit()

    renewal = ApplicationService.submit_application(
        student, application_type=ApplicationType.RENEWAL, period_months=3, previous_application_id=first.id
    )
    ApplicationService.approve_with_booklet(renewal.id, admin, booklet.id)

    slip = ApplicationService.slip_details(renewal)

    assert slip["certificate_number"] == "A0000002"
    assert slip["page_number"] == 2
    assert slip["previous_certificate_number"] == "A0000001"
    assert slip["previous_valid_to"] == "2024-02-29"
    assert validity_window(first) == (date(2024, 1, 31), date(2024, 2, 29))


def test_double_approval_does_not_burn_a_page(db, student, admin, monkeypatch):
    first_booklet = BookletService.create_booklet("A0000001", total_pages=1)
    second_booklet = BookletService.create_booklet("B0000001", total_pages=5)
    application = ApplicationService.submit_application(student)

    real_claim = BookletService._claim
    interleaved = []

    def claim_after_other_admin(*args):
        # Another admin approves the same application against another booklet
        # after this request checked it was pending
        if not interleaved:
            interleaved.append(True)
            ApplicationService.approve_with_booklet(application.id, admin, first_booklet.id)
        return real_claim(*args)

    monkeypatch.setattr(BookletService, "_claim", staticmethod(claim_after_other_admin))

    with pytest.raises(ApplicationAlreadyReviewed):
        ApplicationService.approve_with_booklet(application.id, admin, second_booklet.id)

    db.session.refresh(application)
    db.session.refresh(second_booklet)
    assert application.concession_booklet_id == first_booklet.id
    assert application.page_offset == 0
    assert BookletService.assigned_pages(first_booklet.id) == {0}
    assert second_booklet.applications_count == 0
    assert second_booklet.status == BookletStatus.AVAILABLE


def test_reject_after_concurrent_approval(db, student, admin):
    application = ApplicationService.submit_application(student)
    application_id, admin_id = application.id, admin.id
    assert application.is_pending

    # Another admin's approval commits on its own connection; this session
    # still holds the pending copy
    with db.engine.begin() as connection:
        connection.execute(
            update(ConcessionApplication)
            .where(ConcessionApplication.id == application_id)
            .values(status=ApplicationStatus.APPROVED, reviewed_by_id=admin_id)
        )

    with pytest.raises(ApplicationAlreadyReviewed):
        ApplicationService.reject_application(application_id, admin, "Photo missing")

    db.session.refresh(application)
    assert application.status == ApplicationStatus.APPROVED
    assert application.rejection_reason is None
