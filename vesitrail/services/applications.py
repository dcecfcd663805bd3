import calendar
import logging
from datetime import date

from sqlalchemy import update

from vesitrail import db
from vesitrail.exceptions import (
    ApplicationAlreadyReviewed,
    ApplicationNotFound,
    ValidationError,
)
from vesitrail.models.application import ApplicationStatus, ApplicationType, ConcessionApplication
from vesitrail.services import serials
from vesitrail.services.booklets import BookletService
from vesitrail.utils import utcnow

logger = logging.getLogger(__name__)


def add_months(start: date, months: int) -> date:
    """Same day *months* later, clamped to the end of a shorter month.

    >>> add_months(date(2024, 1, 31), 1)
    datetime.date(2024, 2, 29)
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def validity_window(application: ConcessionApplication) -> tuple[date, date] | None:
    """Dates an approved concession is valid for, or None if not approved."""
    if application.status != ApplicationStatus.APPROVED or application.reviewed_at is None:
        return None
    start = application.reviewed_at.date()
    return start, add_months(start, application.period_months)


def certificate_number(application: ConcessionApplication) -> str | None:
    """Serial printed on the slip issued for *application*."""
    if application.booklet is None or application.page_offset is None:
        return None
    return serials.serial_for_page(application.booklet.serial_start_number, application.page_offset)


class ApplicationService:
    """Submission and review of concession applications."""

    @staticmethod
    def get_application(application_id) -> ConcessionApplication:
        application = db.session.get(ConcessionApplication, application_id)
        if application is None:
            raise ApplicationNotFound(application_id)
        return application

    @classmethod
    def submit_application(
        cls,
        student,
        application_type: str = ApplicationType.NEW,
        period_months: int = 1,
        station: str = None,
        previous_application_id=None,
    ) -> ConcessionApplication:
        if application_type not in ApplicationType.ALL:
            raise ValidationError(f"Unknown application type: {application_type}", field="application_type")
        if not isinstance(period_months, int) or isinstance(period_months, bool) or period_months < 1:
            raise ValidationError("Concession period must be at least one month", field="period_months")

        previous = None
        if application_type == ApplicationType.RENEWAL:
            if previous_application_id is None:
                raise ValidationError(
                    "A renewal must reference the previous application", field="previous_application_id"
                )
            previous = db.session.get(ConcessionApplication, previous_application_id)
            if previous is None or previous.student_id != student.id:
                raise ValidationError("Previous application not found", field="previous_application_id")
            if previous.status != ApplicationStatus.APPROVED:
                raise ValidationError(
                    "Only an approved concession can be renewed", field="previous_application_id"
                )

        pending = ConcessionApplication.query.filter_by(
            student_id=student.id, status=ApplicationStatus.PENDING
        ).first()
        if pending is not None:
            raise ValidationError("You already have a pending application", field="status")

        application = ConcessionApplication(
            student_id=student.id,
            status=ApplicationStatus.PENDING,
            application_type=application_type,
            previous_application_id=previous.id if previous else None,
            station=station,
            period_months=period_months,
        )
        db.session.add(application)
        db.session.commit()

        logger.info("Student %s submitted %s application %s", student.id, application_type, application.id)
        return application

    @classmethod
    def approve_with_booklet(cls, application_id, admin, booklet_id) -> ConcessionApplication:
        """Approve a pending application and give it the next booklet page.

        The approval and the page claim are committed together.
        """
        application = cls.get_application(application_id)
        if not application.is_pending:
            raise ApplicationAlreadyReviewed(application_id)

        BookletService.assign_page(
            booklet_id,
            application,
            updates={
                "status": ApplicationStatus.APPROVED,
                "reviewed_by_id": admin.id,
                "reviewed_at": utcnow(),
                "rejection_reason": None,
            },
        )
        return application

    @classmethod
    def reject_application(cls, application_id, admin, reason: str) -> ConcessionApplication:
        application = cls.get_application(application_id)
        if not application.is_pending:
            raise ApplicationAlreadyReviewed(application_id)

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required", field="rejection_reason")

        # Conditional so a concurrent approval cannot be overwritten
        result = db.session.execute(
            update(ConcessionApplication)
            .where(
                ConcessionApplication.id == application.id,
                ConcessionApplication.status == ApplicationStatus.PENDING,
            )
            .values(
                status=ApplicationStatus.REJECTED,
                reviewed_by_id=admin.id,
                reviewed_at=utcnow(),
                rejection_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise ApplicationAlreadyReviewed(application_id)
        db.session.commit()

        logger.info("Application %s rejected by %s", application.id, admin.id)
        return application

    @staticmethod
    def slip_details(application: ConcessionApplication) -> dict:
        """Everything printed on the issued slip besides the student's data."""
        window = validity_window(application)
        details = {
            "application_id": application.id,
            "certificate_number": certificate_number(application),
            "page_number": application.page_number,
            "valid_from": window[0].isoformat() if window else None,
            "valid_to": window[1].isoformat() if window else None,
            "previous_certificate_number": None,
            "previous_valid_to": None,
        }

        previous = application.previous_application
        if application.application_type == ApplicationType.RENEWAL and previous is not None:
            details["previous_certificate_number"] = certificate_number(previous)
            previous_window = validity_window(previous)
            if previous_window:
                details["previous_valid_to"] = previous_window[1].isoformat()
        return details
