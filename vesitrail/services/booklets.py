import logging
import time

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from vesitrail import db
from vesitrail.exceptions import (
    AllocationConflict,
    ApplicationAlreadyReviewed,
    BookletDamaged,
    BookletExhausted,
    BookletNotFound,
    BookletUnavailable,
    NoPagesAvailable,
    ValidationError,
)
from vesitrail.models.application import ApplicationStatus, ConcessionApplication
from vesitrail.models.booklet import BookletStatus, ConcessionBooklet
from vesitrail.services import pages as page_rules
from vesitrail.services import serials
from vesitrail.utils import page_result, paginate_list

logger = logging.getLogger(__name__)


class BookletService:
    """Creation, damage tracking and page allocation for concession booklets.

    Booklets are never deleted: exhausted and damaged booklets stay around so
    every issued slip can be traced back to its physical booklet.
    """

    DEFAULT_TOTAL_PAGES = 50

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @staticmethod
    def get_booklet(booklet_id) -> ConcessionBooklet:
        booklet = db.session.get(ConcessionBooklet, booklet_id)
        if booklet is None:
            raise BookletNotFound(booklet_id)
        return booklet

    @staticmethod
    def assigned_pages(booklet_id) -> set[int]:
        """Page indices currently held by applications of this booklet."""
        rows = db.session.query(ConcessionApplication.page_offset).filter(
            ConcessionApplication.concession_booklet_id == booklet_id,
            ConcessionApplication.page_offset.isnot(None),
        )
        return {row.page_offset for row in rows}

    @classmethod
    def list_booklets(cls, page: int = 1, page_size: int = 10, search: str = None, status: str = None) -> dict:
        """Paginated booklet listing, newest booklet number first.

        *search* matches either serial (case-insensitive substring) or an
        exact booklet number.
        """
        query = db.select(ConcessionBooklet)

        if status and status != "all":
            if status not in BookletStatus.ALL:
                raise ValidationError(f"Unknown booklet status: {status}", field="status")
            query = query.where(ConcessionBooklet.status == status)

        search = (search or "").strip()
        if search:
            conditions = [
                ConcessionBooklet.serial_start_number.ilike(f"%{search}%"),
                ConcessionBooklet.serial_end_number.ilike(f"%{search}%"),
            ]
            if search.isdigit():
                conditions.append(ConcessionBooklet.booklet_number == int(search))
            query = query.where(or_(*conditions))

        query = query.order_by(ConcessionBooklet.booklet_number.desc())
        pagination = db.paginate(query, page=page, per_page=page_size, error_out=False)

        return page_result(
            [booklet.to_dict() for booklet in pagination.items],
            pagination.total,
            page,
            page_size,
        )

    @classmethod
    def available_booklets(cls) -> list[dict]:
        """Booklets an admin can approve against, best candidates first.

        Booklets already in use come before untouched ones so pages are
        consumed one booklet at a time.
        """
        last_used = (
            db.session.query(
                ConcessionApplication.concession_booklet_id,
                db.func.max(ConcessionApplication.created_at).label("last_used_at"),
            )
            .group_by(ConcessionApplication.concession_booklet_id)
            .subquery()
        )
        rows = (
            db.session.query(ConcessionBooklet, last_used.c.last_used_at)
            .outerjoin(last_used, last_used.c.concession_booklet_id == ConcessionBooklet.id)
            .filter(ConcessionBooklet.status.in_(BookletStatus.ALLOCATABLE))
            .all()
        )

        def sort_key(row):
            booklet = row[0]
            in_use_first = 0 if booklet.status == BookletStatus.IN_USE else 1
            return (in_use_first, -booklet.applications_count, -booklet.booklet_number)

        result = []
        for booklet, last_used_at in sorted(rows, key=sort_key):
            item = booklet.to_dict()
            item["last_used_at"] = last_used_at.isoformat() if last_used_at else None
            result.append(item)
        return result

    @classmethod
    def booklet_pages(cls, booklet_id, page: int = 1, page_size: int = 10) -> dict:
        """Every used page of a booklet: issued slips and damaged slips.

        Applications sitting on a page that was later marked damaged are
        hidden behind the damaged entry.
        """
        booklet = cls.get_booklet(booklet_id)
        damaged = set(booklet.damaged_pages or [])

        rows = []
        applications = (
            ConcessionApplication.query
            .filter_by(concession_booklet_id=booklet.id)
            .order_by(ConcessionApplication.created_at.asc())
            .all()
        )
        for application in applications:
            offset = application.page_offset if application.page_offset is not None else 0
            if offset in damaged:
                continue
            rows.append({
                "id": f"application-{application.id}",
                "is_damaged": False,
                "page_number": page_rules.display_number(offset),
                "serial_number": serials.serial_for_page(booklet.serial_start_number, offset),
                "application": application.to_dict(),
                "student_name": application.student.full_name if application.student else None,
            })

        for offset in sorted(damaged):
            rows.append({
                "id": f"damaged-{booklet.id}-{offset}",
                "is_damaged": True,
                "page_number": page_rules.display_number(offset),
                "serial_number": serials.serial_for_page(booklet.serial_start_number, offset),
            })

        rows.sort(key=lambda row: row["page_number"])

        result = paginate_list(rows, page, page_size)
        result["booklet"] = booklet.to_dict()
        return result

    # ------------------------------------------------------------------
    # Creation and editing
    # ------------------------------------------------------------------

    @staticmethod
    def _find_overlap(start_serial: str, end_serial: str, exclude_id=None):
        """Return a booklet whose serial range overlaps [start, end], if any."""
        prefix, _ = serials.parse_serial(start_serial)
        start = serials.serial_number(start_serial)
        end = serials.serial_number(end_serial)

        query = ConcessionBooklet.query.filter(
            ConcessionBooklet.serial_start_number.like(f"{prefix}%")
        )
        if exclude_id is not None:
            query = query.filter(ConcessionBooklet.id != exclude_id)

        for other in query:
            other_start = serials.serial_number(other.serial_start_number)
            other_end = serials.serial_number(other.serial_end_number)
            if start <= other_end and other_start <= end:
                return other
        return None

    @classmethod
    def create_booklet(
        cls,
        serial_start_number: str,
        total_pages: int = None,
        anchor_x: float = 0,
        anchor_y: float = 0,
    ) -> ConcessionBooklet:
        """Register a new physical booklet.

        The booklet number is one past the current maximum; a concurrent
        create that grabs the same number hits the unique constraint and is
        retried a bounded number of times.
        """
        if total_pages is None:
            total_pages = current_app.config.get("BOOKLET_TOTAL_PAGES", cls.DEFAULT_TOTAL_PAGES)
        start = serials.normalize_serial(serial_start_number)
        end = serials.compute_end_serial(start, total_pages)

        max_attempts = current_app.config.get("ALLOCATION_MAX_ATTEMPTS", 3)
        for attempt in range(1, max_attempts + 1):
            overlapping = cls._find_overlap(start, end)
            if overlapping is not None:
                if overlapping.serial_start_number == start:
                    message = "A booklet with this serial start number already exists"
                else:
                    message = (
                        f"Serial number range overlaps with booklet #{overlapping.booklet_number}"
                    )
                raise ValidationError(message, field="serial_start_number")

            current_max = db.session.query(db.func.max(ConcessionBooklet.booklet_number)).scalar()
            booklet = ConcessionBooklet(
                booklet_number=(current_max or 0) + 1,
                serial_start_number=start,
                serial_end_number=end,
                total_pages=total_pages,
                damaged_pages=[],
                status=BookletStatus.AVAILABLE,
                applications_count=0,
                anchor_x=anchor_x,
                anchor_y=anchor_y,
            )
            db.session.add(booklet)
            try:
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                logger.warning(
                    "Booklet number collision creating %s (attempt %d/%d)", start, attempt, max_attempts
                )
                continue

            logger.info("Created booklet #%s (%s-%s)", booklet.booklet_number, start, end)
            return booklet

        raise AllocationConflict(
            f"Could not assign a booklet number to {start} after {max_attempts} attempts, please retry",
            max_attempts,
        )

    @classmethod
    def update_booklet(
        cls,
        booklet_id,
        serial_start_number: str,
        anchor_x: float,
        anchor_y: float,
        is_damaged: bool,
        damaged_pages,
    ) -> ConcessionBooklet:
        """Full admin edit of a booklet. Validation happens before any change."""
        booklet = cls.get_booklet(booklet_id)

        start = serials.normalize_serial(serial_start_number)
        end = serials.compute_end_serial(start, booklet.total_pages)
        damaged = page_rules.normalize_damaged_pages(damaged_pages, booklet.total_pages)

        if cls._find_overlap(start, end, exclude_id=booklet.id) is not None:
            raise ValidationError(
                "Serial number range overlaps with existing booklet", field="serial_start_number"
            )

        assigned = cls.assigned_pages(booklet.id)
        booklet.serial_start_number = start
        booklet.serial_end_number = end
        booklet.anchor_x = anchor_x
        booklet.anchor_y = anchor_y
        booklet.damaged_pages = damaged
        booklet.status = page_rules.booklet_status(booklet.total_pages, damaged, assigned, is_damaged)
        db.session.commit()

        logger.info("Updated booklet #%s: status=%s damaged=%s", booklet.booklet_number, booklet.status, damaged)
        return booklet

    @classmethod
    def update_damaged_pages(cls, booklet_id, damaged_pages, is_damaged: bool = None) -> ConcessionBooklet:
        """Replace the damaged page set of a booklet.

        *damaged_pages* are zero-based indices. With ``is_damaged=None`` the
        booklet keeps its current manual damage flag.
        """
        booklet = cls.get_booklet(booklet_id)
        damaged = page_rules.normalize_damaged_pages(damaged_pages, booklet.total_pages)

        if is_damaged is None:
            is_damaged = booklet.is_damaged

        assigned = cls.assigned_pages(booklet.id)
        booklet.damaged_pages = damaged
        booklet.status = page_rules.booklet_status(booklet.total_pages, damaged, assigned, is_damaged)
        db.session.commit()

        logger.info(
            "Booklet #%s damaged pages set to %s (status %s)",
            booklet.booklet_number,
            [page_rules.display_number(i) for i in damaged],
            booklet.status,
        )
        return booklet

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    @classmethod
    def assign_page(cls, booklet_id, application: ConcessionApplication, updates: dict = None) -> int:
        """Give *application* the next free page of a booklet.

        The claim is a conditional update keyed on the consumption counter
        read at the start of the attempt, so two approvals racing on the
        same booklet can never both win the same page. The loser rolls back
        and retries with backoff; after ``ALLOCATION_MAX_ATTEMPTS`` it raises
        AllocationConflict. *updates* are extra attribute changes for the
        application (approval status, reviewer) committed together with the
        claim.

        Returns the zero-based page index.
        """
        max_attempts = current_app.config.get("ALLOCATION_MAX_ATTEMPTS", 3)
        backoff = current_app.config.get("ALLOCATION_BACKOFF_SECONDS", 0.05)
        booklet_number = booklet_id

        for attempt in range(1, max_attempts + 1):
            booklet = db.session.get(ConcessionBooklet, booklet_id, populate_existing=True)
            if booklet is None:
                raise BookletNotFound(booklet_id)

            # Snapshot of everything the decision depends on
            booklet_number = booklet.booklet_number
            expected_count = booklet.applications_count
            total_pages = booklet.total_pages
            damaged = list(booklet.damaged_pages or [])
            status = booklet.status

            if status == BookletStatus.DAMAGED:
                raise BookletDamaged(booklet_number, status)
            if status == BookletStatus.EXHAUSTED:
                raise BookletExhausted(booklet_number)
            if status not in BookletStatus.ALLOCATABLE:
                raise BookletUnavailable(booklet_number, status)

            assigned = cls.assigned_pages(booklet_id)
            try:
                index = page_rules.next_available_page(total_pages, damaged, assigned)
            except NoPagesAvailable:
                raise BookletExhausted(booklet_number)

            new_status = page_rules.booklet_status(total_pages, damaged, assigned | {index})
            if cls._claim(booklet_id, expected_count, new_status, index, application, updates):
                db.session.commit()
                logger.info(
                    "Assigned page %d of booklet #%s to application %s",
                    page_rules.display_number(index),
                    booklet_number,
                    application.id,
                )
                return index

            db.session.rollback()
            logger.warning(
                "Allocation conflict on booklet #%s (attempt %d/%d)", booklet_number, attempt, max_attempts
            )
            if attempt < max_attempts:
                time.sleep(backoff * (2 ** (attempt - 1)))

        raise AllocationConflict(
            f"Could not allocate a page in booklet #{booklet_number} after {max_attempts} attempts, please retry",
            max_attempts,
        )

    @staticmethod
    def _claim(booklet_id, expected_count, new_status, index, application, updates) -> bool:
        """Bump the counter if nobody else did, then attach the page.

        The application is only taken while it is still unassigned and
        pending; otherwise the whole claim is rolled back and
        ApplicationAlreadyReviewed is raised.
        """
        application_id = application.id
        result = db.session.execute(
            update(ConcessionBooklet)
            .where(
                ConcessionBooklet.id == booklet_id,
                ConcessionBooklet.applications_count == expected_count,
            )
            .values(applications_count=expected_count + 1, status=new_status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        try:
            result = db.session.execute(
                update(ConcessionApplication)
                .where(
                    ConcessionApplication.id == application_id,
                    ConcessionApplication.status == ApplicationStatus.PENDING,
                    ConcessionApplication.concession_booklet_id.is_(None),
                )
                .values(concession_booklet_id=booklet_id, page_offset=index, **(updates or {}))
                .execution_options(synchronize_session=False)
            )
        except IntegrityError:
            # Another writer holds this page (unique booklet/page constraint)
            return False

        if result.rowcount != 1:
            db.session.rollback()
            raise ApplicationAlreadyReviewed(application_id)
        return True

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    @classmethod
    def recalculate_status(cls, booklet_id) -> ConcessionBooklet:
        """Re-derive one booklet's status from its pages."""
        booklet = cls.get_booklet(booklet_id)
        if cls._reconcile(booklet):
            db.session.commit()
        return booklet

    @classmethod
    def recalculate_all_statuses(cls) -> int:
        """Re-derive every booklet's status. Returns how many changed."""
        updated = 0
        for booklet in ConcessionBooklet.query.order_by(ConcessionBooklet.booklet_number):
            if cls._reconcile(booklet):
                updated += 1
        db.session.commit()
        logger.info("Reconciled booklet statuses: %d updated", updated)
        return updated

    @classmethod
    def _reconcile(cls, booklet) -> bool:
        new_status = page_rules.booklet_status(
            booklet.total_pages,
            booklet.damaged_pages,
            cls.assigned_pages(booklet.id),
            booklet.is_damaged,
        )
        if new_status == booklet.status:
            return False
        logger.info("Booklet #%s: %s -> %s", booklet.booklet_number, booklet.status, new_status)
        booklet.status = new_status
        return True
