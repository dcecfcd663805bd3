import io

from flask import Blueprint, abort, jsonify, request, send_file
from flask_login import login_required, current_user

from vesitrail.exceptions import ValidationError
from vesitrail.models import ConcessionApplication, admin_required
from vesitrail.services import pdf
from vesitrail.services.applications import ApplicationService, certificate_number
from vesitrail.utils import page_result, parse_positive_int, request_data

bp = Blueprint("applications", __name__)


def _owned_or_admin(application_id) -> ConcessionApplication:
    application = ApplicationService.get_application(application_id)
    if application.student_id != current_user.id and not current_user.is_admin:
        abort(403)
    return application


@bp.route("/", methods=["GET"])
@login_required
def index():
    """Current user's applications, newest first. Admins may filter by status."""
    page = parse_positive_int(request.args.get("page"), 1, "page")
    page_size = parse_positive_int(request.args.get("page_size"), 10, "page_size", maximum=100)

    query = ConcessionApplication.query
    if current_user.is_admin:
        status = request.args.get("status")
        if status:
            query = query.filter_by(status=status)
    else:
        query = query.filter_by(student_id=current_user.id)

    query = query.order_by(ConcessionApplication.created_at.desc(), ConcessionApplication.id.desc())
    total = query.count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return jsonify(page_result([a.to_dict() for a in items], total, page, page_size))


@bp.route("/", methods=["POST"])
@login_required
def submit():
    data = request_data(request)
    try:
        period = int(data.get("period_months", 1))
    except (TypeError, ValueError):
        raise ValidationError("Concession period must be a number", field="period_months")

    previous_id = data.get("previous_application_id") or None
    if previous_id is not None:
        try:
            previous_id = int(previous_id)
        except (TypeError, ValueError):
            raise ValidationError("Previous application must be a number", field="previous_application_id")

    application = ApplicationService.submit_application(
        current_user,
        application_type=data.get("application_type", "New"),
        period_months=period,
        station=(data.get("station") or "").strip() or None,
        previous_application_id=previous_id,
    )
    return jsonify(application.to_dict()), 201


@bp.route("/<int:application_id>", methods=["GET"])
@login_required
def detail(application_id):
    application = _owned_or_admin(application_id)
    return jsonify(application.to_dict())


@bp.route("/<int:application_id>/slip", methods=["GET"])
@login_required
def slip(application_id):
    """Certificate number and validity printed on the issued slip."""
    application = _owned_or_admin(application_id)
    if application.page_offset is None:
        raise ValidationError("No slip has been issued for this application", field="status")
    return jsonify(ApplicationService.slip_details(application))


@bp.route("/<int:application_id>/approve", methods=["POST"])
@login_required
@admin_required
def approve(application_id):
    """Approve and issue the next free page of the chosen booklet."""
    data = request_data(request)
    booklet_id = data.get("booklet_id")
    if booklet_id in (None, ""):
        raise ValidationError("Booklet is required", field="booklet_id")
    try:
        booklet_id = int(booklet_id)
    except (TypeError, ValueError):
        raise ValidationError("Booklet must be a number", field="booklet_id")

    application = ApplicationService.approve_with_booklet(application_id, current_user, booklet_id)
    return jsonify(application.to_dict())


@bp.route("/<int:application_id>/reject", methods=["POST"])
@login_required
@admin_required
def reject(application_id):
    data = request_data(request)
    application = ApplicationService.reject_application(application_id, current_user, data.get("reason"))
    return jsonify(application.to_dict())


@bp.route("/<int:application_id>/overlay.pdf", methods=["GET"])
@login_required
@admin_required
def overlay_pdf(application_id):
    """Overlay for printing the approved slip onto its booklet page."""
    application = ApplicationService.get_application(application_id)
    data = pdf.render_overlay_pdf(application)
    return send_file(
        io.BytesIO(data),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=f"concession-{certificate_number(application)}.pdf",
    )
