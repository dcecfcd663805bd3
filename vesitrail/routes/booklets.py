import io

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_login import login_required

from vesitrail.models import admin_required
from vesitrail.services import pages as page_rules
from vesitrail.services import pdf
from vesitrail.services.booklets import BookletService
from vesitrail.utils import parse_bool, parse_float, parse_positive_int, request_data

bp = Blueprint("booklets", __name__)


def _damaged_page_indices(value, total_pages: int) -> list[int]:
    """Admin-entered page numbers ("3, 7" or [3, 7]) -> zero-based indices."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        value = [part for part in value.split(",") if part.strip()]
    return [page_rules.page_index(number, total_pages) for number in value]


@bp.route("/", methods=["GET"])
@login_required
@admin_required
def index():
    """Paginated booklet list with status filter and serial/number search."""
    page = parse_positive_int(request.args.get("page"), 1, "page")
    page_size = parse_positive_int(
        request.args.get("page_size"), current_app.config.get("BOOKLETS_PER_PAGE", 10), "page_size", maximum=100
    )
    result = BookletService.list_booklets(
        page=page,
        page_size=page_size,
        search=request.args.get("q"),
        status=request.args.get("status"),
    )
    return jsonify(result)


@bp.route("/", methods=["POST"])
@login_required
@admin_required
def create():
    """Register a new booklet."""
    data = request_data(request)
    booklet = BookletService.create_booklet(
        serial_start_number=data.get("serial_start_number", ""),
        anchor_x=parse_float(data.get("anchor_x"), "anchor_x"),
        anchor_y=parse_float(data.get("anchor_y"), "anchor_y"),
    )
    return jsonify(booklet.to_dict()), 201


@bp.route("/available", methods=["GET"])
@login_required
@admin_required
def available():
    """Booklets that can take an approval, best candidates first."""
    return jsonify(BookletService.available_booklets())


@bp.route("/<int:booklet_id>", methods=["GET"])
@login_required
@admin_required
def detail(booklet_id):
    return jsonify(BookletService.get_booklet(booklet_id).to_dict())


@bp.route("/<int:booklet_id>", methods=["POST"])
@login_required
@admin_required
def update(booklet_id):
    """Edit serial, stamp anchor, damage flag and damaged pages of a booklet."""
    booklet = BookletService.get_booklet(booklet_id)
    data = request_data(request)

    is_damaged = parse_bool(data.get("is_damaged"))
    if "damaged_pages" in data:
        damaged = _damaged_page_indices(data["damaged_pages"], booklet.total_pages)
    else:
        damaged = booklet.damaged_pages or []

    booklet = BookletService.update_booklet(
        booklet_id,
        serial_start_number=data.get("serial_start_number", booklet.serial_start_number),
        anchor_x=parse_float(data.get("anchor_x"), "anchor_x", booklet.anchor_x),
        anchor_y=parse_float(data.get("anchor_y"), "anchor_y", booklet.anchor_y),
        is_damaged=booklet.is_damaged if is_damaged is None else is_damaged,
        damaged_pages=damaged,
    )
    return jsonify(booklet.to_dict())


@bp.route("/<int:booklet_id>/damaged-pages", methods=["POST"])
@login_required
@admin_required
def damaged_pages(booklet_id):
    """Replace the damaged pages (one-based page numbers) of a booklet."""
    booklet = BookletService.get_booklet(booklet_id)
    data = request_data(request)

    booklet = BookletService.update_damaged_pages(
        booklet_id,
        _damaged_page_indices(data.get("damaged_pages"), booklet.total_pages),
        is_damaged=parse_bool(data.get("is_damaged")),
    )
    return jsonify(booklet.to_dict())


@bp.route("/<int:booklet_id>/pages", methods=["GET"])
@login_required
@admin_required
def pages(booklet_id):
    """Issued and damaged slips of one booklet, in page order."""
    page = parse_positive_int(request.args.get("page"), 1, "page")
    page_size = parse_positive_int(request.args.get("page_size"), 10, "page_size", maximum=100)
    return jsonify(BookletService.booklet_pages(booklet_id, page=page, page_size=page_size))


@bp.route("/<int:booklet_id>/report.pdf", methods=["GET"])
@login_required
@admin_required
def report_pdf(booklet_id):
    booklet = BookletService.get_booklet(booklet_id)
    data = pdf.render_booklet_report(booklet.id)
    return send_file(
        io.BytesIO(data),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=f"booklet-{booklet.booklet_number}-report.pdf",
    )


@bp.route("/<int:booklet_id>/recalculate", methods=["POST"])
@login_required
@admin_required
def recalculate(booklet_id):
    return jsonify(BookletService.recalculate_status(booklet_id).to_dict())


@bp.route("/recalculate", methods=["POST"])
@login_required
@admin_required
def recalculate_all():
    return jsonify(updated=BookletService.recalculate_all_statuses())
