"""Printable output for issued concessions.

Two documents are produced:

* the **slip overlay**: the approved application's details, positioned so
  that they land in the boxes of the pre-printed railway form when the
  overlay is printed onto the booklet page. Every field position is an
  offset from the booklet's stamp anchor (``anchor_x``/``anchor_y``), since
  each physical booklet sits slightly differently in the printer.
* the **booklet report**: one row per used page of a booklet (issued and
  damaged slips) for the railway office.

Coordinates in the form layout are points from the top-left corner of the
page; reportlab measures from the bottom-left, ``_to_pdf_y`` converts.
"""

import io
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime

from reportlab.lib import colors
from reportlab.lib.pagesizes import landscape, legal
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from vesitrail import db
from vesitrail.exceptions import ValidationError
from vesitrail.models import ApplicationType, ConcessionApplication, Settings
from vesitrail.services.applications import certificate_number, validity_window
from vesitrail.services.booklets import BookletService

logger = logging.getLogger(__name__)

OVERLAY_PAGE_SIZE = (842, 666.14)
OVERLAY_FONT = "Times-Roman"
OVERLAY_FONT_SIZE = 12
MULTILINE_WIDTH = 150
DESTINATION_STATION = "Kurla"

FORM_LAYOUT_KEY = "form_layout"

# Offsets (points) from the booklet anchor for each box of the printed form
DEFAULT_FORM_LAYOUT = {
    "left": {
        "student_name_left": {"x": 40, "y": 120},
        "period_left": {"x": 40, "y": 150},
        "from_station_left": {"x": 40, "y": 180},
        "to_station_left": {"x": 200, "y": 180},
        "previous_certificate_number": {"x": 40, "y": 230},
        "last_season_ticket_held_upto_date": {"x": 40, "y": 260},
        "last_season_ticket_held_upto_year": {"x": 160, "y": 260},
        "date_of_issue_left": {"x": 40, "y": 320},
    },
    "right": {
        "student_name_right": {"x": 420, "y": 120},
        "period_right": {"x": 420, "y": 150},
        "from_station_right": {"x": 420, "y": 180},
        "to_station_right": {"x": 600, "y": 180},
        "current_pass_season_ticket_number": {"x": 420, "y": 230},
        "current_pass_from_station": {"x": 420, "y": 260},
        "current_pass_to_station": {"x": 600, "y": 260},
        "current_pass_validity_from": {"x": 420, "y": 290},
        "current_pass_validity_to": {"x": 600, "y": 290},
        "date_of_issue_right": {"x": 420, "y": 320},
    },
}

MULTILINE_FIELDS = {
    "from_station_left",
    "to_station_left",
    "from_station_right",
    "to_station_right",
    "current_pass_from_station",
    "current_pass_to_station",
}


@dataclass(frozen=True)
class OverlayField:
    name: str
    x: float
    y: float
    text: str
    multiline: bool = False


def format_date(value) -> str:
    return value.strftime("%d/%m/%Y")


def period_label(months: int) -> str:
    return "1 Month" if months == 1 else f"{months} Months"


def get_form_layout() -> dict:
    """Form layout from settings, falling back to the built-in one."""
    raw = Settings.get(FORM_LAYOUT_KEY)
    if not raw:
        return DEFAULT_FORM_LAYOUT
    try:
        layout = json.loads(raw)
    except ValueError:
        raise ValidationError("Form layout setting is not valid JSON", field=FORM_LAYOUT_KEY)
    if not isinstance(layout, dict) or not isinstance(layout.get("left"), dict) or not isinstance(
        layout.get("right"), dict
    ):
        raise ValidationError("Form layout must have 'left' and 'right' sections", field=FORM_LAYOUT_KEY)
    return layout


def overlay_fields(application: ConcessionApplication, layout: dict = None, issued_on: date = None) -> list:
    """Text to stamp on the slip and where, already shifted by the booklet anchor.

    Fields missing from *layout* are skipped.
    """
    booklet = application.booklet
    if booklet is None or application.page_offset is None:
        raise ValidationError("Concession booklet not assigned to application", field="booklet_id")

    layout = layout or DEFAULT_FORM_LAYOUT
    if issued_on is None:
        issued_on = application.reviewed_at.date() if application.reviewed_at else date.today()
    student = application.student
    name = student.full_name if student else ""
    station = application.station or "-"
    period = period_label(application.period_months)

    values = {
        "student_name_left": name,
        "student_name_right": name,
        "period_left": period,
        "period_right": period,
        "from_station_left": station,
        "from_station_right": station,
        "to_station_left": DESTINATION_STATION,
        "to_station_right": DESTINATION_STATION,
        "date_of_issue_left": format_date(issued_on),
        "date_of_issue_right": format_date(issued_on),
    }

    previous = application.previous_application
    previous_window = validity_window(previous) if previous is not None else None
    if application.application_type == ApplicationType.RENEWAL and previous is not None:
        values.update({
            "previous_certificate_number": certificate_number(previous) or "-",
            "current_pass_season_ticket_number": certificate_number(previous) or "-",
            "current_pass_from_station": previous.station or station,
            "current_pass_to_station": DESTINATION_STATION,
        })
        if previous_window:
            start, end = previous_window
            values.update({
                "last_season_ticket_held_upto_date": format_date(end),
                "last_season_ticket_held_upto_year": str(end.year),
                "current_pass_validity_from": format_date(start),
                "current_pass_validity_to": format_date(end),
            })
    for key in (
        "previous_certificate_number",
        "last_season_ticket_held_upto_date",
        "last_season_ticket_held_upto_year",
        "current_pass_season_ticket_number",
        "current_pass_from_station",
        "current_pass_to_station",
        "current_pass_validity_from",
        "current_pass_validity_to",
    ):
        values.setdefault(key, "-")

    fields = []
    for side in ("left", "right"):
        for key, point in layout.get(side, {}).items():
            text = values.get(key)
            if not text:
                continue
            fields.append(OverlayField(
                name=key,
                x=booklet.anchor_x + point["x"],
                y=booklet.anchor_y + point["y"],
                text=text,
                multiline=key in MULTILINE_FIELDS,
            ))
    return fields


def _to_pdf_y(y: float) -> float:
    return OVERLAY_PAGE_SIZE[1] - y


def render_overlay_pdf(application: ConcessionApplication, layout: dict = None, issued_on: date = None) -> bytes:
    """Single-page overlay PDF for an approved application, rotated for the printer."""
    fields = overlay_fields(application, layout or get_form_layout(), issued_on)

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=OVERLAY_PAGE_SIZE)
    c.setTitle(f"Concession slip {certificate_number(application)}")
    c.setPageRotation(90)
    c.setFont(OVERLAY_FONT, OVERLAY_FONT_SIZE)

    for field in fields:
        if field.multiline:
            lines = simpleSplit(field.text, OVERLAY_FONT, OVERLAY_FONT_SIZE, MULTILINE_WIDTH)
        else:
            lines = [field.text]
        for i, line in enumerate(lines):
            c.drawString(field.x, _to_pdf_y(field.y + i * (OVERLAY_FONT_SIZE + 2)), line)

    c.showPage()
    c.save()

    logger.info("Rendered overlay for application %s (%d fields)", application.id, len(fields))
    return buffer.getvalue()


# ----------------------------------------------------------------------
# Booklet report
# ----------------------------------------------------------------------

REPORT_HEADERS = [
    "Sr. No.",
    "Page",
    "Certificate No.",
    "Application Date",
    "Student Name",
    "Type",
    "Previous Pass No.",
    "Period",
    "Origin Station",
]


def booklet_report_rows(booklet_id) -> list[list[str]]:
    """Table rows for every used page of a booklet, in page order."""
    booklet = BookletService.get_booklet(booklet_id)
    pages = BookletService.booklet_pages(booklet_id, page=1, page_size=max(booklet.total_pages, 1))["data"]

    if not any(not row["is_damaged"] for row in pages):
        raise ValidationError("No applications found for this booklet", field="booklet_id")

    rows = []
    for number, row in enumerate(pages, start=1):
        if row["is_damaged"]:
            rows.append([str(number), str(row["page_number"]), row["serial_number"], "-", "DAMAGED", "-", "-", "-", "-"])
            continue

        data = row["application"]
        previous_pass = "New Application"
        if data["application_type"] == ApplicationType.RENEWAL:
            previous = (
                db.session.get(ConcessionApplication, data["previous_application_id"])
                if data["previous_application_id"]
                else None
            )
            previous_pass = (certificate_number(previous) if previous else None) or "Not Available"

        created = datetime.fromisoformat(data["created_at"]) if data["created_at"] else None
        rows.append([
            str(number),
            str(row["page_number"]),
            row["serial_number"],
            format_date(created) if created else "-",
            row["student_name"] or "-",
            data["application_type"],
            previous_pass,
            period_label(data["period_months"]),
            data["station"] or "-",
        ])
    return rows


def render_booklet_report(booklet_id, generated_at: datetime = None) -> bytes:
    """Landscape legal report of a booklet's issued and damaged pages."""
    booklet = BookletService.get_booklet(booklet_id)
    rows = booklet_report_rows(booklet_id)
    generated_at = generated_at or datetime.now()

    issued = [row for row in rows if row[4] != "DAMAGED"]
    renewals = sum(1 for row in issued if row[5] == ApplicationType.RENEWAL)

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(legal),
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=f"Booklet #{booklet.booklet_number} report",
    )
    styles = getSampleStyleSheet()

    table = Table([REPORT_HEADERS] + rows, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#3C3C3C")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8.5),
        ("GRID", (0, 0), (-1, -1), 0.3, colors.black),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("ALIGN", (0, 0), (3, -1), "CENTER"),
    ]))

    story = [
        Paragraph("CENTRAL / WESTERN RAILWAY", styles["Title"]),
        Paragraph("Vivekanand Education Society's Institute of Technology, Chembur, Mumbai - 400074", styles["Normal"]),
        Spacer(1, 6 * mm),
        Paragraph("CONCESSION APPLICATIONS REPORT", styles["Heading2"]),
        Paragraph(f"Booklet #{booklet.booklet_number}", styles["Normal"]),
        Paragraph(f"Serial Range: {booklet.serial_start_number} - {booklet.serial_end_number}", styles["Normal"]),
        Paragraph(
            f"Total Applications: {len(issued)} | New: {len(issued) - renewals} | Renewal: {renewals}",
            styles["Normal"],
        ),
        Paragraph(f"Generated: {generated_at.strftime('%d/%m/%Y at %H:%M')}", styles["Normal"]),
        Spacer(1, 6 * mm),
        table,
    ]
    doc.build(story)

    logger.info("Rendered report for booklet #%s (%d rows)", booklet.booklet_number, len(rows))
    return buffer.getvalue()
