from datetime import date, datetime

import pytest

from vesitrail.exceptions import ValidationError
from vesitrail.models import ApplicationType, Settings
from vesitrail.services import pdf
from vesitrail.services.applications import ApplicationService
from vesitrail.services.booklets import BookletService


def _approved(student, admin, booklet, **kwargs):
    application = ApplicationService.submit_application(student, station="Chembur", **kwargs)
    return ApplicationService.approve_with_booklet(application.id, admin, booklet.id)


def _by_name(fields):
    return {field.name: field for field in fields}


def test_overlay_fields_are_offset_from_booklet_anchor(db, student, admin):
    booklet = BookletService.create_booklet("A0807551", anchor_x=12.5, anchor_y=-4)
    application = _approved(student, admin, booklet, period_months=3)

    fields = _by_name(pdf.overlay_fields(application, issued_on=date(2024, 6, 1)))

    name = fields["student_name_left"]
    offset = pdf.DEFAULT_FORM_LAYOUT["left"]["student_name_left"]
    assert (name.x, name.y) == (12.5 + offset["x"], -4 + offset["y"])
    assert name.text == "Rohan Mehta"
    assert fields["period_right"].text == "3 Months"
    assert fields["from_station_left"].text == "Chembur"
    assert fields["to_station_right"].text == "Kurla"
    assert fields["date_of_issue_right"].text == "01/06/2024"
    assert fields["previous_certificate_number"].text == "-"


def test_renewal_overlay_shows_previous_pass(db, student, admin):
    booklet = BookletService.create_booklet("A0807551")
    first = _approved(student, admin, booklet, period_months=1)
    renewal = _approved(
        student, admin, booklet, application_type=ApplicationType.RENEWAL, previous_application_id=first.id
    )

    fields = _by_name(pdf.overlay_fields(renewal))

    assert fields["previous_certificate_number"].text == "A0807551"
    assert fields["current_pass_season_ticket_number"].text == "A0807551"
    assert fields["last_season_ticket_held_upto_year"].text.isdigit()


def test_custom_layout_from_settings(db, student, admin):
    booklet = BookletService.create_booklet("A0807551", anchor_x=100, anchor_y=50)
    application = _approved(student, admin, booklet)
    Settings.set(pdf.FORM_LAYOUT_KEY, '{"left": {"student_name_left": {"x": 1, "y": 2}}, "right": {}}')

    fields = pdf.overlay_fields(application, pdf.get_form_layout())

    assert [(f.name, f.x, f.y) for f in fields] == [("student_name_left", 101, 52)]


def test_malformed_layout_setting(db):
    Settings.set(pdf.FORM_LAYOUT_KEY, "{not json")
    with pytest.raises(ValidationError) as excinfo:
        pdf.get_form_layout()
    assert excinfo.value.field == pdf.FORM_LAYOUT_KEY


def test_overlay_needs_an_issued_page(db, student):
    application = ApplicationService.submit_application(student)
    with pytest.raises(ValidationError, match="not assigned"):
        pdf.render_overlay_pdf(application)


def test_render_overlay_pdf(db, student, admin):
    booklet = BookletService.create_booklet("A0807551")
    application = _approved(student, admin, booklet)

    data = pdf.render_overlay_pdf(application)

    assert data.startswith(b"%PDF")


def test_report_rows_include_damaged_pages(db, student, other_student, admin):
    booklet = BookletService.create_booklet("A0000001", total_pages=5)
    _approved(student, admin, booklet)
    BookletService.update_damaged_pages(booklet.id, [1])
    _approved(other_student, admin, booklet)

    rows = pdf.booklet_report_rows(booklet.id)

    assert [row[1] for row in rows] == ["1", "2", "3"]
    assert rows[0][4] == "Rohan Mehta"
    assert rows[0][6] == "New Application"
    assert rows[1][4] == "DAMAGED"
    assert rows[2][2] == "A0000003"


def test_report_needs_applications(db):
    booklet = BookletService.create_booklet("A0000001", total_pages=5)
    with pytest.raises(ValidationError, match="No applications"):
        pdf.render_booklet_report(booklet.id)


def test_render_booklet_report(db, student, admin):
    booklet = BookletService.create_booklet("A0000001", total_pages=5)
    _approved(student, admin, booklet)

    data = pdf.render_booklet_report(booklet.id, generated_at=datetime(2024, 6, 1, 9, 30))

    assert data.startswith(b"%PDF")


class TestPdfRoutes:
    def test_overlay_download(self, client, student, admin, login):
        booklet = BookletService.create_booklet("A0807551")
        application = _approved(student, admin, booklet)

        login(admin)
        response = client.get(f"/applications/{application.id}/overlay.pdf")

        assert response.status_code == 200
        assert response.mimetype == "application/pdf"
        assert "concession-A0807551.pdf" in response.headers["Content-Disposition"]
        assert response.data.startswith(b"%PDF")

    def test_overlay_is_admin_only(self, client, student, admin, login):
        booklet = BookletService.create_booklet("A0807551")
        application = _approved(student, admin, booklet)

        login(student)
        assert client.get(f"/applications/{application.id}/overlay.pdf").status_code == 403

    def test_report_download(self, client, student, admin, login):
        booklet = BookletService.create_booklet("A0000001", total_pages=5)
        _approved(student, admin, booklet)

        login(admin)
        response = client.get(f"/admin/booklets/{booklet.id}/report.pdf")

        assert response.status_code == 200
        assert response.mimetype == "application/pdf"

    def test_empty_report_is_a_bad_request(self, client, admin, login):
        booklet = BookletService.create_booklet("A0000001", total_pages=5)

        login(admin)
        response = client.get(f"/admin/booklets/{booklet.id}/report.pdf")

        assert response.status_code == 400
        assert response.get_json()["field"] == "booklet_id"
