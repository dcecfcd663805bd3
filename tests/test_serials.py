import pytest

from vesitrail.exceptions import FormatError
from vesitrail.services import serials


def test_normalize_strips_whitespace_and_uppercases():
    assert serials.normalize_serial(" a08 07551 ") == "A0807551"


def test_end_serial_for_standard_booklet():
    assert serials.compute_end_serial("A0807551", 50) == "A0807600"


def test_end_serial_keeps_zero_padding():
    assert serials.compute_end_serial("B0000001", 50) == "B0000050"


def test_end_serial_grows_past_input_width():
    assert serials.compute_end_serial("A99", 50) == "A148"


def test_single_page_booklet_ends_where_it_starts():
    assert serials.compute_end_serial("C0100", 1) == "C0100"


def test_serial_for_page():
    assert serials.serial_for_page("A0807551", 0) == "A0807551"
    assert serials.serial_for_page("A0807551", 9) == "A0807560"


@pytest.mark.parametrize("bad", ["", "   ", "0807551", "AB123", "A12B", "A-12", "A"])
def test_invalid_serials_raise_format_error(bad):
    with pytest.raises(FormatError) as exc:
        serials.parse_serial(bad)
    assert exc.value.field == "serial_start_number"


def test_empty_serial_message():
    with pytest.raises(FormatError, match="required"):
        serials.compute_end_serial("", 50)


def test_zero_pages_rejected():
    with pytest.raises(FormatError):
        serials.compute_end_serial("A0807551", 0)


def test_serial_number():
    assert serials.serial_number("A0807551") == 807551
