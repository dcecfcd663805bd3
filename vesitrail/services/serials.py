"""Booklet serial numbers: one uppercase letter followed by zero-padded digits."""

import re

from vesitrail.exceptions import FormatError

_SERIAL_RE = re.compile(r"^([A-Z])(\d+)$")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_serial(serial: str) -> str:
    """Upper-case *serial* and drop any whitespace."""
    return _WHITESPACE_RE.sub("", serial or "").upper()


def parse_serial(serial: str) -> tuple[str, str]:
    """Split a serial like ``A0807551`` into ``("A", "0807551")``.

    Raises FormatError for anything that is not one letter followed by digits.
    """
    normalized = normalize_serial(serial)
    if not normalized:
        raise FormatError("Serial start number is required", field="serial_start_number")

    match = _SERIAL_RE.match(normalized)
    if not match:
        raise FormatError(
            "Invalid serial format. Use one letter followed by numbers (e.g., A0807551)",
            field="serial_start_number",
        )
    return match.group(1), match.group(2)


def _render(prefix: str, number: int, width: int) -> str:
    # zfill pads to the input width but never truncates a wider number
    return f"{prefix}{str(number).zfill(width)}"


def serial_for_page(start_serial: str, page_index: int) -> str:
    """Printed serial of the page at zero-based *page_index*."""
    prefix, digits = parse_serial(start_serial)
    return _render(prefix, int(digits) + page_index, len(digits))


def compute_end_serial(start_serial: str, total_pages: int) -> str:
    """Serial of the last page of a booklet starting at *start_serial*.

    >>> compute_end_serial("A0807551", 50)
    'A0807600'
    >>> compute_end_serial("A99", 50)
    'A148'
    """
    if total_pages < 1:
        raise FormatError("A booklet must have at least one page", field="total_pages")
    return serial_for_page(start_serial, total_pages - 1)


def serial_number(serial: str) -> int:
    """Numeric part of a serial, used for range comparisons."""
    return int(parse_serial(serial)[1])
