"""Page allocation rules for concession booklets.

Pages are addressed by a zero-based index everywhere inside the application.
People (admins filling in forms, printed reports) see one-based page numbers;
``display_number`` and ``page_index`` are the only places that translate.
"""

from vesitrail.exceptions import FormatError, NoPagesAvailable, OutOfRangeError
from vesitrail.models.booklet import BookletStatus


def display_number(index: int) -> int:
    """Zero-based page index -> one-based page number."""
    return index + 1


def page_index(number, total_pages: int) -> int:
    """One-based page number (as typed by a person) -> zero-based index."""
    index = _as_int(number) - 1
    _check_range(index, total_pages, shown=number)
    return index


def _as_int(value) -> int:
    if isinstance(value, bool):
        raise FormatError(f"Invalid page number: {value!r}", field="damaged_pages")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise FormatError(f"Invalid page number: {value!r}", field="damaged_pages")


def _check_range(index: int, total_pages: int, shown=None) -> None:
    if not 0 <= index < total_pages:
        shown = display_number(index) if shown is None else shown
        raise OutOfRangeError(
            f"Page {shown} is outside the booklet (1-{total_pages})",
            field="damaged_pages",
        )


def normalize_damaged_pages(indices, total_pages: int) -> list[int]:
    """Validate zero-based *indices* and return them sorted and de-duplicated."""
    result = set()
    for value in indices or []:
        index = _as_int(value)
        _check_range(index, total_pages)
        result.add(index)
    return sorted(result)


def next_available_page(total_pages: int, damaged, assigned) -> int:
    """Lowest page index that is neither damaged nor already assigned."""
    taken = set(damaged or ()) | set(assigned or ())
    for index in range(total_pages):
        if index not in taken:
            return index
    raise NoPagesAvailable()


def free_page_count(total_pages: int, damaged, assigned) -> int:
    taken = {i for i in set(damaged or ()) | set(assigned or ()) if 0 <= i < total_pages}
    return total_pages - len(taken)


def booklet_status(total_pages: int, damaged, assigned, is_damaged: bool = False) -> str:
    """Derive a booklet's status from its pages.

    A booklet flagged damaged by an admin stays Damaged regardless of use.
    """
    if is_damaged:
        return BookletStatus.DAMAGED
    if free_page_count(total_pages, damaged, assigned) == 0:
        return BookletStatus.EXHAUSTED
    if assigned:
        return BookletStatus.IN_USE
    return BookletStatus.AVAILABLE
