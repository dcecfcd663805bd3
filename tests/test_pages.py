import pytest

from vesitrail.exceptions import FormatError, NoPagesAvailable, OutOfRangeError
from vesitrail.models import BookletStatus
from vesitrail.services import pages


def test_display_and_index_are_inverse():
    assert pages.display_number(0) == 1
    assert pages.page_index(1, 50) == 0
    assert pages.page_index("50", 50) == 49


@pytest.mark.parametrize("number", [0, 51, -1, "0"])
def test_page_number_out_of_range(number):
    with pytest.raises(OutOfRangeError):
        pages.page_index(number, 50)


@pytest.mark.parametrize("number", ["x", "1.5", None, True, 2.0])
def test_page_number_not_an_integer(number):
    with pytest.raises(FormatError):
        pages.page_index(number, 50)


def test_normalize_damaged_pages_sorts_and_dedupes():
    assert pages.normalize_damaged_pages([7, 2, 7, "3"], 50) == [2, 3, 7]


def test_normalize_damaged_pages_rejects_out_of_range():
    with pytest.raises(OutOfRangeError):
        pages.normalize_damaged_pages([50], 50)


def test_next_available_page_skips_damaged_and_assigned():
    assert pages.next_available_page(50, damaged=[0, 2], assigned={1}) == 3


def test_next_available_page_on_full_booklet():
    with pytest.raises(NoPagesAvailable):
        pages.next_available_page(3, damaged=[1], assigned={0, 2})


def test_free_page_count_ignores_overlap():
    # A damaged page that also has an application is counted once
    assert pages.free_page_count(5, damaged=[1], assigned={1, 2}) == 3


def test_booklet_status_derivation():
    assert pages.booklet_status(5, [], set()) == BookletStatus.AVAILABLE
    assert pages.booklet_status(5, [], {0}) == BookletStatus.IN_USE
    assert pages.booklet_status(5, [0, 1], {2, 3, 4}) == BookletStatus.EXHAUSTED
    assert pages.booklet_status(5, [], {0}, is_damaged=True) == BookletStatus.DAMAGED


def test_all_pages_damaged_is_exhausted():
    assert pages.booklet_status(2, [0, 1], set()) == BookletStatus.EXHAUSTED
