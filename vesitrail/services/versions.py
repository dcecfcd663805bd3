"""Dotted version strings of any length (``1.2``, ``1.2.0``, ``v2.0.1``)."""

from vesitrail.exceptions import ParseError


def strip_tag(tag_name: str) -> str:
    """Release tag -> version, e.g. ``v1.4.0`` -> ``1.4.0``."""
    tag_name = (tag_name or "").strip()
    return tag_name[1:] if tag_name[:1] in ("v", "V") else tag_name


def _segments(version: str) -> list[int]:
    text = strip_tag(version)
    if not text:
        raise ParseError(f"Invalid version: {version!r}")
    try:
        return [int(part) for part in text.split(".")]
    except ValueError:
        raise ParseError(f"Invalid version: {version!r}")


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as *a* is older than, equal to or newer than *b*.

    Missing segments count as zero, so ``1.2`` equals ``1.2.0``.
    """
    left, right = _segments(a), _segments(b)
    for i in range(max(len(left), len(right))):
        x = left[i] if i < len(left) else 0
        y = right[i] if i < len(right) else 0
        if x < y:
            return -1
        if x > y:
            return 1
    return 0


def is_newer(candidate: str, current: str) -> bool:
    return compare_versions(current, candidate) < 0
