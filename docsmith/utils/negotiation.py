"""
Accept header negotiation.
"""

from typing import List, Optional, Tuple

from .error_handling import NotAcceptableError


def parse_accept(header: Optional[str]) -> List[Tuple[str, float]]:
    """
    Parse an Accept header into ``(media range, quality)`` pairs.

    Entries with an unparseable quality are given quality 0.
    """
    ranges = []
    for entry in (header or "").split(","):
        parts = [part.strip() for part in entry.split(";")]
        media_range = parts[0].lower()
        if not media_range:
            continue

        quality = 1.0
        for param in parts[1:]:
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    quality = float(value.strip())
                except ValueError:
                    quality = 0.0
        ranges.append((media_range, quality))
    return ranges


def _specificity(media_range: str, media_type: str) -> int:
    """How closely ``media_range`` matches ``media_type``: 2 exact, 1 ``type/*``, 0 ``*/*``, -1 no match."""
    if media_range == media_type:
        return 2
    if media_range == f"{media_type.split('/')[0]}/*":
        return 1
    if media_range in ("*/*", "*"):
        return 0
    return -1


def is_acceptable(header: Optional[str], media_type: str) -> bool:
    """
    Whether ``media_type`` satisfies the Accept header. A missing header accepts anything.

    The most specific matching range decides, so ``text/html;q=0, */*``
    refuses ``text/html``.
    """
    ranges = parse_accept(header)
    if not ranges:
        return True

    best_specificity, best_quality = -1, 0.0
    for media_range, quality in ranges:
        specificity = _specificity(media_range, media_type)
        if specificity > best_specificity:
            best_specificity, best_quality = specificity, quality
    return best_specificity >= 0 and best_quality > 0


def ensure_acceptable(header: Optional[str], media_type: str) -> None:
    """
    Raises:
        NotAcceptableError: If the Accept header excludes ``media_type``
    """
    if not is_acceptable(header, media_type):
        raise NotAcceptableError(header or "")
