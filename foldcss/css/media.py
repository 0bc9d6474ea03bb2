"""Media query pre-filter.

Decides whether an ``@media`` prelude could possibly match a screen of the
requested viewport. Only clear-cut cases are rejected (non-screen media
types and lower bounds larger than the viewport); everything that cannot be
understood is kept.
"""

from __future__ import annotations

import re
from typing import NamedTuple, Optional

NON_SCREEN_MEDIA_TYPES = frozenset(
    {"print", "speech", "aural", "braille", "embossed", "tty", "tv", "projection", "handheld"}
)
SCREEN_MEDIA_TYPES = frozenset({"all", "screen"})

_LOWER_BOUND_FEATURES = {
    "min-width": "width",
    "min-device-width": "width",
    "min-height": "height",
    "min-device-height": "height",
}
_FEATURE_RE = re.compile(r"\(\s*([a-z-]+)\s*(?::\s*([^)]+?))?\s*\)", re.IGNORECASE)
_LENGTH_RE = re.compile(r"^([0-9]*\.?[0-9]+)\s*(px|em|rem)?$", re.IGNORECASE)

ROOT_FONT_SIZE_PX = 16


class Viewport(NamedTuple):
    width: int
    height: int


def media_query_matches(prelude: str, width: int, height: int, keep_larger: bool = False) -> bool:
    """Return False only when no query in the list can match the viewport."""

    queries = [query.strip() for query in _split_query_list(prelude)]
    queries = [query for query in queries if query]
    if not queries:
        return True
    return any(_query_matches(query, width, height, keep_larger) for query in queries)


def _split_query_list(prelude: str) -> list[str]:
    parts, depth, current = [], 0, []
    for char in prelude:
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return parts


def _query_matches(query: str, width: int, height: int, keep_larger: bool) -> bool:
    lowered = query.lower()
    head = _FEATURE_RE.sub("", lowered)
    words = [word for word in re.split(r"\s+", head) if word and word != "and"]

    inverse = False
    if words and words[0] in {"not", "only"}:
        inverse = words[0] == "not"
        words = words[1:]
    media_type = words[0] if words else None
    features = _FEATURE_RE.findall(lowered)

    if inverse:
        # "not screen" can never match a screen; other negations are kept
        return not (media_type in SCREEN_MEDIA_TYPES and not features)

    if media_type in NON_SCREEN_MEDIA_TYPES:
        return False
    if media_type is not None and media_type not in SCREEN_MEDIA_TYPES:
        return True

    if keep_larger:
        return True

    viewport = {"width": width, "height": height}
    for name, value in features:
        dimension = _LOWER_BOUND_FEATURES.get(name)
        if dimension is None or not value:
            continue
        pixels = _to_pixels(value)
        if pixels is not None and pixels > viewport[dimension]:
            return False
    return True


def _to_pixels(value: str) -> Optional[float]:
    match = _LENGTH_RE.match(value.strip())
    if not match:
        return None
    number, unit = float(match.group(1)), (match.group(2) or "px").lower()
    if unit in {"em", "rem"}:
        return number * ROOT_FONT_SIZE_PX
    return number
