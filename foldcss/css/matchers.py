"""Selector matchers used before any rendering query is issued."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Pattern, Union

BASELINE_FORCE_INCLUDE = ("*", "*:before", "*:after", "html", "body")

INTERACTIVE_PSEUDO_CLASSES = ("hover", "active", "focus", "focus-within", "focus-visible")

_FLAG_BITS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}

# Pseudo-elements and :visited cannot be resolved by querySelectorAll; the
# decorated element decides visibility instead.
_STRIPPED_PSEUDO_RE = re.compile(
    r"::?(?:before|after|first-line|first-letter|selection|placeholder|marker|backdrop|visited)(?![\w-])",
    re.IGNORECASE,
)
_VENDOR_PSEUDO_RE = re.compile(r"::?-[a-z]+-[a-z-]+(?:\([^)]*\))?", re.IGNORECASE)


class MatchKind(str, Enum):
    EXACT = "exact"
    PATTERN = "pattern"


@dataclass(frozen=True)
class ForceIncludeEntry:
    """A force-include value that survives JSON transport.

    ``flags`` holds regex flag letters (``i``, ``m``, ``s``) for ``pattern``
    entries.
    """

    kind: MatchKind
    value: str
    flags: str = ""

    @classmethod
    def coerce(cls, raw: Union["ForceIncludeEntry", str, Pattern, dict]) -> "ForceIncludeEntry":
        if isinstance(raw, ForceIncludeEntry):
            return raw
        if isinstance(raw, str):
            return cls(MatchKind.EXACT, raw)
        if isinstance(raw, re.Pattern):
            flags = "".join(letter for letter, bit in _FLAG_BITS.items() if raw.flags & bit)
            return cls(MatchKind.PATTERN, raw.pattern, flags)
        if isinstance(raw, dict):
            return cls(MatchKind(raw.get("kind", MatchKind.EXACT)), raw["value"], raw.get("flags", ""))
        raise TypeError(f"unsupported force include value: {raw!r}")

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "value": self.value, "flags": self.flags}


class ForceIncludeMatcher:
    """Matches selectors that are critical regardless of the page."""

    def __init__(self, entries: Iterable = ()) -> None:
        coerced = [ForceIncludeEntry.coerce(entry) for entry in BASELINE_FORCE_INCLUDE]
        coerced.extend(ForceIncludeEntry.coerce(entry) for entry in entries)

        self.entries: List[ForceIncludeEntry] = coerced
        self._exact = {_normalize(entry.value) for entry in coerced if entry.kind is MatchKind.EXACT}
        self._patterns = [
            re.compile(entry.value, _compile_flags(entry.flags))
            for entry in coerced
            if entry.kind is MatchKind.PATTERN
        ]

    def matches(self, selector: str) -> bool:
        normalized = _normalize(selector)
        if normalized in self._exact:
            return True
        return any(pattern.search(normalized) for pattern in self._patterns)


class InteractiveStateExcluder:
    """Matches selectors that only apply after user interaction."""

    def __init__(self, pseudo_classes: Iterable[str] = INTERACTIVE_PSEUDO_CLASSES) -> None:
        names = "|".join(re.escape(name) for name in sorted(pseudo_classes, key=len, reverse=True))
        # single colon only; "::" would be a pseudo-element
        self._pattern = re.compile(rf"(?<!:):(?:{names})(?![\w-])", re.IGNORECASE)

    def matches(self, selector: str) -> bool:
        return bool(self._pattern.search(selector))


def query_selector_for(selector: str, strict: bool = False) -> Optional[str]:
    """Return the selector to hand to ``querySelectorAll``.

    Pseudo-elements and ``:visited`` are stripped so the decorated element is
    measured. Vendor-prefixed pseudos are stripped too, unless ``strict`` is
    set, in which case None is returned and the selector is not queried.
    """

    if _VENDOR_PSEUDO_RE.search(selector):
        if strict:
            return None
        selector = _VENDOR_PSEUDO_RE.sub("", selector)

    stripped = _STRIPPED_PSEUDO_RE.sub("", selector).strip()
    if not stripped or stripped[-1] in ">+~":
        stripped = f"{stripped} *".strip() if stripped else "*"
    return stripped


def _normalize(selector: str) -> str:
    return " ".join(selector.split())


def _compile_flags(letters: str) -> int:
    flags = 0
    for letter in letters:
        flags |= _FLAG_BITS.get(letter, 0)
    return flags
