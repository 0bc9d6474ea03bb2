"""Retention classes for top-level stylesheet nodes."""

from __future__ import annotations

from enum import IntEnum
from typing import Optional, Tuple

from foldcss.css.media import media_query_matches
from foldcss.css.stylesheet import RULE_BLOCK_AT_RULES, AtRule, BlockKind, Node, PlainRule, is_keyframes

OPAQUE_AT_RULES = frozenset({"charset", "import", "namespace"})
NON_CRITICAL_AT_RULES = frozenset({"page"})


class RuleClass(IntEnum):
    """How the selection pass treats a node.

    OPAQUE (0) is kept verbatim, DECLARATIONS (1) is kept and left to the
    unused-reference removers, NON_CRITICAL (2) is always dropped, CONTAINER
    (3) is recursed into and UNMATCHED_MEDIA (4) is dropped without recursing.
    """

    OPAQUE = 0
    DECLARATIONS = 1
    NON_CRITICAL = 2
    CONTAINER = 3
    UNMATCHED_MEDIA = 4
    PLAIN = 5


def classify(
    node: Node,
    viewport: Optional[Tuple[int, int]] = None,
    keep_larger_media_queries: bool = False,
) -> RuleClass:
    """Return the retention class of ``node``.

    ``viewport`` is ``(width, height)``; without it ``@media`` rules are never
    pre-filtered.
    """

    if isinstance(node, PlainRule):
        return RuleClass.PLAIN

    name = node.name.lower()
    if name in OPAQUE_AT_RULES:
        return RuleClass.OPAQUE
    if name == "font-face" or is_keyframes(name):
        return RuleClass.DECLARATIONS
    if name in NON_CRITICAL_AT_RULES:
        return RuleClass.NON_CRITICAL
    if name in RULE_BLOCK_AT_RULES and _has_rule_block(node):
        if name == "media" and viewport is not None:
            width, height = viewport
            if not media_query_matches(node.prelude, width, height, keep_larger_media_queries):
                return RuleClass.UNMATCHED_MEDIA
        return RuleClass.CONTAINER
    # unknown syntax is kept untouched
    return RuleClass.OPAQUE


def _has_rule_block(node: AtRule) -> bool:
    return node.raw is None and node.block_kind is BlockKind.RULES
