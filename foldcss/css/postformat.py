"""Post-formatting passes applied after critical selection.

Every pass only removes declarations or rules and cleans up whatever it
leaves empty. The two reference-based removers run last since the earlier
passes may delete the only reference to a font family or a keyframes name.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence, Set

from foldcss.core.logging import get_logger
from foldcss.css.stylesheet import (
    AtRule,
    BlockKind,
    Declaration,
    Node,
    PlainRule,
    StyleDocument,
    is_keyframes,
    iter_declarations,
    remove_empty_nodes,
)

logger = get_logger(__name__)

_BASE64_PAYLOAD_RE = re.compile(r"data:[^,]*?;\s*base64\s*,([^)'\"\s]*)", re.IGNORECASE)
_ANIMATION_PROPERTY_RE = re.compile(r"^(?:-[a-z]+-)?animation(?:-name)?$")
_FONT_SIZE_RE = re.compile(
    r"^(?:[+-]?[0-9]*\.?[0-9]+[a-z%]*(?:/\S+)?|(?:xx-|x-)?(?:small|large)|medium|larger|smaller|xxx-large)$"
)
_CSS_WIDE_KEYWORDS = frozenset({"inherit", "initial", "unset", "revert", "revert-layer", "none"})
_ANIMATION_KEYWORDS = frozenset(
    {
        "infinite", "normal", "reverse", "alternate", "alternate-reverse", "forwards", "backwards",
        "both", "running", "paused", "linear", "ease", "ease-in", "ease-out", "ease-in-out",
        "step-start", "step-end",
    }
)


def post_format(
    document: StyleDocument,
    properties_to_remove: Sequence[str],
    max_embedded_base64_length: int,
) -> StyleDocument:
    """Run every pass over ``document`` in place and return it."""

    document.nodes = remove_unwanted_properties(document.nodes, properties_to_remove)
    document.nodes = remove_embedded_base64(document.nodes, max_embedded_base64_length)
    document.nodes = remove_unused_font_faces(document.nodes)
    document.nodes = remove_unused_keyframes(document.nodes)
    return document


def remove_unwanted_properties(nodes: List[Node], patterns: Sequence[str]) -> List[Node]:
    """Delete declarations whose property matches any of ``patterns``."""

    if not patterns:
        return nodes
    compiled = [re.compile(pattern, re.IGNORECASE) for pattern in patterns]

    def unwanted(declaration: Declaration) -> bool:
        return any(regex.search(declaration.property) for regex in compiled)

    removed = _filter_declarations(nodes, unwanted)
    logger.debug("unwanted_properties_removed", count=removed)
    return remove_empty_nodes(nodes)


def remove_embedded_base64(nodes: List[Node], max_length: int) -> List[Node]:
    """Delete declarations embedding a base64 payload longer than ``max_length``."""

    def oversized(declaration: Declaration) -> bool:
        return any(len(match.group(1)) > max_length for match in _BASE64_PAYLOAD_RE.finditer(declaration.value))

    removed = _filter_declarations(nodes, oversized)
    logger.debug("embedded_base64_removed", count=removed, max_length=max_length)
    return remove_empty_nodes(nodes)


def remove_unused_font_faces(nodes: List[Node]) -> List[Node]:
    """Drop ``@font-face`` rules whose family nothing refers to."""

    referenced: Set[str] = set()
    for declaration in _referencing_declarations(nodes):
        if declaration.property == "font-family":
            referenced.update(_split_families(declaration.value))
        elif declaration.property == "font":
            referenced.update(_font_shorthand_families(declaration.value))

    def unused(node: AtRule) -> bool:
        if node.name != "font-face" or node.block_kind is not BlockKind.DECLARATIONS:
            return False
        families = [d.value for d in node.body or [] if d.property == "font-family"]
        return not any(_normalize_family(family) in referenced for family in families)

    return _drop_at_rules(nodes, unused, "font_face_removed")


def remove_unused_keyframes(nodes: List[Node]) -> List[Node]:
    """Drop ``@keyframes`` rules whose name no animation refers to."""

    referenced: Set[str] = set()
    for declaration in _referencing_declarations(nodes):
        if _ANIMATION_PROPERTY_RE.match(declaration.property):
            referenced.update(_animation_names(declaration.value))

    def unused(node: AtRule) -> bool:
        return is_keyframes(node.name) and _unquote(node.prelude) not in referenced

    return _drop_at_rules(nodes, unused, "keyframes_removed")


def _filter_declarations(nodes: Iterable[Node], predicate) -> int:
    removed = 0
    for node in nodes:
        if isinstance(node, PlainRule):
            before = len(node.declarations)
            node.declarations = [d for d in node.declarations if not predicate(d)]
            removed += before - len(node.declarations)
        elif node.raw is None and node.body:
            if node.block_kind is BlockKind.DECLARATIONS:
                before = len(node.body)
                node.body = [d for d in node.body if not predicate(d)]
                removed += before - len(node.body)
            elif node.block_kind is BlockKind.RULES:
                removed += _filter_declarations(node.body, predicate)
    return removed


def _drop_at_rules(nodes: List[Node], predicate, event: str) -> List[Node]:
    kept: List[Node] = []
    for node in nodes:
        if isinstance(node, AtRule) and node.raw is None:
            if predicate(node):
                logger.debug(event, name=node.name, prelude=node.prelude)
                continue
            if node.block_kind is BlockKind.RULES and not is_keyframes(node.name):
                node.body = _drop_at_rules(node.body or [], predicate, event)
        kept.append(node)
    return remove_empty_nodes(kept)


def _referencing_declarations(nodes: Iterable[Node]):
    # references made from inside @font-face or @keyframes do not count
    return iter_declarations(nodes, skip_at_rules=lambda name: name == "font-face" or is_keyframes(name))


def _split_top_level_commas(value: str) -> List[str]:
    parts, depth, current = [], 0, []
    for char in value:
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


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


def _normalize_family(value: str) -> str:
    return " ".join(_unquote(value).split()).lower()


def _split_families(value: str) -> Set[str]:
    return {_normalize_family(part) for part in _split_top_level_commas(value) if part.strip()}


def _font_shorthand_families(value: str) -> Set[str]:
    """Families from a ``font`` shorthand: everything after the size token."""

    parts = _split_top_level_commas(value)
    words = parts[0].split()
    size_index = max((i for i, word in enumerate(words) if _FONT_SIZE_RE.match(word.lower())), default=-1)
    first_family = " ".join(words[size_index + 1:]) if size_index >= 0 else parts[0]
    families = _split_families(",".join([first_family] + parts[1:]))
    return families - _CSS_WIDE_KEYWORDS - {""}


def _animation_names(value: str) -> Set[str]:
    names: Set[str] = set()
    for item in _split_top_level_commas(value):
        for token in re.findall(r"\"[^\"]*\"|'[^']*'|[^\s]+", item):
            name = _unquote(token)
            if name and name.lower() not in _ANIMATION_KEYWORDS and name.lower() not in _CSS_WIDE_KEYWORDS:
                names.add(name)
    return names
