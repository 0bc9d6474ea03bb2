"""Stylesheet tree used by the extraction pipeline.

CSS text is tokenized and parsed with tinycss2 and converted into a small
tree of dataclasses (:class:`PlainRule`, :class:`AtRule`,
:class:`Declaration`). Transforms mutate that tree; :func:`serialize` turns
it back into CSS text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Union

import tinycss2
from tinycss2.ast import WhitespaceToken

from foldcss.core.errors import SerializationError
from foldcss.core.logging import get_logger

logger = get_logger(__name__)

# At-rules whose block holds nested style rules.
RULE_BLOCK_AT_RULES = frozenset({"media", "supports", "document", "-moz-document", "layer", "container"})
# At-rules whose block holds declarations.
DECLARATION_BLOCK_AT_RULES = frozenset({"font-face", "page"})

INDENT = "  "


class BlockKind(str, Enum):
    """What an at-rule carries after its prelude."""

    NONE = "none"
    DECLARATIONS = "declarations"
    RULES = "rules"


@dataclass
class Declaration:
    property: str
    value: str
    important: bool = False


@dataclass
class PlainRule:
    selectors: List[str]
    declarations: List[Declaration] = field(default_factory=list)


@dataclass
class AtRule:
    """An ``@name prelude`` rule.

    ``body`` is a list of :class:`Declaration` for ``DECLARATIONS`` blocks and
    a list of nodes for ``RULES`` blocks. ``raw`` keeps the verbatim source of
    rules that are never inspected (``@import``, unknown at-rules) and takes
    precedence over the other fields when serializing.
    """

    name: str
    prelude: str = ""
    block_kind: BlockKind = BlockKind.NONE
    body: Optional[list] = None
    raw: Optional[str] = None


Node = Union[PlainRule, AtRule]


@dataclass
class StyleDocument:
    nodes: List[Node] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.nodes


def is_keyframes(name: str) -> bool:
    """True for ``keyframes`` and its vendor-prefixed spellings."""

    return name.lower().endswith("keyframes")


def parse_stylesheet(css: str) -> StyleDocument:
    """Parse CSS text. Parse errors are logged and the offending rule skipped."""

    rules = tinycss2.parse_stylesheet(css or "", skip_comments=True, skip_whitespace=True)
    return StyleDocument(nodes=_convert_rules(rules))


def _convert_rules(rules: Iterable) -> List[Node]:
    nodes: List[Node] = []
    for rule in rules:
        if rule.type == "qualified-rule":
            node = _convert_style_rule(rule)
        elif rule.type == "at-rule":
            node = _convert_at_rule(rule)
        else:
            if rule.type == "error":
                logger.warning("css_parse_error", kind=rule.kind, message=rule.message, line=rule.source_line)
            continue
        if node is not None:
            nodes.append(node)
    return nodes


def _convert_style_rule(rule) -> Optional[PlainRule]:
    selectors = split_selectors(rule.prelude)
    if not selectors:
        logger.warning("css_rule_without_selector", line=rule.source_line)
        return None
    return PlainRule(selectors=selectors, declarations=_convert_declarations(rule.content))


def _convert_at_rule(rule) -> AtRule:
    name = rule.lower_at_keyword
    prelude = _compact(rule.prelude)

    if rule.content is None:
        return AtRule(name=name, prelude=prelude, raw=rule.serialize())

    if name in RULE_BLOCK_AT_RULES or is_keyframes(name):
        children = tinycss2.parse_rule_list(rule.content, skip_comments=True, skip_whitespace=True)
        return AtRule(name=name, prelude=prelude, block_kind=BlockKind.RULES, body=_convert_rules(children))

    if name in DECLARATION_BLOCK_AT_RULES:
        return AtRule(
            name=name,
            prelude=prelude,
            block_kind=BlockKind.DECLARATIONS,
            body=_convert_declarations(rule.content),
        )

    return AtRule(name=name, prelude=prelude, raw=rule.serialize())


def _convert_declarations(content: Optional[list]) -> List[Declaration]:
    declarations: List[Declaration] = []
    items = tinycss2.parse_declaration_list(content or [], skip_comments=True, skip_whitespace=True)
    for item in items:
        if item.type == "declaration":
            # custom properties are case-sensitive
            name = item.name if item.name.startswith("--") else item.lower_name
            declarations.append(Declaration(property=name, value=_compact(item.value), important=item.important))
        elif item.type == "error":
            logger.warning("css_declaration_error", kind=item.kind, message=item.message, line=item.source_line)
        else:
            logger.debug("css_nested_rule_skipped", type=item.type, line=item.source_line)
    return declarations


def split_selectors(prelude: Sequence) -> List[str]:
    """Split a style rule prelude on its top-level commas."""

    groups: List[list] = [[]]
    for token in prelude:
        if token.type == "literal" and token.value == ",":
            groups.append([])
        else:
            groups[-1].append(token)
    return [text for text in (_compact(group) for group in groups) if text]


def _compact(tokens: Sequence) -> str:
    """Serialize tokens with top-level whitespace collapsed and comments dropped."""

    cleaned = []
    for token in tokens:
        if token.type == "comment":
            continue
        if token.type == "whitespace":
            token = WhitespaceToken(token.source_line, token.source_column, " ")
        cleaned.append(token)
    return tinycss2.serialize(cleaned).strip()


def iter_declarations(nodes: Iterable[Node], skip_at_rules: Callable | None = None) -> Iterator[Declaration]:
    """Yield every declaration below ``nodes``.

    ``skip_at_rules`` is a predicate on at-rule names; matching at-rules are
    not descended into.
    """

    for node in nodes:
        if isinstance(node, PlainRule):
            yield from node.declarations
        elif node.raw is None and node.body:
            if skip_at_rules is not None and skip_at_rules(node.name):
                continue
            if node.block_kind is BlockKind.DECLARATIONS:
                yield from node.body
            elif node.block_kind is BlockKind.RULES:
                yield from iter_declarations(node.body, skip_at_rules)


def remove_empty_nodes(nodes: List[Node]) -> List[Node]:
    """Drop rules left without selectors or declarations and blocks left empty."""

    kept: List[Node] = []
    for node in nodes:
        if isinstance(node, PlainRule):
            if node.selectors and node.declarations:
                kept.append(node)
            continue
        if node.raw is not None or node.block_kind is BlockKind.NONE:
            kept.append(node)
            continue
        if node.block_kind is BlockKind.RULES:
            node.body = remove_empty_nodes(node.body or [])
        if node.body:
            kept.append(node)
    return kept


def serialize(document: StyleDocument) -> str:
    """Write the document back as CSS text, one rule per block."""

    lines: List[str] = []
    for node in document.nodes:
        _emit_node(node, lines, 0)
    return "\n".join(lines) + "\n" if lines else ""


def _emit_node(node: Node, lines: List[str], depth: int) -> None:
    pad = INDENT * depth

    if isinstance(node, PlainRule):
        if not node.selectors:
            raise SerializationError("style rule has no selectors")
        lines.append(f"{pad}{', '.join(node.selectors)} {{")
        _emit_declarations(node.declarations, lines, depth + 1)
        lines.append(f"{pad}}}")
        return

    if not isinstance(node, AtRule):
        raise SerializationError(f"cannot serialize node of type {type(node).__name__}")
    if not node.name:
        raise SerializationError("at-rule without a name")

    if node.raw is not None:
        lines.append(pad + node.raw.strip())
        return

    head = f"{pad}@{node.name} {node.prelude}" if node.prelude else f"{pad}@{node.name}"
    if node.block_kind is BlockKind.NONE:
        lines.append(head + ";")
        return

    if not isinstance(node.body, list):
        raise SerializationError(f"@{node.name} block has no body")

    lines.append(head + " {")
    if node.block_kind is BlockKind.DECLARATIONS:
        _emit_declarations(node.body, lines, depth + 1)
    else:
        for child in node.body:
            _emit_node(child, lines, depth + 1)
    lines.append(f"{pad}}}")


def _emit_declarations(declarations: Sequence, lines: List[str], depth: int) -> None:
    pad = INDENT * depth
    for declaration in declarations:
        if not isinstance(declaration, Declaration) or not declaration.property:
            raise SerializationError(f"invalid declaration: {declaration!r}")
        suffix = " !important" if declaration.important else ""
        lines.append(f"{pad}{declaration.property}: {declaration.value}{suffix};")
