"""Critical selector selection.

Walks the stylesheet, decides for every selector of every style rule whether
it styles something inside the viewport and prunes the tree accordingly.
Visibility questions are answered by a :class:`VisibilityProbe`, usually a
live browser page.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Set, Tuple

from foldcss.core.errors import QueryError
from foldcss.core.logging import get_logger
from foldcss.css.classifier import RuleClass, classify
from foldcss.css.matchers import ForceIncludeMatcher, InteractiveStateExcluder, query_selector_for
from foldcss.css.media import Viewport
from foldcss.css.stylesheet import BlockKind, Node, PlainRule, StyleDocument

logger = get_logger(__name__)

DEFAULT_CLEARING_PROPERTIES = ("clear", "float", "overflow", "overflow-x", "overflow-y")


class VisibilityProbe(Protocol):
    """Answers layout questions about the rendered page."""

    async def is_above_fold(self, selector: str) -> bool:
        """True if an element matched by ``selector`` intersects the viewport."""

    async def clearing_shifts_layout(
        self,
        selector: str,
        properties: Sequence[str],
        critical_selectors: Sequence[str],
    ) -> bool:
        """True if resetting ``properties`` on ``selector``'s elements moves a tracked element across the fold."""


@dataclass
class SelectionOptions:
    strict: bool = False
    keep_larger_media_queries: bool = False
    clearing_properties: Sequence[str] = field(default_factory=lambda: list(DEFAULT_CLEARING_PROPERTIES))
    query_concurrency: int = 8


@dataclass
class SelectionStats:
    selectors: int = 0
    kept: int = 0
    queried: int = 0
    failed_queries: int = 0
    self_clearing_kept: int = 0


async def select_critical(
    document: StyleDocument,
    probe: VisibilityProbe,
    viewport: Viewport,
    force_include: ForceIncludeMatcher,
    interactive_state_excluder: InteractiveStateExcluder,
    options: Optional[SelectionOptions] = None,
) -> StyleDocument:
    """Prune ``document`` in place to the selectors that matter above the fold."""

    options = options or SelectionOptions()
    stats = SelectionStats()

    rules: List[PlainRule] = []
    document.nodes = _collect_rules(document.nodes, viewport, options, rules)

    verdicts: Dict[str, bool] = {}
    queries: Dict[str, str] = {}
    for rule in rules:
        for selector in rule.selectors:
            if selector in verdicts or selector in queries:
                continue
            if interactive_state_excluder.matches(selector):
                verdicts[selector] = False
            elif force_include.matches(selector):
                verdicts[selector] = True
            else:
                query = query_selector_for(selector, strict=options.strict)
                if query is None:
                    verdicts[selector] = False
                else:
                    queries[selector] = query

    verdicts.update(await _query_visibility(probe, queries, options.query_concurrency, stats))

    rescued = await _self_clearing_rescues(probe, rules, verdicts, queries, options, stats)

    for rule in rules:
        stats.selectors += len(rule.selectors)
        rule.selectors = [
            selector for selector in rule.selectors if verdicts.get(selector) or (id(rule), selector) in rescued
        ]
        stats.kept += len(rule.selectors)

    document.nodes = _drop_empty(document.nodes)
    logger.info(
        "critical_selection_completed",
        selectors=stats.selectors,
        kept=stats.kept,
        queried=stats.queried,
        failed_queries=stats.failed_queries,
        self_clearing_kept=stats.self_clearing_kept,
    )
    return document


def _collect_rules(
    nodes: List[Node],
    viewport: Viewport,
    options: SelectionOptions,
    rules: List[PlainRule],
) -> List[Node]:
    kept: List[Node] = []
    for node in nodes:
        rule_class = classify(node, viewport, options.keep_larger_media_queries)
        if rule_class is RuleClass.PLAIN:
            rules.append(node)
        elif rule_class in (RuleClass.NON_CRITICAL, RuleClass.UNMATCHED_MEDIA):
            logger.debug("at_rule_dropped", name=node.name, prelude=node.prelude, rule_class=rule_class.name)
            continue
        elif rule_class is RuleClass.CONTAINER:
            node.body = _collect_rules(node.body, viewport, options, rules)
        kept.append(node)
    return kept


async def _query_visibility(
    probe: VisibilityProbe,
    queries: Dict[str, str],
    concurrency: int,
    stats: SelectionStats,
) -> Dict[str, bool]:
    """Ask the probe about every distinct query selector concurrently."""

    semaphore = asyncio.Semaphore(max(concurrency, 1))

    async def run(query: str) -> Tuple[str, bool]:
        async with semaphore:
            try:
                return query, await probe.is_above_fold(query)
            except QueryError as exc:
                stats.failed_queries += 1
                logger.warning("selector_query_failed", selector=query, error=str(exc))
                return query, False

    distinct = sorted(set(queries.values()))
    stats.queried = len(distinct)
    tasks = [asyncio.ensure_future(run(query)) for query in distinct]
    try:
        answers = dict(await asyncio.gather(*tasks))
    except BaseException:
        # stop the queries still in flight
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return {selector: answers[query] for selector, query in queries.items()}


async def _self_clearing_rescues(
    probe: VisibilityProbe,
    rules: List[PlainRule],
    verdicts: Dict[str, bool],
    queries: Dict[str, str],
    options: SelectionOptions,
    stats: SelectionStats,
) -> Set[Tuple[int, str]]:
    """Find below-the-fold selectors whose clearing styles still shape the fold.

    Runs after every visibility query has been answered since it compares
    against the already critical elements.
    """

    clearing = {name.lower() for name in options.clearing_properties}
    if not clearing:
        return set()

    critical_queries = sorted({queries[selector] for selector in queries if verdicts.get(selector)})
    rescued: Set[Tuple[int, str]] = set()

    for rule in rules:
        properties = [d.property for d in rule.declarations if d.property in clearing]
        if not properties:
            continue
        for selector in rule.selectors:
            if verdicts.get(selector) or selector not in queries:
                continue
            try:
                shifts = await probe.clearing_shifts_layout(queries[selector], properties, critical_queries)
            except QueryError as exc:
                stats.failed_queries += 1
                logger.warning("self_clearing_query_failed", selector=selector, error=str(exc))
                continue
            if shifts:
                logger.debug("self_clearing_selector_kept", selector=selector, properties=properties)
                stats.self_clearing_kept += 1
                rescued.add((id(rule), selector))
    return rescued


def _drop_empty(nodes: List[Node]) -> List[Node]:
    kept: List[Node] = []
    for node in nodes:
        if isinstance(node, PlainRule):
            if node.selectors:
                kept.append(node)
            continue
        if node.raw is None and node.block_kind is BlockKind.RULES:
            node.body = _drop_empty(node.body or [])
            if not node.body:
                continue
        kept.append(node)
    return kept
