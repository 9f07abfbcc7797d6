"""Anonymization plan computation.

A plan is the ordered ``{table: [target, ...]}`` work list of one
anonymization run, computed from the configuration and the optional
include/exclude target selectors.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from dbanonimize.config import AnonymizationConfig
from dbanonimize.errors import InvalidTargetError, UsageError

logger = logging.getLogger(__name__)

Plan = Dict[str, List[str]]


def parse_target(selector: str) -> Tuple[str, Optional[str]]:
    """Split a target selector.

    Args:
        selector: "TABLE" or "TABLE.TARGET", split on the first dot.

    Returns:
        (table, target) tuple, target being None for a whole table.

    Raises:
        InvalidTargetError: If the selector is empty or has an empty part.

    Example:
        >>> parse_target("users.email")
        ('users', 'email')
        >>> parse_target("users")
        ('users', None)
    """
    if not isinstance(selector, str) or not selector:
        raise InvalidTargetError(str(selector), "selector must be a non-empty string")

    if "." not in selector:
        return selector, None

    table, target = selector.split(".", 1)
    if not table or not target:
        raise InvalidTargetError(selector, "table and target must not be empty")
    return table, target


def check_filters(
    excluded_targets: Optional[Sequence[str]], only_targets: Optional[Sequence[str]]
) -> None:
    """Raise UsageError unless at most one kind of filter is given."""
    if excluded_targets and only_targets:
        raise UsageError(
            "excluded_targets and only_targets are mutually exclusive",
            "Use either --exclude or --only, not both",
        )


def build_plan(
    config: AnonymizationConfig,
    excluded_targets: Optional[Sequence[str]] = None,
    only_targets: Optional[Sequence[str]] = None,
) -> Plan:
    """Compute which targets of which tables will be anonymized.

    Args:
        config: Anonymization configuration.
        excluded_targets: Selectors to skip, everything else is processed.
        only_targets: Selectors to process, nothing else is.

    Returns:
        Ordered table -> targets mapping. With ``only_targets`` the order is
        the selectors order, otherwise the configuration order.

    Raises:
        UsageError: If both ``excluded_targets`` and ``only_targets`` are given.
        InvalidTargetError: If a selector is malformed, or if ``only_targets``
            names a table or target that is not configured.
    """
    check_filters(excluded_targets, only_targets)

    if only_targets:
        return _build_only_plan(config, only_targets)
    return _build_excluding_plan(config, excluded_targets or [])


def _build_only_plan(config: AnonymizationConfig, only_targets: Sequence[str]) -> Plan:
    plan: Plan = {}

    for selector in only_targets:
        table, target = parse_target(selector)
        if not config.has(table):
            raise InvalidTargetError(selector, f"table '{table}' is not configured")

        known = config.targets(table)
        if target is None:
            # Whole table.
            wanted = known
        elif target in known:
            wanted = [target]
        else:
            raise InvalidTargetError(selector, f"target '{target}' is not configured")

        targets = plan.setdefault(table, [])
        for name in wanted:
            if name not in targets:
                targets.append(name)

    return plan


def _build_excluding_plan(config: AnonymizationConfig, excluded_targets: Sequence[str]) -> Plan:
    excluded_tables = set()
    excluded_columns = set()
    for selector in excluded_targets:
        table, target = parse_target(selector)
        if target is None:
            excluded_tables.add(table)
        else:
            excluded_columns.add((table, target))

    plan: Plan = {}
    for table, targets in config.all().items():
        if table in excluded_tables:
            logger.debug(f"Table '{table}' is excluded")
            continue

        kept = [name for name in targets if (table, name) not in excluded_columns]
        if kept:
            plan[table] = kept

    return plan
