"""
Stack definition validation — runs before the graph is built.

A ValidationError here aborts the whole run before any provisioning
call is made.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable

from stackplane.core.errors import UnknownDependencyError, ValidationError
from stackplane.core.models.stack import StackDefinition

logger = logging.getLogger(__name__)


def validate(definition: StackDefinition, known_names: Collection[str]) -> None:
    """Check a single definition against the set of stacks in the run.

    Args:
        definition: The stack definition to check.
        known_names: Names of every stack in the run (including this one).

    Raises:
        ValidationError: On an empty name, a self-dependency, an unnamed
            export or a duplicate binding parameter.
        UnknownDependencyError: If a dependency is not in ``known_names``.
    """
    name = definition.name
    if not name.strip():
        raise ValidationError("Stack name must be a non-empty string")

    for dep in definition.dependencies:
        if dep == name:
            raise ValidationError(f"Stack '{name}' cannot depend on itself", stack=name)
        if dep not in known_names:
            raise UnknownDependencyError(name, dep)

    params: set[str] = set()
    for request in definition.bindings:
        if request.param in params:
            raise ValidationError(
                f"Stack '{name}' declares binding parameter '{request.param}' twice",
                stack=name,
            )
        params.add(request.param)

    for export in definition.exports:
        if not export:
            raise ValidationError(f"Stack '{name}' declares an export without a name", stack=name)


def validate_all(definitions: Iterable[StackDefinition]) -> list[StackDefinition]:
    """Validate every definition of a run, including name uniqueness.

    Returns:
        The definitions as a list, in input order.
    """
    items = list(definitions)
    names = [d.name for d in items]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ValidationError(f"Duplicate stack names: {', '.join(dupes)}")

    known = set(names)
    for definition in items:
        validate(definition, known)

    logger.debug("Validated %d stack definitions", len(items))
    return items
