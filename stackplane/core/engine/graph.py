"""
Dependency graph builder — deterministic deployment order for a set of stacks.

Takes every StackDefinition of a run, checks that the dependency edges
form a DAG and produces the forward (deploy) order and its exact
reverse (teardown).

Ordering:
    Kahn's algorithm. Whenever several stacks are ready, the
    lexicographically smallest name goes first, so identical input
    always yields the identical order.

Failure is closed: on an unknown dependency or a cycle no graph is
returned at all.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from stackplane.core.errors import CycleError, UnknownDependencyError, ValidationError
from stackplane.core.models.stack import StackDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependencyEdge:
    """``to_stack`` must be materialized before ``from_stack``."""

    from_stack: str
    to_stack: str


@dataclass(frozen=True)
class DeploymentGraph:
    """A validated, acyclic set of stacks with its deployment order."""

    definitions: Mapping[str, StackDefinition]
    edges: tuple[DependencyEdge, ...]
    order: tuple[str, ...]
    _position: Mapping[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_position", {name: idx for idx, name in enumerate(self.order)}
        )

    @property
    def reverse_order(self) -> tuple[str, ...]:
        """Teardown order: the forward order reversed."""
        return tuple(reversed(self.order))

    def __len__(self) -> int:
        return len(self.order)

    def __contains__(self, name: object) -> bool:
        return name in self.definitions

    def get(self, name: str) -> StackDefinition:
        return self.definitions[name]

    def position(self, name: str) -> int:
        """Index of a stack in the forward order."""
        return self._position[name]

    def precedes(self, first: str, second: str) -> bool:
        """Whether ``first`` comes strictly before ``second`` in the order."""
        if first not in self._position or second not in self._position:
            return False
        return self._position[first] < self._position[second]

    def dependencies_of(self, name: str) -> list[str]:
        return [e.to_stack for e in self.edges if e.from_stack == name]

    def dependents_of(self, name: str) -> list[str]:
        return sorted(e.from_stack for e in self.edges if e.to_stack == name)

    def levels(self) -> list[list[str]]:
        """Group stacks by depth: level 0 has no dependencies, level n
        depends on something at level n-1.
        """
        depth: dict[str, int] = {}
        for name in self.order:
            deps = self.dependencies_of(name)
            depth[name] = 1 + max((depth[d] for d in deps), default=-1)

        grouped: list[list[str]] = []
        for name in self.order:
            level = depth[name]
            while len(grouped) <= level:
                grouped.append([])
            grouped[level].append(name)
        return grouped


def build_graph(definitions: Iterable[StackDefinition]) -> DeploymentGraph:
    """Build and validate the deployment graph.

    Args:
        definitions: Every stack of the run.

    Returns:
        DeploymentGraph with a deterministic topological order.

    Raises:
        ValidationError: If there are no stacks, or a stack name is empty
            or duplicated.
        UnknownDependencyError: If a stack depends on a stack not in the input.
        CycleError: If the dependencies form a cycle.
    """
    by_name: dict[str, StackDefinition] = {}
    for definition in definitions:
        name = definition.name
        if not name.strip():
            raise ValidationError("Stack name must be a non-empty string")
        if name in by_name:
            raise ValidationError(f"Duplicate stack name: {name}", stack=name)
        by_name[name] = definition

    if not by_name:
        raise ValidationError("No stacks to deploy")

    deps: dict[str, list[str]] = {}
    edges: list[DependencyEdge] = []
    for name in sorted(by_name):
        dep_names = by_name[name].dependencies
        for dep in dep_names:
            if dep not in by_name:
                raise UnknownDependencyError(name, dep)
            edges.append(DependencyEdge(from_stack=name, to_stack=dep))
        deps[name] = dep_names

    # Kahn's algorithm with a min-heap for lexicographic tie-breaks
    incoming = {name: len(dep_names) for name, dep_names in deps.items()}
    dependents: dict[str, list[str]] = {name: [] for name in by_name}
    for edge in edges:
        dependents[edge.to_stack].append(edge.from_stack)

    ready = [name for name, count in incoming.items() if count == 0]
    heapq.heapify(ready)
    order: list[str] = []

    while ready:
        name = heapq.heappop(ready)
        order.append(name)
        for child in dependents[name]:
            incoming[child] -= 1
            if incoming[child] == 0:
                heapq.heappush(ready, child)

    if len(order) != len(by_name):
        remaining = {name for name in by_name if name not in set(order)}
        cycle = _find_cycle(remaining, deps)
        logger.debug("Cycle among %d unresolved stacks: %s", len(remaining), cycle)
        raise CycleError(cycle)

    logger.debug("Deployment order: %s", " → ".join(order))
    return DeploymentGraph(
        definitions=dict(by_name),
        edges=tuple(edges),
        order=tuple(order),
    )


def _find_cycle(remaining: set[str], deps: Mapping[str, list[str]]) -> list[str]:
    """Return one cycle among the stacks Kahn's algorithm could not order.

    Every remaining stack still has a remaining dependency, so walking
    dependency edges inside ``remaining`` always reaches a node that is
    already on the current path. Iterative three-color DFS, visiting in
    name order so the reported cycle is stable.
    """
    white, gray, black = 0, 1, 2
    color = {name: white for name in remaining}

    for root in sorted(remaining):
        if color[root] != white:
            continue
        path: list[str] = [root]
        color[root] = gray
        stack = [iter(sorted(d for d in deps[root] if d in remaining))]

        while stack:
            child = next(stack[-1], None)
            if child is None:
                stack.pop()
                color[path.pop()] = black
                continue
            if color[child] == gray:
                return path[path.index(child):]
            if color[child] == white:
                color[child] = gray
                path.append(child)
                stack.append(iter(sorted(d for d in deps[child] if d in remaining)))

    return sorted(remaining)  # unreachable for a genuine Kahn remainder


def select_stacks(
    definitions: Iterable[StackDefinition],
    targets: Iterable[str] | None,
) -> list[StackDefinition]:
    """Restrict a run to the target stacks plus everything they depend on.

    Args:
        definitions: Every stack known for the environment.
        targets: Stack names to deploy. None or empty means all stacks.

    Returns:
        The selected definitions in input order.

    Raises:
        UnknownDependencyError: If a target or one of its dependencies is unknown.
    """
    items = list(definitions)
    wanted = list(targets or [])
    if not wanted:
        return items

    by_name = {d.name: d for d in items}
    needed: set[str] = set()

    def collect(name: str, requester: str) -> None:
        if name in needed:
            return
        definition = by_name.get(name)
        if definition is None:
            raise UnknownDependencyError(requester, name)
        needed.add(name)
        for dep in definition.dependencies:
            collect(dep, name)

    for target in wanted:
        collect(target, "<selection>")

    return [d for d in items if d.name in needed]
