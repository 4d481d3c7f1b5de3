"""
Binding registry — per-run store of exported handles.

The executor records a stack's exports right after it materializes and
resolves a downstream stack's bindings right before materializing it.
If the executor follows the validated order, resolution never fails.
The checks here are invariant checks that catch ordering or wiring
mistakes, not transient conditions.
"""

from __future__ import annotations

import logging
from typing import Any

from stackplane.core.engine.graph import DeploymentGraph
from stackplane.core.errors import BindingError, TypeMismatchError, UnresolvedBindingError
from stackplane.core.models.binding import Binding
from stackplane.core.models.stack import HandleKind, StackDefinition

logger = logging.getLogger(__name__)


class BindingRegistry:
    """Maps (stack, export) to the handle recorded in the current run.

    When constructed with the run's graph, ``resolve`` also enforces that
    the owning stack precedes the requester and that the recorded kind
    matches the kind the requester declared.
    """

    def __init__(self, graph: DeploymentGraph | None = None):
        self._graph = graph
        self._bindings: dict[tuple[str, str], Binding] = {}

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, key: object) -> bool:
        return key in self._bindings

    def record(
        self,
        stack: str,
        export: str,
        value: Any,
        kind: HandleKind | str,
    ) -> Binding:
        """Record an export of a stack that just materialized.

        Raises:
            BindingError: If the export was already recorded in this run.
        """
        key = (stack, export)
        if key in self._bindings:
            raise BindingError(f"Binding '{stack}.{export}' is already recorded")
        binding = Binding(stack=stack, export=export, value=value, kind=HandleKind(kind))
        self._bindings[key] = binding
        logger.debug("Recorded binding %s.%s (%s)", stack, export, binding.kind)
        return binding

    def get(self, stack: str, export: str) -> Binding | None:
        return self._bindings.get((stack, export))

    def resolve(
        self,
        requesting_stack: str,
        stack: str,
        export: str,
        expected_kind: HandleKind | str | None = None,
    ) -> Any:
        """Return the recorded value of ``stack.export`` for a consumer.

        Args:
            requesting_stack: The stack that consumes the binding.
            stack: The owning stack.
            export: The export name.
            expected_kind: Kind the consumer expects. Defaults to the kind
                declared in the requester's binding request, when the
                registry knows the graph.

        Raises:
            UnresolvedBindingError: If the export is not recorded, or the
                owning stack does not precede the requester.
            TypeMismatchError: If the recorded kind differs from the
                expected kind.
        """
        graph = self._graph
        if graph is not None and requesting_stack in graph and stack in graph:
            if not graph.precedes(stack, requesting_stack):
                raise UnresolvedBindingError(
                    requesting_stack,
                    stack,
                    export,
                    reason="owning stack does not precede the requesting stack",
                )

        binding = self._bindings.get((stack, export))
        if binding is None:
            raise UnresolvedBindingError(requesting_stack, stack, export)

        if expected_kind is None and graph is not None and requesting_stack in graph:
            request = graph.get(requesting_stack).get_binding(stack, export)
            if request is not None:
                expected_kind = request.kind

        if expected_kind is not None and HandleKind(expected_kind) != binding.kind:
            raise TypeMismatchError(
                requesting_stack,
                stack,
                export,
                expected=str(HandleKind(expected_kind)),
                actual=str(binding.kind),
            )

        return binding.value

    def resolve_for(self, definition: StackDefinition) -> dict[str, Any]:
        """Resolve every binding a stack consumes, keyed by parameter name."""
        resolved: dict[str, Any] = {}
        for request in definition.bindings:
            resolved[request.param] = self.resolve(
                definition.name,
                request.stack,
                request.export,
                expected_kind=request.kind,
            )
        return resolved

    def exports_of(self, stack: str) -> dict[str, Any]:
        """All recorded export values of one stack."""
        return {b.export: b.value for b in self._bindings.values() if b.stack == stack}

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Every recorded value, grouped by owning stack."""
        grouped: dict[str, dict[str, Any]] = {}
        for binding in self._bindings.values():
            grouped.setdefault(binding.stack, {})[binding.export] = binding.value
        return grouped
