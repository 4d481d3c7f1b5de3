"""
Error hierarchy for the deployment core.

Validation and graph errors are fatal and raised before any provisioning
call is made. Binding and provisioning errors are raised inside a run and
are contained by the executor: they end up in the run's per-stack status,
never past ``DeploymentExecutor.run``.
"""

from __future__ import annotations

from collections.abc import Sequence


class StackplaneError(Exception):
    """Base class for every error raised by stackplane."""


# ── Definition / graph errors (fatal, pre-provisioning) ──────────────


class ValidationError(StackplaneError):
    """A stack definition is malformed."""

    def __init__(self, message: str, stack: str | None = None):
        super().__init__(message)
        self.stack = stack


class UnknownDependencyError(ValidationError):
    """A stack depends on a stack that is not part of the run."""

    def __init__(self, stack: str, missing: str):
        super().__init__(
            f"Stack '{stack}' depends on unknown stack '{missing}'",
            stack=stack,
        )
        self.missing = missing


class CycleError(StackplaneError):
    """The dependency graph contains a cycle.

    ``cycle`` lists every stack on the cycle in dependency order: each
    entry depends on the next one, and the last depends on the first.
    """

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        path = " -> ".join([*self.cycle, self.cycle[0]]) if self.cycle else ""
        super().__init__(f"Dependency cycle detected: {path}")


# ── Binding errors (abort one stack, trigger rollback) ───────────────


class BindingError(StackplaneError):
    """A binding could not be recorded or resolved."""


class UnresolvedBindingError(BindingError):
    """The requested export has not been recorded in this run."""

    def __init__(self, requesting_stack: str, stack: str, export: str, reason: str = ""):
        detail = reason or "owning stack has not completed materialization"
        super().__init__(
            f"Stack '{requesting_stack}' cannot resolve '{stack}.{export}': {detail}"
        )
        self.requesting_stack = requesting_stack
        self.stack = stack
        self.export = export


class TypeMismatchError(BindingError):
    """The recorded export kind differs from the kind the consumer declared."""

    def __init__(
        self,
        requesting_stack: str,
        stack: str,
        export: str,
        expected: str,
        actual: str,
    ):
        super().__init__(
            f"Stack '{requesting_stack}' expects '{stack}.{export}' to be "
            f"{expected}, but it was recorded as {actual}"
        )
        self.requesting_stack = requesting_stack
        self.stack = stack
        self.export = export
        self.expected = expected
        self.actual = actual


# ── Runtime errors ───────────────────────────────────────────────────


class ProvisioningError(StackplaneError):
    """The provisioning backend failed to materialize or tear down a stack."""

    def __init__(self, message: str, stack: str | None = None, operation: str = ""):
        super().__init__(message)
        self.stack = stack
        self.operation = operation


class InvalidTransitionError(StackplaneError):
    """A stack status transition violated the run state machine."""

    def __init__(self, stack: str, current: str, requested: str):
        super().__init__(
            f"Illegal status transition for '{stack}': {current} -> {requested}"
        )
        self.stack = stack
        self.current = current
        self.requested = requested
