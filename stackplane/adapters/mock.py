"""
Mock provisioner — in-memory stand-in for a provisioning backend.

Used in mock mode and in tests. Exports are derived from the stack name,
its configuration and its bindings, so materializing the same stack with
the same inputs twice yields the same handles (idempotent, like a real
backend). Failures can be injected per stack.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable
from typing import Any

from stackplane.adapters.base import ProvisionContext, Provisioner
from stackplane.core.errors import ProvisioningError
from stackplane.core.models.stack import HandleKind

_PREFIXES = {
    HandleKind.NETWORK: "vpc",
    HandleKind.SUBNET: "subnet",
    HandleKind.DATABASE: "db",
    HandleKind.SECRET: "secret",
    HandleKind.ENDPOINT: "endpoint",
    HandleKind.TABLE: "table",
}


class MockProvisioner(Provisioner):
    """Universal mock provisioner.

    By default every materialize and teardown succeeds. Can be configured
    with failures or export overrides per stack name.
    """

    def __init__(self, provisioner_name: str = "mock", available: bool = True):
        self._name = provisioner_name
        self._available = available
        self._failures: dict[str, str] = {}
        self._teardown_failures: dict[str, str] = {}
        self._overrides: dict[str, dict[str, Any]] = {}
        self._call_log: list[tuple[str, ProvisionContext]] = []
        self._live: dict[str, dict[str, Any]] = {}
        self.on_materialize: Callable[[ProvisionContext], None] | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[tuple[str, ProvisionContext]]:
        """Every (operation, context) this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def live_stacks(self) -> dict[str, dict[str, Any]]:
        """Stacks currently materialized, with their exports."""
        return self._live

    def calls(self, operation: str) -> list[str]:
        """Stack names passed to one operation, in call order."""
        return [ctx.stack for op, ctx in self._call_log if op == operation]

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, stack: str, error: str = "Mock failure") -> None:
        """Make materialization of a stack fail."""
        self._failures[stack] = error

    def set_teardown_failure(self, stack: str, error: str = "Mock teardown failure") -> None:
        """Make teardown of a stack fail."""
        self._teardown_failures[stack] = error

    def set_exports(self, stack: str, exports: dict[str, Any]) -> None:
        """Return these exports for a stack instead of generated ones."""
        self._overrides[stack] = dict(exports)

    def materialize(self, context: ProvisionContext) -> dict[str, Any]:
        self._call_log.append(("materialize", context))

        if self.on_materialize is not None:
            self.on_materialize(context)

        if context.stack in self._failures:
            raise ProvisioningError(
                self._failures[context.stack], stack=context.stack, operation="materialize"
            )

        if context.stack in self._overrides:
            exports = dict(self._overrides[context.stack])
        else:
            digest = _fingerprint(context)
            exports = {
                name: _handle(kind, name, digest) for name, kind in context.exports.items()
            }

        self._live[context.stack] = exports
        return exports

    def teardown(self, context: ProvisionContext) -> None:
        self._call_log.append(("teardown", context))

        if context.stack in self._teardown_failures:
            raise ProvisioningError(
                self._teardown_failures[context.stack], stack=context.stack, operation="teardown"
            )

        self._live.pop(context.stack, None)

    def reset(self) -> None:
        """Clear call log, live stacks and injected behaviour."""
        self._call_log.clear()
        self._live.clear()
        self._failures.clear()
        self._teardown_failures.clear()
        self._overrides.clear()
        self.on_materialize = None


def _fingerprint(context: ProvisionContext) -> str:
    payload = json.dumps(
        {
            "stack": context.stack,
            "environment": context.environment,
            "config": context.config,
            "bindings": context.bindings,
        },
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _handle(kind: HandleKind, export: str, digest: str) -> Any:
    suffix = hashlib.sha256(f"{digest}:{export}".encode()).hexdigest()[:12]
    prefix = _PREFIXES.get(kind, "handle")
    if kind == HandleKind.SUBNET:
        return [f"{prefix}-{suffix}-{zone}" for zone in ("a", "b")]
    if kind == HandleKind.ENDPOINT:
        return f"https://{prefix}-{suffix}.example.internal"
    return f"{prefix}-{suffix}"
