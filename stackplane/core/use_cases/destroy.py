"""
Destroy use case — tear an environment down, dependents first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from stackplane.adapters.registry import ProvisionerRegistry
from stackplane.core.engine.cancellation import CancellationToken
from stackplane.core.engine.executor import DeploymentExecutor, generate_run_id
from stackplane.core.engine.graph import DeploymentGraph
from stackplane.core.errors import StackplaneError
from stackplane.core.models.receipt import Receipt
from stackplane.core.persistence.audit import AuditEntry, AuditWriter
from stackplane.core.use_cases.deploy import build_registry, project_root_for
from stackplane.core.use_cases.plan import load_graph, resolve_config_path

logger = logging.getLogger(__name__)


@dataclass
class DestroyResult:
    """Result of a destroy run."""

    environment: str = ""
    run_id: str = ""
    config_path: Path | None = None
    order: list[str] = field(default_factory=list)
    receipts: list[Receipt] = field(default_factory=list)
    error: str | None = None

    @property
    def failed(self) -> list[str]:
        return [r.stack for r in self.receipts if r.failed]

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed

    def to_dict(self) -> dict:
        result: dict = {"environment": self.environment}
        if self.error:
            result["error"] = self.error
            return result

        result["run_id"] = self.run_id
        result["order"] = self.order
        result["receipts"] = [r.model_dump(mode="json") for r in self.receipts]
        result["failed"] = self.failed
        result["ok"] = self.ok
        return result


def teardown_set(graph: DeploymentGraph, targets: list[str] | None) -> set[str] | None:
    """Targets plus every stack that (transitively) depends on them."""
    if not targets:
        return None

    selected: set[str] = set()
    pending = list(targets)
    while pending:
        name = pending.pop()
        if name in selected:
            continue
        selected.add(name)
        pending.extend(graph.dependents_of(name))
    return selected


def run_destroy(
    environment: str = "dev",
    config_path: Path | None = None,
    stacks: list[str] | None = None,
    mock_mode: bool = False,
    registry: ProvisionerRegistry | None = None,
    cancel_token: CancellationToken | None = None,
    audit: bool = True,
) -> DestroyResult:
    """Tear down an environment's stacks in reverse dependency order.

    Best effort: every selected stack is attempted even after a failure.
    Selecting a stack also selects everything that depends on it.
    """
    result = DestroyResult(environment=environment, run_id=generate_run_id())

    try:
        config_path = resolve_config_path(config_path)
        result.config_path = config_path
        bundle, graph = load_graph(environment, config_path)
        if stacks:
            unknown = sorted(set(stacks) - set(graph.order))
            if unknown:
                result.error = f"Unknown stacks: {', '.join(unknown)}"
                return result
        if registry is None:
            registry = build_registry(config_path, mock_mode=mock_mode)
    except StackplaneError as e:
        result.error = str(e)
        return result

    only = teardown_set(graph, stacks)
    result.order = [n for n in graph.reverse_order if only is None or n in only]

    executor = DeploymentExecutor(registry, cancel_token=cancel_token)
    result.receipts = executor.destroy(graph, bundle, only=only)

    if result.failed:
        logger.error("Destroy %s left stacks behind: %s", result.run_id, ", ".join(result.failed))

    if audit:
        writer = AuditWriter(project_root=project_root_for(config_path))
        writer.write(
            AuditEntry(
                operation_id=result.run_id,
                operation_type="destroy",
                environment=environment,
                stacks_affected=[r.stack for r in result.receipts],
                status="succeeded" if result.ok else "failed",
                stacks_total=len(result.order),
                stacks_succeeded=sum(1 for r in result.receipts if r.ok),
                stacks_failed=len(result.failed),
                duration_ms=sum(r.duration_ms for r in result.receipts),
                errors=[f"{r.stack}: {r.error}" for r in result.receipts if r.failed],
            )
        )

    return result
