"""
Deployment executor — walks the deployment order and keeps the books.

The executor takes a validated DeploymentGraph and the environment's
configuration bundle, materializes each stack through the provisioner
registry, records exported handles, and on the first failure rolls back
everything that already succeeded, in reverse order.

Flow:
    order → resolve bindings → materialize → record exports → next stack
                                   ↓ failure / cancellation
                     rollback succeeded stacks (reverse order, best effort)

Runtime failures never escape ``run``: the caller reads the returned
DeploymentRun (or its report) to tell success from rollback.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import UTC, datetime

from stackplane.adapters.base import ProvisionContext
from stackplane.adapters.registry import ProvisionerRegistry
from stackplane.core.engine.bindings import BindingRegistry
from stackplane.core.engine.cancellation import CancellationToken
from stackplane.core.engine.graph import DeploymentGraph
from stackplane.core.errors import BindingError, InvalidTransitionError
from stackplane.core.models.config import EnvironmentConfig
from stackplane.core.models.receipt import Receipt
from stackplane.core.models.run import (
    ALLOWED_TRANSITIONS,
    RunOutcome,
    RunReport,
    RunState,
    StackRecord,
    StackStatus,
)
from stackplane.core.models.stack import StackDefinition
from stackplane.core.persistence.audit import AuditEntry, AuditWriter

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


@dataclass
class DeploymentRun:
    """Mutable bookkeeping for one deployment run."""

    run_id: str
    environment: str
    order: list[str]
    records: dict[str, StackRecord]
    bindings: BindingRegistry
    state: RunState = RunState.NOT_STARTED
    position: int = 0
    trigger: str | None = None
    cancelled: bool = False
    started_at: str | None = None
    ended_at: str | None = None
    _t0: dict[str, datetime] = field(default_factory=dict, repr=False)

    @classmethod
    def for_graph(cls, graph: DeploymentGraph, environment: str, run_id: str = "") -> DeploymentRun:
        """Create a run with every stack pending."""
        return cls(
            run_id=run_id or generate_run_id(),
            environment=environment,
            order=list(graph.order),
            records={
                name: StackRecord(name=name, kind=str(graph.get(name).kind))
                for name in graph.order
            },
            bindings=BindingRegistry(graph),
        )

    def status_of(self, name: str) -> StackStatus:
        return self.records[name].status

    def transition(self, name: str, status: StackStatus) -> None:
        """Move a stack to a new status, enforcing the state machine.

        Raises:
            InvalidTransitionError: If the move is not allowed, including
                succeeded → rolled_back outside a rollback pass.
        """
        record = self.records[name]
        current = record.status
        allowed = ALLOWED_TRANSITIONS[current]
        if status not in allowed or (
            status == StackStatus.ROLLED_BACK and self.state != RunState.ROLLING_BACK
        ):
            raise InvalidTransitionError(name, str(current), str(status))

        now = datetime.now(UTC)
        if status == StackStatus.IN_PROGRESS:
            record.started_at = now.isoformat()
            self._t0[name] = now
        elif status in (StackStatus.SUCCEEDED, StackStatus.FAILED):
            record.ended_at = now.isoformat()
            started = self._t0.get(name)
            if started is not None:
                record.duration_ms = int((now - started).total_seconds() * 1000)
        record.status = status

    def stacks_with(self, status: StackStatus) -> list[str]:
        """Stack names with a given status, in deployment order."""
        return [name for name in self.order if self.records[name].status == status]

    @property
    def teardown_failures(self) -> list[str]:
        return [name for name in self.order if self.records[name].teardown_error]

    @property
    def outcome(self) -> RunOutcome:
        if self.state == RunState.COMPLETED:
            return RunOutcome.SUCCEEDED
        if self.state == RunState.ROLLED_BACK:
            if self.teardown_failures:
                return RunOutcome.ROLLBACK_INCOMPLETE
            return RunOutcome.ROLLED_BACK
        return RunOutcome.IN_PROGRESS

    def report(self) -> RunReport:
        """Build the operator-facing report."""
        return RunReport(
            run_id=self.run_id,
            environment=self.environment,
            state=self.state,
            outcome=self.outcome,
            order=list(self.order),
            stacks=[self.records[name].model_copy(deep=True) for name in self.order],
            trigger=self.trigger,
            cancelled=self.cancelled,
            rolled_back=self.stacks_with(StackStatus.ROLLED_BACK),
            skipped=self.stacks_with(StackStatus.PENDING),
            teardown_failures=self.teardown_failures,
            started_at=self.started_at,
            ended_at=self.ended_at,
        )


class DeploymentExecutor:
    """Sequential, rollback-on-failure deployment of a DeploymentGraph.

    Args:
        registry: Provisioner registry used for every provisioning call.
        cancel_token: Optional token for cooperative cancellation.
    """

    def __init__(
        self,
        registry: ProvisionerRegistry,
        cancel_token: CancellationToken | None = None,
    ):
        self._registry = registry
        self._cancel = cancel_token

    @property
    def cancel_token(self) -> CancellationToken | None:
        return self._cancel

    def run(
        self,
        graph: DeploymentGraph,
        bundle: EnvironmentConfig,
        run_id: str = "",
    ) -> DeploymentRun:
        """Deploy every stack of the graph in forward order.

        Args:
            graph: The validated deployment graph.
            bundle: Configuration bundle of the target environment.
            run_id: Optional run identifier (generated if empty).

        Returns:
            The finished DeploymentRun: ``completed`` or ``rolled_back``.
        """
        run = DeploymentRun.for_graph(graph, bundle.name, run_id=run_id)
        run.state = RunState.RUNNING
        run.started_at = _now_iso()
        logger.info("Run %s: deploying %d stacks to %s", run.run_id, len(graph), bundle.name)

        for position, name in enumerate(graph.order):
            run.position = position

            if self._cancelled():
                logger.warning("Run %s cancelled before %s", run.run_id, name)
                run.cancelled = True
                break

            if not self._deploy_stack(run, graph.get(name), bundle):
                run.trigger = name
                run.cancelled = self._cancelled()
                break

            if self._cancelled():
                logger.warning("Run %s cancelled after %s", run.run_id, name)
                run.cancelled = True
                break
        else:
            run.position = len(graph.order)
            run.state = RunState.COMPLETED
            run.ended_at = _now_iso()
            logger.info("Run %s: all %d stacks succeeded", run.run_id, len(graph))
            return run

        self._rollback(run, graph, bundle)
        run.ended_at = _now_iso()
        return run

    def destroy(
        self,
        graph: DeploymentGraph,
        bundle: EnvironmentConfig,
        only: Collection[str] | None = None,
    ) -> list[Receipt]:
        """Tear down stacks of the graph in reverse order.

        Best effort: a failed teardown is reported and the remaining
        stacks are still attempted. ``only`` restricts the teardown to a
        subset; the reverse order is kept.
        """
        receipts: list[Receipt] = []
        for name in graph.reverse_order:
            if only is not None and name not in only:
                continue
            if self._cancelled():
                logger.warning("Destroy cancelled before %s", name)
                break
            receipt = self._registry.teardown(self._context(graph.get(name), bundle))
            _log_receipt(receipt)
            receipts.append(receipt)
        return receipts

    # ── Internals ────────────────────────────────────────────────

    def _cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.cancelled

    def _context(
        self,
        definition: StackDefinition,
        bundle: EnvironmentConfig,
        bindings: dict | None = None,
        cancellable: bool = True,
    ) -> ProvisionContext:
        """Provisioning inputs for one stack.

        Rollback teardowns are built with ``cancellable=False``: the token
        that triggered the rollback must not abort the rollback itself.
        """
        return ProvisionContext(
            stack=definition.name,
            kind=definition.kind,
            environment=bundle.name,
            region=bundle.region,
            account=bundle.account,
            config=dict(definition.config),
            bindings=dict(bindings or {}),
            exports=dict(definition.exports),
            tags=dict(definition.tags),
            cancel_token=self._cancel if cancellable else None,
        )

    def _deploy_stack(
        self,
        run: DeploymentRun,
        definition: StackDefinition,
        bundle: EnvironmentConfig,
    ) -> bool:
        """Materialize one stack. Returns False if it ended up failed."""
        name = definition.name
        record = run.records[name]
        run.transition(name, StackStatus.IN_PROGRESS)

        try:
            resolved = run.bindings.resolve_for(definition)
        except BindingError as e:
            logger.error("✗ %s: %s", name, e)
            record.error = str(e)
            run.transition(name, StackStatus.FAILED)
            return False

        receipt = self._registry.materialize(self._context(definition, bundle, resolved))
        _log_receipt(receipt)
        if not receipt.ok:
            record.error = receipt.error or "materialization failed"
            run.transition(name, StackStatus.FAILED)
            return False

        missing = [export for export in definition.exports if export not in receipt.exports]
        if missing:
            record.error = (
                f"Provisioner did not return declared exports: {', '.join(sorted(missing))}"
            )
            logger.error("✗ %s: %s", name, record.error)
            run.transition(name, StackStatus.FAILED)
            return False

        extra = sorted(set(receipt.exports) - set(definition.exports))
        if extra:
            logger.debug("%s returned undeclared exports (ignored): %s", name, extra)

        for export, kind in definition.exports.items():
            value = receipt.exports[export]
            run.bindings.record(name, export, value, kind)
            record.exports[export] = value

        run.transition(name, StackStatus.SUCCEEDED)
        return True

    def _rollback(self, run: DeploymentRun, graph: DeploymentGraph, bundle: EnvironmentConfig) -> None:
        run.state = RunState.ROLLING_BACK
        eligible = [n for n in graph.reverse_order if run.status_of(n) == StackStatus.SUCCEEDED]
        logger.warning(
            "Run %s rolling back %d stacks (trigger: %s)",
            run.run_id,
            len(eligible),
            run.trigger or ("cancellation" if run.cancelled else "unknown"),
        )

        for name in eligible:
            receipt = self._registry.teardown(
                self._context(graph.get(name), bundle, cancellable=False)
            )
            _log_receipt(receipt)
            if receipt.ok:
                run.transition(name, StackStatus.ROLLED_BACK)
            else:
                run.records[name].teardown_error = receipt.error or "teardown failed"

        run.state = RunState.ROLLED_BACK
        if run.teardown_failures:
            logger.error(
                "Run %s rollback incomplete, manual cleanup needed: %s",
                run.run_id,
                ", ".join(run.teardown_failures),
            )


def _log_receipt(receipt: Receipt) -> None:
    if receipt.failed:
        logger.error("✗ %s:%s → %s", receipt.stack, receipt.operation, receipt.error)
    else:
        logger.info("✓ %s:%s (%dms)", receipt.stack, receipt.operation, receipt.duration_ms)


def write_audit_entry(
    report: RunReport,
    audit_writer: AuditWriter,
    operation_type: str = "deploy",
    errors: list[str] | None = None,
) -> None:
    """Write a finished run to the audit ledger."""
    failed = [s.name for s in report.stacks if s.status == StackStatus.FAILED]
    entry = AuditEntry(
        operation_id=report.run_id,
        operation_type=operation_type,
        environment=report.environment,
        stacks_affected=[s.name for s in report.stacks if s.status != StackStatus.PENDING],
        status=str(report.outcome),
        stacks_total=len(report.stacks),
        stacks_succeeded=sum(1 for s in report.stacks if s.status == StackStatus.SUCCEEDED),
        stacks_failed=len(failed),
        stacks_rolled_back=len(report.rolled_back),
        duration_ms=sum(s.duration_ms for s in report.stacks),
        errors=errors if errors is not None else _report_errors(report),
        context={"trigger": report.trigger, "cancelled": report.cancelled},
    )
    audit_writer.write(entry)


def _report_errors(report: RunReport) -> list[str]:
    errors = []
    for record in report.stacks:
        if record.error:
            errors.append(f"{record.name}: {record.error}")
        if record.teardown_error:
            errors.append(f"{record.name} (teardown): {record.teardown_error}")
    return errors


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"
