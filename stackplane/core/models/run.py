"""
Run models — per-stack status, run state and the operator-facing report.

Per-stack status transitions are monotonic within one run:

    pending → in_progress → succeeded | failed
    succeeded → rolled_back          (rollback pass only)

Run state:

    not_started → running → completed
    running → rolling_back → rolled_back
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class StackStatus(StrEnum):
    """Lifecycle of one stack within a run."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class RunState(StrEnum):
    """Lifecycle of a whole deployment run."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"


class RunOutcome(StrEnum):
    """Terminal outcome shown to the operator."""

    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_INCOMPLETE = "rollback_incomplete"
    IN_PROGRESS = "in_progress"


ALLOWED_TRANSITIONS: dict[StackStatus, frozenset[StackStatus]] = {
    StackStatus.PENDING: frozenset({StackStatus.IN_PROGRESS}),
    StackStatus.IN_PROGRESS: frozenset({StackStatus.SUCCEEDED, StackStatus.FAILED}),
    StackStatus.SUCCEEDED: frozenset({StackStatus.ROLLED_BACK}),
    StackStatus.FAILED: frozenset(),
    StackStatus.ROLLED_BACK: frozenset(),
}


class StackRecord(BaseModel):
    """Status and results of one stack within a run."""

    name: str
    kind: str = ""
    status: StackStatus = StackStatus.PENDING

    started_at: str | None = None
    ended_at: str | None = None
    duration_ms: int = 0

    exports: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    teardown_error: str | None = None


class RunReport(BaseModel):
    """What the operator sees at the end of a run."""

    run_id: str = ""
    environment: str = ""
    state: RunState = RunState.NOT_STARTED
    outcome: RunOutcome = RunOutcome.IN_PROGRESS

    order: list[str] = Field(default_factory=list)
    stacks: list[StackRecord] = Field(default_factory=list)

    # Rollback details
    trigger: str | None = None
    cancelled: bool = False
    rolled_back: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    teardown_failures: list[str] = Field(default_factory=list)

    started_at: str | None = None
    ended_at: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == RunOutcome.SUCCEEDED

    def get_stack(self, name: str) -> StackRecord | None:
        """Look up a stack record by name."""
        for record in self.stacks:
            if record.name == name:
                return record
        return None

    def exports(self) -> dict[str, dict[str, Any]]:
        """Recorded exports of every stack that produced any."""
        return {r.name: dict(r.exports) for r in self.stacks if r.exports}

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
