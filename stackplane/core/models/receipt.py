"""
Receipt model — the result contract between the engine and provisioners.

The engine asks the provisioner registry to materialize or tear down a
stack and always gets a Receipt back. Provisioner exceptions are caught
by the registry and turned into failed receipts, so the executor only
does bookkeeping.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Outcome of one provisioning call."""

    provisioner: str
    stack: str
    operation: Literal["materialize", "teardown"] = "materialize"
    status: Literal["ok", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    exports: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the call succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the call failed."""
        return self.status == "failed"

    @classmethod
    def success(
        cls,
        provisioner: str,
        stack: str,
        exports: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            provisioner=provisioner,
            stack=stack,
            status="ok",
            exports=dict(exports or {}),
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        provisioner: str,
        stack: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            provisioner=provisioner,
            stack=stack,
            status="failed",
            error=error,
            **kwargs,
        )
