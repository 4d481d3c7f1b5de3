"""
Binding model — a resolved handle exported by a materialized stack.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from stackplane.core.models.stack import HandleKind


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Binding(BaseModel):
    """An export recorded after its owning stack materialized.

    Bindings live for one run only. Each run resolves them fresh from
    the provisioning backend.
    """

    model_config = ConfigDict(frozen=True)

    stack: str
    export: str
    value: Any
    kind: HandleKind
    materialized_at: str = Field(default_factory=_now_iso)

    @property
    def key(self) -> tuple[str, str]:
        return (self.stack, self.export)
