"""
Provisioner registry — central dispatch for provisioning calls.

Each stack kind maps to one provisioner. The engine never talks to a
provisioner directly, only through the registry, which always returns
a Receipt and never raises.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from stackplane.adapters.base import ProvisionContext, Provisioner
from stackplane.core.errors import ProvisioningError
from stackplane.core.models.receipt import Receipt
from stackplane.core.models.stack import StackKind

logger = logging.getLogger(__name__)


class ProvisionerRegistry:
    """Registry and dispatcher for provisioners, keyed by stack kind.

    Features:
        - Register provisioners for the kinds they declare
        - Mock mode: route every kind to a mock provisioner
        - Materialize / tear down through the matching provisioner
        - Query provisioner availability
    """

    def __init__(self, mock_mode: bool = False, mock_provisioner: Provisioner | None = None):
        self._by_kind: dict[StackKind, Provisioner] = {}
        self._mock_mode = mock_mode
        self._mock = mock_provisioner

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def register(self, provisioner: Provisioner, kinds: set[StackKind] | None = None) -> None:
        """Register a provisioner for its kinds (or an explicit subset)."""
        for kind in kinds or provisioner.kinds:
            existing = self._by_kind.get(kind)
            if existing is not None and existing is not provisioner:
                logger.warning(
                    "Overwriting provisioner for %s: %s -> %s", kind, existing.name, provisioner.name
                )
            self._by_kind[kind] = provisioner
        logger.debug("Registered provisioner: %s", provisioner.name)

    def get(self, kind: StackKind) -> Provisioner | None:
        """Look up the provisioner that handles a kind."""
        if self._mock_mode:
            if self._mock is None:
                from stackplane.adapters.mock import MockProvisioner

                self._mock = MockProvisioner()
            return self._mock
        return self._by_kind.get(kind)

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Availability of the provisioner behind every registered kind."""
        status = {}
        for kind, provisioner in self._by_kind.items():
            try:
                available = provisioner.is_available()
            except Exception:
                available = False
            status[str(kind)] = {
                "provisioner": provisioner.name,
                "available": available,
                "type": provisioner.__class__.__name__,
            }
        return status

    def materialize(self, context: ProvisionContext) -> Receipt:
        """Materialize a stack. The receipt carries the returned exports."""
        return self._dispatch("materialize", context, lambda p: p.materialize(context))

    def teardown(self, context: ProvisionContext) -> Receipt:
        """Tear down a stack."""
        return self._dispatch("teardown", context, lambda p: p.teardown(context))

    def _dispatch(
        self,
        operation: str,
        context: ProvisionContext,
        call: Callable[[Provisioner], Any],
    ) -> Receipt:
        start_time = time.monotonic()

        provisioner = self.get(context.kind)
        if provisioner is None:
            return Receipt.failure(
                provisioner="none",
                stack=context.stack,
                operation=operation,
                error=f"No provisioner registered for stack kind '{context.kind}'",
            )

        try:
            result = call(provisioner)
            receipt = Receipt.success(
                provisioner=provisioner.name,
                stack=context.stack,
                operation=operation,
                exports=result if operation == "materialize" else None,
            )
        except ProvisioningError as e:
            receipt = Receipt.failure(
                provisioner=provisioner.name,
                stack=context.stack,
                operation=operation,
                error=str(e) or f"{operation} failed",
            )
        except Exception as e:
            # Provisioners should raise ProvisioningError only; anything else is a bug
            logger.error(
                "Provisioner %s raised during %s of %s: %s",
                provisioner.name,
                operation,
                context.stack,
                e,
            )
            receipt = Receipt.failure(
                provisioner=provisioner.name,
                stack=context.stack,
                operation=operation,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        return receipt
