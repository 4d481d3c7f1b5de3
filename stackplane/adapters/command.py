"""
Command provisioner — drive an external IaC CLI through shell commands.

Each stack is deployed and destroyed by running a configured command
template, e.g.::

    deploy:  cdk deploy {stack} --require-approval never --outputs-file {outputs_file}
    destroy: cdk destroy {stack} --force

Placeholders: ``{stack}``, ``{environment}``, ``{region}``,
``{outputs_file}``. The stack configuration and resolved bindings are
passed to the command through environment variables. Exports are read
back from the outputs file, which may be either ``{stack: {name: value}}``
(the CDK layout) or a flat ``{name: value}`` mapping.

The command is blocking but cancellable: while it runs, the cancel token
is polled and the process is terminated when cancellation is requested.
"""

from __future__ import annotations

import json
import logging
import os
import shlex
import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from stackplane.adapters.base import ProvisionContext, Provisioner
from stackplane.core.errors import ProvisioningError

logger = logging.getLogger(__name__)


class CommandSettings(BaseModel):
    """The ``provisioner:`` section of stackplane.yml."""

    deploy: str
    destroy: str
    cwd: str | None = None
    timeout: int = Field(default=3600, ge=1)
    poll_interval: float = Field(default=0.5, gt=0)
    env: dict[str, str] = Field(default_factory=dict)


class CommandProvisioner(Provisioner):
    """Materialize and tear down stacks by running shell commands."""

    def __init__(self, settings: CommandSettings):
        self._settings = settings

    @property
    def name(self) -> str:
        return "command"

    @property
    def settings(self) -> CommandSettings:
        return self._settings

    def is_available(self) -> bool:
        try:
            program = shlex.split(self._settings.deploy)[0]
        except (ValueError, IndexError):
            return False
        return shutil.which(program) is not None

    def materialize(self, context: ProvisionContext) -> dict[str, Any]:
        with tempfile.TemporaryDirectory(prefix="stackplane_") as tmp:
            outputs_file = Path(tmp) / "outputs.json"
            command = self._render(self._settings.deploy, context, outputs_file)
            self._run(command, context, "materialize")
            return _read_outputs(outputs_file, context.stack)

    def teardown(self, context: ProvisionContext) -> None:
        with tempfile.TemporaryDirectory(prefix="stackplane_") as tmp:
            outputs_file = Path(tmp) / "outputs.json"
            command = self._render(self._settings.destroy, context, outputs_file)
            self._run(command, context, "teardown")

    # ── Internals ────────────────────────────────────────────────

    def _render(self, template: str, context: ProvisionContext, outputs_file: Path) -> str:
        try:
            return template.format(
                stack=shlex.quote(context.stack),
                environment=shlex.quote(context.environment),
                region=shlex.quote(context.region),
                outputs_file=shlex.quote(str(outputs_file)),
            )
        except (KeyError, IndexError) as e:
            raise ProvisioningError(
                f"Invalid command template {template!r}: unknown placeholder {e}",
                stack=context.stack,
            ) from e

    def _environment(self, context: ProvisionContext) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self._settings.env)
        env["STACKPLANE_STACK"] = context.stack
        env["STACKPLANE_KIND"] = str(context.kind)
        env["STACKPLANE_ENVIRONMENT"] = context.environment
        env["STACKPLANE_REGION"] = context.region
        if context.account:
            env["STACKPLANE_ACCOUNT"] = context.account
        env["STACKPLANE_CONFIG"] = json.dumps(context.config, sort_keys=True, default=str)
        env["STACKPLANE_TAGS"] = json.dumps(context.tags, sort_keys=True)
        env["STACKPLANE_BINDINGS"] = json.dumps(context.bindings, sort_keys=True, default=str)
        for param, value in context.bindings.items():
            key = "STACKPLANE_BINDING_" + param.upper().replace("-", "_")
            env[key] = value if isinstance(value, str) else json.dumps(value, default=str)
        return env

    def _run(self, command: str, context: ProvisionContext, operation: str) -> str:
        settings = self._settings
        cwd = settings.cwd or None
        logger.debug("Executing: %s (cwd=%s)", command, cwd)
        start = time.monotonic()

        try:
            proc = subprocess.Popen(
                command,
                shell=True,
                cwd=cwd,
                env=self._environment(context),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise ProvisioningError(
                f"Command execution error: {e}", stack=context.stack, operation=operation
            ) from e

        while True:
            try:
                stdout, stderr = proc.communicate(timeout=settings.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if context.cancelled:
                    _terminate(proc)
                    reason = context.cancel_token.reason if context.cancel_token else ""
                    raise ProvisioningError(
                        f"{operation} of '{context.stack}' cancelled: {reason}",
                        stack=context.stack,
                        operation=operation,
                    ) from None
                if time.monotonic() - start > settings.timeout:
                    _terminate(proc)
                    raise ProvisioningError(
                        f"Command timed out after {settings.timeout}s",
                        stack=context.stack,
                        operation=operation,
                    ) from None

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if proc.returncode != 0:
            raise ProvisioningError(
                stderr.strip() or f"Command exited with code {proc.returncode}",
                stack=context.stack,
                operation=operation,
            )

        logger.debug("%s of %s finished in %dms", operation, context.stack, elapsed_ms)
        return stdout.strip()


def _terminate(proc: subprocess.Popen) -> None:
    proc.terminate()
    try:
        proc.communicate(timeout=10)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()


def _read_outputs(path: Path, stack: str) -> dict[str, Any]:
    """Read exports from a command's outputs file."""
    if not path.is_file():
        return {}
    raw = path.read_text(encoding="utf-8").strip()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProvisioningError(
            f"Outputs file for '{stack}' is not valid JSON: {e}", stack=stack
        ) from e
    if not isinstance(data, dict):
        raise ProvisioningError(f"Outputs file for '{stack}' must be a JSON object", stack=stack)
    nested = data.get(stack)
    if isinstance(nested, dict):
        return dict(nested)
    return data
