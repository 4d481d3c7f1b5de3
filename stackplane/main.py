"""
stackplane — CLI entrypoint.

Usage:
    stackplane --help
    stackplane plan --env dev
    stackplane deploy --env staging --mock
    stackplane config check
"""

from __future__ import annotations

import json
import os
import signal
import sys
from pathlib import Path

import click

from stackplane import __version__
from stackplane.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    resolve_level,
    setup_logging,
)

_STATUS_STYLE = {
    "succeeded": ("✓", "green"),
    "failed": ("✗", "red"),
    "rolled_back": ("↺", "yellow"),
    "pending": ("⊘", "white"),
    "in_progress": ("…", "cyan"),
}

_OUTCOME_STYLE = {
    "succeeded": ("✅", "green"),
    "rolled_back": ("↩️ ", "yellow"),
    "rollback_incomplete": ("🔥", "red"),
    "in_progress": ("⏳", "cyan"),
}


@click.group()
@click.version_option(version=__version__, prog_name="stackplane")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to stackplane.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """stackplane — deploy dependent infrastructure stacks in order."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(
        level=resolve_level(verbose=verbose, quiet=quiet, debug=debug),
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
        quiet_third_party=not debug,
    )


# ── Environments ────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def envs(ctx: click.Context, as_json: bool) -> None:
    """List available environments."""
    from stackplane.core.config.loader import ConfigError, load_environments
    from stackplane.core.use_cases.plan import resolve_config_path

    config_path = resolve_config_path(ctx.obj.get("config_path"))
    try:
        environments = load_environments(config_path)
    except ConfigError as e:
        if as_json:
            click.echo(json.dumps({"error": str(e)}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(
            json.dumps(
                {name: env.model_dump(mode="json") for name, env in sorted(environments.items())},
                indent=2,
            )
        )
        return

    source = str(config_path) if config_path else "built-in profiles"
    click.secho(f"\n🌍 Environments ({source})", fg="cyan", bold=True)
    for name, env in sorted(environments.items()):
        account = env.account or "default account"
        click.echo(f"   • {name:<10} {env.region:<12} {account}")
    click.echo()


# ── Config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate stackplane.yml and every environment's stack graph."""
    from stackplane.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Config: {result.config_path or 'built-in profiles'}")
        click.echo(f"   Environments: {', '.join(result.environments)}")
        if result.provisioner:
            click.echo(f"   Provisioner: {result.provisioner}")
        for kind, info in sorted(result.adapters.items()):
            icon = "✓" if info["available"] else "✗"
            click.echo(f"      {icon} {kind}: {info['provisioner']}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


# ── Plan / deploy / destroy ─────────────────────────────────────


@cli.command()
@click.option("--env", "environment", default="dev", help="Target environment.")
@click.option("--stack", "-s", "stacks", multiple=True, help="Target specific stacks.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, environment: str, stacks: tuple[str, ...], as_json: bool) -> None:
    """Show the deployment order without deploying anything."""
    from stackplane.core.use_cases.plan import plan_deployment

    result = plan_deployment(
        environment=environment,
        config_path=ctx.obj.get("config_path"),
        stacks=list(stacks) or None,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    graph = result.graph
    assert graph is not None

    click.secho(f"\n📋 Plan: {environment}", fg="cyan", bold=True)
    click.echo(f"   Stacks: {len(graph)}")
    click.echo()
    for position, name in enumerate(graph.order, start=1):
        definition = graph.get(name)
        deps = graph.dependencies_of(name)
        after = f"  ← {', '.join(deps)}" if deps else ""
        click.echo(f"   {position}. {name} [{definition.kind}]{after}")
        if ctx.obj.get("verbose"):
            for binding in definition.bindings:
                click.echo(f"        {binding.param} = {binding.stack}.{binding.export}")
    click.echo()


@cli.command()
@click.option("--env", "environment", default="dev", help="Target environment.")
@click.option("--stack", "-s", "stacks", multiple=True, help="Target specific stacks.")
@click.option("--mock", is_flag=True, help="Use mock provisioner (no real infrastructure).")
@click.option("--no-audit", is_flag=True, help="Don't write the run to the audit ledger.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def deploy(
    ctx: click.Context,
    environment: str,
    stacks: tuple[str, ...],
    mock: bool,
    no_audit: bool,
    as_json: bool,
) -> None:
    """Deploy stacks in dependency order, rolling back on failure.

    Examples:

        stackplane deploy --env dev --mock

        stackplane deploy --env prod --stack prod-ComputeStack
    """
    from stackplane.core.engine.cancellation import CancellationToken
    from stackplane.core.use_cases.deploy import run_deployment

    token = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel("interrupted (SIGINT)"))
    try:
        result = run_deployment(
            environment=environment,
            config_path=ctx.obj.get("config_path"),
            stacks=list(stacks) or None,
            mock_mode=mock,
            cancel_token=token,
            audit=not no_audit,
        )
    finally:
        signal.signal(signal.SIGINT, previous if previous is not None else signal.SIG_DFL)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    report = result.report
    assert report is not None

    mode_label = "[mock] " if mock else ""
    click.secho(f"\n🚀 {mode_label}deploy — {environment}", fg="cyan", bold=True)
    click.echo(f"   Run: {report.run_id}")
    click.echo()

    for record in report.stacks:
        marker, color = _STATUS_STYLE.get(str(record.status), ("?", "white"))
        click.secho(f"   {marker} {record.name}", fg=color, nl=False)
        timing = f" ({record.duration_ms}ms)" if record.duration_ms else ""
        click.echo(f" {record.status}{timing}")
        if record.error:
            click.echo(f"     │ {record.error}")
        if record.teardown_error:
            click.secho(f"     │ teardown: {record.teardown_error}", fg="red")
        if ctx.obj.get("verbose"):
            for export, value in record.exports.items():
                click.echo(f"     → {export} = {value}")

    click.echo()
    icon, color = _OUTCOME_STYLE.get(str(report.outcome), ("?", "white"))
    click.secho(f"   {icon} Outcome: {report.outcome}", fg=color, bold=True)
    if report.trigger:
        click.echo(f"   Trigger: {report.trigger}")
    if report.cancelled:
        click.echo("   Cancelled by operator")
    if report.teardown_failures:
        click.secho(
            f"   Manual cleanup needed: {', '.join(report.teardown_failures)}", fg="red"
        )

    if not report.ok:
        click.echo()
        sys.exit(1)

    click.echo()


@cli.command()
@click.option("--env", "environment", default="dev", help="Target environment.")
@click.option("--stack", "-s", "stacks", multiple=True, help="Target specific stacks (and dependents).")
@click.option("--mock", is_flag=True, help="Use mock provisioner (no real infrastructure).")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.option("--no-audit", is_flag=True, help="Don't write the run to the audit ledger.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def destroy(
    ctx: click.Context,
    environment: str,
    stacks: tuple[str, ...],
    mock: bool,
    yes: bool,
    no_audit: bool,
    as_json: bool,
) -> None:
    """Tear down stacks in reverse dependency order."""
    from stackplane.core.use_cases.destroy import run_destroy

    if not yes and not as_json:
        target = ", ".join(stacks) if stacks else f"every stack in '{environment}'"
        click.confirm(f"Destroy {target}?", abort=True)

    result = run_destroy(
        environment=environment,
        config_path=ctx.obj.get("config_path"),
        stacks=list(stacks) or None,
        mock_mode=mock,
        audit=not no_audit,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"\n🧹 destroy — {environment}", fg="cyan", bold=True)
    click.echo()
    for receipt in result.receipts:
        if receipt.ok:
            click.secho(f"   ✓ {receipt.stack}", fg="green", nl=False)
            click.echo(f" ({receipt.duration_ms}ms)")
        else:
            click.secho(f"   ✗ {receipt.stack}", fg="red")
            if receipt.error:
                for line in receipt.error.split("\n")[:5]:
                    click.echo(f"     │ {line}")

    click.echo()
    if not result.ok:
        click.secho(f"   Left behind: {', '.join(result.failed)}", fg="red", bold=True)
        click.echo()
        sys.exit(1)

    click.secho(f"   Destroyed {len(result.receipts)} stacks", fg="green", bold=True)
    click.echo()


# ── History ─────────────────────────────────────────────────────


@cli.command()
@click.option("--limit", "-n", default=10, type=int, help="Number of entries to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent runs from the audit ledger."""
    from stackplane.core.persistence.audit import AuditWriter
    from stackplane.core.use_cases.deploy import project_root_for
    from stackplane.core.use_cases.plan import resolve_config_path

    config_path = resolve_config_path(ctx.obj.get("config_path"))
    writer = AuditWriter(project_root=project_root_for(config_path))
    entries = writer.read_recent(limit)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No runs recorded yet.")
        return

    click.secho(f"\n📜 Last {len(entries)} runs", fg="cyan", bold=True)
    for entry in reversed(entries):
        _, color = _OUTCOME_STYLE.get(entry.status, ("", "white"))
        click.echo(f"   {entry.timestamp[:19]}  {entry.operation_type:<8} {entry.environment:<8} ", nl=False)
        click.secho(entry.status, fg=color if entry.status != "failed" else "red")
    click.echo()


if __name__ == "__main__":
    cli()
