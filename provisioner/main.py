"""
provisioner: CLI entrypoint.

Usage:
    provision                 # same as `provision run`
    provision run
    provision status
    provision doctor
    provision config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from provisioner import __version__
from provisioner.core.observability.logging_config import setup_logging


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="provision")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to pipeline.yml (default: auto-detect, else built-in defaults).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Provision toolchains, prepare the workspace, and build one target."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("PROVISION_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("PROVISION_LOG_FILE"),
        log_file_level=os.environ.get("PROVISION_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )

    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.pass_context
def run(ctx: click.Context, as_json: bool = False, mock: bool = False) -> None:
    """Run the pipeline: fetch tools, install toolchain, prepare, build.

    The platform comes from the PLATFORM environment variable, else
    pipeline.yml, else "unix". Exits with the failing tool's exit code.
    """
    from provisioner.core.use_cases.run import run_pipeline

    outcome = run_pipeline(config_path=ctx.obj.get("config_path"), mock_mode=mock)

    if as_json:
        click.echo(json.dumps(outcome.to_dict(), indent=2))
        sys.exit(outcome.exit_code)

    if outcome.error:
        click.secho(f"❌ {outcome.error}", fg="red", err=True)
        sys.exit(1)

    result = outcome.result
    assert result is not None
    quiet = ctx.obj.get("quiet", False)

    # Raw tool output, unmodified
    if result.stdout:
        click.echo(result.stdout, nl=False)
    if result.stderr:
        click.echo(result.stderr, nl=False, err=True)

    if result.failed:
        click.secho(
            f"✗ {result.failed_stage} failed (exit {result.exit_code}): {result.message}",
            fg="red",
            err=True,
        )
        sys.exit(result.exit_code)

    if not quiet:
        mode_label = "[mock] " if mock else ""
        click.secho(
            f"✓ {mode_label}{result.target} built for {result.platform}",
            fg="green",
            err=True,
        )
        if ctx.obj.get("verbose"):
            for record in result.stages:
                click.echo(f"   {record.stage}: {record.duration_ms}ms", err=True)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the effective pipeline and the last run."""
    from provisioner.core.use_cases.status import get_status

    result = get_status(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    config = result.config
    assert config is not None

    click.secho(f"\n📋 {config.name}", fg="cyan", bold=True)
    click.echo(f"   Platform:  {config.platform}")
    click.echo(f"   Target:    {config.target}")
    click.echo(f"   Workspace: {config.workspace}")
    click.echo()

    click.secho(f"   Tools: {len(config.tools)}", fg="white", bold=True)
    for spec in config.tools:
        click.echo(f"     • {spec.name}  → {spec.destination}")
    if config.toolchain:
        click.secho("   Toolchain:", fg="white", bold=True)
        click.echo(f"     • {config.toolchain.name}  → {config.toolchain.install_root}")

    state = result.state
    if state and state.last_run.run_id:
        last = state.last_run
        click.echo()
        click.secho("   Last run:", fg="white", bold=True)
        color = "green" if last.state == "Succeeded" else "red"
        click.echo(f"     {last.run_id}  ", nl=False)
        click.secho(last.state, fg=color)
        if last.failed_stage:
            click.echo(f"     failed in {last.failed_stage} (exit {last.exit_code})")
        if last.ended_at:
            click.echo(f"     at {last.ended_at}")

    click.echo()


@cli.command()
@click.option("-n", "count", default=10, show_default=True, help="Number of runs to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent runs from the audit ledger."""
    from provisioner.core.config.loader import ConfigError, load_config
    from provisioner.core.persistence.audit import RunLedger

    try:
        config, _root = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    entries = RunLedger(config.state_dir).tail(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No runs recorded yet.")
        return

    for entry in entries:
        color = "green" if entry.state == "Succeeded" else "red"
        click.echo(f"{entry.recorded_at}  {entry.run_id}  ", nl=False)
        click.secho(entry.state, fg=color, nl=False)
        if entry.failed_stage:
            click.echo(f"  ({entry.failed_stage}, exit {entry.exit_code})")
        else:
            click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def doctor(ctx: click.Context, as_json: bool) -> None:
    """Check host prerequisites, adapters and toolchain caches."""
    from provisioner.adapters.registry import default_registry
    from provisioner.core.config.loader import ConfigError, load_config
    from provisioner.core.observability.health import check_system_health

    try:
        config, _root = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    report = check_system_health(registry=default_registry(), config=config)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.ok else 1)

    badges = {
        "healthy": ("💚", "green"),
        "degraded": ("🟡", "yellow"),
        "unhealthy": ("🔴", "red"),
    }

    icon, color = badges.get(report.status, ("❔", "white"))
    click.echo()
    click.secho(f"{icon} Host: {report.status.upper()}", fg=color, bold=True)
    click.echo()
    for check in report.checks:
        icon, color = badges.get(check.status, ("❔", "white"))
        click.secho(f"   {icon} {check.name}", fg=color, bold=True)
        click.echo(f"      {check.message}")
        if ctx.obj.get("verbose"):
            for key, val in check.details.items():
                click.echo(f"      {key}: {val}")
    click.echo()

    if not report.ok:
        sys.exit(1)


@cli.group()
def config() -> None:
    """Pipeline configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate pipeline.yml."""
    from provisioner.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.config is not None
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Pipeline: {result.config.name}")
        click.echo(f"   Platform: {result.config.platform}")
        click.echo(f"   Tools:    {len(result.config.tools)}")
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


if __name__ == "__main__":
    cli()
