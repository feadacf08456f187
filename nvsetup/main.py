"""
nvsetup — CLI entrypoint.

Usage:
    python -m nvsetup.main --help
    python -m nvsetup.main install [--no-cuda] [--force]
    python -m nvsetup.main uninstall
    python -m nvsetup.main status --json
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import click

from nvsetup import __version__
from nvsetup.core.config.loader import ConfigError, Settings, load_settings
from nvsetup.core.observability.logging_config import setup_logging
from nvsetup.core.privilege import Privilege, PrivilegeError, sudo_keepalive

logger = logging.getLogger("nvsetup")

LOG_LEVEL_ENV = "NVSETUP_LOG_LEVEL"


class UsageGroup(click.Group):
    """Group that answers an unknown sub-command with the full usage text."""

    def resolve_command(self, ctx: click.Context, args: list[str]):
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError:
            click.echo(ctx.get_help())
            ctx.exit(1)


@click.group(cls=UsageGroup, invoke_without_command=True)
@click.version_option(version=__version__, prog_name="nvsetup")
@click.option("--verbose", "-v", is_flag=True, help="Show every command on the console.")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors on the console.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to nvsetup.yml (default: auto-detect).",
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory for install.log and installed.list (default: ./logs).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    log_dir: str | None,
) -> None:
    """Provision an Ubuntu GPU host: NVIDIA driver, CUDA, Docker and the
    NVIDIA Container Toolkit."""
    # Nothing is read or written until a mode is known
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(1)

    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet

    try:
        settings = load_settings(
            Path(config_path) if config_path else None,
            log_dir=Path(log_dir) if log_dir else None,
        )
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    ctx.obj["settings"] = settings

    # ── Logging setup (once, at process start) ──────────────────
    if debug or verbose:
        level = "DEBUG"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")

    setup_logging(
        level=level,
        log_file=settings.log_path,
        log_file_level="DEBUG",
        quiet_third_party=not debug,
    )
    logger.debug("nvsetup %s, log file %s", __version__, settings.log_path)


@cli.command()
@click.option("--no-cuda", is_flag=True, help="Skip the CUDA toolkit stage.")
@click.option("--force", is_flag=True, help="Proceed on an unsupported Ubuntu release.")
@click.option("--dry-run", is_flag=True, help="Probe the host but only log changes.")
@click.option("--keepalive", is_flag=True, help="Keep sudo credentials cached while running.")
@click.pass_context
def install(ctx: click.Context, no_cuda: bool, force: bool, dry_run: bool, keepalive: bool) -> None:
    """Install driver, CUDA, Docker and the container toolkit."""
    settings: Settings = ctx.obj["settings"]
    privilege = Privilege.detect()

    with _credentials(privilege, settings, keepalive):
        code = _run_install(settings, privilege, no_cuda=no_cuda, force=force, dry_run=dry_run)
    sys.exit(code)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Only log what would be removed.")
@click.option("--keepalive", is_flag=True, help="Keep sudo credentials cached while running.")
@click.pass_context
def uninstall(ctx: click.Context, dry_run: bool, keepalive: bool) -> None:
    """Remove every component, whatever was recorded. Always exits 0."""
    settings: Settings = ctx.obj["settings"]
    privilege = Privilege.detect()

    with _credentials(privilege, settings, keepalive):
        _run_uninstall(settings, privilege, dry_run=dry_run)


@cli.command()
@click.option("--no-cuda", is_flag=True, help="Skip the CUDA toolkit stage.")
@click.option("--force", is_flag=True, help="Proceed on an unsupported Ubuntu release.")
@click.option("--keepalive", is_flag=True, help="Keep sudo credentials cached while running.")
@click.pass_context
def reinstall(ctx: click.Context, no_cuda: bool, force: bool, keepalive: bool) -> None:
    """Uninstall everything, then install from scratch."""
    settings: Settings = ctx.obj["settings"]
    privilege = Privilege.detect()

    with _credentials(privilege, settings, keepalive):
        _run_uninstall(settings, privilege, dry_run=False)
        code = _run_install(settings, privilege, no_cuda=no_cuda, force=force, dry_run=False)
    sys.exit(code)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show platform, install record and recent runs."""
    from nvsetup.core.use_cases.status import get_status

    settings: Settings = ctx.obj["settings"]
    result = get_status(settings)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    platform = result.platform
    if platform is not None and not ctx.obj.get("quiet", False):
        color = "green" if result.supported else "yellow"
        click.secho(f"\n🖥  {platform.label()}", fg="cyan", bold=True)
        click.secho(
            "   supported" if result.supported else "   unsupported (needs --force)",
            fg=color,
        )

    click.echo()
    click.secho("   Installed:", fg="white", bold=True)
    for stage_id in result.expected:
        if stage_id in result.recorded:
            click.secho(f"     ✓ {stage_id}", fg="green")
        else:
            click.echo(f"     · {stage_id}")

    click.echo()
    click.echo(f"   Log:    {result.log_path}")
    click.echo(f"   Record: {result.record_path}")
    for name, info in result.adapters.items():
        state = "available" if info["available"] else "unavailable"
        click.echo(f"   Adapter: {name} ({state})")

    if result.recent_runs:
        click.echo()
        click.secho("   Recent runs:", fg="white", bold=True)
        for entry in result.recent_runs:
            color = "green" if entry.status == "ok" else "red"
            label = f"{entry.mode}{' (dry-run)' if entry.dry_run else ''}"
            click.echo(f"     {entry.timestamp[:19]}  {label} — ", nl=False)
            click.secho(entry.status, fg=color)

    click.echo()


# ── Helpers ─────────────────────────────────────────────────────


@contextmanager
def _credentials(privilege: Privilege, settings: Settings, enabled: bool) -> Iterator[None]:
    """Optional sudo keepalive around a pipeline run."""
    if not enabled:
        yield
        return
    try:
        with sudo_keepalive(privilege, settings.keepalive_interval):
            yield
    except PrivilegeError as e:
        logger.error("ERROR: %s", e)
        sys.exit(1)


def _run_install(
    settings: Settings,
    privilege: Privilege,
    *,
    no_cuda: bool,
    force: bool,
    dry_run: bool,
) -> int:
    from nvsetup.core.use_cases.provision import install_host

    result = install_host(
        settings,
        skip_cuda=no_cuda,
        force=force,
        dry_run=dry_run,
        privilege=privilege,
    )
    if result.ok:
        return 0

    failure = result.report.failure if result.report else None
    if failure is None:
        # Rejected before the pipeline started
        logger.error("ERROR: %s", result.error)
        return result.exit_code

    step = (failure.failed_step or failure.stage_id).replace(".", "/", 1)
    logger.error("ERROR: Command failed with exit code %d at step %s.", result.exit_code, step)
    if failure.error:
        logger.error("%s", failure.error)
    logger.error("Check %s for details.", settings.log_path)
    return result.exit_code


def _run_uninstall(settings: Settings, privilege: Privilege, *, dry_run: bool) -> None:
    from nvsetup.core.use_cases.provision import uninstall_host

    result = uninstall_host(settings, dry_run=dry_run, privilege=privilege)
    report = result.report
    if report is not None and report.warnings:
        logger.warning("%d removal command(s) failed; see %s", report.warnings, settings.log_path)


if __name__ == "__main__":
    cli()
