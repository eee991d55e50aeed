"""
vmware-secureboot-setup — CLI entrypoint.

Usage:
    sudo vmware-secureboot-setup            # same as 'setup'
    sudo vmware-secureboot-setup setup --json
    vmware-secureboot-setup status
    python -m vmsecureboot.main autosign    # run by the systemd unit at boot
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from vmsecureboot import __version__
from vmsecureboot.core.observability.logging_config import setup_logging

_STEP_LABELS = {
    "preflight": "Preflight",
    "prerequisites": "Prerequisites",
    "keys": "MOK key",
    "modules": "Kernel modules",
    "build": "Kernel modules",
    "sign": "Signing",
    "permissions": "Permissions",
    "boot_unit": "Auto-sign boot service",
    "init_script": "VMware init script",
    "load": "Load modules",
}

_STATUS_STYLE = {
    "ok": ("✓", "green"),
    "skipped": ("⊘", "yellow"),
    "warning": ("!", "yellow"),
    "failed": ("✗", "red"),
}


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="vmware-secureboot-setup")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to the YAML config (default: /etc/vmware-secureboot.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Fix VMware Workstation kernel modules on Secure Boot systems."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging: flags win over VMSB_LOG_LEVEL ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("VMSB_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("VMSB_LOG_FILE"),
        log_file_level=os.environ.get("VMSB_LOG_FILE_LEVEL"),
    )

    if ctx.invoked_subcommand is None:
        ctx.invoke(setup)


def _echo_steps(report, quiet: bool) -> None:
    for step in report.steps:
        if quiet and step.status in ("ok", "skipped"):
            continue
        icon, color = _STATUS_STYLE[step.status]
        label = _STEP_LABELS.get(step.name, step.name)
        click.secho(f"   {icon} {label}", fg=color, nl=False)
        click.echo(f" — {step.message}" if step.message else "")


def _echo_failure(report) -> None:
    reason = report.error or (report.preflight.reason if report.preflight else "")
    click.secho(f"❌ Error: {reason}", fg="red", err=True)
    if report.hint:
        click.echo(f"   {report.hint}", err=True)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def setup(ctx: click.Context, as_json: bool) -> None:
    """Generate/enroll the MOK key, sign modules, install auto-signing."""
    from vmsecureboot.core.use_cases.reconcile import setup_host

    result = setup_host(
        config_path=ctx.obj.get("config_path"),
        config=ctx.obj.get("config"),
        registry=ctx.obj.get("registry"),
        kernel_version=ctx.obj.get("kernel_version"),
        euid=ctx.obj.get("euid"),
        python=ctx.obj.get("python"),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    report = result.report
    assert report is not None  # guaranteed after error check above
    quiet = ctx.obj.get("quiet", False)

    if report.not_needed:
        click.echo(report.preflight.reason)
        return

    if report.blocked:
        _echo_failure(report)
        sys.exit(1)

    if not quiet:
        click.secho(f"\n🔐 VMware Secure Boot setup — kernel {report.kernel_version}", fg="cyan", bold=True)
    _echo_steps(report, quiet)
    click.echo()

    if report.error:
        _echo_failure(report)
        sys.exit(1)

    if report.reboot_required:
        click.secho("   *** REBOOT REQUIRED ***", fg="yellow", bold=True)
        click.echo("   On next boot the MOK Manager will ask you to enroll the key.")
        click.echo("   Enter the password you just set, then re-run this command.")
        click.echo()
        return

    click.secho("✅ All done. VMware Workstation is ready to use with Secure Boot.", fg="green", bold=True)
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def autosign(ctx: click.Context, as_json: bool) -> None:
    """Build, sign and expose the modules for the running kernel (boot-time)."""
    from vmsecureboot.core.use_cases.reconcile import autosign_host

    result = autosign_host(
        config_path=ctx.obj.get("config_path"),
        config=ctx.obj.get("config"),
        registry=ctx.obj.get("registry"),
        kernel_version=ctx.obj.get("kernel_version"),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    report = result.report
    assert report is not None
    _echo_steps(report, ctx.obj.get("quiet", False))

    if report.error:
        _echo_failure(report)
        sys.exit(1)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show Secure Boot, key, module and auto-signing status (read-only)."""
    from vmsecureboot.core.use_cases.status import get_status

    result = get_status(
        config_path=ctx.obj.get("config_path"),
        config=ctx.obj.get("config"),
        registry=ctx.obj.get("registry"),
        kernel_version=ctx.obj.get("kernel_version"),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    def line(label: str, good: bool, text: str) -> None:
        click.secho(f"   {'✓' if good else '✗'} {label}", fg="green" if good else "red", nl=False)
        click.echo(f" — {text}")

    enrollment = result.enrollment.value.replace("_", " ") if result.enrollment else "not enrolled"

    click.secho(f"\n📋 Kernel {result.kernel_version}", fg="cyan", bold=True)
    line("Secure Boot", result.secure_boot, "enabled" if result.secure_boot else "disabled")
    line("sign-file", result.sign_file, "present" if result.sign_file else "missing")
    line("MOK key", result.key_present, "present" if result.key_present else "missing")
    line("Enrollment", result.enrollment is not None and result.enrollment.confirmed, enrollment)
    for mod in result.modules:
        state = "signed" if mod.signed else "unsigned" if mod.present else "missing"
        line(mod.name, mod.signed, f"{state}  → {mod.path}")
    line("Boot service", result.boot_script and result.boot_unit,
         "installed" if result.boot_script and result.boot_unit else "not installed")
    line("Init script", result.init_script == "patched", result.init_script)
    click.echo()


if __name__ == "__main__":
    cli()
