"""
Click-based CLI for unblock-doctor.

This module only ORCHESTRATES:
- Loads settings and the host directory
- Invokes the check action
- Formats output
"""

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from unblock_doctor import __version__
from unblock_doctor.actions.check_firewall import CheckFirewallAction, CheckResult
from unblock_doctor.actions.report import ReportGenerator
from unblock_doctor.config import ConfigManager, Settings
from unblock_doctor.model.host import PanelType
from unblock_doctor.storage import HostRepository, ReportRepository, init_db, set_db_path

console = Console()

PANEL_CHOICES = [p.value for p in PanelType]


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )
    if not verbose:
        logging.getLogger("paramiko").setLevel(logging.WARNING)


@click.group()
@click.version_option(version=__version__, prog_name="unblock-doctor")
@click.option("--config", "-c", type=click.Path(file_okay=False), help="Path to config directory")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """unblock-doctor: find out why an IP is blocked on a hosting server, and unblock it."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    config_mgr = ConfigManager(Path(config) if config else None)
    settings = config_mgr.load()
    set_db_path(settings.db_path)
    init_db()
    ctx.obj["config_mgr"] = config_mgr
    ctx.obj["settings"] = settings


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


def _print_failure(result: CheckResult) -> None:
    console.print(f"[bold red]Error:[/] {result.message}")
    if result.diagnosis and result.diagnosis.likely_cause:
        console.print(f"   [dim]Likely cause:[/] {result.diagnosis.likely_cause}")
        console.print(f"   [dim]Suggested action:[/] {result.diagnosis.suggested_action}")
    if result.diagnosis and result.diagnosis.critical:
        console.print("   [red]Critical connection failure: escalate to the host owner.[/]")


# ─── Hosts ────────────────────────────────────────────────────────────────────


@main.group()
def host() -> None:
    """Manage the host directory."""


@host.command("add")
@click.argument("name")
@click.option("--fqdn", required=True, help="Host FQDN used for SSH")
@click.option("--ip", default="", help="Host public IP")
@click.option("--port", default=22, show_default=True, help="SSH port")
@click.option("--panel", type=click.Choice(PANEL_CHOICES), default="unknown", show_default=True)
@click.option("--key-file", type=click.Path(exists=True, dir_okay=False), required=True, help="Private key file")
@click.option("--admin", default="root", show_default=True, help="Remote user")
def host_add(name: str, fqdn: str, ip: str, port: int, panel: str, key_file: str, admin: str) -> None:
    """Register a host."""
    private_key = Path(key_file).read_text()
    public_path = Path(key_file + ".pub")
    public_key = public_path.read_text().strip() if public_path.exists() else ""

    host_id = HostRepository().create(
        name=name,
        fqdn=fqdn,
        private_key=private_key,
        ip=ip,
        port_ssh=port,
        panel=panel,
        admin=admin,
        public_key=public_key,
    )
    console.print(f"[bold green]✓ Added host:[/] {name} (id {host_id})")


@host.command("list")
def host_list() -> None:
    """List registered hosts."""
    records = HostRepository().get_all()
    if not records:
        console.print("[dim]No hosts registered yet.[/]")
        return

    table = Table(show_header=True)
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Address")
    table.add_column("Panel")
    table.add_column("Key")
    for record in records:
        table.add_row(
            str(record.id),
            record.name,
            f"{record.admin}@{record.fqdn}:{record.port_ssh}",
            record.panel,
            record.to_dict()["key_storage"],
        )
    console.print(table)


@host.command("remove")
@click.argument("host_id", type=int)
def host_remove(host_id: int) -> None:
    """Remove a host."""
    if HostRepository().delete(host_id):
        console.print(f"[bold green]✓ Removed host:[/] {host_id}")
    else:
        console.print(f"[bold red]Error:[/] Host {host_id} not found.")
        sys.exit(1)


# ─── Checks ───────────────────────────────────────────────────────────────────


@main.command()
@click.argument("host_id", type=int)
@click.argument("ip")
@click.option("--no-unblock", is_flag=True, help="Only analyze, never remediate")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def check(ctx: click.Context, host_id: int, ip: str, no_unblock: bool, as_json: bool) -> None:
    """Check whether IP is blocked on HOST_ID and unblock it.

    Exits with code 1 if the check or the unblock failed.
    """
    settings = _settings(ctx)
    reports = ReportGenerator(settings=settings, console=console)
    action = CheckFirewallAction(settings=settings, reports=reports)

    if as_json:
        result = action.execute(host_id, ip, unblock=not no_unblock)
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        with console.status(f"[bold blue]Checking {ip} on host {host_id}...[/]"):
            result = action.execute(host_id, ip, unblock=not no_unblock)
        if result.report_id is not None:
            record = reports.repository.get_by_id(result.report_id)
            if record is not None:
                reports.render(record)
        if result.success:
            console.print(f"[bold green]✓[/] {result.message}")
        else:
            _print_failure(result)

    sys.exit(0 if result.success else 1)


@main.command("test-connection")
@click.argument("host_id", type=int)
@click.pass_context
def test_connection(ctx: click.Context, host_id: int) -> None:
    """Open an SSH session to HOST_ID and run `csf -v`."""
    action = CheckFirewallAction(settings=_settings(ctx))
    result = action.probe_connection(host_id)
    if result.success:
        console.print(f"[bold green]✓ Connected:[/] {result.message}")
        sys.exit(0)
    _print_failure(result)
    sys.exit(1)


# ─── Reports ──────────────────────────────────────────────────────────────────


@main.group()
def report() -> None:
    """Browse stored reports."""


@report.command("list")
@click.option("--limit", default=20, show_default=True, help="Number of reports to show")
@click.pass_context
def report_list(ctx: click.Context, limit: int) -> None:
    """List recent reports."""
    generator = ReportGenerator(settings=_settings(ctx), console=console)
    generator.render_list(ReportRepository().get_recent(limit))


@report.command("show")
@click.argument("report_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def report_show(ctx: click.Context, report_id: int, as_json: bool) -> None:
    """Show one report."""
    record = ReportRepository().get_by_id(report_id)
    if record is None:
        console.print(f"[bold red]Error:[/] Report {report_id} not found.")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(record.to_dict(), indent=2, default=str))
        return
    ReportGenerator(settings=_settings(ctx), console=console).render(record)


@report.command("prune")
@click.pass_context
def report_prune(ctx: click.Context) -> None:
    """Delete reports older than the configured expiration."""
    deleted = ReportGenerator(settings=_settings(ctx), console=console).prune_expired()
    console.print(f"[bold green]✓ Pruned {deleted} report(s)[/]")


if __name__ == "__main__":
    main()
