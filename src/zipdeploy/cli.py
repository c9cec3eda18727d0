"""CLI for zipdeploy."""

import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import DEFAULT_CONFIG_FILE, DeployConfig, load_config
from .errors import DeployError
from .launcher import stop_launched
from .layout import detect_project_root
from .logging_setup import setup_logging
from .patcher import PatchResult, patch_privileged_ports
from .pipeline import Deployer, DeployReport
from .ports import PortReclaimer, ReclaimStatus


console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="zipdeploy")
def cli():
    """zipdeploy – unpack an application archive and start it locally."""
    pass


def _print_summary(report: DeployReport, config: DeployConfig) -> None:
    table = Table(show_header=False, box=None)
    table.add_row("Archive", str(report.archive))
    table.add_row("Project", str(report.project_root))
    for result in report.ports:
        table.add_row(f"Port {result.port}", result.status.value)
    if report.patch is not None:
        table.add_row("Port patch", report.patch.value)
    if report.launch is not None:
        table.add_row("PID", str(report.launch.pid))
        table.add_row("Logs", str(report.launch.log_path))
    console.print(Panel(table, title="[green]✓ Done[/green]"))

    console.print("Open your app:")
    console.print(f"   - Backend: http://localhost:{config.backend_port}")
    if report.launch is not None:
        console.print("\nTo stop backend:")
        console.print(f"   {report.launch.stop_hint}")
        console.print(f"   or: zipdeploy stop {report.launch.pid_file}")
    for warning in report.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")


@cli.command()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option("--archive", "-a", type=click.Path(), help="Archive to deploy")
@click.option("--workdir", "-w", help="Directory to unpack into")
@click.option("--no-patch", is_flag=True, help="Don't rewrite privileged ports")
@click.option("--grace", type=float, help="Seconds to wait between SIGTERM and SIGKILL")
@click.option("--verbose", "-v", is_flag=True, help="Debug output")
def up(
    config_path: Optional[str],
    archive: Optional[str],
    workdir: Optional[str],
    no_patch: bool,
    grace: Optional[float],
    verbose: bool,
):
    """Extract the archive, install dependencies and start the backend."""
    load_dotenv(Path.cwd() / ".env", override=False)
    setup_logging(verbose=verbose)
    try:
        config = load_config(config_path)
        if archive:
            config.archive_candidates = [archive]
        if workdir:
            config.workdir = workdir
        if no_patch:
            config.patch_ports = False
        if grace is not None:
            config.grace_period = grace

        deployer = Deployer(config)
        setup_logging(verbose=verbose, log_file=deployer.workspace.parent / "zipdeploy.log")
        report = deployer.run()
        _print_summary(report, config)
    except (DeployError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--backend", "-b", default="backend", help="Backend folder name")
def detect(directory: str, backend: str):
    """Show the project root detected inside an extracted DIRECTORY."""
    try:
        root = detect_project_root(Path(directory), backend)
        console.print(f"[green]✓[/green] {root}")
    except DeployError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command("free-port")
@click.argument("ports", nargs=-1, required=True, type=click.IntRange(1, 65535))
@click.option("--grace", type=float, default=1.0, show_default=True, help="Seconds before SIGKILL")
def free_port(ports: tuple[int, ...], grace: float):
    """Terminate whatever listens on PORTS."""
    setup_logging()
    reclaimer = PortReclaimer(grace_period=grace)
    for port in ports:
        result = reclaimer.reclaim(port)
        if result.status == ReclaimStatus.FREE:
            console.print(f"[green]✓ Port {port} is free[/green]")
        elif result.status == ReclaimStatus.UNCHECKED:
            console.print(f"[yellow]⚠ Port {port} not checked (no lsof/ss)[/yellow]")
        else:
            console.print(f"[yellow]Port {port} {result.status.value} ({result.signals_sent} signal(s))[/yellow]")


@cli.command("patch-ports")
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--http-port", default=8080, show_default=True, type=int)
@click.option("--https-port", default=8443, show_default=True, type=int)
def patch_ports(source: str, http_port: int, https_port: int):
    """Rewrite listen(80)/listen(443) in SOURCE to environment-driven ports."""
    try:
        result = patch_privileged_ports(Path(source), http_port, https_port)
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    if result == PatchResult.PATCHED:
        console.print(f"[green]✓ Patched {source}[/green]")
    else:
        console.print(f"[dim]No privileged port bindings in {source}[/dim]")


@cli.command()
@click.argument("pid_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--grace", type=float, default=1.0, show_default=True, help="Seconds before SIGKILL")
def stop(pid_file: str, grace: float):
    """Stop a backend started by `up`, using its PID_FILE."""
    setup_logging()
    try:
        if stop_launched(Path(pid_file), grace_period=grace):
            console.print("[green]Backend stopped[/green]")
        else:
            console.print("[dim]Backend was not running[/dim]")
    except DeployError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.option("--output", "-o", default=DEFAULT_CONFIG_FILE, help="Output file")
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing file")
def init(output: str, force: bool):
    """Write a default zipdeploy configuration."""
    output_path = Path(output)
    if output_path.exists() and not force:
        console.print(f"[red]Error: {output_path} already exists (use --force to overwrite)[/red]")
        sys.exit(1)
    DeployConfig().to_yaml(output_path)
    console.print(f"[green]Created {output_path}[/green]")
    console.print("\nNext steps:")
    console.print("  1. Put your archive at bundle/project.zip")
    console.print("  2. Run: zipdeploy up")


def main(argv=None):
    """Main entry point."""
    cli(argv)


if __name__ == "__main__":
    main()
