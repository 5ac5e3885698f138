"""Typer-based CLI for Diagram Migration with Pydantic v2 configuration."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from DiagramMigration.config import (
    MigrationConfig,
    export_config_schema,
    load_config,
    validate_config_file,
)
from DiagramMigration.logging_utils import setup_logging
from DiagramMigration.pipeline import plan_migration, run_migration
from DiagramMigration.progress import RichProgressSink
from DiagramMigration.summary import emit_console_summary

console = Console()
app = typer.Typer(help="Convert legacy diagrams through the vendor API and upload them")

EXIT_PARTIAL = 2

# ============================================================================
# Setup
# ============================================================================


def _setup_logging(cfg: MigrationConfig, verbose: bool) -> None:
    """Setup logging from config; --verbose mirrors DEBUG output to the console."""
    setup_logging(
        level="DEBUG" if verbose else cfg.logging.level,
        enable_file=cfg.logging.enabled,
        log_dir=Path(cfg.logging.log_dir),
        retention_days=cfg.logging.retention_days,
        max_log_size_mb=cfg.logging.max_log_size_mb,
        console_level="DEBUG" if verbose else "WARNING",
    )


def _build_overrides(
    *,
    vendor_user: Optional[str] = None,
    vendor_password: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
    input_file: Optional[Path] = None,
    api: Optional[str] = None,
    web: Optional[str] = None,
    output_dir: Optional[Path] = None,
    summary: Optional[Path] = None,
    limit: Optional[int] = None,
    enable_logging: bool = False,
) -> Dict[str, Any]:
    """Map CLI flags onto the config tree; unset flags stay None and are skipped."""
    return {
        "vendor": {"base_url": api, "username": vendor_user, "password": vendor_password},
        "target": {"base_url": web, "username": user, "password": password},
        "paths": {
            "input_file": str(input_file) if input_file else None,
            "output_dir": str(output_dir) if output_dir else None,
            "summary_path": str(summary) if summary else None,
        },
        "limits": {"max_records": limit},
        "logging": {"enabled": True if enable_logging else None},
    }


# ============================================================================
# Commands
# ============================================================================


@app.command()
def run(
    vendor_user: Optional[str] = typer.Option(
        None, "-v", "--vendor-user", help="Vendor API user name"
    ),
    vendor_password: Optional[str] = typer.Option(
        None, "-x", "--vendor-password", help="Vendor API password"
    ),
    user: Optional[str] = typer.Option(None, "-u", "--user", help="Target application user name"),
    password: Optional[str] = typer.Option(
        None, "-p", "--password", help="Target application password"
    ),
    input_file: Optional[Path] = typer.Option(None, "-i", "--input", help="DataSet XML file"),
    api: Optional[str] = typer.Option(None, "-a", "--api", help="Vendor API base URL"),
    web: Optional[str] = typer.Option(None, "-w", "--web", help="Target application base URL"),
    enable_logging: bool = typer.Option(
        False, "-l", "--logging", help="Write JSON logs under logs/"
    ),
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", help="Converted artifact directory"
    ),
    summary: Optional[Path] = typer.Option(None, "--summary", help="Write run summary JSON"),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to config file", envvar="DIAGRAM_MIGRATION_CONFIG"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Only process the first N records"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan only; no remote calls"),
    fail_on_partial: bool = typer.Option(
        False, "--fail-on-partial", help="Exit 2 when any diagram failed"
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose"),
) -> None:
    """Convert and upload every diagram not yet migrated."""
    try:
        overrides = _build_overrides(
            vendor_user=vendor_user,
            vendor_password=vendor_password,
            user=user,
            password=password,
            input_file=input_file,
            api=api,
            web=web,
            output_dir=output_dir,
            summary=summary,
            limit=limit,
            enable_logging=enable_logging,
        )
        cfg = load_config(path=config, cli_overrides=overrides)
        _setup_logging(cfg, verbose)

        console.print(
            Panel(
                f"[bold green]✓ Config loaded[/bold green]\n"
                f"Hash: {cfg.config_hash()[:8]}...\n"
                f"Input: {cfg.paths.input_file}\n"
                f"Output: {cfg.paths.output_dir}",
                title="Diagram Migration",
            )
        )

        if dry_run:
            report = run_migration(cfg, dry_run=True)
        else:
            with RichProgressSink(console) as sink:
                report = run_migration(cfg, sink=sink)

        emit_console_summary(report, console)

    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        if verbose:
            raise
        raise typer.Exit(code=1)

    if fail_on_partial and not report.ok:
        raise typer.Exit(code=EXIT_PARTIAL)


@app.command()
def status(
    input_file: Optional[Path] = typer.Option(None, "-i", "--input", help="DataSet XML file"),
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", help="Converted artifact directory"
    ),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to config file", envvar="DIAGRAM_MIGRATION_CONFIG"
    ),
    show_pending: bool = typer.Option(False, "--pending", help="List pending diagram names"),
) -> None:
    """Compare dataset records with converted artifacts (no remote calls)."""
    try:
        cfg = load_config(
            path=config,
            cli_overrides=_build_overrides(input_file=input_file, output_dir=output_dir),
        )
        report = plan_migration(cfg)

        table = Table(title="Migration Status")
        table.add_column("Metric", style="cyan")
        table.add_column("Count", style="green", justify="right")
        table.add_row("Records", str(report.total_records))
        table.add_row("Converted", str(len(report.recovered)))
        table.add_row("Pending", str(len(report.planned)))
        table.add_row("Duplicates dropped", str(len(report.duplicates)))
        console.print(table)

        if show_pending:
            for name in report.planned:
                console.print(f"  {name}")

    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def print_config(
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to config file", envvar="DIAGRAM_MIGRATION_CONFIG"
    ),
    raw: bool = typer.Option(False, "--raw", help="Raw JSON"),
) -> None:
    """Print merged effective config (secrets masked)."""
    try:
        cfg = load_config(path=config)
        data = cfg.model_dump(mode="json")

        if raw:
            typer.echo(json.dumps(data, indent=2))
        else:
            console.print(
                Panel(json.dumps(data, indent=2), title="Diagram Migration Config", expand=False)
            )

    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def validate_config(
    config: str = typer.Argument(..., help="Path to config file"),
) -> None:
    """Validate a config file."""
    try:
        validate_config_file(config)
        console.print("[green]✓ Config valid[/green]")
    except Exception as e:
        console.print(f"[red]✗ Invalid: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def schema(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save schema to file"),
) -> None:
    """Export JSON Schema for MigrationConfig."""
    try:
        schema_data = export_config_schema()

        if output:
            output.write_text(json.dumps(schema_data, indent=2))
            console.print(f"[green]✓ Schema written to {output}[/green]")
        else:
            console.print(
                Panel(json.dumps(schema_data, indent=2), title="JSON Schema", expand=False)
            )

    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
