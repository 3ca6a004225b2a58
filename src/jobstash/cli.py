# src/jobstash/cli.py
"""jobstash Command Line Interface.

Entry point for the jobstash CLI tool.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Literal

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from jobstash import __version__
from jobstash.contracts import JobstashError, RunResult, RunStatus
from jobstash.core.config import JobstashSettings, load_settings

if TYPE_CHECKING:
    from jobstash.engine.pool import ConnectorFactory
    from jobstash.plugins.manager import PluginManager

__all__ = [
    "app",
    "load_settings",  # Re-exported from config for convenience
]

# Module-level singleton for plugin manager
_plugin_manager_cache: PluginManager | None = None


def _get_plugin_manager() -> PluginManager:
    """Get initialized plugin manager (singleton).

    Returns:
        PluginManager with built-in and entry-point plugins registered
    """
    global _plugin_manager_cache

    from jobstash.plugins.manager import PluginManager

    if _plugin_manager_cache is None:
        manager = PluginManager()
        manager.register_builtin_plugins()
        manager.load_entrypoint_plugins()
        _plugin_manager_cache = manager
    return _plugin_manager_cache


def _connector_factory() -> ConnectorFactory:
    from jobstash.engine.pool import default_connector_factory

    return default_connector_factory


app = typer.Typer(
    name="jobstash",
    help="jobstash: Ship SQL Server Agent job history to log sinks, resumably.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"jobstash version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    # Don't override existing env vars
    return load_dotenv(override=False)


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,  # Existence is checked in _load_dotenv for a clearer message
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """jobstash: Ship SQL Server Agent job history to log sinks, resumably."""
    # Configured early so settings errors are logged consistently; run
    # reconfigures once the settings file is loaded
    from jobstash.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")
    ctx.obj = {"verbose": verbose, "json_logs": json_logs}

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


def _load_or_exit(settings: str) -> JobstashSettings:
    """Load settings, printing a readable error and exiting 1 on failure."""
    try:
        return load_settings(Path(settings).expanduser())
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {settings}: {e.problem}", err=True)
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _check_sink_plugins(config: JobstashSettings, manager: PluginManager) -> None:
    """Instantiate each configured sink once so bad names/options fail up front."""
    from jobstash.plugins.config_base import PluginConfigError

    try:
        manager.create_sinks(config.sinks)
    except (JobstashError, PluginConfigError) as e:
        typer.echo(f"Error instantiating sinks: {e}", err=True)
        raise typer.Exit(1) from None


def _result_to_dict(result: RunResult) -> dict[str, object]:
    return {
        "session": result.session,
        "instance": result.instance,
        "status": str(result.status),
        "rows_scanned": result.rows_scanned,
        "rows_delivered": result.rows_delivered,
        "committed_cursor": result.committed_cursor,
        "error": str(result.error) if result.error is not None else None,
    }


@app.command()
def run(
    ctx: typer.Context,
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    output_format: Literal["console", "json"] = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json' (structured JSON).",
    ),
) -> None:
    """Run every configured source once.

    Exits 1 if any source failed. Skipped sources (already running
    elsewhere) are not failures.
    """
    from jobstash.core.checkpoint import CheckpointDB
    from jobstash.core.guard import ConcurrencyGuard
    from jobstash.core.logging import configure_logging
    from jobstash.core.metrics import METRICS
    from jobstash.engine.orchestrator import RunOrchestrator
    from jobstash.engine.pool import WorkerPool

    config = _load_or_exit(settings)

    flags = ctx.obj or {}
    configure_logging(
        json_output=flags.get("json_logs", False) or config.logging.json_output,
        level="DEBUG" if flags.get("verbose", False) else config.logging.level,
    )

    manager = _get_plugin_manager()
    _check_sink_plugins(config, manager)

    METRICS.reset()
    try:
        with CheckpointDB(config.checkpoint.url) as db:
            guard = ConcurrencyGuard(db, lease_seconds=config.checkpoint.lease_seconds)
            orchestrator = RunOrchestrator(db=db, guard=guard, metrics=METRICS)
            pool = WorkerPool(config, orchestrator, manager, connector_factory=_connector_factory())
            results = pool.run_all()
    except Exception as e:
        if output_format == "json":
            typer.echo(json.dumps({"event": "error", "error": str(e), "error_type": type(e).__name__}), err=True)
        else:
            typer.echo(f"Error during run: {e}", err=True)
        raise typer.Exit(1) from None

    snapshot = METRICS.snapshot()
    if output_format == "json":
        typer.echo(json.dumps({"results": [_result_to_dict(r) for r in results], "metrics": snapshot.to_dict()}))
    else:
        for result in results:
            line = f"{result.instance} [{result.session}]: {result.status} ({result.rows_delivered} delivered)"
            if result.error is not None:
                line += f" - {result.error}"
            typer.echo(line)
        typer.echo(
            f"Read {snapshot.rows_read} rows, delivered {snapshot.records_delivered} records "
            f"in {snapshot.elapsed_seconds:.2f}s ({snapshot.records_per_second}/s)"
        )

    if any(r.status == RunStatus.FAILED for r in results):
        raise typer.Exit(1)


@app.command()
def checkpoints(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    output_format: Literal["console", "json"] = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json' (structured JSON).",
    ),
) -> None:
    """List committed checkpoint cursors."""
    from jobstash.core.checkpoint import CheckpointDB, list_offsets

    config = _load_or_exit(settings)

    try:
        with CheckpointDB(config.checkpoint.url) as db:
            rows = list_offsets(db)
    except JobstashError as e:
        typer.echo(f"Error reading checkpoints: {e}", err=True)
        raise typer.Exit(1) from None

    if output_format == "json":
        typer.echo(
            json.dumps(
                [
                    {
                        "domain": r.domain,
                        "server": r.server,
                        "event_class": r.event_class,
                        "session": r.session,
                        "cursor": r.cursor,
                        "state": str(r.state),
                        "committed_at": r.committed_at.isoformat(),
                    }
                    for r in rows
                ]
            )
        )
        return

    if not rows:
        typer.echo("No checkpoints committed.")
        return
    for r in rows:
        typer.echo(f"{r.domain}/{r.server}/{r.event_class}/{r.session}: cursor={r.cursor} state={r.state} at {r.committed_at.isoformat()}")


@app.command()
def validate(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Validate settings and sink plugin options without running anything."""
    config = _load_or_exit(settings)
    _check_sink_plugins(config, _get_plugin_manager())

    typer.echo("Configuration valid.")
    typer.echo(f"  Sources: {', '.join(s.fqdn for s in config.sources)}")
    typer.echo(f"  Sinks: {', '.join(s.plugin for s in config.sinks)}")
    typer.echo(f"  Checkpoint: {config.checkpoint.url}")


if __name__ == "__main__":
    app()
