"""CLI commands for stress testing an analysis service against source files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from .config import (
    DEFAULT_CONFIG_NAME,
    ConfigError,
    StressTesterConfig,
    copy_config_template,
    parse_config,
    read_config,
    write_config,
)
from .document import SyntacticInfoMode
from .errors import StressTesterError
from .model import RewriteMode
from .orchestrator import StressTester
from .performance import PerformanceDataCollector
from .report import StressTestResult, write_result
from .service.subprocess_connection import SubprocessConnection
from .syntactic_perf import EditMode, SyntacticPerfTester, SyntacticPerfTesterOptions, WalkMode

APP_HELP = "Stress test an analysis service by replaying generated editor requests."
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

app = typer.Typer(help=APP_HELP)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log every request sent to the service.",
    ),
) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def _resolve_config(config: Optional[str], overrides: Dict[str, Dict[str, Any]]) -> StressTesterConfig:
    """Load the explicit or default config file, falling back to the template."""
    default_path = Path(DEFAULT_CONFIG_NAME)
    try:
        if config is not None:
            config_data = read_config(Path(config))
        elif default_path.exists():
            config_data = read_config(default_path)
        else:
            config_data = copy_config_template()
        settings = parse_config(config_data, overrides)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error

    if not settings.service.command:
        typer.echo(
            "No analysis service command configured. "
            "Set service.command in the config or pass --service."
        )
        raise typer.Exit(code=1)
    return settings


def _open_connection(settings: StressTesterConfig) -> SubprocessConnection:
    connection = SubprocessConnection(settings.service.command)
    try:
        connection.start()
    except OSError as error:
        typer.echo(f"Failed to start analysis service {settings.service.command[0]!r}: {error}")
        raise typer.Exit(code=1) from error
    return connection


def _echo_failure(error: StressTesterError) -> None:
    typer.echo(f"FAILED [{error.kind}] {error}")
    if error.action is not None:
        typer.echo(f"Action: {error.action!r}")
    if error.response:
        typer.echo("Response:")
        typer.echo(error.response)


@app.command()
def run(
    file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Source file to stress test.",
    ),
    compiler_args: List[str] = typer.Argument(
        None,
        help="Compiler arguments passed to the service (place after --).",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to the configuration file (default: {DEFAULT_CONFIG_NAME} if present).",
    ),
    service: Optional[str] = typer.Option(
        None,
        "--service",
        help="Command line that starts the analysis service.",
    ),
    rewrite_mode: Optional[RewriteMode] = typer.Option(
        None,
        "--rewrite-mode",
        "-m",
        help="Action generator to use.",
    ),
    request: List[str] = typer.Option(
        None,
        "--request",
        "-r",
        help="Request kind to issue: CursorInfo, RangeInfo, CodeComplete or All (repeatable).",
    ),
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        "-l",
        min=0,
        help="Maximum number of AST rebuilds (completions and edits).",
    ),
    page: Optional[str] = typer.Option(
        None,
        "--page",
        "-p",
        help="Page of the action plan to execute, e.g. 2/4.",
    ),
    syntax_mode: Optional[SyntacticInfoMode] = typer.Option(
        None,
        "--syntax-mode",
        help="How syntax trees are transferred back from the service.",
    ),
    tolerate_type_errors: Optional[bool] = typer.Option(
        None,
        "--tolerate-type-errors/--reject-type-errors",
        help="Accept error types in probe responses of read-only runs.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Per-request timeout in seconds.",
    ),
    report: Optional[Path] = typer.Option(
        None,
        "--report",
        help="Write a JSON result document to this path.",
    ),
) -> None:
    """Run one page of generated requests against FILE."""
    overrides: Dict[str, Dict[str, Any]] = {
        "service": {"command": service, "timeout_seconds": timeout},
        "run": {
            "rewrite_mode": rewrite_mode.value if rewrite_mode is not None else None,
            "requests": list(request) if request else None,
            "ast_build_limit": limit,
            "page": page,
            "syntax_mode": syntax_mode.value if syntax_mode is not None else None,
            "tolerate_type_errors": tolerate_type_errors,
        },
    }
    settings = _resolve_config(config, overrides)
    collector = PerformanceDataCollector()
    options = settings.run_options(listener=collector)
    arguments = [*settings.compiler_args, *(compiler_args or [])]

    result = StressTestResult(
        file=str(file),
        page=str(options.page),
        rewrite_mode=options.rewrite_mode.value,
    )
    failure: StressTesterError | None = None
    connection = _open_connection(settings)
    try:
        tester = StressTester(file, connection=connection, compiler_args=arguments, options=options)
        plan = tester.run()
    except StressTesterError as error:
        failure = error
        result.record_failure(error)
    except ValueError as error:
        typer.echo(f"Cannot run {file}: {error}")
        raise typer.Exit(code=1) from error
    else:
        result.action_count = len(plan.actions)
    finally:
        connection.close()

    result.performance = collector.summary()
    typer.echo(str(collector))
    if report is not None:
        write_result(report, result)
        typer.echo(f"Wrote result to {report}")

    if failure is not None:
        _echo_failure(failure)
        raise typer.Exit(code=1)
    typer.echo(f"PASSED {file} page {options.page}: {result.action_count} action(s)")


@app.command("syntactic-perf")
def syntactic_perf(
    file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Source file to time.",
    ),
    compiler_args: List[str] = typer.Argument(
        None,
        help="Compiler arguments passed to the service (place after --).",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to the configuration file (default: {DEFAULT_CONFIG_NAME} if present).",
    ),
    service: Optional[str] = typer.Option(
        None,
        "--service",
        help="Command line that starts the analysis service.",
    ),
    edit_mode: EditMode = typer.Option(
        EditMode.NONE,
        "--edit-mode",
        help="Which tokens are deleted and retyped.",
    ),
    walk_mode: WalkMode = typer.Option(
        WalkMode.NONE,
        "--walk-mode",
        help="Tree walk performed after each resync.",
    ),
    repeat: int = typer.Option(
        1,
        "--repeat",
        "-n",
        min=1,
        help="Number of measured runs.",
    ),
    warm_up: bool = typer.Option(
        True,
        "--warm-up/--no-warm-up",
        help="Perform one unmeasured run first.",
    ),
    syntax_mode: Optional[SyntacticInfoMode] = typer.Option(
        None,
        "--syntax-mode",
        help="Tree transfer format (syntaxTreeJson or syntaxTreeByte).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Per-request timeout in seconds.",
    ),
) -> None:
    """Time the service's syntactic edit path on FILE."""
    overrides: Dict[str, Dict[str, Any]] = {
        "service": {"command": service, "timeout_seconds": timeout},
        "run": {"syntax_mode": syntax_mode.value if syntax_mode is not None else None},
    }
    settings = _resolve_config(config, overrides)
    collector = PerformanceDataCollector()
    options = SyntacticPerfTesterOptions(
        edit_mode=edit_mode,
        walk_mode=walk_mode,
        repeat_count=repeat,
        warm_up=warm_up,
        syntax_mode=settings.run.syntax_mode,
        timeout=settings.service.timeout_seconds,
    )
    arguments = [*settings.compiler_args, *(compiler_args or [])]

    connection = _open_connection(settings)
    try:
        tester = SyntacticPerfTester(
            file,
            connection=connection,
            collector=collector,
            options=options,
            compiler_args=arguments,
        )
        tester.run()
    except StressTesterError as error:
        _echo_failure(error)
        raise typer.Exit(code=1) from error
    except ValueError as error:
        typer.echo(f"Cannot time {file}: {error}")
        raise typer.Exit(code=1) from error
    finally:
        connection.close()

    typer.echo(str(collector))


@app.command("init-config")
def init_config(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path of the configuration file to create.",
    ),
    service: Optional[str] = typer.Option(
        None,
        "--service",
        help="Command line that starts the analysis service.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Overwrite an existing configuration file.",
    ),
) -> None:
    """Write a configuration file populated with defaults."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Config file already exists: {config_path} (use --force to overwrite)")
        raise typer.Exit(code=1)

    config_data = copy_config_template()
    if service:
        config_data["service"]["command"] = service
    write_config(config_path, config_data)
    typer.echo(f"Wrote {config_path}")


if __name__ == "__main__":
    app()
