from __future__ import annotations

import json
import signal
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from src.cluster.kubectl import KubectlClient
from src.common.config import kubectl_command, load_config
from src.common.errors import ConfigError, StructuralValidationError
from src.common.log import configure_logging
from src.common.reports import RolloutResult
from src.renderer.renderer import ManifestSource

from .orchestrator import EXIT_CONFIG, EXIT_OK, EXIT_STRUCTURAL, RolloutOrchestrator

app = typer.Typer(help="Render, validate, apply and verify gateway resources for one environment.")

_STATUS_MARKS = {"passed": "ok", "warning": "warn", "failed": "FAIL", "skipped": "skip"}


@app.command()
def rollout(
    environment: str = typer.Argument(..., help="Environment name declared in the config file."),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Rollout configuration file (default: $ROLLOUT_CONFIG or configs/rollout.yaml).",
    ),
    kubectl_cmd: Optional[str] = typer.Option(
        None,
        "--kubectl",
        help="Kubectl binary used to reach the cluster (default: $ROLLOUT_KUBECTL or kubectl).",
    ),
    report: Optional[Path] = typer.Option(
        None,
        "--report",
        "-r",
        help="Where to write the structured rollout result as JSON.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Apply as a dry run (server-side when the namespace exists) and stop after the apply stage.",
    ),
    deadline: Optional[float] = typer.Option(
        None,
        "--deadline",
        min=1.0,
        help="Cancel the rollout after this many seconds.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    configure_logging(verbose)
    try:
        rollout_config = load_config(config)
        target = rollout_config.environment(environment)
        source = ManifestSource.from_directory(rollout_config.manifests_dir)
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFIG) from exc
    except StructuralValidationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_STRUCTURAL) from exc

    cluster = KubectlClient(kubectl_cmd or kubectl_command(), context=target.cluster)
    orchestrator = RolloutOrchestrator(source, cluster, dry_run=dry_run)

    timer: Optional[threading.Timer] = None
    if deadline is not None:
        timer = threading.Timer(deadline, orchestrator.cancel)
        timer.daemon = True
        timer.start()
    previous = _install_signal_handlers(orchestrator)
    try:
        result = orchestrator.run(target)
    finally:
        if timer is not None:
            timer.cancel()
        _restore_signal_handlers(previous)

    _echo_summary(result)
    if report is not None:
        write_report(result, report)
        typer.echo(f"Rollout report written to {report.resolve()}")
    if result.exit_code != EXIT_OK:
        raise typer.Exit(code=result.exit_code)


def write_report(result: RolloutResult, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(result.to_dict(), indent=2, default=str), encoding="utf-8")


def _echo_summary(result: RolloutResult) -> None:
    for stage in result.stages:
        line = f"[{_STATUS_MARKS.get(stage.status, stage.status)}] {stage.name}"
        if stage.error:
            line += f": {stage.error}"
        typer.echo(line)
        for warning in stage.warnings:
            typer.echo(f"    - {warning}")
    if result.succeeded:
        suffix = f" with {len(result.warnings)} warning(s)" if result.warnings else ""
        typer.echo(f"Rollout {result.environment} succeeded{suffix}")
    else:
        typer.echo(f"Rollout {result.environment} failed at {result.halted_stage} (exit {result.exit_code})")


def _install_signal_handlers(orchestrator: RolloutOrchestrator) -> Dict[int, Any]:
    if threading.current_thread() is not threading.main_thread():
        return {}

    def handler(signum, _frame) -> None:
        typer.echo(f"Received signal {signum}; cancelling rollout", err=True)
        orchestrator.cancel()

    previous: Dict[int, Any] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, handler)
    return previous


def _restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


if __name__ == "__main__":  # pragma: no cover
    app()
