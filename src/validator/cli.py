from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from src.common.config import load_config
from src.common.errors import ConfigError, StructuralValidationError
from src.common.reports import Finding
from src.renderer.renderer import ManifestRenderer, ManifestSource
from src.rollout.orchestrator import EXIT_CONFIG, EXIT_STRUCTURAL

from .posture import PostureAuditor
from .static import StaticValidator

app = typer.Typer(help="Run the offline structural and security posture checks for an environment.")


@app.command()
def validate(
    environment: str = typer.Argument(..., help="Environment name declared in the config file."),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Rollout configuration file (default: $ROLLOUT_CONFIG or configs/rollout.yaml).",
    ),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="Where to write the findings as JSON.",
    ),
) -> None:
    try:
        rollout_config = load_config(config)
        target = rollout_config.environment(environment)
        source = ManifestSource.from_directory(rollout_config.manifests_dir)
        document = ManifestRenderer(source).render(target)
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFIG) from exc
    except StructuralValidationError as exc:
        typer.echo(f"[blocking] {exc}")
        raise typer.Exit(code=EXIT_STRUCTURAL) from exc

    structural = StaticValidator().validate(document, target)
    auditor = PostureAuditor()
    posture = auditor.audit(document, target)

    for finding in structural.findings + posture.findings:
        typer.echo(_format_finding(finding))
    for check, present in auditor.classify(document, target).items():
        typer.echo(f"posture {check}: {'present' if present else 'absent'}")

    if out is not None:
        payload = {
            "environment": environment,
            "records": len(document),
            "structural": structural.to_dict(),
            "security": posture.to_dict(),
        }
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    if not structural.passed:
        typer.echo(f"{len(structural.blocking)} blocking finding(s); rollout would halt")
        raise typer.Exit(code=EXIT_STRUCTURAL)
    typer.echo(f"Validated {len(document)} record(s) for {environment}: {len(posture.findings)} advisory finding(s)")


def _format_finding(finding: Finding) -> str:
    where = f" ({finding.resource})" if finding.resource else ""
    return f"[{finding.severity}] {finding.category}: {finding.message}{where}"


if __name__ == "__main__":  # pragma: no cover
    app()
