from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from src.common.config import load_config
from src.common.errors import ConfigError, StructuralValidationError
from src.rollout.orchestrator import EXIT_CONFIG, EXIT_STRUCTURAL

from .renderer import ManifestRenderer, ManifestSource

app = typer.Typer(help="Render an environment's gateway resources from base manifests and overlays.")


@app.command()
def render(
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
        help="Write the rendered YAML here instead of stdout.",
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
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_STRUCTURAL) from exc

    rendered = document.to_yaml()
    if out is None:
        typer.echo(rendered, nl=False)
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(rendered, encoding="utf-8")
    typer.echo(f"Rendered {len(document)} record(s) for {environment} to {out.resolve()}")


if __name__ == "__main__":  # pragma: no cover
    app()
