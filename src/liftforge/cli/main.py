"""Main CLI entry point for LiftForge.

Provides commands for serving the API, estimating sample sizes, validating
experiment definitions and ranking optimization opportunities offline.
"""

import asyncio
import json
from pathlib import Path
from typing import Any

import click
import pydantic
from rich.console import Console
from rich.table import Table

from liftforge import __version__
from liftforge.autonomous.models import PageSignals
from liftforge.autonomous.opportunities import OpportunityAnalyzer
from liftforge.config import load_settings_from_env
from liftforge.experiments.analysis import StatisticalAnalyzer
from liftforge.experiments.errors import ValidationError
from liftforge.experiments.manager import ExperimentDefinition
from liftforge.experiments.validation import ExperimentValidator

console = Console()


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}")


@click.group()
@click.version_option(version=__version__, prog_name="liftforge")
def cli() -> None:
    """LiftForge - experimentation engine for marketing pages."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the REST API with uvicorn.

    Examples:
        liftforge serve --port 8080
    """
    import uvicorn

    settings = load_settings_from_env()
    uvicorn.run(
        "liftforge.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@cli.command(name="sample-size")
@click.option("--baseline", type=float, required=True, help="Baseline conversion rate (%)")
@click.option("--mde", type=float, required=True, help="Relative lift to detect (%)")
@click.option("--confidence", type=float, default=95.0, show_default=True)
@click.option("--power", type=float, default=80.0, show_default=True)
@click.option("--variants", type=int, default=2, show_default=True)
@click.option("--daily-traffic", type=int, default=None, help="Visitors per day")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
)
def sample_size(
    baseline: float,
    mde: float,
    confidence: float,
    power: float,
    variants: int,
    daily_traffic: int | None,
    output_format: str,
) -> None:
    """Estimate the sample size needed to detect a lift.

    Examples:
        liftforge sample-size --baseline 5 --mde 20
        liftforge sample-size --baseline 2.5 --mde 10 --variants 3 --format json
    """
    analyzer = StatisticalAnalyzer()
    try:
        estimate = analyzer.sample_size(
            baseline_rate=baseline,
            minimum_detectable_effect=mde,
            confidence_level=confidence,
            statistical_power=power,
            variant_count=variants,
            daily_traffic=daily_traffic,
        )
    except ValidationError as e:
        details = "; ".join(v["message"] for v in e.violations)
        raise click.ClickException(f"{e.message}: {details}")

    if output_format == "json":
        click.echo(json.dumps(estimate.model_dump(by_alias=True), indent=2))
        return

    table = Table(title="Sample Size Estimate")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Per variant", f"{estimate.per_variant:,}")
    table.add_row("Total", f"{estimate.total:,}")
    table.add_row("Variants", str(estimate.variant_count))
    table.add_row("Estimated days", str(estimate.estimated_duration_days))
    table.add_row("Baseline rate", f"{estimate.baseline_conversion_rate:.2f}%")
    table.add_row("Expected rate", f"{estimate.expected_conversion_rate:.2f}%")
    table.add_row("Confidence", f"{estimate.confidence_level:g}%")
    table.add_row("Power", f"{estimate.statistical_power:g}%")
    console.print(table)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(file: Path) -> None:
    """Validate an experiment definition stored as JSON.

    Exits with status 1 when the definition breaks any rule.

    Examples:
        liftforge validate experiment.json
    """
    try:
        definition = ExperimentDefinition.model_validate(_load_json(file))
    except pydantic.ValidationError as e:
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            console.print(f"[red]invalid[/red] {location}: {error['msg']}")
        raise SystemExit(1)

    violations = ExperimentValidator().validate(definition.to_experiment())
    if not violations:
        console.print(f"[green]{definition.name} is valid.[/green]")
        return

    table = Table(title=f"Violations in {file.name}")
    table.add_column("Code", style="red")
    table.add_column("Field", style="yellow")
    table.add_column("Message")
    for violation in violations:
        table.add_row(violation.code, violation.field, violation.message)
    console.print(table)
    raise SystemExit(1)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--limit", type=int, default=10, show_default=True)
def opportunities(file: Path, limit: int) -> None:
    """Rank optimization opportunities from a JSON list of page signals.

    Examples:
        liftforge opportunities signals.json --limit 5
    """
    raw = _load_json(file)
    try:
        signals = [PageSignals.model_validate(item) for item in raw]
    except pydantic.ValidationError as e:
        raise click.ClickException(f"Invalid signals: {e.error_count()} errors")

    settings = load_settings_from_env()
    analyzer = OpportunityAnalyzer(settings.autonomous.thresholds, cache_seconds=0)
    ranked = asyncio.run(analyzer.analyze(signals))

    table = Table(title="Optimization Opportunities")
    table.add_column("Page", style="cyan")
    table.add_column("Element", style="green")
    table.add_column("Severity", style="yellow")
    table.add_column("Impact", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Issue")
    for opportunity in ranked[:limit]:
        table.add_row(
            opportunity.page,
            opportunity.element,
            opportunity.severity.value,
            f"{opportunity.potential_impact:.2f}",
            f"{opportunity.confidence_score:.2f}",
            opportunity.issue,
        )
    console.print(table)

    if not ranked:
        console.print("[yellow]No opportunities found.[/yellow]")


def main() -> None:
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
