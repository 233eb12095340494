#!/usr/bin/env python3
"""
Homework Analyzer - exercise detection for scanned homework pages.
CLI interface for routing, segmenting and analyzing a page.
"""

import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from config import Config
from core.analysis_router import AnalysisRouter
from core.analysis_service import HomeworkAnalyzer
from core.dto.analysis import OCRBlock
from core.imaging import load_image
from core.pipeline import SegmentPipeline
from models.classifier import BackendClassifier

console = Console()


def setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def load_blocks(path: Path):
    """Load OCR blocks from a JSON file (a list of {"text", "y"} or {"blocks": [...]})."""
    with open(path, "r") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("blocks", [])
    return [OCRBlock.from_dict(item) for item in data]


def build_router(routing_config, profile, probe=None):
    """Router from a YAML profile when one is requested, else from environment settings."""
    if routing_config is None and profile is not None:
        routing_config = Config.ROUTING_CONFIG_PATH
    return AnalysisRouter(
        config_path=Path(routing_config) if routing_config else None,
        profile=profile,
        on_device_probe=probe,
    )


@click.group()
@click.version_option(version="0.1.0", prog_name="Homework Analyzer")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """Homework Analyzer - find the exercises on a scanned homework page."""
    setup_logging(verbose)


@cli.command()
@click.option("--profile", "-p", help="Routing profile from the routing YAML (e.g. free, pro, agentic)")
@click.option(
    "--routing-config",
    type=click.Path(exists=True, dir_okay=False),
    help="Routing YAML file (default: config/routing.yaml when --profile is given)",
)
@click.option("--probe/--no-probe", default=True, help="Probe the local on-device model")
def route(profile, routing_config, probe):
    """Show which analysis backend would be used."""
    classifier = BackendClassifier()
    try:
        router = build_router(
            routing_config, profile, probe=classifier.is_on_device_available if probe else None
        )
        decision = router.route()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()

    table = Table(title="\nRouting snapshot")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    for key, value in decision.config.to_dict().items():
        table.add_row(key, "[green]yes[/green]" if value else "[dim]no[/dim]")
    console.print(table)

    console.print(f"\nBackend: [bold]{decision.backend.description}[/bold] ({decision.backend})")
    if decision.is_fallback:
        console.print(
            "[yellow]Warning: cloud analysis selected without an active subscription[/yellow]"
        )
    console.print()


@cli.command()
@click.argument("ocr_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--image", "-i", type=click.Path(exists=True, dir_okay=False), help="Page image")
@click.option("--gap-threshold", type=float, help=f"Gap that splits segments (default: {Config.GAP_THRESHOLD})")
@click.option(
    "--min-height", type=float, help=f"Minimum segment height (default: {Config.MIN_SEGMENT_HEIGHT})"
)
def segments(ocr_json, image, gap_threshold, min_height):
    """Show how a page would be segmented, without calling any backend."""
    try:
        blocks = load_blocks(Path(ocr_json))
        page = load_image(Path(image)) if image else None
    except (OSError, ValueError, KeyError) as e:
        console.print(f"\n[bold red]Error:[/bold red] Cannot read input: {e}\n")
        raise click.Abort()

    pipeline = SegmentPipeline(classifier=None, gap_threshold=gap_threshold, min_height=min_height)
    result = pipeline.build_segments(blocks, page)
    if not result:
        console.print("\n[yellow]No OCR blocks found.[/yellow]\n")
        return

    table = Table(title=f"\nSegments ({len(result)})")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Start Y", style="cyan", justify="right")
    table.add_column("End Y", style="cyan", justify="right")
    table.add_column("Blocks", justify="right")
    table.add_column("Text", style="white")

    # Top of page first
    for index, segment in enumerate(reversed(result), start=1):
        preview = segment.text.replace("\n", " ")
        table.add_row(
            str(index),
            f"{segment.start_y:.3f}",
            f"{segment.end_y:.3f}",
            str(len(segment.blocks)),
            preview[:60] + ("..." if len(preview) > 60 else ""),
        )
    console.print(table)
    console.print()


@cli.command()
@click.argument("ocr_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--image", "-i", type=click.Path(exists=True, dir_okay=False), help="Page image")
@click.option("--context", "-c", help="Assignment description to analyze with the page")
@click.option("--profile", "-p", help="Routing profile from the routing YAML")
@click.option("--routing-config", type=click.Path(exists=True, dir_okay=False), help="Routing YAML file")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def analyze(ocr_json, image, context, profile, routing_config, as_json):
    """Detect the exercises on a homework page."""
    try:
        blocks = load_blocks(Path(ocr_json))
        page = load_image(Path(image)) if image else None
    except (OSError, ValueError, KeyError) as e:
        console.print(f"\n[bold red]Error:[/bold red] Cannot read input: {e}\n")
        raise click.Abort()

    outcome, metadata = asyncio.run(analyze_async(blocks, page, context, profile, routing_config))

    if not outcome.success:
        console.print(f"\n[bold red]Error:[/bold red] {outcome.error}\n")
        raise click.Abort()

    if as_json:
        click.echo(json.dumps({**outcome.result.to_dict(), "metadata": metadata.to_dict()}, indent=2))
        return

    table = Table(title=f"\nExercises ({len(outcome.result)})")
    table.add_column("Number", style="cyan", no_wrap=True)
    table.add_column("Type", style="magenta")
    table.add_column("Subject", style="green")
    table.add_column("Y", style="dim")
    table.add_column("Content", style="white")

    for exercise in outcome.result.exercises:
        table.add_row(
            exercise.exercise_number,
            exercise.kind,
            exercise.subject or "",
            f"{exercise.start_y:.2f}-{exercise.end_y:.2f}",
            exercise.content[:80] + ("..." if len(exercise.content) > 80 else ""),
        )

    console.print(table)
    console.print(
        f"\n[dim]{metadata.service_used} - {metadata.processing_time_ms} ms - "
        f"{metadata.segments_total} segments, {metadata.segments_failed} skipped[/dim]\n"
    )


async def analyze_async(blocks, page, context, profile, routing_config):
    """Run the analysis with a live progress bar."""
    async with BackendClassifier() as classifier:
        try:
            router = build_router(
                routing_config, profile, probe=classifier.is_on_device_available_async
            )
            decision = await router.route_async()
        except (FileNotFoundError, ValueError) as e:
            console.print(f"\n[bold red]Error:[/bold red] {e}\n")
            raise click.Abort()

        analyzer = HomeworkAnalyzer(classifier, router=router)

        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            task = progress.add_task(description="Analyzing segments...", total=None)

            def on_progress(completed, total):
                progress.update(task, completed=completed, total=total)

            return await analyzer.analyze_homework(
                blocks, page, on_progress=on_progress, additional_context=context, decision=decision
            )


if __name__ == "__main__":
    cli()
