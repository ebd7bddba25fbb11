"""Command-line interface for gmail_analyzer."""

from __future__ import annotations

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from gmail_analyzer import __app_name__, __version__
from gmail_analyzer.config import Config, load_config
from gmail_analyzer.exceptions import (
    GmailAnalyzerError,
    InferenceError,
    PersistenceError,
    WatermarkNotFound,
)
from gmail_analyzer.gmail_service import build_gmail_service
from gmail_analyzer.llm_client import OllamaClient
from gmail_analyzer.mail_source import GmailMailSource
from gmail_analyzer.models import RunSummary
from gmail_analyzer.results import ResultSink
from gmail_analyzer.runner import Runner
from gmail_analyzer.watermark import WatermarkStore

console = Console(width=200, soft_wrap=False)
logger = logging.getLogger("gmail_analyzer")


def setup_logging(level: str, log_file: str | None = None) -> None:
    """Configure logging."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [
        RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
    ]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,
    )

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)


def _load(config_path: str | None) -> Config:
    return load_config(config_path) if config_path else Config()


def _summary_table(summary: RunSummary) -> Table:
    table = Table(title="Analysis Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Total emails", str(summary.total))
    table.add_row("Rule-based detections", str(summary.rule_based))
    table.add_row("AI analyses", str(summary.ai))
    table.add_row("AI failures (kept as legitimate)", str(summary.ai_failed))
    table.add_row("Spam flagged", f"[red]{summary.spam}[/red]")
    table.add_row("Legitimate", f"[green]{summary.legitimate}[/green]")
    return table


config_option = click.option(
    "--config",
    "-c",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to configuration YAML file (defaults are used when omitted)",
)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Gmail Analyzer - Rule-based and local LLM spam triage for Gmail."""
    pass


@cli.command()
@config_option
@click.option(
    "--no-auto-start",
    is_flag=True,
    help="Do not spawn Ollama when it is not running",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def run(config: str | None, no_auto_start: bool, verbose: bool) -> None:
    """Fetch new email and classify it."""
    try:
        cfg = _load(config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)

    log_level = "DEBUG" if verbose else cfg.logging.level
    setup_logging(log_level, cfg.logging.log_file)

    if no_auto_start:
        cfg.ollama.auto_start = False

    console.print(f"[bold blue]{__app_name__} v{__version__}[/bold blue]")
    console.print(f"Model: {cfg.ollama.model} at {cfg.ollama.base_url}")

    try:
        service = build_gmail_service(cfg.gmail.token_path)
        source = GmailMailSource.from_config(service, cfg.gmail)

        with OllamaClient(cfg.ollama) as ollama:
            runner = Runner.from_config(cfg, source, ollama)
            report = runner.run()

    except GmailAnalyzerError as e:
        logger.debug("Run failed", exc_info=True)
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    console.print(_summary_table(report.summary))
    console.print(f"[OK] Analysis complete. Processed {report.summary.total} emails")
    console.print(f"Results: {cfg.state.results_path}")
    if report.watermark_advanced:
        console.print(f"Watermark: {report.watermark.as_datetime().isoformat()}")


@cli.command()
@config_option
def status(config: str | None) -> None:
    """Show the watermark, the last snapshot and Ollama availability."""
    cfg = _load(config)
    setup_logging(cfg.logging.level, cfg.logging.log_file)

    table = Table(title="Status")
    table.add_column("Item", style="cyan")
    table.add_column("Value")

    try:
        watermark = WatermarkStore(cfg.state.watermark_path).read()
        table.add_row("Watermark", watermark.as_datetime().isoformat())
    except WatermarkNotFound:
        table.add_row("Watermark", "[yellow]not initialized[/yellow]")
    except PersistenceError as e:
        table.add_row("Watermark", f"[red]{e}[/red]")

    try:
        snapshot = ResultSink(cfg.state.results_path).load()
        spam = sum(1 for r in snapshot if r.get("isSpam"))
        table.add_row("Last snapshot", f"{len(snapshot)} emails, {spam} spam")
    except PersistenceError as e:
        table.add_row("Last snapshot", f"[red]{e}[/red]")

    with OllamaClient(cfg.ollama) as ollama:
        running = ollama.is_running()
    table.add_row(
        "Ollama",
        f"[green]running[/green] at {cfg.ollama.base_url}"
        if running
        else f"[yellow]not reachable[/yellow] at {cfg.ollama.base_url}",
    )

    console.print(table)


@cli.command("check-ollama")
@config_option
@click.option("--start", is_flag=True, help="Start Ollama if it is not running")
def check_ollama(config: str | None, start: bool) -> None:
    """Check Ollama availability and list installed models."""
    cfg = _load(config)
    setup_logging(cfg.logging.level, cfg.logging.log_file)

    with OllamaClient(cfg.ollama) as ollama:
        if start:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task("Starting Ollama...", total=None)
                try:
                    ollama.ensure_running()
                except InferenceError as e:
                    console.print(f"[red][FAIL] {e}[/red]")
                    sys.exit(1)
        elif not ollama.is_running():
            console.print(f"[red][FAIL] Ollama not available at {cfg.ollama.base_url}[/red]")
            sys.exit(1)

        console.print(f"[OK] Ollama available at {cfg.ollama.base_url}")
        models = ollama.list_models()

    if cfg.ollama.model in [m.split(":")[0] for m in models] or cfg.ollama.model in models:
        console.print(f"[OK] Model {cfg.ollama.model} available")
    else:
        console.print(
            f"[yellow][WARNING] Model {cfg.ollama.model} not found, available: {models}[/yellow]"
        )


if __name__ == "__main__":
    cli()
