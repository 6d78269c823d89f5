"""
llm-evals CLI

Command-line interface for running graded evaluations.

Usage:
    # Scaffold a registry with an example eval
    python -m llm_evals init --registry ./registry

    # List registered evals
    python -m llm_evals list

    # Run an eval against a model
    python -m llm_evals run --eval math-basic --model gpt-4o-mini

    # Validate config and dataset without calling any model
    python -m llm_evals run --eval math-basic --model llama3.2 --dry-run
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

import config
from utils.exceptions import LlmEvalsError
from utils.logging_config import setup_logging

console = Console()
logger = logging.getLogger(__name__)


def _registry_path(args: argparse.Namespace) -> Path:
    return Path(args.registry) if args.registry else config.REGISTRY_DIR


async def cmd_run(args: argparse.Namespace) -> int:
    """Run one evaluation and report the result."""
    from .evaluation import EvalRegistry, EvalRunner, EventLog, ReportConfig, ReportGenerator, RunOptions

    registry = EvalRegistry(_registry_path(args)).load()
    event_log = EventLog()
    runner = EvalRunner(registry, event_log=event_log)

    options = RunOptions(
        model=args.model,
        eval_name=args.eval,
        provider=args.provider,
        grading_model=args.grading_model,
        max_samples=args.max_samples,
        temperature=args.temperature,
        max_tokens=args.max_tokens,
        seed=args.seed,
        concurrency=args.concurrency,
        timeout_seconds=args.timeout,
        dry_run=args.dry_run,
        use_cache=not args.no_cache,
        precompute_embeddings=args.precompute_embeddings,
        show_progress=not args.quiet,
    )

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, runner.cancel)
    except NotImplementedError:
        logger.debug("Signal handlers unavailable; Ctrl+C will abort immediately")

    console.print(f"[cyan]Evaluating {args.model} on {args.eval}[/cyan]")
    try:
        report = await runner.run(options)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass

    if not args.no_log:
        log_path = EventLog.default_log_path(
            report.run_id, report.model, report.eval_name, log_dir=config.RUNS_DIR
        )
        try:
            event_log.save(log_path, report.run_id)
            console.print(f"[dim]Event log: {log_path}[/dim]")
        except OSError as e:
            console.print(f"[yellow]Could not write event log: {e}[/yellow]")

    # Display results
    table = Table(title=f"{report.eval_name} / {report.model}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Samples", str(report.total_samples))
    table.add_row("Passed", str(report.correct))
    table.add_row("Failed", str(report.incorrect))
    table.add_row("Pass rate", f"{report.score:.1%}")
    table.add_row("Average score", f"{report.average_score:.3f}")
    table.add_row("Errors", str(report.metadata.get("errors", 0)))
    table.add_row("Duration", f"{report.duration_ms / 1000:.1f}s")
    if report.token_usage.get("samples_with_usage"):
        table.add_row("Total tokens", str(report.token_usage["total_tokens"]))
    console.print(table)

    if report.metadata.get("cancelled"):
        console.print("[yellow]Run cancelled; report covers completed samples only[/yellow]")
    if report.metadata.get("dry_run"):
        console.print("[yellow]Dry run: no completions were requested[/yellow]")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            json.dump(report.to_dict(), f, indent=2, default=str)
        console.print(f"[green]Results saved to {output_path}[/green]")

    if not args.no_report:
        generator = ReportGenerator(ReportConfig(report_dir=Path(args.report_dir)))
        report_path = generator.generate(report)
        console.print(f"[green]Report saved to {report_path}[/green]")

    return 0


async def cmd_list(args: argparse.Namespace) -> int:
    """List registered evaluations."""
    from .evaluation import EvalRegistry

    registry = EvalRegistry(_registry_path(args)).load()
    names = registry.list_evals()
    if not names:
        console.print(f"[yellow]No evals found in {registry.evals_dir}[/yellow]")
        return 0

    table = Table(title=f"Evals in {registry.registry_path}")
    table.add_column("Name", style="cyan")
    table.add_column("ID")
    table.add_column("Class", style="green")
    table.add_column("Description")
    for name in names:
        spec = registry.get(name)
        table.add_row(name, spec.id, spec.strategy_class, spec.description)
    console.print(table)
    return 0


async def cmd_init(args: argparse.Namespace) -> int:
    """Create a registry with an example eval."""
    from .evaluation import EvalRegistry

    config_path = EvalRegistry.create_default(_registry_path(args))
    console.print(f"[green]Created example eval at {config_path}[/green]")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llm-evals",
        description="Graded LLM evaluations",
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Log level")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run
    run_parser = subparsers.add_parser("run", help="Run an evaluation")
    run_parser.add_argument("--eval", "-e", required=True, help="Eval name from the registry")
    run_parser.add_argument("--model", "-m", required=True, help="Model under test")
    run_parser.add_argument(
        "--provider", "-p", default=None, help="Provider (ollama, google, openai); inferred if omitted"
    )
    run_parser.add_argument("--registry", "-r", help="Registry directory")
    run_parser.add_argument("--grading-model", help="Override the eval's grading model")
    run_parser.add_argument("--max-samples", type=int, help="Evaluate only the first N samples")
    run_parser.add_argument(
        "--concurrency", type=int, default=config.DEFAULT_CONCURRENCY, help="Parallel samples"
    )
    run_parser.add_argument(
        "--timeout", type=float, default=config.REQUEST_TIMEOUT, help="Per-call timeout in seconds"
    )
    run_parser.add_argument("--temperature", type=float, default=0.0, help="Sampling temperature")
    run_parser.add_argument("--max-tokens", type=int, help="Completion token limit")
    run_parser.add_argument("--seed", type=int, help="Sampling seed, where supported")
    run_parser.add_argument("--dry-run", action="store_true", help="Validate without calling models")
    run_parser.add_argument("--no-cache", action="store_true", help="Disable the result cache")
    run_parser.add_argument(
        "--precompute-embeddings",
        action="store_true",
        help="Embed all ideal answers before grading (semantic_similarity only)",
    )
    run_parser.add_argument("--output", "-o", help="Output path for results JSON")
    run_parser.add_argument("--no-report", action="store_true", help="Skip report generation")
    run_parser.add_argument("--report-dir", default="./reports", help="Report output directory")
    run_parser.add_argument("--no-log", action="store_true", help="Skip writing the event log")
    run_parser.add_argument("--quiet", "-q", action="store_true", help="Hide the progress bar")

    # list
    list_parser = subparsers.add_parser("list", help="List registered evals")
    list_parser.add_argument("--registry", "-r", help="Registry directory")

    # init
    init_parser = subparsers.add_parser("init", help="Create a registry with an example eval")
    init_parser.add_argument("--registry", "-r", help="Registry directory")

    return parser


COMMANDS = {
    "run": cmd_run,
    "list": cmd_list,
    "init": cmd_init,
}


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    config.validate_config()
    setup_logging(
        level="DEBUG" if config.DEBUG else args.log_level,
        log_dir=config.LOG_DIR,
        console=False,
    )

    try:
        return asyncio.run(COMMANDS[args.command](args))
    except LlmEvalsError as e:
        logger.error(f"{args.command} failed: {e}")
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
