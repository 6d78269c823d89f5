"""
Evaluation Runner

Drives one evaluation run through IDLE -> LOADING -> RUNNING -> REPORTING
-> DONE (or FAILED when loading fails):

1. LOADING: resolve the eval from the registry, parse its strategy config,
   load and cap the dataset, create clients and the grading strategy.
   Any failure here aborts the run.
2. RUNNING: a bounded pool of workers takes samples from a queue. Each
   sample gets a completion from the model under test and is graded. A
   failure in either step becomes a failed EvalResult for that sample only.
   Results are slotted by input index; events and progress are emitted in
   input order.
3. REPORTING: reduce results into an EvalReport and write the event log.

Usage:
    registry = EvalRegistry(Path("registry")).load()
    runner = EvalRunner(registry)
    report = await runner.run(RunOptions(model="gpt-4o-mini", eval_name="math-basic"))
    print(report.score)
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum, auto
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

import config
from utils.exceptions import ConfigError, GradingError, ProviderTimeoutError
from utils.logging_config import log_context
from utils.state_machine import StateMachine

from ..caching import MemoryCache, ResultCache
from ..grading import (
    GradingStrategy,
    SimilarityStrategy,
    StrategyConfig,
    StrategyKind,
    build_embeddings_service,
    create_strategy,
    requires_grading_client,
)
from ..models import CompletionResult, EvalReport, EvalResult, Sample, new_run_id
from ..providers.base import CompletionClient, CompletionOptions, create_client
from .config import EvalRegistry, EvalSpec
from .datasets import Dataset, load_dataset
from .event_log import EventLog

logger = logging.getLogger(__name__)

console = Console(stderr=True)

DRY_RUN_COMPLETION = "[DRY RUN - NO COMPLETION]"


class RunState(Enum):
    """Lifecycle of a single evaluation run."""

    IDLE = auto()
    LOADING = auto()
    RUNNING = auto()
    REPORTING = auto()
    DONE = auto()
    FAILED = auto()


RUN_TRANSITIONS: Dict[RunState, List[RunState]] = {
    RunState.IDLE: [RunState.LOADING],
    RunState.LOADING: [RunState.RUNNING, RunState.FAILED],
    RunState.RUNNING: [RunState.REPORTING, RunState.FAILED],
    RunState.REPORTING: [RunState.DONE, RunState.FAILED],
    RunState.DONE: [],
    RunState.FAILED: [],
}


@dataclass
class RunOptions:
    """Options for a single evaluation run."""

    model: str
    eval_name: str
    provider: Optional[str] = None  # inferred from model name when None
    grading_model: Optional[str] = None  # overrides the eval's grading_model
    max_samples: Optional[int] = None
    temperature: float = 0.0
    max_tokens: Optional[int] = None
    seed: Optional[int] = None
    concurrency: int = config.DEFAULT_CONCURRENCY
    timeout_seconds: float = config.REQUEST_TIMEOUT
    dry_run: bool = False
    use_cache: bool = True
    precompute_embeddings: bool = False
    log_to_file: Optional[Path] = None
    show_progress: bool = False

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ConfigError("concurrency must be at least 1")
        if self.timeout_seconds <= 0:
            raise ConfigError("timeout_seconds must be positive")
        if self.max_samples is not None and self.max_samples < 0:
            raise ConfigError("max_samples must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["log_to_file"] = str(self.log_to_file) if self.log_to_file else None
        return data


ClientFactory = Callable[[str, Optional[str], float], CompletionClient]


def default_client_factory(model: str, provider: Optional[str], timeout: float) -> CompletionClient:
    return create_client(model, provider=provider, timeout=timeout)


@dataclass
class _RunContext:
    """Everything LOADING resolves for RUNNING."""

    run_id: str
    spec: EvalSpec
    strategy_config: StrategyConfig
    dataset: Dataset
    client: Optional[CompletionClient] = None
    grading_client: Optional[CompletionClient] = None
    strategy: Optional[GradingStrategy] = None
    completion_options: CompletionOptions = field(default_factory=CompletionOptions)


class EvalRunner:
    """
    Runs one evaluation. Create a new runner per run.

    Collaborators are injected so tests can swap in fakes: the client
    factory builds completion clients, the caches may be shared between
    runners, and the event log receives run events.
    """

    def __init__(
        self,
        registry: EvalRegistry,
        client_factory: ClientFactory = default_client_factory,
        result_cache: Optional[ResultCache] = None,
        embeddings_cache: Optional[MemoryCache] = None,
        event_log: Optional[EventLog] = None,
        dataset_loader: Callable[[Path], Dataset] = load_dataset,
        progress_console: Optional[Console] = None,
    ):
        self.registry = registry
        self.client_factory = client_factory
        self.result_cache = result_cache if result_cache is not None else ResultCache(
            MemoryCache(ttl_seconds=config.CACHE_TTL_SECONDS, max_items=config.CACHE_MAX_ITEMS)
        )
        self.embeddings_cache = embeddings_cache
        self.event_log = event_log if event_log is not None else EventLog()
        self.dataset_loader = dataset_loader
        self.console = progress_console or console
        self._state: StateMachine[RunState] = StateMachine(
            initial_state=RunState.IDLE,
            allowed_transitions=RUN_TRANSITIONS,
            strict=True,
        )
        self._cancel = asyncio.Event()

    @property
    def state(self) -> RunState:
        return self._state.state

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop handing out new samples. In-flight samples finish or time out."""
        if not self._cancel.is_set():
            logger.info("Cancellation requested; no new samples will start")
        self._cancel.set()

    # -- Public entry point ---------------------------------------------------

    async def run(self, options: RunOptions) -> EvalReport:
        """
        Execute a full evaluation run.

        Every log record emitted during the run carries its run id, eval
        name and model.

        Returns:
            EvalReport covering every processed sample.

        Raises:
            ConfigError: Unknown eval or strategy, invalid arguments, client setup failure.
            DatasetError: Missing, unreadable or empty dataset.
        """
        created_at = datetime.now()
        run_id = new_run_id(created_at)
        with log_context(run_id=run_id, eval=options.eval_name, model=options.model):
            return await self._execute(options, run_id, created_at)

    async def _execute(self, options: RunOptions, run_id: str, created_at: datetime) -> EvalReport:
        started = time.perf_counter()

        await self._state.transition_to(RunState.LOADING, f"run {run_id} started")
        logger.info(f"Starting evaluation {options.eval_name} with model {options.model}")
        try:
            ctx = self._load(options, run_id)
        except Exception as e:
            await self._state.transition_to(RunState.FAILED, str(e))
            logger.error(f"Evaluation {options.eval_name} failed during loading: {e}")
            raise

        await self._state.transition_to(
            RunState.RUNNING, f"{len(ctx.dataset)} samples, concurrency {options.concurrency}"
        )
        try:
            results = await self._run_samples(ctx, options)
        except BaseException as e:
            await self._state.transition_to(RunState.FAILED, f"run interrupted: {e!r}")
            raise

        await self._state.transition_to(RunState.REPORTING, f"{len(results)} results")
        duration_ms = (time.perf_counter() - started) * 1000
        report = EvalReport.from_results(
            eval_name=options.eval_name,
            model=options.model,
            results=results,
            run_id=run_id,
            duration_ms=duration_ms,
            metadata=self._report_metadata(ctx, options, results),
            created_at=created_at,
        )
        self.event_log.record(
            run_id,
            "final_report",
            {
                "total_samples": report.total_samples,
                "correct": report.correct,
                "incorrect": report.incorrect,
                "score": report.score,
                "duration_ms": report.duration_ms,
            },
        )
        if options.log_to_file:
            try:
                self.event_log.save(options.log_to_file, run_id)
            except OSError as e:
                logger.warning(f"Could not write event log to {options.log_to_file}: {e}")

        await self._state.transition_to(RunState.DONE, f"score {report.score:.3f}")
        logger.info(
            f"Evaluation {options.eval_name} finished: {report.correct}/{report.total_samples} "
            f"passed ({report.score:.1%}) in {duration_ms / 1000:.1f}s",
            extra={"extra_data": {"score": report.score, "correct": report.correct}},
        )
        return report

    # -- LOADING ---------------------------------------------------------------

    def _load(self, options: RunOptions, run_id: str) -> _RunContext:
        spec = self.registry.get(options.eval_name)
        strategy_config = spec.strategy_config()

        dataset_path = self.registry.dataset_path(options.eval_name)
        dataset = self.dataset_loader(dataset_path).head(options.max_samples)
        logger.info(f"Evaluating {len(dataset)} samples from {dataset_path}")

        ctx = _RunContext(
            run_id=run_id,
            spec=spec,
            strategy_config=strategy_config,
            dataset=dataset,
            completion_options=CompletionOptions(
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                seed=options.seed,
            ),
        )

        self.event_log.record(
            run_id,
            "spec",
            {
                "eval_name": options.eval_name,
                "model": options.model,
                "config": spec.to_dict(),
                "strategy": strategy_config.to_dict(),
                "options": options.to_dict(),
                "dataset": str(dataset_path),
                "started_at": datetime.now().isoformat(),
            },
        )

        if options.dry_run:
            return ctx

        ctx.client = self._make_client(options.model, options.provider, options.timeout_seconds)
        if requires_grading_client(strategy_config):
            grading_model = options.grading_model or getattr(
                strategy_config.args, "grading_model", None
            )
            ctx.grading_client = (
                self._make_client(grading_model, None, options.timeout_seconds)
                if grading_model
                else ctx.client
            )
            # Result cache keys must name the judge that actually grades
            strategy_config = replace(
                strategy_config,
                args=replace(strategy_config.args, grading_model=grading_model or options.model),
            )
            ctx.strategy_config = strategy_config

        embeddings = None
        if strategy_config.kind is StrategyKind.SEMANTIC_SIMILARITY:
            embeddings = build_embeddings_service(
                strategy_config,
                cache=self.embeddings_cache,
                timeout=options.timeout_seconds,
            )

        ctx.strategy = create_strategy(
            strategy_config, grading_client=ctx.grading_client, embeddings=embeddings
        )
        return ctx

    def _make_client(self, model: str, provider: Optional[str], timeout: float) -> CompletionClient:
        try:
            return self.client_factory(model, provider, timeout)
        except ConfigError:
            raise
        except (ValueError, ImportError) as e:
            raise ConfigError(f"Could not create client for model '{model}': {e}") from e

    # -- RUNNING ---------------------------------------------------------------

    async def _run_samples(self, ctx: _RunContext, options: RunOptions) -> List[EvalResult]:
        samples = ctx.dataset.samples
        total = len(samples)
        slots: List[Optional[EvalResult]] = [None] * total
        completions: Dict[int, Optional[CompletionResult]] = {}
        next_to_flush = 0

        if options.precompute_embeddings and isinstance(ctx.strategy, SimilarityStrategy):
            try:
                warmed = await ctx.strategy.precompute(samples)
                logger.debug(f"Precomputed {warmed} ideal-answer embeddings")
            except Exception as e:
                logger.warning(f"Embedding precompute failed, continuing without it: {e}")

        queue: "asyncio.Queue[tuple]" = asyncio.Queue()
        for item in enumerate(samples):
            queue.put_nowait(item)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self.console,
            disable=not options.show_progress,
        ) as progress:
            task = progress.add_task(
                f"[cyan]Evaluating {options.model} on {options.eval_name}...", total=total
            )

            def flush() -> None:
                nonlocal next_to_flush
                while next_to_flush < total and slots[next_to_flush] is not None:
                    self._emit_sample_events(
                        ctx, slots[next_to_flush], completions.get(next_to_flush)
                    )
                    progress.advance(task)
                    next_to_flush += 1

            async def worker() -> None:
                while not self._cancel.is_set():
                    try:
                        index, sample = queue.get_nowait()
                    except asyncio.QueueEmpty:
                        return
                    try:
                        result, completion = await self._process_sample(sample, ctx, options)
                    except Exception as e:
                        logger.error(f"Unexpected error on sample {index + 1}: {e}", exc_info=True)
                        result, completion = self._failed_result(sample, options.model, e, "runner"), None
                    slots[index] = result
                    completions[index] = completion
                    flush()

            workers = [asyncio.create_task(worker()) for _ in range(min(options.concurrency, total))]
            try:
                await asyncio.gather(*workers)
            except BaseException:
                for w in workers:
                    w.cancel()
                raise

        if self._cancel.is_set():
            done = sum(1 for s in slots if s is not None)
            logger.warning(f"Run cancelled after {done}/{total} samples")
        return [r for r in slots if r is not None]

    async def _process_sample(
        self, sample: Sample, ctx: _RunContext, options: RunOptions
    ) -> tuple:
        """Complete and grade one sample. Returns (result, completion or None)."""
        if options.dry_run:
            return self._dry_run_result(sample, options.model), None

        if options.use_cache:
            cached = self.result_cache.get(options.model, sample, ctx.strategy_config)
            if cached is not None:
                return cached, cached.completion

        timeout = options.timeout_seconds
        try:
            completion = await asyncio.wait_for(
                ctx.client.complete(sample.input, ctx.completion_options), timeout=timeout
            )
        except asyncio.TimeoutError:
            error = ProviderTimeoutError(
                f"Completion timed out after {timeout:.0f}s", model=options.model
            )
            return self._failed_result(sample, options.model, error, "completion"), None
        except Exception as e:
            logger.warning(f"Completion failed for sample {sample.sample_id[:8]}: {e}")
            return self._failed_result(sample, options.model, e, "completion"), None

        try:
            result = await asyncio.wait_for(
                ctx.strategy.evaluate(sample, completion), timeout=timeout
            )
        except asyncio.TimeoutError:
            result = ctx.strategy.error_result(
                sample, completion, GradingError(f"Grading timed out after {timeout:.0f}s")
            )

        if options.use_cache and not result.metadata.get("grading_error"):
            self.result_cache.set(options.model, sample, ctx.strategy_config, result)
        return result, completion

    @staticmethod
    def _failed_result(sample: Sample, model: str, error: BaseException, stage: str) -> EvalResult:
        message = str(error) or type(error).__name__
        return EvalResult.for_sample(
            sample,
            CompletionResult(content="", model=model, finish_reason="error"),
            score=0.0,
            passed=False,
            reasoning=f"Evaluation error: {message}",
            metadata={
                "error": True,
                "stage": stage,
                "error_type": type(error).__name__,
                "error_message": message,
            },
        )

    @staticmethod
    def _dry_run_result(sample: Sample, model: str) -> EvalResult:
        return EvalResult.for_sample(
            sample,
            CompletionResult(content=DRY_RUN_COMPLETION, model=model),
            score=0.0,
            passed=False,
            reasoning="Dry run - no actual evaluation performed",
            metadata={"dry_run": True},
        )

    def _emit_sample_events(
        self,
        ctx: _RunContext,
        result: EvalResult,
        completion: Optional[CompletionResult],
    ) -> None:
        if completion is not None:
            self.event_log.record(
                ctx.run_id,
                "sampling",
                {
                    "input": [m.to_dict() for m in result.input],
                    "completion": completion.content,
                    "usage": completion.usage.to_dict() if completion.usage else None,
                },
                sample_id=result.sample_id,
            )
        self.event_log.record(
            ctx.run_id,
            "metrics",
            {
                "score": result.score,
                "passed": result.passed,
                "reasoning": result.reasoning,
                "error": bool(result.metadata.get("error") or result.metadata.get("grading_error")),
            },
            sample_id=result.sample_id,
        )
        logger.debug(
            f"Sample {result.sample_id[:8]}: score={result.score:.3f} "
            f"{'PASS' if result.passed else 'FAIL'}"
        )

    # -- REPORTING -------------------------------------------------------------

    def _report_metadata(
        self, ctx: _RunContext, options: RunOptions, results: List[EvalResult]
    ) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "eval_id": ctx.spec.id,
            "strategy": ctx.strategy_config.to_dict(),
            "dataset": ctx.dataset.metadata.get("source", ""),
            "dataset_hash": ctx.dataset.content_hash,
            "dry_run": options.dry_run,
            "concurrency": options.concurrency,
            "cancelled": self._cancel.is_set(),
            "samples_requested": len(ctx.dataset),
            "samples_completed": len(results),
            "errors": sum(
                1 for r in results if r.metadata.get("error") or r.metadata.get("grading_error")
            ),
            "result_cache": self.result_cache.stats(),
        }
        if ctx.grading_client is not None:
            metadata["grading_model"] = getattr(ctx.grading_client, "model", "")
        if ctx.spec.disclaimer:
            metadata["disclaimer"] = ctx.spec.disclaimer
        return metadata
