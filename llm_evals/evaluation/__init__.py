"""
Evaluation Workflow

Resolves a named eval from the YAML registry, loads its JSONL dataset, runs
every sample through the model under test, grades the completions, and
produces an EvalReport plus an event log and markdown/JSON reports.

Usage:
    from llm_evals.evaluation import EvalRegistry, EvalRunner, RunOptions

    registry = EvalRegistry(Path("registry")).load()
    report = await EvalRunner(registry).run(RunOptions(model="llama3.2", eval_name="math-basic"))
"""

from .config import EvalRegistry, EvalSpec
from .datasets import Dataset, create_sample_dataset, load_dataset, parse_jsonl, save_dataset
from .event_log import EVENT_TYPES, EventLog, LogEvent
from .report import ReportConfig, ReportGenerator
from .runner import EvalRunner, RunOptions, RunState

__all__ = [
    # Config
    "EvalRegistry",
    "EvalSpec",
    # Datasets
    "Dataset",
    "load_dataset",
    "parse_jsonl",
    "save_dataset",
    "create_sample_dataset",
    # Runner
    "EvalRunner",
    "RunOptions",
    "RunState",
    # Event log
    "EventLog",
    "LogEvent",
    "EVENT_TYPES",
    # Report
    "ReportConfig",
    "ReportGenerator",
]
