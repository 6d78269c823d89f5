"""
Evaluation report generator.

Takes an EvalReport and renders markdown/JSON reports using Jinja2 templates.
Failed and passed samples are listed separately so regressions are easy to
spot; the JSON file is the full ``EvalReport.to_dict()``.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader

from utils.exceptions import ReportingError

from ..models import EvalReport, EvalResult

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


@dataclass
class ReportConfig:
    """Configuration for report generation."""

    report_dir: Path = Path("./reports")
    formats: List[str] = field(default_factory=lambda: ["markdown", "json"])
    max_failures_listed: int = 20
    max_text_length: int = 200


def _sanitize_model_name(model: str) -> str:
    """Convert model name to safe filename (colons/slashes to underscores)."""
    return re.sub(r"[:/\\]", "_", model)


def _score_rating(score: float, thresholds: Optional[Dict[str, int]] = None) -> str:
    """Map a 0-100 score to a rating string."""
    if thresholds is None:
        thresholds = {"excellent": 90, "good": 75, "adequate": 60, "marginal": 40}

    if score >= thresholds["excellent"]:
        return "Excellent"
    elif score >= thresholds["good"]:
        return "Good"
    elif score >= thresholds["adequate"]:
        return "Adequate"
    elif score >= thresholds["marginal"]:
        return "Marginal"
    else:
        return "Poor"


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


class ReportGenerator:
    """Generates evaluation reports from EvalReport data."""

    def __init__(self, config: Optional[ReportConfig] = None):
        self.config = config or ReportConfig()
        self._env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=True,
        )

    def generate(self, report: EvalReport) -> Path:
        """
        Generate reports for one evaluation run.

        Args:
            report: EvalReport from the evaluation runner.

        Returns:
            Path to the generated markdown report (or the JSON report when
            markdown is not among the configured formats).

        Raises:
            ReportingError: If report generation fails.
        """
        try:
            self.config.report_dir.mkdir(parents=True, exist_ok=True)

            stem = (
                f"{report.run_id}_{_sanitize_model_name(report.model)}"
                f"_{_sanitize_model_name(report.eval_name)}"
            )

            md_path = self.config.report_dir / f"{stem}.md"
            if "markdown" in self.config.formats:
                md_path.write_text(self.render_markdown(report), encoding="utf-8")
                logger.info(f"Markdown report saved to {md_path}")

            json_path = self.config.report_dir / f"{stem}.json"
            if "json" in self.config.formats:
                with open(json_path, "w", encoding="utf-8") as f:
                    json.dump(report.to_dict(), f, indent=2, default=str)
                logger.info(f"JSON report saved to {json_path}")

            return md_path if "markdown" in self.config.formats else json_path

        except Exception as e:
            raise ReportingError(f"Failed to generate report: {e}") from e

    def render_markdown(self, report: EvalReport) -> str:
        template = self._env.get_template("eval_report.md.j2")
        return template.render(**self._build_context(report))

    def _sample_row(self, index: int, result: EvalResult) -> Dict[str, Any]:
        limit = self.config.max_text_length
        last_user = [m.content for m in result.input if m.role == "user"]
        ideal = result.ideal if isinstance(result.ideal, str) else " | ".join(result.ideal)
        return {
            "index": index + 1,
            "sample_id": result.sample_id[:8],
            "prompt": _truncate(last_user[-1] if last_user else "", limit),
            "ideal": _truncate(ideal, limit),
            "completion": _truncate(result.completion.content, limit),
            "score": f"{result.score:.2f}",
            "passed": result.passed,
            "reasoning": _truncate(result.reasoning, limit),
            "error": bool(result.metadata.get("error") or result.metadata.get("grading_error")),
        }

    def _build_context(self, report: EvalReport) -> Dict[str, Any]:
        """Build Jinja2 template context from an EvalReport."""
        rows = [self._sample_row(i, r) for i, r in enumerate(report.results)]
        failures = [row for row, r in zip(rows, report.results) if not r.passed]
        strategy = report.metadata.get("strategy") or {}

        return {
            "eval_name": report.eval_name,
            "model": report.model,
            "run_id": report.run_id,
            "created_at": report.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            "duration": f"{report.duration_ms / 1000:.1f}s",
            "total_samples": report.total_samples,
            "correct": report.correct,
            "incorrect": report.incorrect,
            "pass_rate": f"{report.score * 100:.1f}",
            "average_score": f"{report.average_score:.3f}",
            "rating": _score_rating(report.score * 100),
            "strategy_kind": strategy.get("kind", "unknown"),
            "strategy_args": strategy.get("args", {}),
            "dry_run": bool(report.metadata.get("dry_run")),
            "cancelled": bool(report.metadata.get("cancelled")),
            "errors": report.metadata.get("errors", 0),
            "disclaimer": report.metadata.get("disclaimer", ""),
            "token_usage": report.token_usage,
            "failures": failures[: self.config.max_failures_listed],
            "failures_omitted": max(0, len(failures) - self.config.max_failures_listed),
            "samples": rows,
        }
