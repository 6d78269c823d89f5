"""
Run Event Log

Append-only record of what happened during each run: the run spec, one
``sampling`` and one ``metrics`` event per sample, and a ``final_report``.
Events persist as JSONL for later inspection or summary.

Usage:
    log = EventLog()
    log.record(run_id, "spec", {"eval_name": "math-basic", "model": "gpt-4o"})
    log.save(EventLog.default_log_path(run_id, "gpt-4o", "math-basic"), run_id)
    print(log.summary(run_id))
"""

import json
import logging
import re
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

EVENT_TYPES = ("spec", "sampling", "metrics", "final_report")


@dataclass
class LogEvent:
    """A single run event."""

    run_id: str
    event_id: int
    type: str
    data: Dict[str, Any] = field(default_factory=dict)
    sample_id: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _sanitize(name: str) -> str:
    return re.sub(r'[:<>"|?*/\\]', "-", name)


class EventLog:
    """In-memory event store grouped by run id."""

    def __init__(self) -> None:
        self._events: Dict[str, List[LogEvent]] = {}
        self._counters: Dict[str, int] = {}
        self._lock = threading.Lock()

    def record(
        self,
        run_id: str,
        event_type: str,
        data: Dict[str, Any],
        sample_id: Optional[str] = None,
    ) -> LogEvent:
        """Append an event with the next event id for the run."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type '{event_type}'")
        with self._lock:
            event_id = self._counters.get(run_id, 0)
            self._counters[run_id] = event_id + 1
            event = LogEvent(
                run_id=run_id,
                event_id=event_id,
                type=event_type,
                data=data,
                sample_id=sample_id,
            )
            self._events.setdefault(run_id, []).append(event)
        return event

    def add(self, event: LogEvent) -> None:
        with self._lock:
            self._events.setdefault(event.run_id, []).append(event)
            self._counters[event.run_id] = max(
                self._counters.get(event.run_id, 0), event.event_id + 1
            )

    def events(self, run_id: str) -> List[LogEvent]:
        with self._lock:
            return list(self._events.get(run_id, []))

    def run_ids(self) -> List[str]:
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._counters.clear()

    def save(self, path: Union[str, Path], run_id: Optional[str] = None) -> Path:
        """Write events (one run, or all runs) as JSONL sorted by run and event id."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if run_id is not None:
            events = self.events(run_id)
        else:
            events = [e for rid in self.run_ids() for e in self.events(rid)]
        events.sort(key=lambda e: (e.run_id, e.event_id))

        with open(path, "w", encoding="utf-8") as f:
            for event in events:
                f.write(json.dumps(event.to_dict(), default=str) + "\n")
        logger.debug(f"Saved {len(events)} events to {path}")
        return path

    def load(self, path: Union[str, Path]) -> int:
        """Read events from a JSONL file. Returns how many were loaded.

        Unparseable lines are skipped with a warning.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Log file not found: {path}")

        loaded = 0
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                data = json.loads(line)
                self.add(
                    LogEvent(
                        run_id=data["run_id"],
                        event_id=int(data["event_id"]),
                        type=data["type"],
                        data=data.get("data") or {},
                        sample_id=data.get("sample_id"),
                        created_at=data.get("created_at", ""),
                    )
                )
                loaded += 1
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                logger.warning(f"Failed to parse log line: {line[:100]}")
        return loaded

    def summary(self, run_id: str) -> Dict[str, Any]:
        """Totals for a run, from its final_report or else its metrics events."""
        events = self.events(run_id)
        for event in events:
            if event.type == "final_report":
                return dict(event.data)

        metrics = [e for e in events if e.type == "metrics"]
        total = len(metrics)
        correct = sum(1 for e in metrics if e.data.get("passed") is True)
        return {
            "total_samples": total,
            "correct": correct,
            "incorrect": total - correct,
            "score": correct / total if total else 0.0,
        }

    @staticmethod
    def default_log_path(
        run_id: str, model: str, eval_name: str, log_dir: Optional[Path] = None
    ) -> Path:
        """``<log_dir>/<run_id>_<model>_<eval>.jsonl`` with filesystem-safe names."""
        log_dir = Path(log_dir) if log_dir else Path.cwd() / "logs"
        return log_dir / f"{run_id}_{_sanitize(model)}_{_sanitize(eval_name)}.jsonl"
