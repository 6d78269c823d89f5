"""Tests for the run event log."""

import json
from pathlib import Path

import pytest

from llm_evals.evaluation import EventLog


def _populate(log: EventLog, run_id: str = "run-1") -> None:
    log.record(run_id, "spec", {"eval_name": "qa"})
    log.record(run_id, "metrics", {"passed": True, "score": 1.0}, sample_id="s1")
    log.record(run_id, "metrics", {"passed": False, "score": 0.0}, sample_id="s2")


class TestEventLog:
    def test_event_ids_increment_per_run(self) -> None:
        log = EventLog()
        _populate(log, "a")
        log.record("b", "spec", {})
        assert [e.event_id for e in log.events("a")] == [0, 1, 2]
        assert [e.event_id for e in log.events("b")] == [0]
        assert sorted(log.run_ids()) == ["a", "b"]

    def test_unknown_event_type(self) -> None:
        with pytest.raises(ValueError, match="Unknown event type"):
            EventLog().record("a", "debug", {})

    def test_summary_from_metrics(self) -> None:
        log = EventLog()
        _populate(log)
        assert log.summary("run-1") == {
            "total_samples": 2,
            "correct": 1,
            "incorrect": 1,
            "score": 0.5,
        }

    def test_summary_prefers_final_report(self) -> None:
        log = EventLog()
        _populate(log)
        log.record("run-1", "final_report", {"total_samples": 9, "correct": 9})
        assert log.summary("run-1")["total_samples"] == 9

    def test_summary_unknown_run(self) -> None:
        assert EventLog().summary("none")["score"] == 0.0

    def test_save_and_load(self, tmp_path: Path) -> None:
        log = EventLog()
        _populate(log, "a")
        _populate(log, "b")
        path = log.save(tmp_path / "logs" / "a.jsonl", run_id="a")

        lines = path.read_text().splitlines()
        assert len(lines) == 3
        assert json.loads(lines[1])["sample_id"] == "s1"

        restored = EventLog()
        assert restored.load(path) == 3
        assert restored.summary("a") == log.summary("a")
        event = restored.record("a", "final_report", {})
        assert event.event_id == 3

    def test_load_skips_bad_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "mixed.jsonl"
        good = {"run_id": "r", "event_id": 0, "type": "spec", "data": {}}
        path.write_text(json.dumps(good) + "\nnot json\n{\"run_id\": \"r\"}\n")
        log = EventLog()
        assert log.load(path) == 1

    def test_load_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            EventLog().load(tmp_path / "missing.jsonl")

    def test_default_log_path(self, tmp_path: Path) -> None:
        path = EventLog.default_log_path("20260101000000ABCDEF", "qwen2.5:7b", "math/basic", tmp_path)
        assert path == tmp_path / "20260101000000ABCDEF_qwen2.5-7b_math-basic.jsonl"
