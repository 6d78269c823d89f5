"""Tests for the YAML eval registry."""

from pathlib import Path

import pytest
import yaml

from llm_evals.evaluation import EvalRegistry, EvalSpec
from llm_evals.grading import StrategyKind
from utils.exceptions import ConfigError


def _write_registry(root: Path, entries: dict, filename: str = "evals.yaml") -> Path:
    evals_dir = root / "evals"
    evals_dir.mkdir(parents=True, exist_ok=True)
    (evals_dir / filename).write_text(yaml.safe_dump(entries))
    return root


def _entry(**overrides) -> dict:
    entry = {
        "id": "capitals.dev.v0",
        "description": "Capital cities",
        "metrics": ["accuracy"],
        "class": "BasicEval",
        "args": {"samples_jsonl": "capitals/samples.jsonl", "match_type": "includes"},
    }
    entry.update(overrides)
    return entry


class TestEvalSpec:
    def test_from_dict(self) -> None:
        spec = EvalSpec.from_dict("capitals", _entry(disclaimer="Synthetic data"))
        assert spec.strategy_class == "BasicEval"
        assert spec.samples_jsonl == "capitals/samples.jsonl"
        assert spec.disclaimer == "Synthetic data"

    @pytest.mark.parametrize("missing", ["id", "description", "metrics", "class", "args"])
    def test_missing_key(self, missing: str) -> None:
        entry = _entry()
        del entry[missing]
        with pytest.raises(ConfigError, match=f"'{missing}'"):
            EvalSpec.from_dict("capitals", entry)

    def test_not_a_mapping(self) -> None:
        with pytest.raises(ConfigError, match="must be a mapping"):
            EvalSpec.from_dict("capitals", ["not", "a", "dict"])

    def test_strategy_config(self) -> None:
        config = EvalSpec.from_dict("capitals", _entry()).strategy_config()
        assert config.kind is StrategyKind.MATCH
        assert config.args.match_type == "includes"

    def test_strategy_config_error_names_eval(self) -> None:
        spec = EvalSpec.from_dict("capitals", _entry(**{"class": "RubricEval"}))
        with pytest.raises(ConfigError, match="Evaluation 'capitals'"):
            spec.strategy_config()

    def test_to_dict(self) -> None:
        data = EvalSpec.from_dict("capitals", _entry()).to_dict()
        assert data["class"] == "BasicEval"
        assert "disclaimer" not in data


class TestEvalRegistry:
    def test_load_and_get(self, tmp_path: Path) -> None:
        registry = EvalRegistry(_write_registry(tmp_path, {"capitals": _entry()})).load()
        assert registry.list_evals() == ["capitals"]
        assert registry.get("capitals").id == "capitals.dev.v0"

    def test_multiple_files(self, tmp_path: Path) -> None:
        _write_registry(tmp_path, {"b-eval": _entry()}, "b.yaml")
        _write_registry(tmp_path, {"a-eval": _entry()}, "a.yml")
        (tmp_path / "evals" / "notes.txt").write_text("ignored")
        registry = EvalRegistry(tmp_path).load()
        assert registry.list_evals() == ["a-eval", "b-eval"]

    def test_invalid_entry_skipped(self, tmp_path: Path) -> None:
        entries = {"good": _entry(), "bad": {"id": "bad"}}
        registry = EvalRegistry(_write_registry(tmp_path, entries)).load()
        assert registry.list_evals() == ["good"]

    def test_unknown_eval_lists_available(self, tmp_path: Path) -> None:
        registry = EvalRegistry(_write_registry(tmp_path, {"capitals": _entry()})).load()
        with pytest.raises(ConfigError, match="Available: capitals"):
            registry.get("geography")

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Registry directory not found"):
            EvalRegistry(tmp_path / "nope").load()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        evals_dir = tmp_path / "evals"
        evals_dir.mkdir()
        (evals_dir / "broken.yaml").write_text("capitals: [unclosed")
        with pytest.raises(ConfigError, match="Failed to load config file"):
            EvalRegistry(tmp_path).load()

    def test_non_mapping_yaml(self, tmp_path: Path) -> None:
        evals_dir = tmp_path / "evals"
        evals_dir.mkdir()
        (evals_dir / "list.yaml").write_text("- one\n- two\n")
        with pytest.raises(ConfigError, match="Invalid YAML structure"):
            EvalRegistry(tmp_path).load()

    def test_empty_file_ignored(self, tmp_path: Path) -> None:
        evals_dir = tmp_path / "evals"
        evals_dir.mkdir()
        (evals_dir / "empty.yaml").write_text("")
        assert EvalRegistry(tmp_path).load().list_evals() == []

    def test_dataset_path_relative_to_data_dir(self, tmp_path: Path) -> None:
        registry = EvalRegistry(_write_registry(tmp_path, {"capitals": _entry()})).load()
        assert registry.dataset_path("capitals") == tmp_path / "data" / "capitals" / "samples.jsonl"

    def test_dataset_path_absolute(self, tmp_path: Path) -> None:
        absolute = tmp_path / "elsewhere.jsonl"
        entry = _entry(args={"samples_jsonl": str(absolute)})
        registry = EvalRegistry(_write_registry(tmp_path, {"capitals": entry})).load()
        assert registry.dataset_path("capitals") == absolute

    def test_dataset_path_missing(self, tmp_path: Path) -> None:
        registry = EvalRegistry(_write_registry(tmp_path, {"capitals": _entry(args={})})).load()
        with pytest.raises(ConfigError, match="No samples_jsonl"):
            registry.dataset_path("capitals")

    def test_register(self) -> None:
        registry = EvalRegistry(Path("unused"))
        registry.register(EvalSpec.from_dict("inline", _entry()))
        assert registry.get("inline").name == "inline"


class TestCreateDefault:
    def test_scaffold(self, tmp_path: Path) -> None:
        config_path = EvalRegistry.create_default(tmp_path / "registry")
        assert config_path.exists()

        registry = EvalRegistry(tmp_path / "registry").load()
        assert "math-basic" in registry.list_evals()
        assert registry.dataset_path("math-basic").exists()
        assert registry.get("math-basic").strategy_config().kind is StrategyKind.MATCH
