"""
Evaluation Registry

Named evaluations live in YAML files under ``<registry>/evals/``. Each top
level key is an eval name:

    math-basic:
      id: math-basic.dev.v0
      description: Basic math evaluation using exact matching
      metrics: [accuracy]
      class: BasicEval
      args:
        samples_jsonl: math/basic.jsonl
        match_type: exact
        case_sensitive: false

Relative ``samples_jsonl`` paths resolve against ``<registry>/data/``.

Usage:
    registry = EvalRegistry(Path("registry")).load()
    spec = registry.get("math-basic")
    strategy_config = spec.strategy_config()
    dataset_path = registry.dataset_path("math-basic")
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from utils.exceptions import ConfigError

from ..grading.config import StrategyConfig, parse_strategy_config

logger = logging.getLogger(__name__)


@dataclass
class EvalSpec:
    """One named evaluation from the registry."""

    name: str
    id: str
    description: str
    strategy_class: str
    args: Dict[str, Any] = field(default_factory=dict)
    metrics: List[str] = field(default_factory=list)
    disclaimer: str = ""
    source: Optional[Path] = None

    @property
    def samples_jsonl(self) -> Optional[str]:
        return self.args.get("samples_jsonl")

    def strategy_config(self) -> StrategyConfig:
        """Parse the class + args pair. Raises ConfigError when invalid."""
        try:
            return parse_strategy_config(self.strategy_class, self.args)
        except ConfigError as e:
            raise ConfigError(f"Evaluation '{self.name}': {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "metrics": list(self.metrics),
            "class": self.strategy_class,
            "args": dict(self.args),
        }
        if self.disclaimer:
            data["disclaimer"] = self.disclaimer
        return data

    @classmethod
    def from_dict(cls, name: str, data: Any, source: Optional[Path] = None) -> "EvalSpec":
        """
        Raises:
            ConfigError: If required keys are missing or mistyped.
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Entry '{name}' must be a mapping")
        problems = []
        if not isinstance(data.get("id"), str):
            problems.append("'id' must be a string")
        if not isinstance(data.get("description"), str):
            problems.append("'description' must be a string")
        if not isinstance(data.get("metrics"), list):
            problems.append("'metrics' must be a list")
        if not isinstance(data.get("class"), str):
            problems.append("'class' must be a string")
        if not isinstance(data.get("args"), dict):
            problems.append("'args' must be a mapping")
        if problems:
            raise ConfigError(f"Invalid config for '{name}': {'; '.join(problems)}")

        return cls(
            name=name,
            id=data["id"],
            description=data["description"],
            strategy_class=data["class"],
            args=dict(data["args"]),
            metrics=[str(m) for m in data["metrics"]],
            disclaimer=str(data.get("disclaimer") or ""),
            source=source,
        )


class EvalRegistry:
    """Loads and resolves named evaluations from a registry directory."""

    def __init__(self, registry_path: Union[str, Path] = Path("./registry")):
        self.registry_path = Path(registry_path)
        self._specs: Dict[str, EvalSpec] = {}

    @property
    def evals_dir(self) -> Path:
        return self.registry_path / "evals"

    @property
    def data_dir(self) -> Path:
        return self.registry_path / "data"

    def load(self) -> "EvalRegistry":
        """Read every *.yaml / *.yml file under evals/.

        Invalid entries are skipped with a warning; an unreadable file or a
        missing directory is a ConfigError.
        """
        if not self.evals_dir.is_dir():
            raise ConfigError(f"Registry directory not found: {self.evals_dir}")

        files = sorted(
            p for p in self.evals_dir.iterdir() if p.suffix in (".yaml", ".yml") and p.is_file()
        )
        for path in files:
            self._load_file(path)

        logger.debug(f"Loaded {len(self._specs)} evals from {self.evals_dir}")
        return self

    def _load_file(self, path: Path) -> None:
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config file {path}: {e}") from e

        if data is None:
            logger.warning(f"Empty registry file: {path}")
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Failed to load config file {path}: Invalid YAML structure")

        for name, entry in data.items():
            try:
                self._specs[str(name)] = EvalSpec.from_dict(str(name), entry, source=path)
            except ConfigError as e:
                logger.warning(f"{e} in {path}")

    def register(self, spec: EvalSpec) -> None:
        self._specs[spec.name] = spec

    def get(self, name: str) -> EvalSpec:
        """
        Raises:
            ConfigError: If the eval is not registered.
        """
        spec = self._specs.get(name)
        if spec is None:
            available = ", ".join(sorted(self._specs)) or "(none)"
            raise ConfigError(f"Evaluation '{name}' not found in registry. Available: {available}")
        return spec

    def list_evals(self) -> List[str]:
        return sorted(self._specs)

    def dataset_path(self, name: str) -> Path:
        """Resolve the dataset file of an eval.

        Raises:
            ConfigError: If the eval has no samples_jsonl.
        """
        spec = self.get(name)
        samples = spec.samples_jsonl
        if not samples:
            raise ConfigError(f"No samples_jsonl specified for evaluation {name}")
        path = Path(samples).expanduser()
        if not path.is_absolute():
            path = self.data_dir / path
        return path

    @staticmethod
    def create_default(registry_path: Union[str, Path]) -> Path:
        """Scaffold a registry with a math-basic example eval and dataset."""
        from .datasets import create_sample_dataset, save_dataset

        registry_path = Path(registry_path)
        evals_dir = registry_path / "evals"
        data_dir = registry_path / "data"
        evals_dir.mkdir(parents=True, exist_ok=True)
        data_dir.mkdir(parents=True, exist_ok=True)

        example = {
            "math-basic": {
                "id": "math-basic.dev.v0",
                "description": "Basic math evaluation using exact matching",
                "metrics": ["accuracy"],
                "class": "BasicEval",
                "args": {
                    "samples_jsonl": "math/basic.jsonl",
                    "match_type": "exact",
                    "case_sensitive": False,
                },
            },
        }
        config_path = evals_dir / "math.yaml"
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(example, f, sort_keys=False)

        dataset = create_sample_dataset(
            [
                {
                    "system_prompt": "Answer with just the number.",
                    "user_input": "What is 2 + 2?",
                    "ideal": ["4", "four"],
                },
                {
                    "system_prompt": "Answer with just the number.",
                    "user_input": "What is 7 * 6?",
                    "ideal": "42",
                },
                {
                    "system_prompt": "Answer with just the number.",
                    "user_input": "What is 10 - 3?",
                    "ideal": ["7", "seven"],
                },
            ]
        )
        save_dataset(dataset, data_dir / "math" / "basic.jsonl")

        logger.info(f"Created default registry at {registry_path}")
        return config_path
