"""
Shared test fixtures for llm-evals.

Provides temporary directories, scripted fake completion and embedding
backends, and a scaffolded eval registry.
"""

from pathlib import Path
from typing import Callable, Dict, List

import pytest

from llm_evals.evaluation.config import EvalRegistry

from .fakes import FakeCompletionClient, build_similarity_vectors


@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Create a temporary project directory with standard structure."""
    dirs = ["registry", "logs", "reports"]
    for d in dirs:
        (tmp_path / d).mkdir()
    return tmp_path


@pytest.fixture
def mock_env(monkeypatch: pytest.MonkeyPatch, tmp_project_dir: Path) -> Path:
    """Set environment variables pointing to temporary directories."""
    monkeypatch.setenv("LLM_EVALS_STATE_DIR", str(tmp_project_dir))
    monkeypatch.setenv("LLM_EVALS_REGISTRY_DIR", str(tmp_project_dir / "registry"))
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("DEBUG", "true")
    return tmp_project_dir


@pytest.fixture
def fake_client() -> FakeCompletionClient:
    return FakeCompletionClient(replies=["42"])


@pytest.fixture
def similarity_vectors() -> Callable[..., Dict[str, List[float]]]:
    return build_similarity_vectors


@pytest.fixture
def default_registry(tmp_path: Path) -> EvalRegistry:
    """A loaded registry containing the scaffolded math-basic eval."""
    root = tmp_path / "registry"
    EvalRegistry.create_default(root)
    return EvalRegistry(root).load()
