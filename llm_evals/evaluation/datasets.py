"""
Evaluation Datasets

JSONL datasets, one sample per line:

    {"input": [{"role": "user", "content": "What is 2+2?"}], "ideal": ["4", "four"]}

Loading validates every line and reports the line number of the first bad
record; a file with no samples is an error.

Usage:
    from llm_evals.evaluation.datasets import load_dataset

    dataset = load_dataset(Path("registry/data/math/basic.jsonl"))
    for sample in dataset.samples:
        print(sample.sample_id, sample.ideal_answers)
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from utils.exceptions import DatasetError

from ..models import VALID_ROLES, ChatMessage, Sample

logger = logging.getLogger(__name__)


@dataclass
class Dataset:
    """An ordered collection of samples."""

    samples: List[Sample] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def content_hash(self) -> str:
        """SHA256 over the sample ids, for spotting changed datasets."""
        digest = hashlib.sha256()
        for sample in self.samples:
            digest.update(sample.sample_id.encode())
        return digest.hexdigest()[:16]

    def head(self, max_samples: Optional[int]) -> "Dataset":
        """Return a dataset capped at max_samples (None keeps everything)."""
        if max_samples is None:
            return self
        if max_samples < 0:
            raise ValueError("max_samples must be non-negative")
        return Dataset(samples=self.samples[:max_samples], metadata=dict(self.metadata))


def _validate_record(data: Any, line_number: int) -> Sample:
    prefix = f"Sample at line {line_number}"
    if not isinstance(data, dict):
        raise DatasetError(f"{prefix} must be an object")

    raw_input = data.get("input")
    if not isinstance(raw_input, list):
        raise DatasetError(f"{prefix}: 'input' must be an array")
    if not raw_input:
        raise DatasetError(f"{prefix}: 'input' must contain at least one message")

    messages = []
    for i, msg in enumerate(raw_input):
        if not isinstance(msg, dict):
            raise DatasetError(f"{prefix}: input[{i}] must be an object")
        if msg.get("role") not in VALID_ROLES:
            raise DatasetError(
                f"{prefix}: input[{i}].role must be 'system', 'user', or 'assistant'"
            )
        if not isinstance(msg.get("content"), str):
            raise DatasetError(f"{prefix}: input[{i}].content must be a string")
        messages.append(ChatMessage(role=msg["role"], content=msg["content"]))

    ideal = data.get("ideal")
    if ideal is None:
        raise DatasetError(f"{prefix}: 'ideal' is required")
    if isinstance(ideal, list):
        if not ideal:
            raise DatasetError(f"{prefix}: 'ideal' array must not be empty")
        if not all(isinstance(item, str) for item in ideal):
            raise DatasetError(f"{prefix}: all items in 'ideal' array must be strings")
        ideal = tuple(ideal)
    elif not isinstance(ideal, str):
        raise DatasetError(f"{prefix}: 'ideal' must be a string or array of strings")

    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise DatasetError(f"{prefix}: 'metadata' must be an object")

    return Sample(input=tuple(messages), ideal=ideal, metadata=metadata)


def parse_jsonl(text: str, source: str = "<string>") -> Dataset:
    """Parse JSONL text into a validated dataset.

    Raises:
        DatasetError: On invalid JSON, an invalid record, or no samples.
    """
    samples: List[Sample] = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise DatasetError(f"Invalid JSON at line {line_number} of {source}: {e.msg}") from e
        samples.append(_validate_record(data, line_number))

    if not samples:
        raise DatasetError(f"No valid samples found in dataset {source}")

    return Dataset(
        samples=samples,
        metadata={
            "source": source,
            "loaded_at": datetime.now().isoformat(),
            "sample_count": len(samples),
        },
    )


def load_dataset(path: Union[str, Path]) -> Dataset:
    """Load a JSONL dataset from disk.

    Raises:
        DatasetError: If the file is missing, unreadable, or invalid.
    """
    path = Path(path)
    if not path.exists():
        raise DatasetError(f"Dataset file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DatasetError(f"Could not read dataset {path}: {e}") from e

    dataset = parse_jsonl(text, source=str(path))
    logger.info(f"Loaded {len(dataset)} samples from {path}")
    return dataset


def save_dataset(dataset: Union[Dataset, Sequence[Sample]], path: Union[str, Path]) -> Path:
    """Write samples as JSONL, creating parent directories."""
    samples = dataset.samples if isinstance(dataset, Dataset) else list(dataset)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [json.dumps(sample.to_dict(), ensure_ascii=False) for sample in samples]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.debug(f"Saved {len(samples)} samples to {path}")
    return path


def create_sample_dataset(records: Sequence[Dict[str, Any]]) -> Dataset:
    """Build a dataset from simple records.

    Each record needs ``user_input`` and ``ideal``; ``system_prompt`` and
    ``metadata`` are optional.
    """
    samples = []
    for record in records:
        messages = []
        if record.get("system_prompt"):
            messages.append(ChatMessage("system", record["system_prompt"]))
        messages.append(ChatMessage("user", record["user_input"]))
        ideal = record["ideal"]
        samples.append(
            Sample(
                input=tuple(messages),
                ideal=ideal if isinstance(ideal, str) else tuple(ideal),
                metadata=dict(record.get("metadata") or {}),
            )
        )
    return Dataset(samples=samples)
