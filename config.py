"""
Centralized configuration for llm-evals.

Loads environment variables from .env and provides validated paths and settings.
"""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def get_path_var(var_name: str, default: str | None = None, required: bool = True) -> Path | None:
    """Retrieve a path from environment variables, resolving to absolute."""
    value = os.getenv(var_name, default)
    if not value:
        if required:
            print(f"Error: Missing required environment variable '{var_name}' in .env file.")
            sys.exit(1)
        return None
    return Path(value).expanduser().resolve()


def _int_var(var_name: str, default: int) -> int:
    value = os.getenv(var_name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        print(f"Warning: {var_name}={value!r} is not an integer, using {default}")
        return default


def _float_var(var_name: str, default: float) -> float:
    value = os.getenv(var_name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        print(f"Warning: {var_name}={value!r} is not a number, using {default}")
        return default


# -- Paths -------------------------------------------------------------------


STATE_DIR = Path(os.getenv("LLM_EVALS_STATE_DIR", str(Path.home() / ".llm_evals")))
LOG_DIR = STATE_DIR / "logs"
RUNS_DIR = STATE_DIR / "runs"
REGISTRY_DIR = get_path_var("LLM_EVALS_REGISTRY_DIR", "./registry", required=False)

# -- Settings -----------------------------------------------------------------

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
DEBUG = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")

DEFAULT_CONCURRENCY = _int_var("LLM_EVALS_CONCURRENCY", 4)
REQUEST_TIMEOUT = _float_var("LLM_EVALS_TIMEOUT_SECONDS", 120.0)
CACHE_TTL_SECONDS = _float_var("LLM_EVALS_CACHE_TTL_SECONDS", 3600.0)
CACHE_MAX_ITEMS = _int_var("LLM_EVALS_CACHE_MAX_ITEMS", 1000)

# -- Provider credentials ----------------------------------------------------

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")


def validate_config() -> None:
    """Validate that critical paths exist or can be created."""
    for path_var in [STATE_DIR, LOG_DIR, RUNS_DIR]:
        if not path_var.exists():
            try:
                path_var.mkdir(parents=True, exist_ok=True)
            except Exception as e:
                print(f"Warning: Could not create {path_var}: {e}")
