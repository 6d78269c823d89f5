"""
Entry point for running llm-evals as a module.

Usage:
    python -m llm_evals init
    python -m llm_evals run --eval math-basic --model gpt-4o-mini
"""

from .cli import main

if __name__ == "__main__":
    exit(main())
