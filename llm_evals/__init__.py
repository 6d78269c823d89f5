"""
llm-evals: Graded LLM Evaluations

Runs a dataset of chat samples through a model and grades every completion
with a configurable strategy.

Main components:
- models: Samples, completions, per-sample results and run reports
- grading: Exact/fuzzy matching, LLM-as-Judge (free text and choice), semantic similarity
- providers: Completion clients for Ollama, Google and OpenAI
- embeddings: Embedding providers with a shared vector cache
- evaluation: Eval registry, datasets, the concurrent runner, event log and reports
"""

__version__ = "0.1.0"
