"""
Custom exception hierarchy for llm-evals.

All project-specific exceptions inherit from LlmEvalsError. Configuration
and dataset errors are fatal to a run; the rest are absorbed per sample.
"""


class LlmEvalsError(Exception):
    """Base exception for llm-evals."""

    pass


class ConfigError(LlmEvalsError):
    """Invalid or missing configuration (unknown eval, bad strategy args)."""

    pass


class DatasetError(LlmEvalsError):
    """Dataset file missing, unreadable, or containing invalid samples."""

    pass


class ProviderError(LlmEvalsError):
    """A model completion call failed."""

    def __init__(self, message: str, provider: str = "", model: str = ""):
        super().__init__(message)
        self.provider = provider
        self.model = model


class ProviderTimeoutError(ProviderError):
    """A model completion call exceeded its timeout."""

    pass


class GradingError(LlmEvalsError):
    """A grading strategy could not produce a score."""

    pass


class EmbeddingError(LlmEvalsError):
    """An embeddings provider failed or returned malformed vectors."""

    pass


class ReportingError(LlmEvalsError):
    """Error during report generation or export."""

    pass


class InvalidTransitionError(LlmEvalsError):
    """A state machine was asked to make a transition it does not allow."""

    pass
