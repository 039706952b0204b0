"""Heuristic and LLM-powered classification services."""

from .batch import BATCH_SIZE, BatchClassifier, normalize_category
from .llm import (
    GeminiClient,
    LLMClient,
    LLMError,
    OllamaClient,
    QuotaExceededError,
    TransientLLMError,
    build_llm_client,
)
from .retry import FailureKind, classify_failure, retrying, with_retry
from .triage import DEFAULT_TRIAGE_RULES, TriageRule, triage_email

__all__ = [
    "BATCH_SIZE",
    "BatchClassifier",
    "DEFAULT_TRIAGE_RULES",
    "FailureKind",
    "GeminiClient",
    "LLMClient",
    "LLMError",
    "OllamaClient",
    "QuotaExceededError",
    "TransientLLMError",
    "TriageRule",
    "build_llm_client",
    "classify_failure",
    "normalize_category",
    "retrying",
    "triage_email",
    "with_retry",
]
