"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from textwrap import dedent
from typing import Any, Literal, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field

DEFAULT_CATEGORIZATION_PROMPT = dedent(
    """
    Categorize emails into one of the following categories: Important, Newsletter, Spam, To-Do, Others.

    Definitions:
    - Important: High priority business communication, project management updates (Roadmaps, Standups), system alerts (DevOps), HR announcements, and Invoices.
    - Newsletter: Marketing digests, weekly updates from services, general news feeds.
    - Spam: Unsolicited offers, suspicious links, phishing attempts, "Urgent Business Proposals".
    - To-Do: Emails containing a direct request requiring specific user action (e.g., "submit report", "reply by", "make updates").
    - Others: Personal emails (family/friends), promotional offers (coupons, rewards), and low-priority notifications.

    Rules of Thumb:
    1. If sender is "DevOps" or "Project Manager" -> Important.
    2. If sender is family or related to rewards/coffee -> Others.
    3. If email asks for a file or confirmation by a date -> To-Do.
    """
).strip()

DEFAULT_ACTION_EXTRACTION_PROMPT = dedent(
    """
    Extract actionable tasks from the email.
    Each task has:
    - "task": The description of the task.
    - "deadline": The deadline mentioned (or "None" if not specified).
    Only list tasks that are explicitly requested in the email.
    """
).strip()


class LlmSettings(BaseModel):
    """Settings for the external classification provider."""

    provider: Literal["ollama", "gemini"] = Field(
        default="ollama", description="Which HTTP API the classifier talks to"
    )
    base_url: str | None = Field(
        default=None, description="Provider base URL, provider default when unset"
    )
    model: str | None = Field(
        default=None, description="Model identifier, provider default when unset"
    )
    api_key: str | None = Field(
        default=None, description="API key, required by hosted providers"
    )
    timeout_seconds: int = Field(
        default=60, description="Request timeout for LLM calls"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for LLM completions",
    )
    max_output_tokens: int | None = Field(
        default=2048,
        ge=32,
        description="Maximum tokens to request from the provider",
    )


class IngestionSettings(BaseModel):
    """Settings controlling triage, batching, and pacing."""

    batch_size: int = Field(
        default=3, ge=1, description="Emails sent per classification request"
    )
    triage_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Heuristic confidence required to skip the classifier",
    )
    body_char_limit: int = Field(
        default=1000, ge=1, description="Body characters sent per email"
    )
    inter_batch_delay_seconds: float = Field(
        default=2.0, ge=0.0, description="Pause between consecutive batches"
    )
    quota_cooldown_seconds: float = Field(
        default=5.0, ge=0.0, description="Pause after a quota-exhausted batch"
    )
    retry_attempts: int = Field(
        default=3, ge=0, description="Local retries for a failing batch call"
    )
    retry_initial_delay_seconds: float = Field(
        default=2.0, ge=0.0, description="First backoff delay, doubled per retry"
    )


class PromptSettings(BaseModel):
    """Instruction texts forwarded to the classifier."""

    categorization: str = Field(default=DEFAULT_CATEGORIZATION_PROMPT)
    action_extraction: str = Field(default=DEFAULT_ACTION_EXTRACTION_PROMPT)


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Emit key=value structured log lines"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    llm: LlmSettings = Field(default_factory=LlmSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    prompts: PromptSettings = Field(default_factory=PromptSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "INBOX_TRIAGE_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "DEFAULT_ACTION_EXTRACTION_PROMPT",
    "DEFAULT_CATEGORIZATION_PROMPT",
    "IngestionSettings",
    "LlmSettings",
    "LoggingSettings",
    "PromptSettings",
    "load_app_settings",
]
