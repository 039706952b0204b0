"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from inbox_triage.core.config import DEFAULT_CATEGORIZATION_PROMPT, load_app_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure each test sees a fresh settings instance."""

    load_app_settings.cache_clear()


def test_defaults_loaded_without_env_file() -> None:
    """Default values should be returned when no overrides are present."""

    settings = load_app_settings(include_environment=False)
    assert settings.llm.provider == "ollama"
    assert settings.ingestion.batch_size == 3
    assert settings.ingestion.triage_threshold == 0.8
    assert settings.ingestion.body_char_limit == 1000
    assert settings.ingestion.inter_batch_delay_seconds == 2.0
    assert settings.ingestion.quota_cooldown_seconds == 5.0
    assert settings.prompts.categorization == DEFAULT_CATEGORIZATION_PROMPT


def test_env_file_overrides(tmp_path: Path) -> None:
    """Values defined in an env file should override defaults."""

    env_file = tmp_path / "test.env"
    env_file.write_text(
        "INBOX_TRIAGE_LLM__PROVIDER=gemini\n"
        "INBOX_TRIAGE_LLM__API_KEY=secret\n"
        "UNRELATED_SETTING=ignored\n",
        encoding="utf-8",
    )

    settings = load_app_settings(env_file=env_file, include_environment=False)
    assert settings.llm.provider == "gemini"
    assert settings.llm.api_key == "secret"


def test_environment_overrides_env_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Process environment variables win over values from the env file."""

    env_file = tmp_path / "test.env"
    env_file.write_text("INBOX_TRIAGE_INGESTION__BATCH_SIZE=4\n", encoding="utf-8")
    monkeypatch.setenv("INBOX_TRIAGE_INGESTION__BATCH_SIZE", "5")
    monkeypatch.setenv("INBOX_TRIAGE_LOGGING__STRUCTURED", "true")

    settings = load_app_settings(env_file=env_file)
    assert settings.ingestion.batch_size == 5
    assert settings.logging.structured is True


def test_missing_env_file_is_ignored(tmp_path: Path) -> None:
    """Pointing at a non-existent env file falls back to defaults."""

    settings = load_app_settings(
        env_file=tmp_path / "absent.env", include_environment=False
    )
    assert settings.ingestion.batch_size == 3
