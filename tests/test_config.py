from __future__ import annotations

from pathlib import Path

import pytest

from kbook.book.models import GenerationMode
from kbook.config import KBookConfig, LLMConfig, RetryConfig


def test_llm_config_resolve_api_key_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    cfg = LLMConfig(api_key_env="CUSTOM", fallback_api_key_envs=("OPENAI_API_KEY",))

    assert cfg.resolve_api_key(override="override-key") == "override-key"

    monkeypatch.setenv("CUSTOM", "primary-key")
    assert cfg.resolve_api_key() == "primary-key"

    monkeypatch.delenv("CUSTOM")
    monkeypatch.setenv("OPENAI_API_KEY", "fallback-key")
    assert cfg.resolve_api_key() == "fallback-key"

    monkeypatch.delenv("OPENAI_API_KEY")
    assert cfg.resolve_api_key() is None


def test_llm_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KBOOK_FAST_MODEL", "env-fast")
    monkeypatch.setenv("KBOOK_QUALITY_MODEL", "env-quality")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://fallback.example")
    monkeypatch.setenv("KBOOK_TEMPERATURE", "0.2")
    monkeypatch.setenv("KBOOK_MAX_TOKENS", "1024")

    cfg = LLMConfig()

    assert cfg.fast_model == "env-fast"
    assert cfg.quality_model == "env-quality"
    assert cfg.base_url == "https://fallback.example"
    assert cfg.temperature == 0.2
    assert cfg.max_tokens == 1024


def test_model_for_mode_is_a_pure_mapping() -> None:
    cfg = LLMConfig(fast_model="quick", quality_model="careful")

    assert cfg.model_for_mode(GenerationMode.FAST) == "quick"
    assert cfg.model_for_mode(GenerationMode.HIGH_QUALITY) == "careful"
    assert cfg.model_for_mode("high-quality") == "careful"
    with pytest.raises(ValueError):
        cfg.model_for_mode("turbo")


def test_llm_config_provider_kwargs() -> None:
    cfg = LLMConfig(
        fast_model="base-model",
        base_url="https://example.com",
        temperature=0.3,
        max_tokens=256,
    )
    kwargs = cfg.provider_kwargs(api_key="inline-key")

    assert kwargs["model"] == "base-model"
    assert kwargs["base_url"] == "https://example.com"
    assert kwargs["api_key"] == "inline-key"
    assert kwargs["temperature"] == 0.3
    assert kwargs["max_tokens"] == 256
    assert cfg.provider_kwargs(model="other", api_key="k")["model"] == "other"


def test_retry_config_defaults_and_policy(monkeypatch: pytest.MonkeyPatch) -> None:
    cfg = RetryConfig()
    assert cfg.max_attempts == 3
    assert cfg.delay_seconds == 2.0

    monkeypatch.setenv("KBOOK_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("KBOOK_RETRY_DELAY", "0.5")
    policy = RetryConfig(backoff=2.0).policy()

    assert policy.max_attempts == 5
    assert policy.delay_seconds == 0.5
    assert policy.delay_for(3) == 2.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"delay_seconds": -1.0},
        {"backoff": 0.5},
    ],
)
def test_retry_config_rejects_invalid_values(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        RetryConfig(**kwargs)


def test_kbook_config_output_resolution(tmp_path: Path) -> None:
    output_dir = tmp_path / "books"

    cfg = KBookConfig().with_output(output_dir)

    assert cfg.output_path == output_dir
    assert output_dir.exists()
