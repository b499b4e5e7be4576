"""Dataclass-driven configuration for the kbook package."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterable

from .llm.retry import RetryPolicy
from .paths import BookPathConfig, resolve_output_path

__all__ = [
    "LLMConfig",
    "RetryConfig",
    "KBookConfig",
]

FAST_MODE = "fast"
HIGH_QUALITY_MODE = "high-quality"


def _env_float(name: str, default: float | None = None) -> float | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:  # pragma: no cover - defensive guard
        return default


def _env_int(name: str, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:  # pragma: no cover - defensive guard
        return default


@dataclass(slots=True)
class LLMConfig:
    """Configuration for the LangChain-backed generation service."""

    fast_model: str = field(default_factory=lambda: os.getenv("KBOOK_FAST_MODEL", "gpt-4o-mini"))
    quality_model: str = field(default_factory=lambda: os.getenv("KBOOK_QUALITY_MODEL", "gpt-4o"))
    base_url: str | None = field(
        default_factory=lambda: os.getenv("KBOOK_BASE_URL") or os.getenv("OPENAI_BASE_URL")
    )
    temperature: float = field(default_factory=lambda: _env_float("KBOOK_TEMPERATURE", 0.7))
    max_tokens: int | None = field(default_factory=lambda: _env_int("KBOOK_MAX_TOKENS"))
    timeout: float | None = None
    api_key_env: str = field(default_factory=lambda: os.getenv("KBOOK_API_KEY_ENV", "KBOOK_API_KEY"))
    fallback_api_key_envs: tuple[str, ...] = ("OPENAI_API_KEY",)

    def model_for_mode(self, mode: Any) -> str:
        """Map a generation mode to the backing model identifier."""

        value = str(getattr(mode, "value", mode))
        if value == HIGH_QUALITY_MODE:
            return self.quality_model
        if value == FAST_MODE:
            return self.fast_model
        raise ValueError(f"Unknown generation mode '{value}'")

    def resolve_api_key(self, override: str | None = None) -> str | None:
        if override:
            return override
        env_candidates: Iterable[str | None] = (self.api_key_env, *self.fallback_api_key_envs)
        for name in env_candidates:
            if not name:
                continue
            value = os.getenv(name)
            if value:
                return value
        return None

    def provider_kwargs(
        self,
        *,
        model: str | None = None,
        api_key: str | None = None,
    ) -> dict[str, object | None]:
        return {
            "model": model or self.fast_model,
            "base_url": self.base_url,
            "api_key": api_key if api_key is not None else self.resolve_api_key(),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
        }


@dataclass(slots=True)
class RetryConfig:
    """Attempt budget shared by outline and chapter generation."""

    max_attempts: int = field(default_factory=lambda: _env_int("KBOOK_MAX_ATTEMPTS", 3) or 3)
    delay_seconds: float = field(default_factory=lambda: _env_float("KBOOK_RETRY_DELAY", 2.0))
    backoff: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds is None or self.delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative")
        if self.backoff < 1.0:
            raise ValueError("backoff must be >= 1.0")

    def policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            delay_seconds=self.delay_seconds,
            backoff=self.backoff,
        )


@dataclass(slots=True)
class KBookConfig:
    """Primary configuration entry point for a book session."""

    llm: LLMConfig = field(default_factory=LLMConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    paths: BookPathConfig = field(default_factory=BookPathConfig)

    def with_output(self, output_path: Path | str | None) -> "KBookConfig":
        new_paths = replace(
            self.paths,
            output_path=resolve_output_path(output_path or self.paths.output_path, create=self.paths.create_output),
        )
        return replace(self, paths=new_paths)

    @property
    def output_path(self) -> Path:
        return resolve_output_path(self.paths.output_path, create=self.paths.create_output)
