"""Configuration for Sherpa, loaded from environment variables or a settings file."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable

from sherpa.errors import ConfigError

PROVIDERS = ("openai", "anthropic", "gemini")
SOLVE_MODES = ("narrative", "two_stage", "four_quadrant")

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-7-sonnet-20250219",
    "gemini": "gemini-2.0-flash",
}

# Provider-specific key variables consulted when SHERPA_API_KEY is unset
PROVIDER_KEY_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


@dataclass(frozen=True)
class Config:
    """An immutable snapshot of everything an LLM call needs."""

    api_provider: str = "openai"
    api_key: str = ""
    solution_model: str = ""
    extraction_model: str = ""
    language: str = "python"
    temperature: float = 0.2
    max_tokens: int = 4000
    request_timeout: int = 60  # seconds
    max_retries: int = 2
    solve_mode: str = "narrative"

    def __post_init__(self) -> None:
        if self.api_provider not in PROVIDERS:
            raise ConfigError(
                f"Unknown API provider {self.api_provider!r} (expected one of {', '.join(PROVIDERS)})"
            )
        if self.solve_mode not in SOLVE_MODES:
            raise ConfigError(
                f"Unknown solve mode {self.solve_mode!r} (expected one of {', '.join(SOLVE_MODES)})"
            )
        default = DEFAULT_MODELS[self.api_provider]
        if not self.solution_model:
            object.__setattr__(self, "solution_model", default)
        if not self.extraction_model:
            object.__setattr__(self, "extraction_model", default)

    def has_api_key(self) -> bool:
        return bool(self.api_key.strip())

    def with_overrides(self, **overrides) -> Config:
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **overrides)

    @classmethod
    def from_env(cls, **overrides) -> Config:
        provider = overrides.pop("api_provider", None) or os.environ.get("SHERPA_API_PROVIDER", "openai")
        provider = provider.lower()
        api_key = overrides.pop("api_key", None) or os.environ.get("SHERPA_API_KEY", "")
        if not api_key and provider in PROVIDER_KEY_VARS:
            api_key = os.environ.get(PROVIDER_KEY_VARS[provider], "")
        model = overrides.pop("model", None)
        kwargs: dict = {"api_provider": provider, "api_key": api_key}
        if model:
            kwargs["solution_model"] = model
            kwargs["extraction_model"] = model
        env_map: dict[str, tuple[str, type]] = {
            "SHERPA_SOLUTION_MODEL": ("solution_model", str),
            "SHERPA_EXTRACTION_MODEL": ("extraction_model", str),
            "SHERPA_LANGUAGE": ("language", str),
            "SHERPA_TEMPERATURE": ("temperature", float),
            "SHERPA_MAX_TOKENS": ("max_tokens", int),
            "SHERPA_REQUEST_TIMEOUT": ("request_timeout", int),
            "SHERPA_MAX_RETRIES": ("max_retries", int),
            "SHERPA_SOLVE_MODE": ("solve_mode", str),
        }
        for env_var, (field_name, conv) in env_map.items():
            val = os.environ.get(env_var)
            if val is not None and field_name not in kwargs:
                try:
                    kwargs[field_name] = conv(val)
                except ValueError as exc:
                    raise ConfigError(f"{env_var}={val!r} is not a valid {conv.__name__}") from exc
        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)


ConfigSource = Callable[[], Config]


def env_config_source() -> Config:
    return Config.from_env()


def static_config_source(config: Config) -> ConfigSource:
    """Wrap a fixed snapshot as a config source."""
    return lambda: config


class JsonFileConfigSource:
    """Re-read a JSON settings file on every call.

    Keys use the desktop app's camelCase names (``apiProvider``, ``apiKey``,
    ``solutionModel``, ``extractionModel``, ``language``); environment
    variables fill in whatever the file leaves out. A missing file is the
    same as an empty one.
    """

    _KEYS = {
        "apiProvider": "api_provider",
        "apiKey": "api_key",
        "solutionModel": "solution_model",
        "extractionModel": "extraction_model",
        "language": "language",
        "solveMode": "solve_mode",
    }

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def __call__(self) -> Config:
        data: dict = {}
        if self.path.is_file():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Settings file {self.path} is not valid JSON: {exc}") from exc
            if not isinstance(data, dict):
                raise ConfigError(f"Settings file {self.path} must hold a JSON object")
        overrides = {
            field_name: data[key]
            for key, field_name in self._KEYS.items()
            if data.get(key)
        }
        return Config.from_env(**overrides)
