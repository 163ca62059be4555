"""
Configuration loader: YAML + .env + env overrides.
No hardcoded model names in services; all from config.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from core.exceptions import ConfigError
from core.models import BulkProcessingOptions


def _coerce_bool(s: Any) -> bool:
    if isinstance(s, bool):
        return s
    return (str(s).strip().lower() in ("1", "true", "yes", "on")) if s else False


def _coerce_float(s: Any, default: float = 0.0) -> float:
    if s is None or s == "":
        return default
    try:
        return float(s)
    except (TypeError, ValueError):
        raise ConfigError(f"Expected a number, got {s!r}")


def _coerce_int(s: Any, default: int = 0) -> int:
    if s is None or s == "":
        return default
    try:
        return int(s)
    except (TypeError, ValueError):
        raise ConfigError(f"Expected an integer, got {s!r}")


@dataclass(frozen=True)
class LLMConfig:
    """LLM endpoint and model configuration for the matching collaborator."""

    provider: str = "ollama"  # openai | ollama | gemini
    base_url: str = ""
    api_key: str = ""
    model: str = "llama3.2"
    max_retries: int = 3
    retry_delay_sec: float = 2.0
    timeout_sec: int = 120
    temperature: float = 0.1
    max_tokens: int = 4096
    # Per-1k-token prices; both 0 means the collaborator reports no cost.
    cost_per_1k_input: float = 0.0
    cost_per_1k_output: float = 0.0


@dataclass(frozen=True)
class AppConfig:
    """Immutable application configuration. Built from YAML + env."""

    output_dir: str = "output"
    patterns_path: str = ""  # empty: patterns are not persisted
    log_level: str = "INFO"
    llm: LLMConfig = field(default_factory=LLMConfig)
    matching: BulkProcessingOptions = field(default_factory=BulkProcessingOptions)

    def with_overrides(self, **overrides: Any) -> AppConfig:
        """Return new config with replaced keys (nested llm/matching accept dicts or instances)."""
        d: dict[str, Any] = {}
        for k, v in overrides.items():
            if v is None or k not in self.__dataclass_fields__:
                continue
            if k == "llm" and isinstance(v, dict):
                v = replace(self.llm, **v)
            elif k == "matching" and isinstance(v, dict):
                v = self.matching.with_overrides(**v)
            d[k] = v
        return replace(self, **d)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    return data if isinstance(data, dict) else {}


def _config_from_dict(data: dict[str, Any]) -> AppConfig:
    """Build AppConfig from nested dict. Env overrides applied in load_config."""
    llm_data = data.get("llm") or {}
    m_data = data.get("matching") or {}
    defaults = BulkProcessingOptions()
    return AppConfig(
        output_dir=str(data.get("output_dir", "output")),
        patterns_path=str(data.get("patterns_path", "") or ""),
        log_level=str(data.get("log_level", "INFO")),
        llm=LLMConfig(
            provider=str(llm_data.get("provider", "ollama")).strip().lower(),
            base_url=str(llm_data.get("base_url", "") or ""),
            api_key=str(llm_data.get("api_key", "") or ""),
            model=str(llm_data.get("model", "llama3.2")),
            max_retries=_coerce_int(llm_data.get("max_retries"), 3),
            retry_delay_sec=_coerce_float(llm_data.get("retry_delay_sec"), 2.0),
            timeout_sec=_coerce_int(llm_data.get("timeout_sec"), 120),
            temperature=_coerce_float(llm_data.get("temperature"), 0.1),
            max_tokens=_coerce_int(llm_data.get("max_tokens"), 4096),
            cost_per_1k_input=_coerce_float(llm_data.get("cost_per_1k_input"), 0.0),
            cost_per_1k_output=_coerce_float(llm_data.get("cost_per_1k_output"), 0.0),
        ),
        matching=BulkProcessingOptions(
            batch_size=_coerce_int(m_data.get("batch_size"), defaults.batch_size),
            max_concurrency=_coerce_int(m_data.get("max_concurrency"), defaults.max_concurrency),
            enable_pattern_learning=_coerce_bool(m_data.get("enable_pattern_learning", defaults.enable_pattern_learning)),
            enable_cache=_coerce_bool(m_data.get("enable_cache", defaults.enable_cache)),
            prioritize_high_value=_coerce_bool(m_data.get("prioritize_high_value", defaults.prioritize_high_value)),
            confidence_threshold=_coerce_float(m_data.get("confidence_threshold"), defaults.confidence_threshold),
        ),
    )


def load_config(config_path: str | Path | None = None, *, use_dotenv: bool = True) -> AppConfig:
    """
    Load config from YAML file, then apply env overrides (.env is read first when use_dotenv).
    Env vars: LLM_PROVIDER, LLM_BASE_URL, LLM_API_KEY, LLM_MODEL, MATCH_BATCH_SIZE,
    MATCH_MAX_CONCURRENCY, MATCH_ENABLE_CACHE, MATCH_ENABLE_PATTERN_LEARNING,
    MATCH_PRIORITIZE_HIGH_VALUE, MATCH_CONFIDENCE_THRESHOLD, PATTERNS_PATH, OUTPUT_DIR, LOG_LEVEL.
    """
    if use_dotenv:
        load_dotenv()
    path = Path(config_path) if config_path else Path("config.yaml")
    cfg = _config_from_dict(_load_yaml(path))
    overrides: dict[str, Any] = {}
    if os.getenv("OUTPUT_DIR"):
        overrides["output_dir"] = os.getenv("OUTPUT_DIR")
    if os.getenv("PATTERNS_PATH"):
        overrides["patterns_path"] = os.getenv("PATTERNS_PATH")
    if os.getenv("LOG_LEVEL"):
        overrides["log_level"] = os.getenv("LOG_LEVEL")

    llm: dict[str, Any] = {}
    for env, key in (
        ("LLM_PROVIDER", "provider"),
        ("LLM_BASE_URL", "base_url"),
        ("LLM_API_KEY", "api_key"),
        ("LLM_MODEL", "model"),
    ):
        if os.getenv(env):
            llm[key] = os.getenv(env, "").strip()
    if "provider" in llm:
        llm["provider"] = llm["provider"].lower()
    if llm:
        overrides["llm"] = llm

    matching: dict[str, Any] = {}
    if os.getenv("MATCH_BATCH_SIZE"):
        matching["batch_size"] = _coerce_int(os.getenv("MATCH_BATCH_SIZE"))
    if os.getenv("MATCH_MAX_CONCURRENCY"):
        matching["max_concurrency"] = _coerce_int(os.getenv("MATCH_MAX_CONCURRENCY"))
    for env, key in (
        ("MATCH_ENABLE_CACHE", "enable_cache"),
        ("MATCH_ENABLE_PATTERN_LEARNING", "enable_pattern_learning"),
        ("MATCH_PRIORITIZE_HIGH_VALUE", "prioritize_high_value"),
    ):
        if os.getenv(env) is not None:
            matching[key] = _coerce_bool(os.getenv(env))
    if os.getenv("MATCH_CONFIDENCE_THRESHOLD"):
        matching["confidence_threshold"] = _coerce_float(os.getenv("MATCH_CONFIDENCE_THRESHOLD"))
    if matching:
        overrides["matching"] = matching

    if not overrides:
        return cfg
    return cfg.with_overrides(**overrides)
