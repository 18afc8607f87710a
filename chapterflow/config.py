"""Configuration model and loaders for chapterflow.

Responsibilities:
- Define pipeline configuration as typed dataclasses with validation.
- Provide loader entry points for YAML- and environment-based configuration.
- Resolve the provider API key without ever persisting it.

Key types:
- `PipelineConfig`: normalized settings for orchestrator, workers, and stages.
- `RateLimitSettings`: external-call budget and retry policy.
- `ConfigLoader`: static construction helpers for `PipelineConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .detection.selection import SelectionWeights
from .parsing import (
    normalize_optional_string,
    parse_non_negative_float,
    parse_permissive_boolean,
    parse_positive_int,
)

_DEFAULT_SUMMARY_MODEL = "gpt-4o-mini"
_ENV_PREFIX = "CHAPTERFLOW_"
_API_KEY_ENV = "OPENAI_API_KEY"


@dataclass(frozen=True, slots=True)
class RateLimitSettings:
    """External summarization call budget and retry policy.

    Attributes:
        max_concurrent: Ceiling on in-flight provider calls.
        per_minute: Calls allowed per one-minute window.
        per_hour: Calls allowed per one-hour window.
        min_interval_seconds: Minimum spacing between call starts.
        max_retries: Retries of one call after rate-limit or transient failures.
        backoff_base_seconds: First retry delay; doubles per attempt.
        backoff_max_seconds: Ceiling for a single retry delay.
    """

    max_concurrent: int = 5
    per_minute: int = 20
    per_hour: int = 300
    min_interval_seconds: float = 0.5
    max_retries: int = 3
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 30.0

    def validate(self) -> None:
        """Validate budget values."""

        for name in ("max_concurrent", "per_minute", "per_hour"):
            if int(getattr(self, name)) <= 0:
                raise ValueError(f"`rate_limits.{name}` must be a positive integer.")
        if self.max_retries < 0:
            raise ValueError("`rate_limits.max_retries` must be zero or greater.")
        for name in ("min_interval_seconds", "backoff_base_seconds", "backoff_max_seconds"):
            if float(getattr(self, name)) < 0.0:
                raise ValueError(f"`rate_limits.{name}` must be a non-negative number.")


@dataclass(slots=True)
class PipelineConfig:
    """Runtime configuration for the document-processing pipeline.

    Attributes:
        database_path: SQLite database file, or `:memory:`.
        blob_root: Root directory of the filesystem blob store.
        workflow_timeout_seconds: Whole-workflow ceiling before a document fails.
        job_lease_seconds: How long a claimed job may stay `running` before it is
            treated as an abandoned attempt.
        max_job_retries: Retry cap written onto every enqueued job.
        default_priority: Priority used when a submission does not set one.
        enable_caching: Whether stage caches are read and written.
        enable_workflow_cache: Whether the full-workflow cache short-circuits submission.
        enable_enhancement: Whether summaries are generated after storage.
        cache_max_age_days: Eviction age used by cache maintenance.
        cache_min_hits: Eviction hit threshold used by cache maintenance.
        chapter_insert_batch_size: Rows per chapter insert batch.
        enhancement_batch_size: Chapters per enhancement job.
        summary_model: Chat model used for summaries.
        api_key: Optional provider API key; `OPENAI_API_KEY` is used when unset.
        worker_poll_interval_seconds: Idle sleep between empty queue polls.
        rate_limits: External-call budget.
        selection_weights: Detection strategy selection weights.
        extra: Additional metadata for future extensions.
    """

    database_path: Path = Path("chapterflow.sqlite3")
    blob_root: Path = Path("blobs")
    workflow_timeout_seconds: int = 900
    job_lease_seconds: int = 600
    max_job_retries: int = 3
    default_priority: int = 5
    enable_caching: bool = True
    enable_workflow_cache: bool = True
    enable_enhancement: bool = True
    cache_max_age_days: int = 30
    cache_min_hits: int = 2
    chapter_insert_batch_size: int = 10
    enhancement_batch_size: int = 5
    summary_model: str = _DEFAULT_SUMMARY_MODEL
    api_key: str | None = None
    worker_poll_interval_seconds: float = 1.0
    rate_limits: RateLimitSettings = field(default_factory=RateLimitSettings)
    selection_weights: SelectionWeights = field(default_factory=SelectionWeights)
    extra: dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate configuration values before the pipeline starts."""

        for name in (
            "workflow_timeout_seconds",
            "job_lease_seconds",
            "max_job_retries",
            "cache_max_age_days",
            "cache_min_hits",
            "chapter_insert_batch_size",
            "enhancement_batch_size",
        ):
            if int(getattr(self, name)) <= 0:
                raise ValueError(f"`{name}` must be a positive integer.")
        if not 1 <= self.default_priority <= 10:
            raise ValueError("`default_priority` must be between 1 and 10.")
        if not isinstance(self.summary_model, str) or not self.summary_model.strip():
            raise ValueError("`summary_model` must be a non-empty string.")
        if self.worker_poll_interval_seconds < 0.0:
            raise ValueError("`worker_poll_interval_seconds` must be a non-negative number.")
        self.rate_limits.validate()

    def resolved_api_key(self, env: Mapping[str, str] | None = None) -> str | None:
        """Return the configured API key, falling back to `OPENAI_API_KEY`."""

        configured = normalize_optional_string(self.api_key)
        if configured is not None:
            return configured
        env_map: Mapping[str, str] = os.environ if env is None else env
        return normalize_optional_string(env_map.get(_API_KEY_ENV))


_FIELD_KINDS: dict[str, str] = {
    "database_path": "path",
    "blob_root": "path",
    "workflow_timeout_seconds": "positive_int",
    "job_lease_seconds": "positive_int",
    "max_job_retries": "positive_int",
    "default_priority": "positive_int",
    "enable_caching": "bool",
    "enable_workflow_cache": "bool",
    "enable_enhancement": "bool",
    "cache_max_age_days": "positive_int",
    "cache_min_hits": "positive_int",
    "chapter_insert_batch_size": "positive_int",
    "enhancement_batch_size": "positive_int",
    "summary_model": "string",
    "api_key": "string",
    "worker_poll_interval_seconds": "float",
}

_RATE_LIMIT_KINDS: dict[str, str] = {
    "max_concurrent": "positive_int",
    "per_minute": "positive_int",
    "per_hour": "positive_int",
    "min_interval_seconds": "float",
    "max_retries": "int",
    "backoff_base_seconds": "float",
    "backoff_max_seconds": "float",
}

_SELECTION_WEIGHT_KINDS: dict[str, str] = {
    "confidence": "float",
    "count_bonus": "float",
    "min_chapters": "positive_int",
    "max_chapters": "positive_int",
    "over_count_penalty": "float",
    "consistency": "float",
    "method_bonus": "float",
}

_ENV_RATE_LIMIT_KEYS: dict[str, str] = {
    "CHAPTERFLOW_MAX_CONCURRENT_CALLS": "max_concurrent",
    "CHAPTERFLOW_CALLS_PER_MINUTE": "per_minute",
    "CHAPTERFLOW_CALLS_PER_HOUR": "per_hour",
    "CHAPTERFLOW_CALL_RETRIES": "max_retries",
}


class ConfigLoader:
    """Factory methods for creating `PipelineConfig` from external sources."""

    _SUPPORTED_YAML_KEYS = frozenset(
        set(_FIELD_KINDS) | {"rate_limits", "selection_weights", "extra"}
    )

    @staticmethod
    def from_yaml(path: Path) -> PipelineConfig:
        """Create a validated config from a YAML file."""

        path_text = path.read_text(encoding="utf-8")
        payload = ConfigLoader._parse_yaml_payload(path_text, path)
        return ConfigLoader._build_config_from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> PipelineConfig:
        """Create a validated config from `CHAPTERFLOW_*` environment variables."""

        env_map: Mapping[str, str] = os.environ if env is None else env
        payload: dict[str, Any] = {}
        for name in _FIELD_KINDS:
            env_key = f"{_ENV_PREFIX}{name.upper()}"
            value = normalize_optional_string(env_map.get(env_key))
            if value is not None:
                payload[name] = value
        api_key = normalize_optional_string(env_map.get(_API_KEY_ENV))
        if api_key is not None and "api_key" not in payload:
            payload["api_key"] = api_key

        rate_limits: dict[str, Any] = {}
        for env_key, name in _ENV_RATE_LIMIT_KEYS.items():
            value = normalize_optional_string(env_map.get(env_key))
            if value is not None:
                rate_limits[name] = value
        if rate_limits:
            payload["rate_limits"] = rate_limits

        return ConfigLoader._build_config_from_mapping(payload, source_label="Environment")

    @staticmethod
    def _parse_yaml_payload(raw_text: str, path: Path) -> Mapping[str, Any]:
        """Parse YAML text and enforce a mapping root payload."""

        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML config `{path}` could not be parsed: {exc}") from exc
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return payload

    @staticmethod
    def _build_config_from_mapping(
        payload: Mapping[str, Any], source_label: str
    ) -> PipelineConfig:
        """Build a validated config from a normalized mapping payload."""

        unknown = sorted(set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            key_list = ", ".join(str(key) for key in unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

        values = ConfigLoader._coerce_section(payload, _FIELD_KINDS, source_label, prefix="")
        rate_limits = RateLimitSettings(
            **ConfigLoader._coerce_nested(payload, "rate_limits", _RATE_LIMIT_KINDS, source_label)
        )
        selection_weights = SelectionWeights(
            **ConfigLoader._coerce_nested(
                payload, "selection_weights", _SELECTION_WEIGHT_KINDS, source_label
            )
        )
        config = PipelineConfig(
            **values,
            rate_limits=rate_limits,
            selection_weights=selection_weights,
            extra=ConfigLoader._optional_string_map(payload, "extra", source_label),
        )
        config.validate()
        return config

    @staticmethod
    def _coerce_nested(
        payload: Mapping[str, Any],
        key: str,
        kinds: Mapping[str, str],
        source_label: str,
    ) -> dict[str, Any]:
        """Coerce one nested mapping section, rejecting unknown keys."""

        raw = payload.get(key)
        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"{source_label} field `{key}` must be a mapping/object.")
        unknown = sorted(set(raw).difference(kinds))
        if unknown:
            key_list = ", ".join(str(item) for item in unknown)
            raise ValueError(
                f"{source_label} field `{key}` includes unsupported key(s): {key_list}."
            )
        return ConfigLoader._coerce_section(raw, kinds, source_label, prefix=f"{key}.")

    @staticmethod
    def _coerce_section(
        payload: Mapping[str, Any],
        kinds: Mapping[str, str],
        source_label: str,
        prefix: str,
    ) -> dict[str, Any]:
        """Coerce known keys of a mapping to their declared kinds."""

        values: dict[str, Any] = {}
        for name, kind in kinds.items():
            if name not in payload:
                continue
            raw_value = payload[name]
            label = f"{source_label} field `{prefix}{name}`"
            if kind == "path":
                text = normalize_optional_string(raw_value)
                if text is None:
                    raise ValueError(f"{label} must be a non-empty path.")
                values[name] = Path(text)
            elif kind == "string":
                text = normalize_optional_string(raw_value)
                if text is not None:
                    values[name] = text
            elif kind == "bool":
                parsed = parse_permissive_boolean(raw_value)
                if parsed is None:
                    raise ValueError(
                        f"{label} must be a boolean value "
                        "(`true`/`false`, `1`/`0`, `yes`/`no`)."
                    )
                values[name] = parsed
            elif kind == "positive_int":
                values[name] = parse_positive_int(raw_value, f"{prefix}{name}")
            elif kind == "int":
                values[name] = ConfigLoader._non_negative_int(raw_value, label)
            else:
                values[name] = parse_non_negative_float(raw_value, f"{prefix}{name}")
        return values

    @staticmethod
    def _non_negative_int(raw_value: object, label: str) -> int:
        """Parse an integer that may be zero."""

        if isinstance(raw_value, bool):
            raise ValueError(f"{label} must be a non-negative integer.")
        try:
            parsed = int(str(raw_value).strip())
        except ValueError as exc:
            raise ValueError(f"{label} must be a non-negative integer.") from exc
        if parsed < 0:
            raise ValueError(f"{label} must be a non-negative integer.")
        return parsed

    @staticmethod
    def _optional_string_map(
        payload: Mapping[str, Any], key: str, source_label: str
    ) -> dict[str, str]:
        """Read an optional mapping with non-empty string keys and values."""

        if key not in payload:
            return {}

        raw = payload[key]
        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"{source_label} field `{key}` must be a mapping/object.")

        normalized: dict[str, str] = {}
        for raw_key, raw_value in raw.items():
            key_value = normalize_optional_string(raw_key)
            value_value = normalize_optional_string(raw_value)
            if key_value is None:
                raise ValueError(f"{source_label} field `{key}` contains a blank key.")
            if value_value is None:
                raise ValueError(
                    f"{source_label} field `{key}` contains blank value for `{key_value}`."
                )
            normalized[key_value] = value_value
        return normalized
