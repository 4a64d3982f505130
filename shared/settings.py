"""Centralised application configuration.

Settings are loaded from environment variables or the `.env` file in the
project root. Using pydantic's BaseSettings provides convenient parsing
and type checking. The points service instantiates one Settings object when
its application is built. This module also centralises feature flags such
as offline mode and cache sizing so behaviour is consistent between the
service, its tracing layer and the tests.
"""

from __future__ import annotations

import os

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_threads() -> int:
    return min(8, os.cpu_count() or 1)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Unified toggles
    offline_mode: bool = Field(
        default=False, validation_alias=AliasChoices("OFFLINE_MODE", "offline_mode")
    )

    # Language model
    model_name: str = Field(
        default="distilgpt2", validation_alias=AliasChoices("MODEL_NAME", "model_name")
    )
    # Local directory holding downloaded models; remote lookup when unset
    model_dir: str | None = Field(
        default=None, validation_alias=AliasChoices("MODEL_DIR", "model_dir")
    )
    inference_threads: int = Field(
        default_factory=_default_threads,
        validation_alias=AliasChoices("INFERENCE_THREADS", "inference_threads"),
    )
    prewarm_model: bool = Field(
        default=True, validation_alias=AliasChoices("PREWARM_MODEL", "prewarm_model")
    )
    preload_model: bool = Field(
        default=True, validation_alias=AliasChoices("PRELOAD_MODEL", "preload_model")
    )

    # Generation pipeline
    pipeline_variant: str = Field(
        default="benefits",
        validation_alias=AliasChoices("PIPELINE_VARIANT", "pipeline_variant"),
    )
    gap_fill_max: int = Field(
        default=3, validation_alias=AliasChoices("GAP_FILL_MAX", "gap_fill_max")
    )
    gap_fill_batch_size: int = Field(
        default=1,
        validation_alias=AliasChoices("GAP_FILL_BATCH_SIZE", "gap_fill_batch_size"),
    )

    # Caching
    max_cache_size: int = Field(
        default=200, validation_alias=AliasChoices("MAX_CACHE_SIZE", "max_cache_size")
    )

    # HTTP server
    host: str = Field(default="0.0.0.0", validation_alias=AliasChoices("HOST", "host"))
    port: int = Field(default=3005, validation_alias=AliasChoices("PORT", "port"))

    # Logging/observability
    langfuse_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("LANGFUSE_ENABLED", "langfuse_enabled"),
    )
    langfuse_host: str = Field(
        default="", validation_alias=AliasChoices("LANGFUSE_HOST", "langfuse_host")
    )
    # Support public/secret key pair if available
    langfuse_public_key: str = Field(
        default="",
        validation_alias=AliasChoices("LANGFUSE_PUBLIC_KEY", "langfuse_public_key"),
    )
    langfuse_secret_key: str = Field(
        default="",
        validation_alias=AliasChoices("LANGFUSE_SECRET_KEY", "langfuse_secret_key"),
    )
    # Tracing config
    tracing_backend: str = Field(
        default="langfuse",
        validation_alias=AliasChoices("TRACING_BACKEND", "tracing_backend"),
    )
    trace_name: str = Field(
        default="points-trace", validation_alias=AliasChoices("TRACE_NAME", "trace_name")
    )
