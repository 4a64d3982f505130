"""Generation pipeline configuration.

One parameterized pipeline serves every variant; a variant is just a
``PipelineConfig`` preset (template sets plus sampling parameters).
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field

from shared.settings import Settings

from .prompts import (
    BENEFIT_FALLBACKS,
    BENEFIT_SINGLE_STARTERS,
    BENEFIT_STRUCTURED_TEMPLATES,
    FACT_FALLBACKS,
    FACT_SINGLE_STARTERS,
    FACT_STRUCTURED_TEMPLATES,
)


class SamplingParams(BaseModel):
    """Sampling parameters handed to the text generator."""

    max_new_tokens: int = 30
    temperature: float = 0.8
    do_sample: bool = True
    top_p: float = 0.95
    top_k: int = 50
    repetition_penalty: float = 1.15
    return_full_text: bool = False

    def to_kwargs(self) -> Dict[str, Any]:
        return self.model_dump()


class PipelineConfig(BaseModel):
    """Template sets, sampling parameters and gap-fill limits of a variant.

    Attributes:
        structured_tokens_per_point: new-token budget per requested point.
        structured_token_cap: hard ceiling on structured new tokens.
        gap_fill_max: largest shortfall that triggers single-starter calls.
        gap_fill_batch_size: single-starter calls in flight at once.
    """

    name: str
    structured_templates: Tuple[str, ...]
    single_starters: Tuple[str, ...]
    fallback_templates: Tuple[str, ...]
    structured_sampling: SamplingParams = Field(
        default_factory=lambda: SamplingParams(temperature=0.85, repetition_penalty=1.2)
    )
    single_sampling: SamplingParams = Field(
        default_factory=lambda: SamplingParams(max_new_tokens=25, temperature=0.9)
    )
    structured_tokens_per_point: int = 25
    structured_token_cap: int = 120
    gap_fill_max: int = 3
    gap_fill_batch_size: int = 1

    def structured_params(self, count: int) -> SamplingParams:
        tokens = min(self.structured_token_cap, count * self.structured_tokens_per_point)
        return self.structured_sampling.model_copy(update={"max_new_tokens": tokens})


PRESETS: Dict[str, PipelineConfig] = {
    "benefits": PipelineConfig(
        name="benefits",
        structured_templates=BENEFIT_STRUCTURED_TEMPLATES,
        single_starters=BENEFIT_SINGLE_STARTERS,
        fallback_templates=BENEFIT_FALLBACKS,
    ),
    "facts": PipelineConfig(
        name="facts",
        structured_templates=FACT_STRUCTURED_TEMPLATES,
        single_starters=FACT_SINGLE_STARTERS,
        fallback_templates=FACT_FALLBACKS,
        structured_sampling=SamplingParams(temperature=0.8, repetition_penalty=1.15),
    ),
}


def get_pipeline_config(settings: Optional[Settings] = None) -> PipelineConfig:
    """Return the configured preset with gap-fill limits from settings."""
    s = settings or Settings()
    variant = (s.pipeline_variant or "benefits").strip().lower()
    if variant not in PRESETS:
        raise ValueError(
            f"Unknown pipeline variant {variant!r}; expected one of {sorted(PRESETS)}"
        )
    return PRESETS[variant].model_copy(
        update={
            "gap_fill_max": max(0, s.gap_fill_max),
            "gap_fill_batch_size": max(1, s.gap_fill_batch_size),
        }
    )
