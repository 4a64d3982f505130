"""Generation strategy orchestration.

``PointGenerator.generate`` runs a fixed sequence of states per request:

- structured: one numbered-list prompt, one inference call, extraction.
  Enough statements ends the request here.
- gap fill: when at least one statement was extracted and the shortfall is
  at most ``gap_fill_max``, one single-starter call per missing statement,
  issued ``gap_fill_batch_size`` at a time.
- fallback: templated statements about the topic pad the result up to the
  requested count. Any exception from an inference call jumps straight
  here and discards partial results.

The result never exceeds the requested count and only falls short when the
fallback templates themselves run out (or are malformed for the topic).
"""

from __future__ import annotations

import asyncio
import random
import re
from typing import List, Optional, Sequence

from shared.models import GenerationOutcome
from shared.tracing import estimate_tokens, log_event, span

from .cleaner import clean_single_point, fallback_statement
from .extractor import extract_points
from .model import TextGenerator
from .pipeline import PipelineConfig
from .prompts import PromptBuilder

_LIST_MARKER_RE = re.compile(r"\s*\d+\.")


def _seen(point: str, points: List[str]) -> bool:
    folded = point.casefold()
    return any(folded == p.casefold() for p in points)


def resume_list(prompt: str, continuation: str) -> str:
    """Re-attach the "1." opener the prompt ended with, if the model didn't."""
    if prompt.rstrip().endswith("1.") and not _LIST_MARKER_RE.match(continuation):
        return "1." + continuation
    return continuation


def fallback_points(topic: str, count: int, templates: Sequence[str]) -> List[str]:
    points: List[str] = []
    for template in templates:
        if len(points) >= count:
            break
        statement = fallback_statement(template, topic)
        if statement is not None:
            points.append(statement)
    return points


class PointGenerator:
    """Drive the text generator until a request has its statements."""

    def __init__(
        self,
        generator: TextGenerator,
        config: PipelineConfig,
        prompts: Optional[PromptBuilder] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.generator = generator
        self.config = config
        self.prompts = prompts or PromptBuilder(
            config.structured_templates, config.single_starters, rng=rng
        )

    async def generate(self, topic: str, requested_count: int) -> GenerationOutcome:
        count = max(0, int(requested_count))
        if count == 0:
            return GenerationOutcome(points=[], strategy="structured")
        try:
            points = await self._structured(topic, count)
            strategy = "structured"
            needed = count - len(points)
            if points and 0 < needed <= self.config.gap_fill_max:
                points.extend(await self._gap_fill(topic, points, needed))
                strategy = "hybrid"
        except Exception as exc:
            log_event(
                "GenerationFallback",
                payload={"topic": topic, "count": count, "error": str(exc)},
            )
            return GenerationOutcome(
                points=fallback_points(topic, count, self.config.fallback_templates),
                strategy="fallback",
                error=str(exc) or exc.__class__.__name__,
            )

        if len(points) >= count:
            return GenerationOutcome(points=points[:count], strategy=strategy)
        return GenerationOutcome(points=self._pad(topic, points, count), strategy="padded")

    async def _structured(self, topic: str, count: int) -> List[str]:
        prompt = self.prompts.build_structured_prompt(topic, count)
        params = self.config.structured_params(count)
        with span(
            "points.generate.structured",
            prompt_tokens=estimate_tokens(prompt),
            max_new_tokens=params.max_new_tokens,
        ):
            raw = await self.generator.generate(prompt, params)
        return extract_points(resume_list(prompt, raw), topic, count)

    async def _gap_fill(self, topic: str, existing: List[str], needed: int) -> List[str]:
        start = len(existing)
        prompts = [self.prompts.build_single_starter(topic, start + i) for i in range(needed)]
        params = self.config.single_sampling
        batch_size = max(1, self.config.gap_fill_batch_size)

        filled: List[str] = []
        for i in range(0, len(prompts), batch_size):
            batch = prompts[i : i + batch_size]
            with span("points.generate.gap_fill", batch=len(batch)):
                texts = await asyncio.gather(
                    *(self.generator.generate(p, params) for p in batch)
                )
            for text in texts:
                point = clean_single_point(text, topic)
                if point and not _seen(point, existing + filled):
                    filled.append(point)
        return filled

    def _pad(self, topic: str, points: List[str], count: int) -> List[str]:
        padded = list(points)
        for statement in fallback_points(
            topic, len(self.config.fallback_templates), self.config.fallback_templates
        ):
            if len(padded) >= count:
                break
            if not _seen(statement, padded):
                padded.append(statement)
        return padded
