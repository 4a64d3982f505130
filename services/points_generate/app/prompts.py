"""
Prompt templates for the points pipeline, tuned for a small causal LM.

Two prompt shapes are used:
- Structured prompts open a numbered list ("Key benefits of X:\\n1.") so a
  single generation call tends to continue with several enumerated points.
- Single starters are short sentence prefixes ("X works by") used to fill
  the gap when a structured call yields too few usable points.

Template sets are grouped per pipeline variant; ``{topic}`` is the only
placeholder.

Selection policy:
- Structured templates are drawn uniformly at random from the variant's set
  using an injectable ``random.Random`` (seed it for reproducible tests).
- Single starters are cyclic: index ``i`` always yields starter
  ``i % len(starters)``.
"""

from __future__ import annotations

import random
from typing import Optional, Sequence

# ============================  STRUCTURED LISTS  =========================== #

BENEFIT_STRUCTURED_TEMPLATES = (
    "Key benefits of {topic}:\n1.",
    "Important facts about {topic}:\n1.",
    "Main advantages of {topic}:\n1.",
    "Essential points about {topic}:\n1.",
)

FACT_STRUCTURED_TEMPLATES = (
    "Interesting facts about {topic}:\n1.",
    "What everyone should know about {topic}:\n1.",
    "Key characteristics of {topic}:\n1.",
    "Quick facts on {topic}:\n1.",
)

# =============================  SINGLE STARTERS  =========================== #

BENEFIT_SINGLE_STARTERS = (
    "{topic} helps by",
    "{topic} is valuable because it",
    "The benefit of {topic} is that it",
    "{topic} works by",
    "{topic} provides",
    "{topic} enables",
    "{topic} improves",
)

FACT_SINGLE_STARTERS = (
    "{topic} is known for",
    "One notable fact about {topic} is that it",
    "{topic} is commonly used to",
    "{topic} depends on",
    "{topic} can",
)

# ================================  FALLBACKS  ============================== #

BENEFIT_FALLBACKS = (
    "{topic} provides significant benefits for users.",
    "{topic} has been shown to be effective in various applications.",
    "{topic} offers practical solutions for common challenges.",
    "{topic} represents an important advancement in its field.",
    "{topic} contributes to improved outcomes and efficiency.",
)

FACT_FALLBACKS = (
    "{topic} is a widely discussed subject.",
    "{topic} has a number of well-documented characteristics.",
    "{topic} is relevant to many everyday situations.",
    "{topic} continues to be studied and refined.",
    "{topic} has practical implications worth understanding.",
)


class PromptBuilder:
    """Render structured prompts and single starters for a topic."""

    def __init__(
        self,
        structured_templates: Sequence[str],
        single_starters: Sequence[str],
        rng: Optional[random.Random] = None,
    ) -> None:
        if not structured_templates or not single_starters:
            raise ValueError("template sets must not be empty")
        self.structured_templates = tuple(structured_templates)
        self.single_starters = tuple(single_starters)
        self._rng = rng or random.Random()

    def build_structured_prompt(self, topic: str, count: int) -> str:
        # the list opener does not vary with count
        template = self._rng.choice(self.structured_templates)
        return template.format(topic=topic)

    def build_single_starter(self, topic: str, index: int) -> str:
        template = self.single_starters[index % len(self.single_starters)]
        return template.format(topic=topic)

    def structured_prompt_set(self, topic: str) -> set[str]:
        """Every structured prompt this builder can produce for ``topic``."""
        return {t.format(topic=topic) for t in self.structured_templates}
