"""Text generator adapters and the model readiness gate.

The pipeline only needs one capability: ``await generator.generate(prompt,
params) -> str``. Two adapters provide it:

- ``TransformersTextGenerator`` wraps a Hugging Face ``text-generation``
  pipeline (``distilgpt2`` by default). Calls run in a worker thread so the
  event loop keeps serving other requests while the model is busy.
- ``OfflineTextGenerator`` returns canned, deterministic continuations. It
  is selected when ``OFFLINE_MODE`` is enabled (tests, CI, demos).

``ModelGate`` performs the one-time load. The first caller starts the load;
every concurrent caller awaits the same task and receives the same handle
or the same ``ModelLoadError``. A failed load leaves the gate retryable.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol

from shared.settings import Settings
from shared.tracing import elapsed_ms, log_event, span

from .pipeline import SamplingParams


class ModelLoadError(RuntimeError):
    """The language model could not be initialized."""


class GenerationError(RuntimeError):
    """The language model returned something other than generated text."""


class TextGenerator(Protocol):
    name: str

    async def generate(self, prompt: str, params: SamplingParams) -> str: ...


class TransformersTextGenerator:
    """Async facade over a transformers ``text-generation`` pipeline."""

    def __init__(self, pipe: Any, name: str = "distilgpt2") -> None:
        self._pipe = pipe
        self.name = name
        tokenizer = getattr(pipe, "tokenizer", None)
        self.eos_token_id: Optional[int] = getattr(tokenizer, "eos_token_id", None)

    def _call(self, prompt: str, params: SamplingParams) -> Any:
        kwargs = params.to_kwargs()
        if self.eos_token_id is not None:
            kwargs["pad_token_id"] = self.eos_token_id
        if not params.do_sample:
            # sampling-only knobs only produce warnings under greedy decoding
            for key in ("temperature", "top_p", "top_k"):
                kwargs.pop(key, None)
        return self._pipe(prompt, **kwargs)

    async def generate(self, prompt: str, params: SamplingParams) -> str:
        result = await asyncio.to_thread(self._call, prompt, params)
        try:
            text = result[0]["generated_text"]
        except (IndexError, KeyError, TypeError) as exc:
            raise GenerationError(f"Unexpected pipeline output: {result!r}") from exc
        if not isinstance(text, str):
            raise GenerationError(f"Unexpected generated_text type: {type(text)}")
        return text


_OFFLINE_LIST = (
    " makes everyday tasks simpler for most people\n"
    "2. lowers long-term costs for households and organizations\n"
    "3. supports better decisions with clearer information\n"
    "4. scales well as needs grow over time\n"
    "5. encourages steady improvement and shared learning"
)
_OFFLINE_CLAUSE = " delivers reliable results in common situations. It also"


class OfflineTextGenerator:
    """Deterministic generator used when OFFLINE_MODE is enabled."""

    name = "offline"

    async def generate(self, prompt: str, params: SamplingParams) -> str:
        if prompt.rstrip().endswith("1."):
            return _OFFLINE_LIST
        return _OFFLINE_CLAUSE


def _model_ref(settings: Settings) -> str:
    if settings.model_dir:
        return str(Path(settings.model_dir) / settings.model_name)
    return settings.model_name


def _build_transformers_generator(settings: Settings) -> TransformersTextGenerator:
    from transformers import pipeline  # type: ignore

    if settings.inference_threads > 0:
        import torch  # type: ignore

        torch.set_num_threads(settings.inference_threads)

    pipe = pipeline("text-generation", model=_model_ref(settings), device=-1)
    return TransformersTextGenerator(pipe, name=settings.model_name)


async def load_text_generator(settings: Optional[Settings] = None) -> TextGenerator:
    """Build the configured generator and optionally pre-warm it."""
    s = settings or Settings()
    if s.offline_mode:
        return OfflineTextGenerator()

    generator = await asyncio.to_thread(_build_transformers_generator, s)
    if s.prewarm_model:
        started = time.perf_counter()
        with span("points.model.prewarm", model=generator.name):
            await generator.generate(
                "Test", SamplingParams(max_new_tokens=1, do_sample=False)
            )
        log_event(
            "ModelPrewarm",
            payload={
                "model": generator.name,
                "duration_ms": elapsed_ms(started),
            },
        )
    return generator


Loader = Callable[[], Awaitable[TextGenerator]]


class ModelGate:
    """One-shot, retryable model initialization shared by all requests."""

    def __init__(self, loader: Loader) -> None:
        self._loader = loader
        self._handle: Optional[TextGenerator] = None
        self._task: Optional[asyncio.Task] = None
        self.last_error: Optional[str] = None

    @property
    def state(self) -> str:
        if self._handle is not None:
            return "ready"
        if self._task is not None and not self._task.done():
            return "loading"
        if self.last_error is not None:
            return "error"
        return "not_loaded"

    @property
    def handle(self) -> Optional[TextGenerator]:
        return self._handle

    async def ensure_ready(self) -> TextGenerator:
        if self._handle is not None:
            return self._handle
        if self._task is None:
            self._task = asyncio.ensure_future(self._load())
        # shield: a cancelled waiter must not abort the shared load
        return await asyncio.shield(self._task)

    async def _load(self) -> TextGenerator:
        started = time.perf_counter()
        log_event("ModelLoad", payload={"stage": "start"})
        try:
            handle = await self._loader()
        except Exception as exc:
            self.last_error = str(exc) or exc.__class__.__name__
            log_event("ModelLoad", payload={"stage": "failed", "error": self.last_error})
            raise ModelLoadError(f"Model loading failed: {self.last_error}") from exc
        finally:
            self._task = None
        self._handle = handle
        self.last_error = None
        log_event(
            "ModelLoad",
            payload={
                "stage": "ready",
                "model": getattr(handle, "name", None),
                "duration_ms": elapsed_ms(started),
            },
        )
        return handle
