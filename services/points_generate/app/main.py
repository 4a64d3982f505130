"""Points generation microservice (local causal LM with caching and fallbacks).

Given a topic and a desired count, returns a small set of short statements
about the topic generated by an on-box language model (``distilgpt2`` by
default, loaded through transformers).

Endpoints:
- GET `/api/status`: model readiness plus cache size and hit rate.
- POST `/api/generate`: `{"prompt": str, "count"?: int}` -> statements.
- GET `/` and `/health`: liveness.

Behavior:
- The model is loaded once by a readiness gate; concurrent requests wait on
  the same load. With PRELOAD_MODEL the load starts at process startup.
- Results are cached per (normalized topic, count) with LRU eviction.
- Inference failures never fail a request: the pipeline degrades to
  templated fallback statements. Only a failed model load or an unexpected
  error returns HTTP 500.
- If OFFLINE_MODE is enabled, a deterministic offline generator replaces the
  transformers model.
"""

from __future__ import annotations

import asyncio
import random
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.cache import PointCache, cache_key
from shared.models import ErrorResponse, PointsRequest, PointsResponse, StatusResponse
from shared.settings import Settings
from shared.tracing import (
    elapsed_ms,
    install_fastapi_tracing,
    log_event,
    request_elapsed_ms,
    span,
)

from .model import Loader, ModelGate, load_text_generator
from .orchestrator import PointGenerator
from .pipeline import get_pipeline_config

INVALID_PROMPT = "Valid prompt is required"

_STATUS_MESSAGES = {
    "not_loaded": "Model not loaded",
    "loading": "Model is loading...",
    "ready": "Model is ready",
}


async def _preload(gate: ModelGate) -> None:
    try:
        await gate.ensure_ready()
    except Exception as exc:
        # surfaced through /api/status; the next request retries the load
        log_event("StartupLoadFailed", payload={"error": str(exc)})


@asynccontextmanager
async def _lifespan(app: FastAPI):
    state = app.state
    task = None
    if state.settings.preload_model:
        task = asyncio.ensure_future(_preload(state.gate))
    try:
        yield
    finally:
        if task is not None and not task.done():
            task.cancel()
        log_event("Shutdown", payload=state.cache.stats())


def create_app(
    settings: Optional[Settings] = None,
    loader: Optional[Loader] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    """Build the points service.

    Args:
        settings: Configuration; read from the environment when omitted.
        loader: Coroutine function returning a text generator. Defaults to
            ``load_text_generator(settings)``; tests inject stubs here.
        rng: Random source for structured template selection.
    """
    s = settings or Settings()
    app = FastAPI(title="Points Generation Service", version="0.1.0", lifespan=_lifespan)
    install_fastapi_tracing(app, service_name="points-generate")

    app.state.settings = s
    app.state.gate = ModelGate(loader or (lambda: load_text_generator(s)))
    app.state.cache = PointCache(max_size=s.max_cache_size)
    app.state.pipeline = get_pipeline_config(s)
    app.state.rng = rng or random.Random()

    # Non-string prompts and unparseable bodies are input errors, not 422s
    @app.exception_handler(RequestValidationError)
    async def invalid_request_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": INVALID_PROMPT})

    # ---------- Global safety net: never crash the worker ----------
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        """Catch-all for any unhandled exception; return structured JSON 500."""
        body = ErrorResponse(
            error=f"An unexpected error occurred in points-generate: {exc}",
            total_time=request_elapsed_ms(request),
        )
        return JSONResponse(status_code=500, content=body.model_dump(by_alias=True))

    @app.get("/")
    def _root():
        return {"status": "ok", "service": "points-generate"}

    @app.get("/health")
    def _health():
        return {"status": "ok"}

    @app.get("/api/status", response_model=StatusResponse, response_model_exclude_none=True)
    def status(request: Request) -> StatusResponse:
        gate: ModelGate = request.app.state.gate
        cache: PointCache = request.app.state.cache
        state = gate.state
        if state == "ready":
            return StatusResponse(
                status=state,
                message=_STATUS_MESSAGES[state],
                cache_size=len(cache),
                cache_hit_rate=cache.hit_rate,
            )
        if state == "error":
            return StatusResponse(
                status=state, message=f"Model failed to load: {gate.last_error}"
            )
        return StatusResponse(status=state, message=_STATUS_MESSAGES[state])

    @app.post("/api/generate", response_model=PointsResponse)
    async def generate_points(body: PointsRequest, request: Request):
        """Generate ``count`` statements about ``prompt``.

        Blank prompts return HTTP 400. A cache hit returns the stored points
        with ``cached: true`` and the stored generation time.
        """
        started = time.perf_counter()
        topic = (body.prompt or "").strip()
        if not topic:
            return JSONResponse(status_code=400, content={"error": INVALID_PROMPT})

        state = request.app.state
        requested = body.count
        try:
            generator = await state.gate.ensure_ready()

            key = cache_key(topic, requested)
            entry = state.cache.get(key)
            if entry is not None:
                log_event(
                    "CacheHit", payload={"key": key, "total_ms": elapsed_ms(started)}
                )
                return PointsResponse(
                    topic=topic,
                    requested_count=requested,
                    generated_count=len(entry.points),
                    points=entry.points,
                    generation_time=entry.generation_time_ms,
                    total_time=elapsed_ms(started),
                    cached=True,
                )

            gen_started = time.perf_counter()
            with span("points.generate", topic=topic, count=requested):
                outcome = await PointGenerator(
                    generator, state.pipeline, rng=state.rng
                ).generate(topic, requested)
            generation_time = elapsed_ms(gen_started)

            state.cache.put(key, state.cache.new_entry(outcome.points, generation_time))

            total_time = elapsed_ms(started)
            log_event(
                "Generation",
                payload={
                    "topic": topic,
                    "strategy": outcome.strategy,
                    "requested": requested,
                    "generated": len(outcome.points),
                    "generation_ms": generation_time,
                    "total_ms": total_time,
                    "error": outcome.error,
                },
            )
            return PointsResponse(
                topic=topic,
                requested_count=requested,
                generated_count=len(outcome.points),
                points=outcome.points,
                generation_time=generation_time,
                total_time=total_time,
                cached=False,
            )
        except Exception as e:
            total_time = elapsed_ms(started)
            log_event("GenerationFailed", payload={"error": str(e), "total_ms": total_time})
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(error=str(e), total_time=total_time).model_dump(
                    by_alias=True
                ),
            )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=app.state.settings.host, port=app.state.settings.port)
