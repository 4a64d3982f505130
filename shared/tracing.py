"""Request tracing and structured events for the points service.

Everything here is a no-op unless Langfuse is switched on
(``LANGFUSE_ENABLED=true``, ``TRACING_BACKEND=langfuse``, both keys set and
the SDK importable). With Langfuse on, each HTTP request becomes one trace
and every ``span``/``log_event`` inside it becomes a child span. A tracing
backend error is swallowed and never reaches request handling.

Timing helpers live here too: ``elapsed_ms`` for response and event
timings, ``request_elapsed_ms`` for handlers that only have the request,
and ``estimate_tokens`` for prompt sizes in event payloads.
"""

from __future__ import annotations

import contextvars
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

from shared.settings import Settings

try:
    from langfuse import Langfuse  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    Langfuse = None  # type: ignore


def elapsed_ms(start: float) -> int:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return int((time.perf_counter() - start) * 1000)


def request_elapsed_ms(request: Any) -> int:
    """Milliseconds since the tracing middleware accepted ``request``."""
    started = getattr(request.state, "started", None)
    return elapsed_ms(started) if started is not None else 0


class _Span:
    """Span handle; records nothing unless a backend subclass does."""

    def __init__(self, name: str, **attrs: Any) -> None:
        self.name = name
        self.attrs: Dict[str, Any] = attrs

    def open(self) -> None:
        return None

    def close(self, error: Optional[BaseException] = None) -> None:
        return None


class _LangfuseSpan(_Span):  # pragma: no cover - optional dependency
    def __init__(self, client: Any, parent: Any, name: str, **attrs: Any) -> None:
        super().__init__(name, **attrs)
        self._client = client
        self._parent = parent
        self._handle = None
        self._started = time.perf_counter()

    def open(self) -> None:
        try:
            if self._parent is None:
                # detached span (startup, background work): give it a trace
                self._parent = self._client.trace(name=tracer.trace_name)
            self._handle = self._parent.span(name=self.name, input=self.attrs)
        except Exception:
            self._handle = None

    def close(self, error: Optional[BaseException] = None) -> None:
        if self._handle is None:
            return
        try:
            self._handle.end(
                output={
                    "error": str(error) if error else None,
                    "duration_ms": max(1, elapsed_ms(self._started)),
                }
            )
        except Exception:
            pass


_active_trace: contextvars.ContextVar[Any] = contextvars.ContextVar(
    "points.active_trace", default=None
)


class Tracer:
    """Holds the Langfuse client, if any, and the per-request trace."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        s = settings or Settings()
        self.trace_name = s.trace_name
        self._client = self._connect(s)

    @staticmethod
    def _connect(s: Settings) -> Any:
        wanted = s.langfuse_enabled and s.tracing_backend.lower() == "langfuse"
        if not wanted or Langfuse is None:
            return None
        if not (s.langfuse_public_key and s.langfuse_secret_key):
            return None
        try:
            return Langfuse(
                public_key=s.langfuse_public_key,
                secret_key=s.langfuse_secret_key,
                host=s.langfuse_host or None,
            )
        except Exception:
            return None

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @contextmanager
    def request_trace(self, name: str, **attrs: Any) -> Iterator[Dict[str, Any]]:
        """Make ``name`` the parent of every span opened inside the block.

        The yielded dict becomes the trace output when the block exits.
        """
        output: Dict[str, Any] = {}
        trace = None
        if self._client is not None:
            try:
                trace = self._client.trace(name=name, input=attrs)
            except Exception:
                trace = None
        token = _active_trace.set(trace)
        try:
            yield output
        finally:
            _active_trace.reset(token)
            if trace is not None:
                try:
                    trace.end(output=output)
                except Exception:
                    pass

    def new_span(self, name: str, **attrs: Any) -> _Span:
        if self._client is None:
            return _Span(name, **attrs)
        return _LangfuseSpan(self._client, _active_trace.get(), name, **attrs)


tracer = Tracer()


@contextmanager
def span(name: str, **attrs: Any) -> Iterator[_Span]:
    """Time the enclosed block as a child of the current request trace.

    Usage:
        with span("points.generate.structured", topic=topic):
            text = await generator.generate(prompt, params)
    """
    s = tracer.new_span(name, **attrs)
    s.open()
    error: Optional[BaseException] = None
    try:
        yield s
    except BaseException as exc:
        error = exc
        raise
    finally:
        s.close(error)


def log_event(name: str, payload: Optional[dict] = None) -> None:
    """Record a zero-length ``event.<name>`` span carrying ``payload``.

    Event names used by the service: ModelLoad, ModelPrewarm,
    StartupLoadFailed, CacheHit, Generation, GenerationFallback,
    GenerationFailed, Shutdown.
    """
    with span(f"event.{name}", **dict(payload or {})):
        pass


def install_fastapi_tracing(app, service_name: str = "points-generate") -> None:
    """Open one trace per HTTP request and stamp its start time.

    The start time lands on ``request.state.started`` so exception handlers
    can report a total time through ``request_elapsed_ms``.
    """
    from fastapi import Request

    @app.middleware("http")
    async def _trace_request(request: Request, call_next: Callable):
        request.state.started = time.perf_counter()
        path = request.url.path
        with tracer.request_trace(
            f"{service_name} {request.method} {path}", method=request.method, path=path
        ) as output:
            with span("http.request", path=path):
                response = await call_next(request)
            output["status"] = response.status_code
            return response


def estimate_tokens(text: str) -> int:
    """Crude token count for event payloads (about four characters each)."""
    if not text:
        return 0
    return max(1, len(text) // 4)
