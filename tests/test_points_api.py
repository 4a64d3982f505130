import os
import random
import re

from fastapi.testclient import TestClient

# Force offline to avoid loading a real model
os.environ["OFFLINE_MODE"] = "1"

from services.points_generate.app.main import app as default_app  # type: ignore
from services.points_generate.app.main import create_app  # type: ignore
from services.points_generate.app.pipeline import PRESETS  # type: ignore
from services.points_generate.app.prompts import BENEFIT_FALLBACKS  # type: ignore
from shared.settings import Settings

NUMBERED = "1. reduces emissions\n2. lowers cost\n3. is renewable"


class _StubGenerator:
    name = "stub"

    def __init__(self, text: str = NUMBERED, fail: bool = False) -> None:
        self.text = text
        self.fail = fail
        self.calls = 0

    async def generate(self, prompt, params):
        self.calls += 1
        if self.fail:
            raise RuntimeError("inference exploded")
        return self.text


def _client(generator=None, loader=None, **overrides) -> TestClient:
    gen = generator or _StubGenerator()

    async def _load():
        return gen

    settings = Settings(offline_mode=True, preload_model=False, **overrides)
    return TestClient(create_app(settings, loader=loader or _load, rng=random.Random(3)))


def test_generate_solar_energy_scenario() -> None:
    client = _client()
    resp = client.post("/api/generate", json={"prompt": "solar energy", "count": 3})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["topic"] == "solar energy"
    assert data["requestedCount"] == 3
    assert data["generatedCount"] == 3
    assert data["cached"] is False
    assert isinstance(data["generationTime"], int)
    assert isinstance(data["totalTime"], int)
    assert len(data["points"]) == 3
    for point in data["points"]:
        assert point[0].isupper()
        assert point[-1] in ".!?"
        assert not re.match(r"^\s*\d+\.", point)


def test_second_request_is_served_from_cache() -> None:
    gen = _StubGenerator()
    client = _client(gen)
    first = client.post("/api/generate", json={"prompt": "Solar Energy", "count": 3}).json()
    second = client.post(
        "/api/generate", json={"prompt": "  solar   energy ", "count": 3}
    ).json()
    assert first["cached"] is False
    assert second["cached"] is True
    assert second["points"] == first["points"]
    assert second["generationTime"] == first["generationTime"]
    assert second["topic"] == "solar   energy"
    assert gen.calls == 1

    other_count = client.post("/api/generate", json={"prompt": "solar energy", "count": 2})
    assert other_count.json()["cached"] is False


def test_blank_or_missing_prompt_is_rejected() -> None:
    client = _client()
    for body in ({"prompt": "", "count": 3}, {"prompt": "   "}, {"count": 2}):
        resp = client.post("/api/generate", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Valid prompt is required"}


def test_count_is_clamped_and_defaulted() -> None:
    client = _client()
    cases = {99: 5, 0: 1, -4: 1, "4": 4, 2.9: 2, "abc": 3, None: 3}
    for raw, expected in cases.items():
        resp = client.post("/api/generate", json={"prompt": f"tea {raw}", "count": raw})
        assert resp.status_code == 200
        data = resp.json()
        assert data["requestedCount"] == expected
        assert data["generatedCount"] <= expected
    assert client.post("/api/generate", json={"prompt": "tea"}).json()["requestedCount"] == 3


def test_inference_failure_still_returns_fallbacks() -> None:
    client = _client(_StubGenerator(fail=True))
    resp = client.post("/api/generate", json={"prompt": "solar energy", "count": 5})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["generatedCount"] == 5
    assert data["points"][0] == "Solar energy provides significant benefits for users."
    assert len(data["points"]) == len(BENEFIT_FALLBACKS)


def test_status_reports_lifecycle_and_cache_stats() -> None:
    client = _client()
    status = client.get("/api/status").json()
    assert status == {"status": "not_loaded", "message": "Model not loaded"}

    client.post("/api/generate", json={"prompt": "solar energy", "count": 3})
    client.post("/api/generate", json={"prompt": "solar energy", "count": 3})
    status = client.get("/api/status").json()
    assert status["status"] == "ready"
    assert status["message"] == "Model is ready"
    assert status["cacheSize"] == 1
    assert status["cacheHitRate"] == 50.0


def test_model_load_failure_returns_500_and_is_retryable() -> None:
    attempts = []
    gen = _StubGenerator()

    async def flaky_loader():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("weights missing")
        return gen

    client = _client(loader=flaky_loader)
    resp = client.post("/api/generate", json={"prompt": "solar energy"})
    assert resp.status_code == 500
    data = resp.json()
    assert data["success"] is False
    assert "weights missing" in data["error"]
    assert isinstance(data["totalTime"], int)

    status = client.get("/api/status").json()
    assert status["status"] == "error"
    assert "weights missing" in status["message"]

    retry = client.post("/api/generate", json={"prompt": "solar energy"})
    assert retry.status_code == 200
    assert retry.json()["generatedCount"] == 3
    assert len(attempts) == 2


def test_cache_size_is_bounded_by_settings() -> None:
    client = _client(max_cache_size=2)
    for topic in ("tea", "coffee", "cocoa", "mate"):
        client.post("/api/generate", json={"prompt": topic, "count": 3})
    assert client.get("/api/status").json()["cacheSize"] == 2


def test_facts_variant_is_selectable() -> None:
    client = _client(_StubGenerator(fail=True), pipeline_variant="facts")
    data = client.post("/api/generate", json={"prompt": "tea", "count": 1}).json()
    assert data["points"] == ["Tea is a widely discussed subject."]
    assert PRESETS["facts"].fallback_templates[0] == "{topic} is a widely discussed subject."


def test_default_app_runs_offline() -> None:
    client = TestClient(default_app)
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/").json()["service"] == "points-generate"
    resp = client.post("/api/generate", json={"prompt": "remote work", "count": 3})
    assert resp.status_code == 200
    data = resp.json()
    assert data["generatedCount"] == 3
    assert data["points"][0] == "Makes everyday tasks simpler for most people."


def test_lifespan_preloads_model() -> None:
    gen = _StubGenerator()

    async def loader():
        return gen

    app = create_app(Settings(offline_mode=True, preload_model=True), loader=loader)
    with TestClient(app) as client:
        for _ in range(50):
            if client.get("/api/status").json()["status"] == "ready":
                break
        assert client.get("/api/status").json()["status"] == "ready"


def test_malformed_bodies_are_rejected_as_invalid_prompt() -> None:
    gen = _StubGenerator()
    client = _client(gen)
    for body in ({"prompt": 123}, {"prompt": ["solar"]}, {"prompt": None, "count": 2}):
        resp = client.post("/api/generate", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Valid prompt is required"}
    resp = client.post(
        "/api/generate", content=b"{not json", headers={"content-type": "application/json"}
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Valid prompt is required"}
    assert gen.calls == 0


def test_unexpected_error_returns_error_shape_with_timing() -> None:
    app = create_app(Settings(offline_mode=True, preload_model=False))

    @app.get("/api/broken")
    def _broken():
        raise RuntimeError("disk on fire")

    client = TestClient(app, raise_server_exceptions=False)
    resp = client.get("/api/broken")
    assert resp.status_code == 500
    data = resp.json()
    assert data["success"] is False
    assert "disk on fire" in data["error"]
    assert isinstance(data["totalTime"], int)
    assert set(data) == {"success", "error", "totalTime"}
