import os

# Deterministic, offline-friendly tests
os.environ.setdefault("OFFLINE_MODE", "1")
os.environ.setdefault("LANGFUSE_ENABLED", "0")

# Never start a background model load from the app lifespan
os.environ.setdefault("PRELOAD_MODEL", "0")
os.environ.setdefault("INFERENCE_THREADS", "0")
