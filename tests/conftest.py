"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Settings are read once at import time by the logger and the rate limiter,
# so the environment must be in place before anything under ``app`` loads.
# ---------------------------------------------------------------------------
os.environ.setdefault("MONGODB_URI", "")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SEED_SAMPLE_POSTS", "false")
os.environ.setdefault("JWT_SECRET", "test-secret-for-pytest-only")
os.environ.setdefault("LOG_TO_FILE", "false")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.config import Settings  # noqa: E402
from app.context import build_context  # noqa: E402
from app.main import create_app  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from app.schemas import PostRecord, SurveyRecord  # noqa: E402
from app.security import create_admin_token  # noqa: E402

from helpers import (  # noqa: E402
    ADMIN_PANEL_PASSWORD,
    ADMIN_PASSWORD,
    ADMIN_USERNAME,
    SUBMISSION_PASSWORD,
    MemoryBackend,
)


@pytest.fixture(autouse=True)
def _reset_slowapi():
    """slowapi keeps its counters in process memory; start every test clean."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        MONGODB_URI="",
        DATA_DIR=str(tmp_path / "data"),
        SEED_SAMPLE_POSTS=False,
        SUBMISSION_PASSWORD=SUBMISSION_PASSWORD,
        ADMIN_PANEL_PASSWORD=ADMIN_PANEL_PASSWORD,
        ADMIN_USERNAME=ADMIN_USERNAME,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        JWT_SECRET="test-secret-for-pytest-only",
        MONGO_RETRY_DELAY_SECONDS=0,
    )


@pytest.fixture
def survey_primary() -> MemoryBackend:
    return MemoryBackend(SurveyRecord, "submittedAt")


@pytest.fixture
def post_primary() -> MemoryBackend:
    return MemoryBackend(PostRecord, "createdAt")


@pytest.fixture
def ctx(settings, survey_primary, post_primary):
    """Context over a tmp data dir; the in-memory primaries start unusable."""
    return build_context(settings, survey_primary=survey_primary, post_primary=post_primary)


@pytest.fixture
def live_ctx(ctx):
    """Same context with the usability flag up, as after a successful connect."""
    ctx.flag.set(True)
    return ctx


@pytest.fixture
def client(ctx) -> TestClient:
    return TestClient(create_app(ctx), raise_server_exceptions=False)


@pytest.fixture
def admin_headers(ctx) -> dict:
    return {"Authorization": f"Bearer {create_admin_token(ctx.settings)}"}
