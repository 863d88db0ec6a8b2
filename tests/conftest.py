"""
Global pytest fixtures for the QR Link Platform test suite.

Responsibilities:
    - Provide a fresh FastAPI TestClient via the app factory for integration tests
    - Provide isolated in-memory Storage and a tmp_path file layout for direct testing
    - Provide managers wired to those fixtures (unit/integration)

Why an app factory?
    Using `create_app(settings=..., storage=...)` gives each test fresh
    in-memory state and its own generated-files directory, eliminating
    cross-test flakiness.

LLM Prompt Example:
    "Show how to structure pytest fixtures to isolate service state and
    support both integration and unit tests without external dependencies."
"""

import dataclasses
from datetime import date

import pytest
from fastapi.testclient import TestClient

from auth.config import USERS
from main import create_app
from qrlink_platform.config import DEFAULT_RESERVED_SLUGS, Settings, reserved_set, settings as base_settings
from qrlink_platform.manager import (
    CodeManager,
    FavoriteCoordinator,
    RedirectResolver,
    SlugValidator,
    VersionManager,
)
from qrlink_platform.storage import Storage, VersionFileLayout

TEST_USER = "test_admin"
TEST_PASSWORD = "test-password"
FIXED_TODAY = date(2025, 6, 15)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Environment-independent settings rooted in a per-test directory."""
    return dataclasses.replace(
        base_settings,
        storage_backend="memory",
        db_dsn="",
        base_url="https://qr.example.com",
        generated_path=str(tmp_path / "generated"),
        code_length=6,
        max_slug_length=33,
        reserved_slugs=reserved_set(DEFAULT_RESERVED_SLUGS),
        max_versions=20,
        redirect_timeout=2.0,
    )


@pytest.fixture
def storage() -> Storage:
    """
    Provide a fresh in-memory Storage backend.

    LLM Prompt Example:
        "Explain how to use in-memory test doubles for fast, deterministic tests,
        and later swap with database-backed implementations."
    """
    return Storage()


@pytest.fixture
def layout(test_settings) -> VersionFileLayout:
    return VersionFileLayout(test_settings.generated_path)


@pytest.fixture
def validator(storage, test_settings) -> SlugValidator:
    """Validator with a fixed clock so date-based suggestions are predictable."""
    return SlugValidator(
        storage,
        test_settings.reserved_slugs,
        max_length=test_settings.max_slug_length,
        today=lambda: FIXED_TODAY,
    )


@pytest.fixture
def codes(storage, validator, layout, test_settings) -> CodeManager:
    return CodeManager(storage, validator, layout, base_url=test_settings.base_url)


@pytest.fixture
def favorites(storage, layout) -> FavoriteCoordinator:
    return FavoriteCoordinator(storage, layout)


@pytest.fixture
def versions(storage, layout, favorites, test_settings) -> VersionManager:
    return VersionManager(
        storage, layout, favorites, max_versions=test_settings.max_versions, base_url=test_settings.base_url
    )


@pytest.fixture
def resolver(storage) -> RedirectResolver:
    return RedirectResolver(storage)


@pytest.fixture
def auth_user(monkeypatch):
    """Register a known operator account for the duration of one test."""
    monkeypatch.setitem(USERS, TEST_USER, TEST_PASSWORD)
    return (TEST_USER, TEST_PASSWORD)


@pytest.fixture
def client(test_settings, storage, auth_user) -> TestClient:
    """
    Provide a fresh TestClient with a new app instance, authenticated as the test operator.

    The storage fixture is injected, so tests can inspect state directly.
    """
    test_client = TestClient(create_app(settings=test_settings, storage=storage))
    test_client.auth = auth_user
    return test_client


@pytest.fixture
def anon_client(test_settings, storage) -> TestClient:
    """Same app wiring as `client`, without credentials."""
    return TestClient(create_app(settings=test_settings, storage=storage))


@pytest.fixture
def code(codes):
    """A code with no versions yet."""
    return codes.create_code("https://example.com/landing", "Landing page", slug="landing")
