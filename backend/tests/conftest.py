"""
Recipe Manager Media Backend — Test Configuration (conftest.py)
================================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Provides reusable test infrastructure (temp upload dirs, real images,
       tokens, API client).
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy (all function-scoped):
    ├── temp_storage: Temporary upload directory
    ├── store: LocalAssetStore rooted at temp_storage
    ├── upload_service: UploadService over `store` with fixed base URL
    ├── make_image: Factory producing encoded images with Pillow
    ├── sample_image_bytes: 2000×1000 JPEG
    ├── auth_token / auth_headers: Valid bearer token for a test user
    ├── app: Fresh FastAPI app writing into temp_storage
    └── test_client: HTTPX AsyncClient bound to `app`
"""

import io
import os
import tempfile

# Override settings for testing BEFORE any app imports
os.environ["ENVIRONMENT"] = "test"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="recipe_media_test_")
os.environ["JWT_SECRET"] = "test-secret-key-that-is-at-least-32-characters"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce noise during tests

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

from app.services.asset_store import LocalAssetStore
from app.services.auth_service import AuthPrincipal, AuthService
from app.services.monitoring_service import MonitoringService
from app.services.retention import StartupOnlyScheduler
from app.services.upload_service import UploadService

TEST_BASE_URL = "http://localhost:3001"
TEST_USER = AuthPrincipal(user_id="user-123", email="cook@example.com")


# ══════════════════════════════════════════════════════════════════════════
# Storage & Services
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path):
    """A fresh upload directory per test (pytest cleans it up)."""
    storage_dir = tmp_path / "uploads"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def store(temp_storage):
    return LocalAssetStore(root=temp_storage)


@pytest.fixture
def upload_service(store):
    return UploadService(store=store, monitoring=MonitoringService(), base_url=TEST_BASE_URL)


# ══════════════════════════════════════════════════════════════════════════
# Image Data
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_image():
    """
    Factory for real encoded images.

    Usage:
        png = make_image(640, 480, fmt="PNG", mode="RGBA")
    """

    def _make(width: int, height: int, fmt: str = "JPEG", mode: str = "RGB", color=(200, 80, 40)) -> bytes:
        if mode == "RGBA" and len(color) == 3:
            color = (*color, 128)
        image = Image.new(mode, (width, height), color)
        buffer = io.BytesIO()
        image.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def sample_image_bytes(make_image):
    """A 2000×1000 JPEG: large enough that every variant is downscaled."""
    return make_image(2000, 1000)


# ══════════════════════════════════════════════════════════════════════════
# Auth
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def auth_service():
    return AuthService()


@pytest.fixture
def auth_token(auth_service):
    return auth_service.create_access_token(TEST_USER)


@pytest.fixture
def auth_headers(auth_token):
    return {"Authorization": f"Bearer {auth_token}"}


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(temp_storage):
    """
    A new application per test so rate limit windows, caches and monitoring
    counters never leak between tests.
    """
    from app.main import create_app

    return create_app(upload_dir=temp_storage, retention_scheduler=StartupOnlyScheduler())


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient routed directly into the ASGI app.

    Usage:
        async def test_live(test_client):
            response = await test_client.get("/live")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
