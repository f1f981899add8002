# tests/conftest.py

import io
import os
import tempfile

# keep the module-level app and settings away from the working tree
_SESSION_DIR = tempfile.mkdtemp(prefix="brandguard-tests-")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_SESSION_DIR, "uploads"))
os.environ.setdefault("DATA_DIR", os.path.join(_SESSION_DIR, "data"))
os.environ.setdefault("REFERENCE_STORE_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(_SESSION_DIR, "reference_images.db"))
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from config.settings import Settings
from api.reference_images.reference_images_store import (
    InMemoryReferenceImageStore,
    JsonReferenceImageStore,
)
from helpers.token_helper import create_principal_token
from main import create_app


def make_image_bytes(pixels=None, size=(8, 8), color=(255, 255, 255), fmt="PNG") -> bytes:
    """Encode an RGB image; ``pixels`` is a row-major list of RGB tuples"""
    img = Image.new("RGB", size, color)
    if pixels is not None:
        img.putdata(pixels)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def half_and_half(size: int = 8):
    """Left half black, right half white"""
    return [
        (0, 0, 0) if x < size // 2 else (255, 255, 255)
        for _ in range(size)
        for x in range(size)
    ]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        UPLOAD_DIR=str(tmp_path / "uploads"),
        DATA_DIR=str(tmp_path / "data"),
        REFERENCE_STORE_BACKEND="memory",
        SECRET_KEY=os.environ["SECRET_KEY"],
    )


@pytest.fixture
def memory_store():
    return InMemoryReferenceImageStore()


@pytest.fixture
def json_store(tmp_path):
    return JsonReferenceImageStore(tmp_path / "data" / "reference-images.json")


@pytest.fixture
def app(settings, memory_store):
    return create_app(settings=settings, store=memory_store)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    token = create_principal_token(1, email="admin@example.com", roles=["admin"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers():
    token = create_principal_token(2, email="analyst@example.com", roles=["user"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def png_bytes():
    return make_image_bytes(half_and_half())
