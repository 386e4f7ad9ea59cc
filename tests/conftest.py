"""
Pytest configuration and shared fixtures for niobium tests.
"""

import sys
import textwrap
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from niobium.config import Settings  # noqa: E402
from niobium.exceptions import UploadError  # noqa: E402


HOST_APP = '''
import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles

app = FastAPI()


@app.get("/", response_class=HTMLResponse)
def index():
    return "<h1>hi</h1>"


app.mount("/static", StaticFiles(directory="public"), name="static")

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
'''

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class FakeObjectStore:
    """In-memory ObjectStore recording every call."""

    def __init__(self) -> None:
        self.objects: Dict[tuple, Dict[str, Any]] = {}
        self.head_calls: List[tuple] = []
        self.put_calls: List[Dict[str, Any]] = []
        self.fail_on_put: Optional[str] = None

    def head_object(self, bucket: str, key: str):
        self.head_calls.append((bucket, key))
        stored = self.objects.get((bucket, key))
        if stored is None:
            return None
        return dict(stored["metadata"])

    def put_object(self, bucket, key, body, *, acl, content_type, cache_control, metadata):
        call = {
            "bucket": bucket,
            "key": key,
            "body": body,
            "acl": acl,
            "content_type": content_type,
            "cache_control": cache_control,
            "metadata": dict(metadata),
        }
        self.put_calls.append(call)
        if self.fail_on_put == key:
            raise UploadError(key, reason="simulated failure")
        self.objects[(bucket, key)] = call


class FakeCDN:
    """In-memory CDN recording invalidation requests."""

    def __init__(self) -> None:
        self.invalidations: List[Dict[str, Any]] = []

    def create_invalidation(self, distribution_id, caller_reference, paths):
        self.invalidations.append(
            {
                "distribution_id": distribution_id,
                "caller_reference": caller_reference,
                "paths": list(paths),
            }
        )
        return f"I{len(self.invalidations)}"


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def cdn() -> FakeCDN:
    return FakeCDN()


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    """Settings isolated from the developer's environment."""
    for name in ("NIOBIUM_APP", "NIOBIUM_WORKERS", "NIOBIUM_HOST", "NIOBIUM_METADATA_KEY"):
        monkeypatch.delenv(name, raising=False)
    return Settings(workers=2, show_progress=False, startup_timeout=10.0, request_timeout=10.0)


@pytest.fixture
def write_app(tmp_path: Path, monkeypatch):
    """Write a host application script into tmp_path and chdir there."""
    monkeypatch.chdir(tmp_path)

    def _write(source: str, name: str = "app.py") -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def site(tmp_path: Path, write_app) -> Path:
    """The reference site: `/` plus `public/logo.png` mounted at `/static`."""
    public = tmp_path / "public"
    public.mkdir()
    (public / "logo.png").write_bytes(PNG_BYTES)
    return write_app(HOST_APP)
