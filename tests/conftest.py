"""
Shared fixtures: temporary data area, fake /proc files, mocked icon
downloads and a fixed clock.
"""

from pathlib import Path

import httpx
import pytest

from orbitdash.common.config import Settings
from orbitdash.services.registry import IconManager, ServiceRegistry
from orbitdash.storage import Database

# Minimal 1x1 PNG
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
    b"\x08\x02\x00\x00\x00\x90wS\xde\x00\x00\x00\x0cIDATx\x9cc\xf8\xcf\xc0"
    b"\x00\x00\x00\x03\x00\x01\x00\x05\xfe\xd4\x00\x00\x00\x00IEND\xaeB`\x82"
)
SVG_BYTES = b'<svg xmlns="http://www.w3.org/2000/svg" width="1" height="1"/>'

PROC_STAT = "cpu  100 0 100 800 0 0 0 0 0 0\ncpu0 100 0 100 800 0 0 0 0 0 0\n"
PROC_MEMINFO = (
    "MemTotal:        1000 kB\n"
    "MemFree:          100 kB\n"
    "MemAvailable:     400 kB\n"
    "Buffers:          50 kB\n"
)


class FakeClock:
    """Manually advanced millisecond clock"""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def icon_handler(request: httpx.Request) -> httpx.Response:
    """Fake icon host for httpx.MockTransport"""
    path = request.url.path
    if path == "/icon.png":
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})
    if path == "/vector.png":
        return httpx.Response(
            200, content=SVG_BYTES, headers={"content-type": "image/svg+xml; charset=utf-8"}
        )
    if path == "/untyped.webp":
        return httpx.Response(200, content=b"RIFF....WEBP")
    if path == "/favicon":
        return httpx.Response(200, content=b"\x00\x00\x01\x00", headers={"content-type": "image/x-icon"})
    if path == "/page.html":
        return httpx.Response(200, content=b"<html></html>", headers={"content-type": "text/html"})
    if path == "/old-location.png":
        return httpx.Response(301, headers={"location": "https://icons.test/icon.png"})
    return httpx.Response(404, content=b"not found")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def proc_root(tmp_path) -> Path:
    root = tmp_path / "proc"
    root.mkdir()
    (root / "stat").write_text(PROC_STAT)
    (root / "meminfo").write_text(PROC_MEMINFO)
    return root


@pytest.fixture
def db(tmp_path) -> Database:
    return Database(tmp_path / "data" / "orbitdash.db")


@pytest.fixture
def icon_transport() -> httpx.MockTransport:
    return httpx.MockTransport(icon_handler)


@pytest.fixture
def icons(tmp_path, icon_transport) -> IconManager:
    return IconManager(tmp_path / "data" / "icons", transport=icon_transport)


@pytest.fixture
def registry(db, icons, clock) -> ServiceRegistry:
    return ServiceRegistry(db, icons, clock=clock)


@pytest.fixture
def settings(tmp_path, proc_root, monkeypatch) -> Settings:
    monkeypatch.setenv("ORBITDASH_CONFIG", str(tmp_path / "absent.yaml"))
    return Settings(
        data_dir=tmp_path / "data",
        proc_root=proc_root,
        static_dir=tmp_path / "dist",
        sample_interval_s=3600,
    )
