"""
Icon Manager

Resolves an icon source (uploaded bytes or a remote URL) to bytes plus
a file extension, and owns the flat icon directory. Files are named
<record-id><ext>, so an icon is orphaned exactly when no record
references that filename.
"""

import os
import posixpath
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import httpx

from ...common.exceptions import DownloadError, IconError, UnsupportedTypeError
from ...common.logging_setup import get_service_logger

logger = get_service_logger("registry.icons")

ALLOWED_ICON_EXTS = frozenset({".png", ".svg", ".jpg", ".jpeg", ".gif", ".webp", ".ico"})

CONTENT_TYPE_TO_EXT = {
    "image/png": ".png",
    "image/svg+xml": ".svg",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/x-icon": ".ico",
    "image/vnd.microsoft.icon": ".ico",
}

EXT_TO_MEDIA_TYPE = {
    ".png": "image/png",
    ".svg": "image/svg+xml",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".ico": "image/x-icon",
}

DEFAULT_UPLOAD_EXT = ".png"
SAFE_EXT_RE = re.compile(r"\.[a-z0-9]{1,10}")
DEFAULT_TIMEOUT_S = 10.0


@dataclass(frozen=True)
class UploadedIcon:
    """Icon bytes uploaded with the request"""
    data: bytes
    filename: str | None = None


@dataclass(frozen=True)
class RemoteIcon:
    """Icon to fetch from a URL"""
    url: str


IconSource = UploadedIcon | RemoteIcon


@dataclass(frozen=True)
class StagedIcon:
    """Icon bytes written to a temporary file, not yet live"""
    filename: str
    path: Path


def resolve_icon_ext(icon_url: str, content_type: str | None = None) -> str | None:
    """
    Pick a file extension for a downloaded icon.

    The declared content-type wins; otherwise the URL path extension is
    used if it is an allowed image type.
    """
    if content_type:
        normalized = content_type.split(";")[0].strip().lower()
        if normalized in CONTENT_TYPE_TO_EXT:
            return CONTENT_TYPE_TO_EXT[normalized]

    try:
        path = urlparse(icon_url).path
    except ValueError:
        return None
    ext = posixpath.splitext(path)[1].lower()
    return ext if ext in ALLOWED_ICON_EXTS else None


def upload_ext(filename: str | None) -> str:
    """Extension of an uploaded file name, .png when missing or unusable"""
    if not filename:
        return DEFAULT_UPLOAD_EXT
    ext = os.path.splitext(os.path.basename(filename.replace("\\", "/")))[1].lower()
    return ext if SAFE_EXT_RE.fullmatch(ext) else DEFAULT_UPLOAD_EXT


def media_type_for(filename: str) -> str:
    """Content type to serve an icon file with"""
    ext = os.path.splitext(filename)[1].lower()
    return EXT_TO_MEDIA_TYPE.get(ext, "application/octet-stream")


def safe_icon_name(filename: str) -> str:
    """Reduce a requested name to a bare basename (no path traversal)"""
    return os.path.basename(filename.replace("\\", "/"))


class IconManager:
    """
    Materializes icons and manages files in the icon directory.

    The directory is the only place icons are written; the registry
    never touches it directly.
    """

    def __init__(
        self,
        icons_dir: Path,
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._icons_dir = Path(icons_dir)
        self.timeout = timeout
        self.transport = transport

    @property
    def icons_dir(self) -> Path:
        """Icon directory, created on first use"""
        self._icons_dir.mkdir(parents=True, exist_ok=True)
        return self._icons_dir

    # ============================================
    # MATERIALIZE
    # ============================================

    async def materialize(self, source: IconSource) -> tuple[bytes, str]:
        """
        Resolve an icon source to (bytes, extension).

        Raises:
            DownloadError: URL fetch failed or returned non-2xx
            UnsupportedTypeError: no allowed image type could be derived
            IconError: empty upload
        """
        if isinstance(source, UploadedIcon):
            if not source.data:
                raise IconError("Uploaded icon is empty")
            return source.data, upload_ext(source.filename)
        return await self.download(source.url)

    async def download(self, icon_url: str) -> tuple[bytes, str]:
        """Fetch an icon, following redirects"""
        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.get(icon_url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Icon download failed: {e}", extra={"url": icon_url})
            raise DownloadError("Failed to download icon", url=icon_url) from e

        if not response.is_success:
            logger.warning(
                f"Icon download returned HTTP {response.status_code}",
                extra={"url": icon_url, "status_code": response.status_code},
            )
            raise DownloadError(
                "Failed to download icon", url=icon_url, status_code=response.status_code
            )

        content_type = response.headers.get("content-type")
        ext = resolve_icon_ext(icon_url, content_type)
        if ext is None:
            raise UnsupportedTypeError(icon_url, content_type)

        logger.info(
            f"Downloaded icon ({len(response.content)} bytes, {ext})",
            extra={"url": icon_url},
        )
        return response.content, ext

    # ============================================
    # FILES
    # ============================================

    def store(self, record_id: str, ext: str, data: bytes) -> str:
        """
        Write <record_id><ext> atomically.

        Returns:
            Stored filename
        """
        staged = self.stage(record_id, ext, data)
        try:
            return self.promote(staged)
        except IconError:
            self.discard(staged)
            raise

    def stage(self, record_id: str, ext: str, data: bytes) -> StagedIcon:
        """
        Write icon bytes under a hidden temporary name.

        The live file (if any) is untouched until promote().
        """
        filename = f"{record_id}{ext}"
        if safe_icon_name(filename) != filename or "\x00" in filename:
            raise IconError(f"Invalid icon filename: {filename!r}")

        tmp = self.icons_dir / f".{filename}.{uuid.uuid4().hex}.tmp"
        try:
            tmp.write_bytes(data)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise IconError(f"Could not store icon: {e}") from e
        return StagedIcon(filename=filename, path=tmp)

    def promote(self, staged: StagedIcon) -> str:
        """Move a staged icon over its final name; returns the filename"""
        try:
            os.replace(staged.path, self.icons_dir / staged.filename)
        except OSError as e:
            raise IconError(f"Could not store icon: {e}") from e
        return staged.filename

    def discard(self, staged: StagedIcon) -> None:
        try:
            staged.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove staged icon {staged.path.name}: {e}")

    def delete(self, filename: str) -> bool:
        """Best-effort removal; returns True when a file was removed"""
        path = self.path_for(filename)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Could not delete icon {path.name}: {e}")
            return False
        return True

    def path_for(self, filename: str) -> Path:
        return self.icons_dir / safe_icon_name(filename)

    def resolve(self, filename: str) -> Path | None:
        """Path of an existing icon, or None"""
        name = safe_icon_name(filename)
        if not name or name.startswith("."):
            return None
        path = self.icons_dir / name
        return path if path.is_file() else None

    def list_files(self) -> list[str]:
        return sorted(
            p.name for p in self.icons_dir.iterdir()
            if p.is_file() and not p.name.startswith(".")
        )

    def remove_orphans(self, referenced: set[str]) -> list[str]:
        """Delete icon files that no record references, plus stale staged files"""
        for stale in self.icons_dir.glob(".*.tmp"):
            self.discard(StagedIcon(filename=stale.name, path=stale))

        removed = [
            name for name in self.list_files()
            if name not in referenced and self.delete(name)
        ]
        if removed:
            logger.info(f"Removed {len(removed)} orphaned icon(s)", extra={"files": removed})
        return removed
