"""
Tests for icon resolution, download and file management.
"""

import pytest

from orbitdash.common.exceptions import DownloadError, IconError, UnsupportedTypeError
from orbitdash.services.registry.icons import (
    IconManager,
    RemoteIcon,
    UploadedIcon,
    media_type_for,
    resolve_icon_ext,
    upload_ext,
)

from .conftest import PNG_BYTES, SVG_BYTES


class TestResolveIconExt:
    @pytest.mark.parametrize(
        "content_type, expected",
        [
            ("image/png", ".png"),
            ("image/svg+xml", ".svg"),
            ("IMAGE/JPEG; charset=binary", ".jpg"),
            ("image/vnd.microsoft.icon", ".ico"),
        ],
    )
    def test_content_type_wins(self, content_type, expected):
        assert resolve_icon_ext("https://x.test/logo.gif", content_type) == expected

    def test_falls_back_to_url_extension(self):
        assert resolve_icon_ext("https://x.test/a/logo.WEBP?v=2", None) == ".webp"
        assert resolve_icon_ext("https://x.test/logo.jpeg", "application/octet-stream") == ".jpeg"

    def test_unknown_everything(self):
        assert resolve_icon_ext("https://x.test/logo.php", "text/html") is None
        assert resolve_icon_ext("https://x.test/", None) is None


class TestUploadExt:
    def test_extension_from_filename(self):
        assert upload_ext("My Logo.SVG") == ".svg"

    def test_default_extension(self):
        assert upload_ext("logo") == ".png"
        assert upload_ext(None) == ".png"

    def test_directories_ignored(self):
        assert upload_ext("../../evil.dir/logo") == ".png"

    @pytest.mark.parametrize(
        "filename", ["logo.p\x00ng", "logo.p ng", "logo.averyveryverylongext"]
    )
    def test_unusable_extension_falls_back(self, filename):
        assert upload_ext(filename) == ".png"


class TestMaterialize:
    @pytest.mark.asyncio
    async def test_upload(self, icons):
        data, ext = await icons.materialize(UploadedIcon(data=PNG_BYTES, filename="logo.png"))
        assert (data, ext) == (PNG_BYTES, ".png")

    @pytest.mark.asyncio
    async def test_empty_upload_rejected(self, icons):
        with pytest.raises(IconError):
            await icons.materialize(UploadedIcon(data=b"", filename="logo.png"))

    @pytest.mark.asyncio
    async def test_download_by_content_type(self, icons):
        data, ext = await icons.materialize(RemoteIcon("https://icons.test/icon.png"))
        assert (data, ext) == (PNG_BYTES, ".png")

    @pytest.mark.asyncio
    async def test_svg_content_type_beats_url_extension(self, icons):
        data, ext = await icons.materialize(RemoteIcon("https://icons.test/vector.png"))
        assert data == SVG_BYTES
        assert ext == ".svg"

    @pytest.mark.asyncio
    async def test_url_extension_when_no_content_type(self, icons):
        _, ext = await icons.download("https://icons.test/untyped.webp")
        assert ext == ".webp"

    @pytest.mark.asyncio
    async def test_follows_redirects(self, icons):
        data, ext = await icons.download("https://icons.test/old-location.png")
        assert (data, ext) == (PNG_BYTES, ".png")

    @pytest.mark.asyncio
    async def test_http_error_is_download_error(self, icons):
        with pytest.raises(DownloadError) as exc_info:
            await icons.download("https://icons.test/missing.png")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_unsupported_type(self, icons):
        with pytest.raises(UnsupportedTypeError):
            await icons.download("https://icons.test/page.html")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("icon_url", ["not a url", "ftp://icons.test/logo.png"])
    async def test_unusable_url_is_download_error(self, tmp_path, icon_url):
        # Real transport: these are rejected before any connection is made
        icons = IconManager(tmp_path / "icons")
        with pytest.raises(DownloadError):
            await icons.download(icon_url)


class TestFiles:
    def test_icon_dir_created_on_first_use(self, icons, tmp_path):
        assert not (tmp_path / "data" / "icons").exists()
        icons.store("abc", ".png", PNG_BYTES)
        assert (tmp_path / "data" / "icons" / "abc.png").read_bytes() == PNG_BYTES

    def test_store_names_file_after_record(self, icons):
        assert icons.store("record-1", ".svg", SVG_BYTES) == "record-1.svg"
        assert icons.list_files() == ["record-1.svg"]

    def test_store_overwrites(self, icons):
        icons.store("r", ".png", b"old")
        icons.store("r", ".png", b"new")
        assert icons.resolve("r.png").read_bytes() == b"new"
        assert icons.list_files() == ["r.png"]

    def test_delete_missing_file_is_not_an_error(self, icons):
        assert icons.delete("nothing.png") is False

    def test_resolve_strips_directories(self, icons, tmp_path):
        icons.store("r", ".png", PNG_BYTES)
        (tmp_path / "data" / "secret.txt").write_text("secret")

        assert icons.resolve("../secret.txt") is None
        assert icons.resolve("../../data/icons/r.png") == icons.icons_dir / "r.png"
        assert icons.resolve("nope.png") is None

    def test_remove_orphans(self, icons):
        icons.store("keep", ".png", PNG_BYTES)
        icons.store("stale", ".svg", SVG_BYTES)
        assert icons.remove_orphans({"keep.png"}) == ["stale.svg"]
        assert icons.list_files() == ["keep.png"]

    def test_staged_icon_is_not_live_until_promoted(self, icons):
        icons.store("r", ".png", b"v1")

        staged = icons.stage("r", ".png", b"v2")
        assert icons.resolve("r.png").read_bytes() == b"v1"
        assert icons.list_files() == ["r.png"]

        assert icons.promote(staged) == "r.png"
        assert icons.resolve("r.png").read_bytes() == b"v2"
        assert not staged.path.exists()

    def test_discarded_icon_leaves_live_file(self, icons):
        icons.store("r", ".png", b"v1")
        staged = icons.stage("r", ".png", b"v2")

        icons.discard(staged)

        assert not staged.path.exists()
        assert icons.resolve("r.png").read_bytes() == b"v1"

    def test_unsafe_name_is_icon_error(self, icons):
        with pytest.raises(IconError):
            icons.stage("r", ".p\x00ng", b"x")
        with pytest.raises(IconError):
            icons.store("../r", ".png", b"x")
        assert list(icons.icons_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_nul_in_upload_name_still_stores(self, icons):
        data, ext = await icons.materialize(UploadedIcon(data=PNG_BYTES, filename="a.p\x00ng"))
        assert icons.store("r", ext, data) == "r.png"

    def test_remove_orphans_clears_stale_staged_files(self, icons):
        staged = icons.stage("r", ".png", PNG_BYTES)
        assert icons.remove_orphans(set()) == []
        assert not staged.path.exists()

    def test_media_types(self):
        assert media_type_for("a.svg") == "image/svg+xml"
        assert media_type_for("a.ICO") == "image/x-icon"
        assert media_type_for("a.bin") == "application/octet-stream"
