import io
import tarfile
import urllib.error
from unittest import mock

import pytest

from mitiru.cef import (
    CEF_CDN_BASE,
    cef_archive_name,
    cef_dir_name,
    cef_download_url,
    ensure_cef,
    extract_tar_bz2,
    fixup_cef_dir_name,
)
from mitiru.enginecache import EngineError


def _bz2_tar(entries):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:bz2") as tar:
        for name, kind, data in entries:
            info = tarfile.TarInfo(name)
            if kind == "dir":
                info.type = tarfile.DIRTYPE
                tar.addfile(info)
            elif kind == "link":
                info.type = tarfile.SYMTYPE
                info.linkname = "elsewhere"
                tar.addfile(info)
            else:
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
    buf.seek(0)
    return buf


def test_archive_name_pinned():
    assert cef_archive_name() == (
        "cef_binary_128.4.12+g1d7a1f9+chromium-128.0.6613.138_windows64_minimal.tar.bz2"
    )


def test_archive_name_starts_with_dir_name():
    assert cef_archive_name().startswith(cef_dir_name() + "_")


def test_download_url_encodes_plus():
    url = cef_download_url()
    assert url.startswith(CEF_CDN_BASE + "/")
    assert "+" not in url
    assert url.count("%2B") == cef_archive_name().count("+")
    assert url.endswith(".tar.bz2")


def test_extract_round_trip(tmp_path):
    stream = _bz2_tar(
        [
            ("top", "dir", b""),
            ("top/include/a.h", "file", b"header"),
            ("top/link", "link", b""),
        ]
    )
    progress = io.StringIO()
    extract_tar_bz2(stream, tmp_path, progress)
    assert (tmp_path / "top" / "include" / "a.h").read_bytes() == b"header"
    assert not (tmp_path / "top" / "link").exists()
    assert "Extracted 1 files" in progress.getvalue()


def test_extract_rejects_traversal(tmp_path):
    stream = _bz2_tar([("../evil.txt", "file", b"x")])
    with pytest.raises(EngineError):
        extract_tar_bz2(stream, tmp_path / "dest")
    assert not (tmp_path / "evil.txt").exists()


def test_extract_rejects_garbage(tmp_path):
    with pytest.raises(EngineError):
        extract_tar_bz2(io.BytesIO(b"not a bzip2 stream"), tmp_path)


def test_fixup_renames_suffixed_dir(tmp_path):
    suffixed = tmp_path / (cef_dir_name() + "_minimal")
    suffixed.mkdir()
    (suffixed / "f.txt").write_text("ok")
    want = tmp_path / cef_dir_name()
    fixup_cef_dir_name(tmp_path, want)
    assert (want / "f.txt").read_text() == "ok"
    assert not suffixed.exists()


def test_fixup_leaves_unrelated_dirs(tmp_path):
    (tmp_path / "other").mkdir()
    want = tmp_path / cef_dir_name()
    fixup_cef_dir_name(tmp_path, want)
    assert not want.exists()
    assert (tmp_path / "other").is_dir()


def test_ensure_cef_cache_hit_is_silent(tmp_path):
    target = tmp_path / "external" / "cef" / cef_dir_name()
    target.mkdir(parents=True)
    (target / "marker").write_text("x")
    progress = io.StringIO()
    with mock.patch("mitiru.cef.urllib.request.urlopen") as urlopen:
        ensure_cef(tmp_path, progress)
    assert progress.getvalue() == ""
    assert urlopen.call_count == 0


def test_ensure_cef_downloads_and_fixes_name(tmp_path):
    top = cef_dir_name() + "_minimal"
    archive = _bz2_tar(
        [(top, "dir", b""), (top + "/include/cef.h", "file", b"cef")]
    )
    progress = io.StringIO()
    with mock.patch("mitiru.cef.urllib.request.urlopen", return_value=archive):
        ensure_cef(tmp_path, progress)
    target = tmp_path / "external" / "cef" / cef_dir_name()
    assert (target / "include" / "cef.h").read_bytes() == b"cef"
    assert "CEF ready at" in progress.getvalue()


def test_ensure_cef_http_error(tmp_path):
    error = urllib.error.HTTPError(cef_download_url(), 404, "Not Found", {}, None)
    with mock.patch("mitiru.cef.urllib.request.urlopen", side_effect=error):
        with pytest.raises(EngineError, match="CEF download returned 404"):
            ensure_cef(tmp_path)


def test_ensure_cef_missing_expected_dir(tmp_path):
    archive = _bz2_tar([("unrelated/file.txt", "file", b"x")])
    with mock.patch("mitiru.cef.urllib.request.urlopen", return_value=archive):
        with pytest.raises(EngineError, match="expected directory not found"):
            ensure_cef(tmp_path)