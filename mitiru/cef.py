"""Fetching and unpacking the pinned CEF binary distribution."""

import os
import shutil
import tarfile
import urllib.error
import urllib.request
from pathlib import Path

from mitiru.enginecache import (
    EngineError,
    _megabytes,
    _safe_target,
    _say,
    _write_member,
)
from mitiru.semver import HTTP_TIMEOUT, USER_AGENT

CEF_VERSION = "128.4.12+g1d7a1f9+chromium-128.0.6613.138"
CEF_PLATFORM = "windows64"
CEF_DIST_TYPE = "minimal"
CEF_CDN_BASE = "https://cef-builds.spotifycdn.com"
CEF_TIMEOUT = HTTP_TIMEOUT


def cef_archive_name() -> str:
    """File name of the pinned CEF ``.tar.bz2`` archive."""
    return f"cef_binary_{CEF_VERSION}_{CEF_PLATFORM}_{CEF_DIST_TYPE}.tar.bz2"


def cef_dir_name() -> str:
    """Top-level directory name that the archive unpacks to."""
    return f"cef_binary_{CEF_VERSION}_{CEF_PLATFORM}"


def cef_download_url() -> str:
    """Download URL of the archive, with ``+`` percent-encoded."""
    return CEF_CDN_BASE + "/" + cef_archive_name().replace("+", "%2B")


def _dir_non_empty(path: Path) -> bool:
    try:
        with os.scandir(path) as entries:
            return any(True for _ in entries)
    except OSError:
        return False


def ensure_cef(engine_root, progress=None) -> None:
    """Make sure ``<engine_root>/external/cef/<cef_dir_name()>`` is populated."""
    external_cef = Path(engine_root) / "external" / "cef"
    target_dir = external_cef / cef_dir_name()

    if _dir_non_empty(target_dir):
        return

    try:
        external_cef.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise EngineError(f"create external/cef dir: {exc}") from exc

    url = cef_download_url()
    _say(progress, f"Downloading CEF {CEF_VERSION} (this may take a few minutes)...\n")
    _say(progress, f"  URL: {url}\n")

    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        response = urllib.request.urlopen(request, timeout=CEF_TIMEOUT)
    except urllib.error.HTTPError as exc:
        raise EngineError(
            f"CEF download returned {exc.code} {exc.reason}\n"
            f"  URL: {url}\n"
            "  Check https://cef-builds.spotifycdn.com/index.html for available versions."
        ) from exc
    except OSError as exc:
        raise EngineError(f"GET {url}: {exc}") from exc

    _say(progress, "  Extracting CEF archive...\n")
    with response:
        try:
            extract_tar_bz2(response, external_cef, progress)
        except EngineError as exc:
            shutil.rmtree(target_dir, ignore_errors=True)
            raise EngineError(f"extract CEF archive: {exc}") from exc

    if not _dir_non_empty(target_dir):
        fixup_cef_dir_name(external_cef, target_dir)

    if not _dir_non_empty(target_dir):
        raise EngineError(
            "CEF extraction completed but expected directory not found: "
            f"{target_dir}\n"
            "  The archive layout may have changed — check cef-builds.spotifycdn.com."
        )

    _say(progress, f"CEF ready at {target_dir}\n")


def extract_tar_bz2(stream, dest_dir, progress=None) -> None:
    """Unpack a bzip2-compressed tar stream into ``dest_dir``.

    The archive's top-level directory is kept; links and special entries
    are skipped, and entries escaping ``dest_dir`` are refused.
    """
    dest = Path(dest_dir)
    try:
        archive = tarfile.open(fileobj=stream, mode="r|bz2")
    except (tarfile.TarError, EOFError, OSError) as exc:
        raise EngineError(f"read tar header: {exc}") from exc

    file_count = 0
    total_bytes = 0
    with archive:
        try:
            for member in archive:
                target = _safe_target(dest, member.name)
                if member.isdir():
                    try:
                        target.mkdir(parents=True, exist_ok=True)
                    except OSError as exc:
                        raise EngineError(f"mkdir {target}: {exc}") from exc
                elif member.isreg():
                    total_bytes += _write_member(archive, member, target)
                    file_count += 1
                    if file_count % 500 == 0:
                        _say(
                            progress,
                            f"  extracted {file_count} files "
                            f"({_megabytes(total_bytes):.1f} MB)...\n",
                        )
        except (tarfile.TarError, EOFError, OSError) as exc:
            raise EngineError(f"read tar header: {exc}") from exc

    _say(
        progress,
        f"  Extracted {file_count} files ({_megabytes(total_bytes):.1f} MB total).\n",
    )


def fixup_cef_dir_name(parent, want) -> None:
    """Rename the first directory under ``parent`` starting with the CEF
    directory name (e.g. a ``_minimal`` variant) to ``want``."""
    parent = Path(parent)
    want = Path(want)
    prefix = cef_dir_name()
    try:
        entries = sorted(parent.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise EngineError(f"read {parent}: {exc}") from exc
    for entry in entries:
        if not entry.is_dir():
            continue
        if entry.name.startswith(prefix) and entry.name != want.name:
            try:
                entry.rename(want)
            except OSError as exc:
                raise EngineError(f"rename {entry} -> {want}: {exc}") from exc
            return