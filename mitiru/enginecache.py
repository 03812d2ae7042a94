"""Fetching engine source archives into the local cache."""

import os
import shutil
import tarfile
import urllib.error
import urllib.request
import zlib
from pathlib import Path

from mitiru.semver import HTTP_TIMEOUT, PUBLIC_REPO, USER_AGENT, latest_version

_MARKER = ".mitiru-cache-ok"


class EngineError(Exception):
    """Raised when the engine source cannot be resolved, fetched or unpacked."""


def _say(progress, text: str) -> None:
    if progress is not None:
        progress.write(text)


def cache_root() -> Path:
    """Engine cache directory: $MITIRU_CACHE_DIR or ~/.mitiru/cache."""
    override = os.environ.get("MITIRU_CACHE_DIR", "")
    if override:
        return Path(os.path.abspath(override))
    try:
        home = Path.home()
    except RuntimeError as exc:
        raise EngineError(f"resolve user home dir: {exc}") from exc
    return home / ".mitiru" / "cache"


def ensure_source(version: str, progress=None) -> Path:
    """Make sure the engine source for ``version`` is unpacked; return its root."""
    override = os.environ.get("MITIRU_ENGINE_ROOT", "").strip()
    if override:
        root = Path(os.path.abspath(override))
        if not (root / "CMakeLists.txt").exists():
            raise EngineError(
                f"MITIRU_ENGINE_ROOT={root} does not contain CMakeLists.txt"
            )
        _say(progress, f"Using MITIRU_ENGINE_ROOT override: {root}\n")
        return root

    tag = resolve_tag(version, progress)
    version_dir = cache_root() / f"engine-{tag}"
    marker = version_dir / _MARKER

    try:
        marker.stat()
    except FileNotFoundError:
        pass
    except OSError as exc:
        raise EngineError(f"stat {marker}: {exc}") from exc
    else:
        try:
            return find_source_root(version_dir)
        except EngineError:
            shutil.rmtree(version_dir, ignore_errors=True)

    try:
        version_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise EngineError(f"create cache dir: {exc}") from exc

    _say(progress, f"Downloading MitiruEngine {tag}...\n")
    try:
        _download_and_extract(tag, version_dir, progress)
    except BaseException:
        shutil.rmtree(version_dir, ignore_errors=True)
        raise

    try:
        marker.write_text(tag + "\n", encoding="utf-8")
    except OSError as exc:
        raise EngineError(f"write cache marker: {exc}") from exc

    root = find_source_root(version_dir)
    _say(progress, f"MitiruEngine {tag} ready at {root}\n")
    return root


def resolve_tag(version: str, progress=None) -> str:
    """Turn a user-facing version ("0.1.0", "v0.1.0", "latest") into a git tag."""
    text = version.strip()
    if not text:
        raise EngineError("engine version is empty")
    if text == "latest":
        _say(progress, "Resolving latest MitiruEngine release...\n")
        try:
            return f"v{latest_version(HTTP_TIMEOUT)}"
        except (OSError, ValueError, LookupError) as exc:
            raise EngineError(f"resolve 'latest' tag: {exc}") from exc
    if text[0] not in "vV":
        text = "v" + text
    return text


def _download_and_extract(tag: str, dest_dir: Path, progress) -> None:
    url = f"https://github.com/{PUBLIC_REPO}/archive/refs/tags/{tag}.tar.gz"
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        response = urllib.request.urlopen(request, timeout=HTTP_TIMEOUT)
    except urllib.error.HTTPError as exc:
        raise EngineError(
            f"GET {url} returned {exc.code} {exc.reason} "
            f"(does tag {tag!r} exist on {PUBLIC_REPO}?)"
        ) from exc
    except OSError as exc:
        raise EngineError(f"GET {url}: {exc}") from exc
    with response:
        extract_tar_gz(response, dest_dir, progress)


def _safe_target(dest_dir: Path, name: str) -> Path:
    clean = os.path.normpath(name)
    if clean.startswith("..") or (os.sep + "..") in clean:
        raise EngineError(f"tar entry escapes archive root: {name!r}")
    target = Path(dest_dir) / clean.lstrip("/" + os.sep)
    try:
        rel = os.path.relpath(target, dest_dir)
    except ValueError as exc:
        raise EngineError(f"tar entry escapes destination: {name!r}") from exc
    if rel.startswith(".."):
        raise EngineError(f"tar entry escapes destination: {name!r}")
    return target


def _megabytes(total: int) -> float:
    return total / (1024 * 1024)


def extract_tar_gz(stream, dest_dir, progress=None) -> None:
    """Unpack a gzip-compressed tar stream into ``dest_dir``.

    Directories and regular files are written; links and special entries
    are skipped. Entries that would land outside ``dest_dir`` are refused.
    """
    dest = Path(dest_dir)
    try:
        archive = tarfile.open(fileobj=stream, mode="r|gz")
    except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
        raise EngineError(f"open gzip stream: {exc}") from exc

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
                    if file_count % 200 == 0:
                        _say(
                            progress,
                            f"  extracted {file_count} files "
                            f"({_megabytes(total_bytes):.1f} MB)...\n",
                        )
        except (tarfile.TarError, EOFError, zlib.error) as exc:
            raise EngineError(f"read tar header: {exc}") from exc

    _say(
        progress,
        f"Extracted {file_count} files ({_megabytes(total_bytes):.1f} MB total).\n",
    )


def _write_member(archive: tarfile.TarFile, member: tarfile.TarInfo, target: Path) -> int:
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise EngineError(f"mkdir parent of {target}: {exc}") from exc
    source = archive.extractfile(member)
    try:
        with target.open("wb") as out:
            if source is None:
                return 0
            with source:
                shutil.copyfileobj(source, out)
            return out.tell()
    except OSError as exc:
        raise EngineError(f"write {target}: {exc}") from exc


def find_source_root(version_dir) -> Path:
    """Locate the directory holding the top-level CMakeLists.txt.

    Checks ``version_dir`` itself, then its immediate subdirectories.
    """
    base = Path(version_dir)
    if (base / "CMakeLists.txt").exists():
        return base
    try:
        entries = sorted(base.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise EngineError(f"read cache dir {base}: {exc}") from exc
    for entry in entries:
        if entry.is_dir() and (entry / "CMakeLists.txt").exists():
            return entry
    raise EngineError(f"no CMakeLists.txt found under {base} (corrupt cache?)")