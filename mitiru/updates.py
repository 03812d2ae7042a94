"""Passive update notices and in-place replacement of the CLI binary."""

import json
import os
import platform
import sys
import tempfile
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from mitiru.semver import USER_AGENT, _error_body, latest_version, parse_semver

CLI_VERSION = "0.7.0"
DEFAULT_CLI_REPO = "mitiru/mitiru-cli"

UPDATE_CHECK_TTL = timedelta(hours=24)
UPDATE_CHECK_TIMEOUT = 2.5
RELEASE_TIMEOUT = 300.0
DOWNLOAD_TIMEOUT = 600.0


def _cli_repo() -> str:
    """Repository ("owner/name") whose releases carry the CLI binary."""
    return os.environ.get("MITIRU_CLI_REPO", "").strip() or DEFAULT_CLI_REPO


@dataclass
class Asset:
    name: str
    url: str


@dataclass
class Release:
    tag_name: str
    assets: list[Asset] = field(default_factory=list)


@dataclass
class UpdateCache:
    """Cached result of the last update check; empty strings mean "unknown"."""

    checked_at: datetime | None = None
    latest_engine: str = ""
    latest_cli: str = ""

    def _to_json(self) -> str:
        stamp = self.checked_at.isoformat() if self.checked_at else ""
        return json.dumps(
            {
                "checked_at": stamp,
                "latest_engine": self.latest_engine,
                "latest_cli": self.latest_cli,
            }
        )

    @classmethod
    def _from_json(cls, text: str) -> "UpdateCache":
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("update cache is not a JSON object")
        checked_at = datetime.fromisoformat(str(data.get("checked_at", "")))
        if checked_at.tzinfo is None:
            checked_at = checked_at.replace(tzinfo=timezone.utc)
        return cls(
            checked_at=checked_at,
            latest_engine=str(data.get("latest_engine", "")),
            latest_cli=str(data.get("latest_cli", "")),
        )


def _update_cache_path() -> Path:
    return Path.home() / ".mitiru" / "update-check.json"


def update_notices(engine_pin: str, latest_engine: str, cli_current: str, latest_cli: str) -> list[str]:
    """Footer lines to show; a target with an unknown or older latest stays silent."""
    lines: list[str] = []
    current = parse_semver(engine_pin)
    latest = parse_semver(latest_engine)
    if current is not None and latest is not None and latest.compare(current) > 0:
        lines += [
            f"  ▸ engine {latest} available (pinned {current})",
            "    run 'mitiru update' to upgrade",
        ]
    current = parse_semver(cli_current)
    latest = parse_semver(latest_cli)
    if current is not None and latest is not None and latest.compare(current) > 0:
        lines += [
            f"  ▸ mitiru CLI {latest} available (running {current})",
            "    run 'mitiru self-update' to upgrade",
        ]
    return lines


def update_checks_enabled() -> bool:
    """False when suppressed by MITIRU_NO_UPDATE_CHECK or when stdout is not a TTY."""
    if os.environ.get("MITIRU_NO_UPDATE_CHECK", "").strip():
        return False
    try:
        return bool(sys.stdout.isatty())
    except (AttributeError, ValueError):
        return False


def load_or_refresh_update_cache() -> UpdateCache:
    """Return a cache younger than 24h, otherwise refetch with a short timeout."""
    try:
        path = _update_cache_path()
    except RuntimeError:
        return UpdateCache()

    now = datetime.now(timezone.utc)
    try:
        cached = UpdateCache._from_json(path.read_text(encoding="utf-8"))
    except (OSError, ValueError, TypeError):
        cached = None
    if cached is not None and now - cached.checked_at < UPDATE_CHECK_TTL:
        return cached

    fresh = UpdateCache(checked_at=now)
    try:
        fresh.latest_engine = str(latest_version(UPDATE_CHECK_TIMEOUT))
    except (OSError, ValueError, LookupError):
        pass
    try:
        release = fetch_latest_cli_release(UPDATE_CHECK_TIMEOUT)
        version = parse_semver(release.tag_name)
        if version is not None:
            fresh.latest_cli = str(version)
    except (OSError, ValueError, LookupError):
        pass

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(fresh._to_json(), encoding="utf-8")
    except OSError:
        pass
    return fresh


def maybe_notify_updates(engine_pin: str, stream=None) -> None:
    """Print the update footer when checks are enabled and something is newer."""
    if not update_checks_enabled():
        return
    out = stream if stream is not None else sys.stdout
    cache = load_or_refresh_update_cache()
    lines = update_notices(engine_pin, cache.latest_engine, CLI_VERSION, cache.latest_cli)
    if not lines:
        return
    out.write("\n")
    for line in lines:
        out.write(line + "\n")


def fetch_latest_cli_release(timeout: float = RELEASE_TIMEOUT) -> Release:
    """Query the CLI repository's latest release."""
    url = f"https://api.github.com/repos/{_cli_repo()}/releases/latest"
    request = urllib.request.Request(
        url,
        headers={"Accept": "application/vnd.github+json", "User-Agent": USER_AGENT},
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            payload = response.read()
    except urllib.error.HTTPError as exc:
        raise OSError(
            f"github releases API returned {exc.code} {exc.reason}: {_error_body(exc)}"
        ) from exc
    except OSError as exc:
        raise OSError(f"query latest release: {exc}") from exc

    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise ValueError(f"decode release: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("decode release: expected a JSON object")

    tag = data.get("tag_name") or ""
    if not isinstance(tag, str) or not tag:
        raise ValueError("latest release has no tag_name")
    assets = [
        Asset(name=str(a.get("name", "")), url=str(a.get("browser_download_url", "")))
        for a in data.get("assets") or []
        if isinstance(a, dict)
    ]
    return Release(tag_name=tag, assets=assets)


def _current_os() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        return "darwin"
    return platform.system().lower()


def _current_arch() -> str:
    machine = platform.machine().lower()
    return {
        "x86_64": "amd64",
        "amd64": "amd64",
        "x64": "amd64",
        "aarch64": "arm64",
        "arm64": "arm64",
        "i386": "386",
        "i686": "386",
        "x86": "386",
    }.get(machine, machine)


def pick_asset(assets, os_name: str | None = None, arch: str | None = None) -> str:
    """Download URL of the mitiru binary for the platform, or "" if none matches."""
    os_name = os_name or _current_os()
    arch = arch or _current_arch()
    aliases = [arch]
    if arch == "amd64":
        aliases += ["x86_64", "x64"]
    elif arch == "arm64":
        aliases.append("aarch64")
    want_exe = os_name == "windows"

    for asset in assets:
        name = asset.name.lower()
        if not name.startswith("mitiru"):
            continue
        if want_exe and not name.endswith(".exe"):
            continue
        if os_name not in name:
            continue
        if any(alias in name for alias in aliases):
            return asset.url
    return ""


def download_binary_swap(url: str, exe) -> None:
    """Download ``url`` next to ``exe`` and swap it in via renames."""
    exe = Path(exe)
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        response = urllib.request.urlopen(request, timeout=DOWNLOAD_TIMEOUT)
    except urllib.error.HTTPError as exc:
        raise OSError(f"download {url} returned {exc.code} {exc.reason}") from exc
    except OSError as exc:
        raise OSError(f"download {url}: {exc}") from exc

    with response:
        status = getattr(response, "status", None)
        if status is not None and status != 200:
            raise OSError(f"download {url} returned {status}")
        directory = exe.parent
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=".mitiru-update-", dir=directory)
        except OSError as exc:
            raise OSError(f"create temp in {directory}: {exc}") from exc
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as out:
                while chunk := response.read(1 << 16):
                    out.write(chunk)
            os.chmod(tmp_path, 0o755)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise OSError(f"write download: {exc}") from exc

    old_path = Path(str(exe) + ".old")
    try:
        old_path.unlink(missing_ok=True)
    except OSError:
        pass
    try:
        os.replace(exe, old_path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise OSError(f"move running binary aside: {exc}") from exc
    try:
        os.replace(tmp_path, exe)
    except OSError as exc:
        try:
            os.replace(old_path, exe)
        except OSError:
            pass
        tmp_path.unlink(missing_ok=True)
        raise OSError(f"install new binary: {exc}") from exc
    try:
        old_path.unlink(missing_ok=True)
    except OSError:
        pass


def _running_executable() -> Path:
    launched = Path(sys.argv[0]) if sys.argv and sys.argv[0] else None
    if launched is not None and launched.is_file():
        return launched.resolve()
    return Path(sys.executable).resolve()


def cleanup_stale_self_update() -> None:
    """Best-effort removal of ``<exe>.old`` left by an earlier self-update."""
    try:
        Path(str(_running_executable()) + ".old").unlink(missing_ok=True)
    except OSError:
        pass


def run_self_update(check_only: bool = False) -> None:
    """Replace the running CLI with the latest release, or only report it."""
    current = parse_semver(CLI_VERSION)
    if current is None:
        raise ValueError(f"current CLI version {CLI_VERSION!r} is not parseable")

    print("Checking for the latest mitiru release...")
    release = fetch_latest_cli_release()
    latest = parse_semver(release.tag_name)
    if latest is None:
        raise ValueError(f"latest release tag {release.tag_name!r} is not a X.Y.Z version")

    order = latest.compare(current)
    if order == 0:
        print(f"Already up to date: mitiru {current} is the latest release.")
        return
    if order < 0:
        print(f"Running mitiru {current} is newer than the latest release {latest}; leaving it.")
        return

    print(f"\n  update available: mitiru {current} -> {latest}")
    if check_only:
        print("\n  (--check) no changes made. Run 'mitiru self-update' to apply.")
        return

    os_name, arch = _current_os(), _current_arch()
    url = pick_asset(release.assets, os_name, arch)
    if not url:
        raise LookupError(
            f"release {latest} has no mitiru asset for {os_name}/{arch} "
            "(platform unsupported by this release?)"
        )

    exe = _running_executable()
    print(f"Downloading mitiru {latest} for {os_name}/{arch}...")
    download_binary_swap(url, exe)
    print(f"Updated: {exe} is now mitiru {latest}.")