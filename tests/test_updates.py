import io
import json
import urllib.error
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from mitiru import updates
from mitiru.updates import (
    Asset,
    download_binary_swap,
    fetch_latest_cli_release,
    load_or_refresh_update_cache,
    maybe_notify_updates,
    pick_asset,
    run_self_update,
    update_checks_enabled,
    update_notices,
)


@pytest.mark.parametrize(
    "engine_pin,latest_engine,cli_cur,cli_latest,want_engine,want_cli",
    [
        ("0.7.0", "0.7.1", "0.6.0", "0.7.0", True, True),
        ("0.7.0", "0.7.1", "0.7.0", "0.7.0", True, False),
        ("0.7.1", "0.7.1", "0.6.0", "0.7.0", False, True),
        ("0.7.1", "0.7.1", "0.7.1", "0.7.1", False, False),
        ("0.8.0", "0.7.1", "0.9.0", "0.7.0", False, False),
        ("0.7.0", "", "0.7.0", "", False, False),
        ("latest", "0.7.1", "0.6.0", "0.7.0", False, True),
    ],
)
def test_update_notices(engine_pin, latest_engine, cli_cur, cli_latest, want_engine, want_cli):
    joined = "\n".join(update_notices(engine_pin, latest_engine, cli_cur, cli_latest))
    assert ("mitiru update" in joined) == want_engine
    assert ("mitiru self-update" in joined) == want_cli


def test_update_notices_mentions_versions():
    lines = update_notices("0.7.0", "0.7.1", "0.7.0", "0.7.0")
    assert lines[0] == "  ▸ engine 0.7.1 available (pinned 0.7.0)"


@pytest.mark.parametrize("os_name", ["linux", "windows", "darwin"])
def test_pick_asset(os_name):
    name = f"mitiru_{os_name}_amd64"
    if os_name == "windows":
        name += ".exe"
    assets = [
        Asset("checksums.txt", "u-checksums"),
        Asset("installer_windows_amd64.exe", "u-installer"),
        Asset(name, "u-mitiru"),
        Asset("mitiru_freebsd_riscv64", "u-other"),
    ]
    assert pick_asset(assets, os_name, "amd64") == "u-mitiru"


def test_pick_asset_none():
    assert pick_asset([Asset("installer_windows_amd64.exe", "x")], "windows", "amd64") == ""


def test_pick_asset_arch_alias():
    assets = [Asset("mitiru_linux_x86_64", "u")]
    assert pick_asset(assets, "linux", "amd64") == "u"


def test_pick_asset_windows_requires_exe():
    assets = [Asset("mitiru_windows_amd64", "u")]
    assert pick_asset(assets, "windows", "amd64") == ""


class _FakeTTY(io.StringIO):
    def isatty(self):
        return True


def test_update_checks_enabled_tty(monkeypatch):
    monkeypatch.delenv("MITIRU_NO_UPDATE_CHECK", raising=False)
    monkeypatch.setattr("sys.stdout", _FakeTTY())
    assert update_checks_enabled() is True


def test_update_checks_disabled_by_env(monkeypatch):
    monkeypatch.setenv("MITIRU_NO_UPDATE_CHECK", "1")
    monkeypatch.setattr("sys.stdout", _FakeTTY())
    assert update_checks_enabled() is False


def test_maybe_notify_updates_silent_when_disabled(monkeypatch):
    monkeypatch.setenv("MITIRU_NO_UPDATE_CHECK", "1")
    out = io.StringIO()
    maybe_notify_updates("0.1.0", out)
    assert out.getvalue() == ""


def _set_home(monkeypatch, path):
    monkeypatch.setenv("HOME", str(path))
    monkeypatch.setenv("USERPROFILE", str(path))


def test_load_fresh_cache_without_network(monkeypatch, tmp_path):
    _set_home(monkeypatch, tmp_path)
    cache_file = tmp_path / ".mitiru" / "update-check.json"
    cache_file.parent.mkdir()
    cache_file.write_text(
        json.dumps(
            {
                "checked_at": datetime.now(timezone.utc).isoformat(),
                "latest_engine": "0.9.0",
                "latest_cli": "0.8.0",
            }
        )
    )
    with patch("urllib.request.urlopen", side_effect=AssertionError("no network")):
        cache = load_or_refresh_update_cache()
    assert cache.latest_engine == "0.9.0"
    assert cache.latest_cli == "0.8.0"


def test_stale_cache_refreshes_offline(monkeypatch, tmp_path):
    _set_home(monkeypatch, tmp_path)
    cache_file = tmp_path / ".mitiru" / "update-check.json"
    cache_file.parent.mkdir()
    old = datetime.now(timezone.utc) - timedelta(days=3)
    cache_file.write_text(
        json.dumps({"checked_at": old.isoformat(), "latest_engine": "0.9.0", "latest_cli": ""})
    )
    with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("offline")):
        cache = load_or_refresh_update_cache()
    assert cache.latest_engine == ""
    assert cache.latest_cli == ""
    stored = json.loads(cache_file.read_text())
    assert datetime.fromisoformat(stored["checked_at"]) > old


def _release_body(tag, assets=()):
    return io.BytesIO(
        json.dumps(
            {
                "tag_name": tag,
                "assets": [{"name": n, "browser_download_url": u} for n, u in assets],
            }
        ).encode()
    )


def test_fetch_latest_cli_release():
    body = _release_body("v0.8.0", [("mitiru_linux_amd64", "u1")])
    with patch("urllib.request.urlopen", return_value=body):
        release = fetch_latest_cli_release(1.0)
    assert release.tag_name == "v0.8.0"
    assert release.assets == [Asset("mitiru_linux_amd64", "u1")]


def test_fetch_latest_cli_release_requires_tag():
    with patch("urllib.request.urlopen", return_value=_release_body("")):
        with pytest.raises(ValueError, match="no tag_name"):
            fetch_latest_cli_release(1.0)


def test_run_self_update_check_only(capsys):
    with patch("urllib.request.urlopen", return_value=_release_body("v99.0.0")):
        run_self_update(check_only=True)
    out = capsys.readouterr().out
    assert f"update available: mitiru {updates.CLI_VERSION} -> 99.0.0" in out
    assert "no changes made" in out


def test_run_self_update_newer_than_release(capsys):
    with patch("urllib.request.urlopen", return_value=_release_body("0.0.1")):
        run_self_update(check_only=False)
    assert "is newer than the latest release 0.0.1" in capsys.readouterr().out


def test_run_self_update_bad_tag():
    with patch("urllib.request.urlopen", return_value=_release_body("nightly")):
        with pytest.raises(ValueError, match="not a X.Y.Z version"):
            run_self_update(check_only=True)


def test_download_binary_swap(tmp_path):
    exe = tmp_path / "mitiru"
    exe.write_bytes(b"old binary")
    source = tmp_path / "download.bin"
    source.write_bytes(b"new binary")

    download_binary_swap(source.as_uri(), exe)

    assert exe.read_bytes() == b"new binary"
    assert not (tmp_path / "mitiru.old").exists()
    assert not list(tmp_path.glob(".mitiru-update-*"))