import io
import json
import urllib.error
from unittest.mock import patch

import pytest

from mitiru.config import ConfigError, load
from mitiru.projectupdate import confirm, run_update


def _project(tmp_path, engine="0.6.0"):
    manifest = tmp_path / "mitiru.toml"
    manifest.write_text(
        '[project]\nname = "demo"\nversion = "0.1.0"\n'
        f'engine = "{engine}"   # pinned engine\n'
    )
    return manifest


def _tags(*names):
    return io.BytesIO(json.dumps([{"name": n} for n in names]).encode())


@pytest.mark.parametrize(
    "answer,expected",
    [("y\n", True), ("YES\n", True), ("n\n", False), ("\n", False), ("", False)],
)
def test_confirm(monkeypatch, answer, expected):
    monkeypatch.setattr("sys.stdin", io.StringIO(answer))
    assert confirm("Proceed?") is expected


def test_unparseable_pin_rejected(tmp_path):
    _project(tmp_path, engine="latest")
    with pytest.raises(ValueError, match="not a X.Y.Z version"):
        run_update(start_dir=tmp_path)


def test_no_manifest(tmp_path):
    with pytest.raises(ConfigError):
        run_update(start_dir=tmp_path)


def test_already_up_to_date(tmp_path, capsys):
    manifest = _project(tmp_path, engine="0.7.0")
    before = manifest.read_text()
    with patch("urllib.request.urlopen", return_value=_tags("v0.7.0", "v0.6.9")):
        run_update(start_dir=tmp_path)
    assert "Already up to date: engine 0.7.0 is the latest release." in capsys.readouterr().out
    assert manifest.read_text() == before


def test_check_only_changes_nothing(tmp_path, capsys):
    manifest = _project(tmp_path)
    before = manifest.read_text()
    with patch("urllib.request.urlopen", return_value=_tags("v0.7.0")):
        run_update(check_only=True, start_dir=tmp_path)
    out = capsys.readouterr().out
    assert "update available: 0.6.0 -> 0.7.0" in out
    assert "WARNING" in out
    assert manifest.read_text() == before


def test_declined_leaves_pin(tmp_path, monkeypatch, capsys):
    manifest = _project(tmp_path)
    monkeypatch.setattr("sys.stdin", io.StringIO("n\n"))
    with patch("urllib.request.urlopen", return_value=_tags("v0.6.1")):
        run_update(start_dir=tmp_path)
    out = capsys.readouterr().out
    assert "Aborted; pin unchanged." in out
    assert "WARNING" not in out
    assert load(manifest).project.engine == "0.6.0"


def test_assume_yes_with_engine_root_override(tmp_path, monkeypatch, capsys):
    manifest = _project(tmp_path)
    monkeypatch.setenv("MITIRU_ENGINE_ROOT", str(tmp_path / "engine"))
    with patch("urllib.request.urlopen", return_value=_tags("v0.7.0")):
        run_update(assume_yes=True, start_dir=tmp_path)
    text = manifest.read_text()
    assert 'engine = "0.7.0"   # pinned engine' in text
    assert load(manifest).project.engine == "0.7.0"
    assert "no download is needed" in capsys.readouterr().out


def test_offline_keeps_pin(tmp_path):
    manifest = _project(tmp_path)
    with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("offline")):
        with pytest.raises(RuntimeError, match="pin left at 0.6.0"):
            run_update(assume_yes=True, start_dir=tmp_path)
    assert load(manifest).project.engine == "0.6.0"