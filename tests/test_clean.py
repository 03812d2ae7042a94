import pytest

from mitiru.clean import remove_if_present, run_clean
from mitiru.config import ConfigError


def _project(root):
    (root / "mitiru.toml").write_text('[project]\nname = "demo"\nengine = "0.7.4"\n')
    build = root / "build"
    (build / "cmake").mkdir(parents=True)
    (build / "cmake" / "CMakeLists.txt").write_text("x")
    return build


def test_remove_existing_directory(tmp_path, capsys):
    target = tmp_path / "out"
    (target / "nested").mkdir(parents=True)
    assert remove_if_present(target, "build directory") is True
    assert not target.exists()
    assert f"Deleted build directory: {target}" in capsys.readouterr().out


def test_remove_missing_directory(tmp_path, capsys):
    target = tmp_path / "missing"
    assert remove_if_present(target, "engine cache") is False
    assert f"Skipping engine cache ({target} does not exist)." in capsys.readouterr().out


def test_remove_refuses_file(tmp_path):
    target = tmp_path / "file.txt"
    target.write_text("data")
    with pytest.raises(NotADirectoryError, match="is not a directory"):
        remove_if_present(target, "build directory")
    assert target.exists()


def test_clean_inside_project(tmp_path, capsys):
    build = _project(tmp_path)
    nested = tmp_path / "src"
    nested.mkdir()
    run_clean(start_dir=nested)
    out = capsys.readouterr().out
    assert "Deleted build directory:" in out
    assert str(build) in out
    assert not build.exists()
    assert (tmp_path / "mitiru.toml").exists()


def test_clean_outside_project_without_all(tmp_path):
    with pytest.raises(ConfigError):
        run_clean(start_dir=tmp_path)


def test_clean_all_outside_project(tmp_path, monkeypatch, capsys):
    cache = tmp_path / "cache"
    (cache / "engine-v0.7.4").mkdir(parents=True)
    monkeypatch.setenv("MITIRU_CACHE_DIR", str(cache))
    workdir = tmp_path / "work"
    workdir.mkdir()
    run_clean(clean_all=True, start_dir=workdir)
    assert not cache.exists()
    assert "not inside a mitiru project" in capsys.readouterr().out


def test_clean_all_inside_project(tmp_path, monkeypatch):
    project = tmp_path / "game"
    project.mkdir()
    build = _project(project)
    cache = tmp_path / "cache"
    cache.mkdir()
    monkeypatch.setenv("MITIRU_CACHE_DIR", str(cache))
    run_clean(clean_all=True, start_dir=project)
    assert not build.exists()
    assert not cache.exists()