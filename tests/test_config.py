import pytest

from mitiru.config import (
    ConfigError,
    ProjectConfig,
    ProjectSection,
    find_manifest,
    load,
    set_engine,
)

SOURCE_WITH_COMMENTS = """[project]
name = "demo"
version = "0.1.0"
engine = "0.6.0"   # pinned engine

[lofi]
# 当時のドット質感を固定仕様にする
enabled = true
bits    = "5,6,5"  # RGB565
"""


def test_set_engine_preserves_comments(tmp_path):
    path = tmp_path / "mitiru.toml"
    path.write_text(SOURCE_WITH_COMMENTS, encoding="utf-8")

    set_engine(path, "0.7.0")

    got = path.read_text(encoding="utf-8")
    assert 'engine = "0.7.0"' in got
    assert 'engine = "0.6.0"' not in got
    for want in ["# pinned engine", "# 当時のドット質感を固定仕様にする", 'bits    = "5,6,5"', "# RGB565"]:
        assert want in got

    cfg = load(path)
    assert cfg.project.engine == "0.7.0"


def test_set_engine_no_engine_line(tmp_path):
    path = tmp_path / "mitiru.toml"
    path.write_text('[project]\nname = "x"\n', encoding="utf-8")
    with pytest.raises(ConfigError):
        set_engine(path, "0.7.0")


def test_load_applies_defaults(tmp_path):
    path = tmp_path / "mitiru.toml"
    path.write_text('[project]\nname = "demo"\nengine = "0.1.0"\n', encoding="utf-8")
    cfg = load(path)
    assert cfg.window.title == "demo"
    assert (cfg.window.width, cfg.window.height) == (1280, 720)
    assert cfg.cef.start_url == "assets/scene.html"
    assert cfg.build.backend == "auto"
    assert cfg.lofi.dither is None


def test_load_keeps_explicit_values(tmp_path):
    path = tmp_path / "mitiru.toml"
    path.write_text(
        '[project]\nname = "demo"\nengine = "0.1.0"\n'
        '[window]\ntitle = "T"\nwidth = 800\nheight = 600\n'
        '[lofi]\nenabled = true\ndither = 0\n',
        encoding="utf-8",
    )
    cfg = load(path)
    assert cfg.window.title == "T"
    assert (cfg.window.width, cfg.window.height) == (800, 600)
    assert cfg.lofi.enabled is True
    assert cfg.lofi.dither == 0.0


@pytest.mark.parametrize(
    "body",
    [
        '[project]\nengine = "0.1.0"\n',
        '[project]\nname = "demo"\n',
        '[project]\nname = "demo"\nengine = "0.1.0"\n[window]\nwidth = -1\n',
        '[project]\nname = "demo"\nengine = "0.1.0"\n[window]\nwidth = "wide"\n',
        "[project\nname = 1\n",
    ],
)
def test_load_rejects_invalid_manifests(tmp_path, body):
    path = tmp_path / "mitiru.toml"
    path.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError):
        load(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load(tmp_path / "nope.toml")


def test_find_manifest_walks_up(tmp_path):
    manifest = tmp_path / "mitiru.toml"
    manifest.write_text('[project]\nname = "x"\nengine = "0.1.0"\n', encoding="utf-8")
    nested = tmp_path / "src" / "deep"
    nested.mkdir(parents=True)
    found, root = find_manifest(nested)
    assert found == manifest
    assert root == tmp_path


def test_find_manifest_not_found(tmp_path):
    with pytest.raises(ConfigError):
        find_manifest(tmp_path)


@pytest.mark.parametrize(
    "engine, tag",
    [("0.1.0", "v0.1.0"), ("v0.1.0", "v0.1.0"), ("latest", "latest"), ("", "")],
)
def test_engine_tag(engine, tag):
    cfg = ProjectConfig(project=ProjectSection(name="x", engine=engine))
    assert cfg.engine_tag() == tag