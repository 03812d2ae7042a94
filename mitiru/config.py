"""Loading, validating and editing the per-project mitiru.toml manifest."""

import os
import re
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path

MANIFEST_FILENAME = "mitiru.toml"


class ConfigError(Exception):
    """Raised when the manifest cannot be found, read, parsed or validated."""


@dataclass
class ProjectSection:
    name: str = ""
    version: str = ""
    engine: str = ""


@dataclass
class WindowSection:
    title: str = ""
    width: int = 0
    height: int = 0
    vsync: bool = False


@dataclass
class CEFSection:
    start_url: str = ""
    skip_default_font: bool = False


@dataclass
class BuildSection:
    backend: str = ""


@dataclass
class FontSection:
    """Font atlas range: "" or "none" skips fonts; "latin", "kana", "japanese"."""

    atlas: str = ""


@dataclass
class LofiSection:
    """Low-fi post effect settings; ``dither`` is None when not specified."""

    enabled: bool = False
    width: int = 0
    height: int = 0
    bits: str = ""
    dither: float | None = None


@dataclass
class ProjectConfig:
    project: ProjectSection = field(default_factory=ProjectSection)
    window: WindowSection = field(default_factory=WindowSection)
    cef: CEFSection = field(default_factory=CEFSection)
    build: BuildSection = field(default_factory=BuildSection)
    font: FontSection = field(default_factory=FontSection)
    lofi: LofiSection = field(default_factory=LofiSection)

    def engine_tag(self) -> str:
        """Return the engine version as a git tag with a ``v`` prefix."""
        version = self.project.engine
        if version in ("", "latest"):
            return version
        if version[0] in "vV":
            return version
        return "v" + version

    def _validate(self, path) -> None:
        if not self.project.name:
            raise ConfigError(f"{path}: project.name is required")
        if not self.project.engine:
            raise ConfigError(f"{path}: project.engine is required")
        if self.window.width < 0 or self.window.height < 0:
            raise ConfigError(f"{path}: window.width/height must not be negative")

    def _apply_defaults(self) -> None:
        if not self.window.title:
            self.window.title = self.project.name
        if self.window.width == 0:
            self.window.width = 1280
        if self.window.height == 0:
            self.window.height = 720
        if not self.cef.start_url:
            self.cef.start_url = "assets/scene.html"
        if not self.build.backend:
            self.build.backend = "auto"


_SECTIONS = {
    "project": ProjectSection,
    "window": WindowSection,
    "cef": CEFSection,
    "build": BuildSection,
    "font": FontSection,
    "lofi": LofiSection,
}


def _convert(value, kind, where: str):
    if kind is bool:
        if isinstance(value, bool):
            return value
    elif kind is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif kind is str:
        if isinstance(value, str):
            return value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ConfigError(f"{where}: incompatible value {value!r}")


def _decode_section(cls, table, name: str, path):
    if not isinstance(table, dict):
        raise ConfigError(f"{path}: parse: [{name}] must be a table")
    values = {
        f.name: _convert(table[f.name], f.type, f"{path}: parse: {name}.{f.name}")
        for f in fields(cls)
        if f.name in table
    }
    return cls(**values)


def find_manifest(start_dir=".") -> tuple[Path, Path]:
    """Search upward from ``start_dir`` for the manifest.

    Returns the manifest path and the project root that contains it.
    """
    directory = Path(os.path.abspath(start_dir))
    for candidate_dir in (directory, *directory.parents):
        candidate = candidate_dir / MANIFEST_FILENAME
        if candidate.is_file():
            return candidate, candidate_dir
    raise ConfigError(f"{MANIFEST_FILENAME} not found; run 'mitiru new' first")


def load(path) -> ProjectConfig:
    """Read, validate and fill defaults for the manifest at ``path``."""
    try:
        body = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"read {path}: {exc}") from exc
    try:
        data = tomllib.loads(body)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path}: parse: {exc}") from exc

    sections = {
        name: _decode_section(cls, data[name], name, path)
        for name, cls in _SECTIONS.items()
        if name in data
    }
    config = ProjectConfig(**sections)
    config._validate(path)
    config._apply_defaults()
    return config


_ENGINE_LINE = re.compile(rb'^(\s*engine\s*=\s*)"[^"]*"(.*)$', re.MULTILINE)


def set_engine(manifest_path, new_version: str) -> None:
    """Rewrite only the ``engine = "..."`` line, leaving comments untouched."""
    path = Path(manifest_path)
    try:
        body = path.read_bytes()
    except OSError as exc:
        raise ConfigError(f"read {path}: {exc}") from exc

    if not _ENGINE_LINE.search(body):
        raise ConfigError(f'{path}: no `engine = "..."` line found to update')

    version = new_version.encode("utf-8")
    replaced = _ENGINE_LINE.sub(
        lambda m: m.group(1) + b'"' + version + b'"' + m.group(2), body
    )
    try:
        path.write_bytes(replaced)
    except OSError as exc:
        raise ConfigError(f"write {path}: {exc}") from exc