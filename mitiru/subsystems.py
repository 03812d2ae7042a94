"""Locating and launching the engine's standalone subsystem executables."""

import os
import subprocess
import sys
from pathlib import Path

from mitiru.config import ConfigError, find_manifest, load
from mitiru.enginecache import EngineError, ensure_source
from mitiru.updates import _current_os, _running_executable


class SubsystemError(Exception):
    """Raised when a subsystem cannot be located, launched or exits non-zero."""


def _is_windows() -> bool:
    return sys.platform.startswith("win")


def subsys_exe_name(name: str) -> str:
    """Platform-specific executable name of subsystem ``name``."""
    base = "mitiru_subsys_" + name
    return base + ".exe" if _is_windows() else base


def resolve_engine_root(start_dir=".") -> Path:
    """Cached engine source tree pinned by the project above ``start_dir``.

    Deliberately never falls back to the latest release: the subsystem must
    match the engine version the project builds against.
    """
    try:
        manifest, _ = find_manifest(start_dir)
    except ConfigError as exc:
        raise SubsystemError(
            "run this from inside a mitiru project "
            f"(mitiru.toml pins the engine version): {exc}"
        ) from exc
    try:
        config = load(manifest)
    except ConfigError as exc:
        raise SubsystemError(f"load {manifest}: {exc}") from exc
    tag = config.engine_tag()
    try:
        return ensure_source(tag, sys.stdout)
    except EngineError as exc:
        raise SubsystemError(f"fetch engine {tag}: {exc}") from exc


def find_engine_exe(engine_root, target: str, exe_name: str) -> Path:
    """Path of an engine example executable under ``build/examples/<target>``.

    The target directory itself is checked first, then its Debug and
    Release subdirectories.
    """
    build_dir = Path(engine_root) / "build"
    directory = build_dir / "examples" / target
    for candidate in (
        directory / exe_name,
        directory / "Debug" / exe_name,
        directory / "Release" / exe_name,
    ):
        if candidate.exists():
            return candidate
    raise SubsystemError(
        f"{exe_name} not found under {directory} — run "
        f"`cmake --build {build_dir} --target {target}` once"
    )


def locate_subsystem(name: str) -> Path:
    """Find the standalone executable backing subsystem ``name``.

    Search order: ``$MITIRU_HOME/bin``, the directory of the running CLI,
    then the engine source tree pinned by the current project.
    """
    exe_name = subsys_exe_name(name)

    home = os.environ.get("MITIRU_HOME", "")
    if home:
        candidate = Path(home) / "bin" / exe_name
        if candidate.exists():
            return candidate

    try:
        candidate = _running_executable().parent / exe_name
        if candidate.exists():
            return candidate
    except OSError:
        pass

    try:
        engine_root = resolve_engine_root(".")
    except SubsystemError as exc:
        raise SubsystemError(f"{name}: {exc}") from exc
    return find_engine_exe(engine_root, "mitiru_subsys_" + name, exe_name)


def launch_subsystem(name: str, *args: str) -> None:
    """Run subsystem ``name`` with ``args``, forwarding stdio; raise on failure."""
    if not _is_windows():
        raise SubsystemError(
            f"mitiru {name} is currently Windows-only (running on {_current_os()})"
        )

    exe_path = locate_subsystem(name)
    print(f"Running {exe_path}")
    try:
        completed = subprocess.run(
            [str(exe_path), *args], cwd=str(exe_path.parent), check=False
        )
    except OSError as exc:
        raise SubsystemError(f"{name}: {exc}") from exc
    if completed.returncode != 0:
        raise SubsystemError(
            f"{exe_path.name} exited with status {completed.returncode}"
        )


def _existing_abs(path: str, what: str) -> str:
    absolute = os.path.abspath(path)
    try:
        os.stat(absolute)
    except OSError as exc:
        raise SubsystemError(f"replay: {what}{absolute}: {exc.strerror or exc}") from exc
    return absolute


def run_audio(path: str | None = None) -> None:
    """Launch the audio subsystem, optionally loading ``path`` on startup."""
    passthrough = []
    if path:
        absolute = os.path.abspath(path)
        try:
            os.stat(absolute)
        except OSError as exc:
            raise SubsystemError(f"audio: {absolute}: {exc.strerror or exc}") from exc
        passthrough.append(absolute)
    launch_subsystem("audio", *passthrough)


def replay_subsystem_args(
    record: str | None = None,
    play: str | None = None,
    test: str | None = None,
    expect: str | None = None,
) -> list[str]:
    """Validate replay options and build the replay subsystem's arguments."""
    modes = sum(1 for mode in (record, play, test) if mode)
    if modes > 1:
        raise SubsystemError(
            "replay: --record, --replay, and --test are mutually exclusive; "
            "pass exactly one"
        )
    if modes == 0:
        raise SubsystemError(
            "replay: pass exactly one of --record <file>, --replay <file>, "
            "or --test <file>"
        )
    if expect and not test:
        raise SubsystemError("replay: --expect requires --test")

    if record:
        return ["--record", os.path.abspath(record)]
    if play:
        return ["--replay", _existing_abs(play, "")]

    args = ["--test", _existing_abs(test, "")]
    if expect:
        args += ["--expect", _existing_abs(expect, "expect ")]
    return args


def run_replay(
    record: str | None = None,
    play: str | None = None,
    test: str | None = None,
    expect: str | None = None,
) -> None:
    """Record, play back or regression-test an input replay."""
    launch_subsystem("replay", *replay_subsystem_args(record, play, test, expect))