"""Reading a running game's inspector artifacts and launching inspector windows."""

import json
import os
import re
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mitiru.enginecache import EngineError, ensure_source
from mitiru.subsystems import SubsystemError, find_engine_exe, resolve_engine_root
from mitiru.updates import _current_os

ALL_INSPECTABLES = ("gameplay", "input", "timetravel")
JSON_SCOPES = ("state", "events", "invariants")
EVENT_TAIL = 64
STALE_AFTER_SECONDS = 10.0
INSPECTOR_TARGET = "mitiru_inspector"
INSPECTOR_EXE = "mitiru_inspector.exe"

_SNAPSHOT_NAME = re.compile(r"mitiru_inspector_([+-]?[0-9]+)\.json")
_UINT32_LIMIT = 1 << 32


@dataclass
class InspectEvent:
    """One entry of the engine's JSONL event log."""

    frame: int = 0
    t: float = 0
    type: str = ""
    data: Any = None

    def to_dict(self) -> dict:
        return {"frame": self.frame, "t": self.t, "type": self.type, "data": self.data}


@dataclass
class InspectViolation:
    """An invariant violation taken from the event log."""

    frame: int
    name: str
    detail: str

    def to_dict(self) -> dict:
        return {"frame": self.frame, "name": self.name, "detail": self.detail}


@dataclass
class InspectInvariants:
    """Invariant health over the event window; ``ok`` only without violations."""

    ok: bool = True
    violations: list[InspectViolation] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"ok": self.ok, "violations": [v.to_dict() for v in self.violations]}


def _is_windows() -> bool:
    return sys.platform.startswith("win")


def _round_duration(seconds: float) -> str:
    total = int(seconds + 0.5)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def auto_detect_producer_pid(temp_dir=None) -> int:
    """Pid embedded in the most recently written snapshot file in ``temp_dir``."""
    directory = temp_dir if temp_dir is not None else tempfile.gettempdir()
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        raise OSError(f"read temp dir {directory}: {exc}") from exc

    newest: tuple[int, float] | None = None
    for entry in entries:
        match = _SNAPSHOT_NAME.fullmatch(entry.name)
        if not match:
            continue
        try:
            mtime = entry.stat().st_mtime
        except OSError:
            continue
        if newest is None or mtime > newest[1]:
            newest = (int(match.group(1)), mtime)

    if newest is None:
        raise LookupError(
            f"no running MitiruEngine producer found in {directory} — start a game "
            "with `mitiru run` first, or pass an explicit pid"
        )
    age = time.time() - newest[1]
    if age > STALE_AFTER_SECONDS:
        raise LookupError(
            f"the most recent snapshot is {_round_duration(age)} old (looks dead) — "
            "start a fresh game with `mitiru run` first, or pass an explicit pid"
        )
    return newest[0]


def artifact_paths(pid: int, temp_dir=None) -> tuple[Path, Path]:
    """Snapshot and event-log paths the engine writes for ``pid``."""
    directory = Path(temp_dir if temp_dir is not None else tempfile.gettempdir())
    return (
        directory / f"mitiru_inspector_{pid}.json",
        directory / f"mitiru_events_{pid}.jsonl",
    )


def read_snapshot_json(path) -> Any:
    """Parsed contents of a snapshot file."""
    try:
        data = Path(path).read_bytes()
    except FileNotFoundError as exc:
        raise FileNotFoundError(
            f"snapshot file not found at {path} — is a game running for that pid?"
        ) from exc
    except OSError as exc:
        raise OSError(f"read snapshot {path}: {exc}") from exc
    try:
        return json.loads(data)
    except ValueError as exc:
        raise ValueError(
            f"snapshot at {path} is not valid JSON (mid-write race?) — retry"
        ) from exc


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _event_from_json(obj) -> InspectEvent | None:
    if obj is None:
        return InspectEvent()
    if not isinstance(obj, dict):
        return None
    frame = obj.get("frame")
    if frame is None:
        frame = 0
    elif not (isinstance(frame, int) and not isinstance(frame, bool)
              and 0 <= frame < _UINT32_LIMIT):
        return None
    stamp = obj.get("t")
    if stamp is None:
        stamp = 0
    elif not _is_number(stamp):
        return None
    kind = obj.get("type")
    if kind is None:
        kind = ""
    elif not isinstance(kind, str):
        return None
    return InspectEvent(frame=frame, t=stamp, type=kind, data=obj.get("data"))


def read_events_jsonl(path, tail_n: int = EVENT_TAIL) -> list[InspectEvent]:
    """Up to ``tail_n`` most recent events; malformed lines are skipped."""
    try:
        handle = open(path, "rb")
    except FileNotFoundError as exc:
        raise FileNotFoundError(
            f"event log not found at {path} — has the game emitted any events?"
        ) from exc
    except OSError as exc:
        raise OSError(f"open event log {path}: {exc}") from exc

    events: list[InspectEvent] = []
    with handle:
        for raw in handle:
            line = raw.rstrip(b"\n").rstrip(b"\r")
            if not line:
                continue
            try:
                parsed = json.loads(line)
            except ValueError:
                continue
            event = _event_from_json(parsed)
            if event is not None:
                events.append(event)

    if tail_n > 0 and len(events) > tail_n:
        events = events[-tail_n:]
    return events


def extract_invariants(events) -> InspectInvariants:
    """Summarise the ``invariant_violation`` entries among ``events``."""
    summary = InspectInvariants()
    for event in events:
        if event.type != "invariant_violation":
            continue
        data = event.data if isinstance(event.data, dict) else {}
        name = data.get("name")
        detail = data.get("detail")
        summary.ok = False
        summary.violations.append(
            InspectViolation(
                frame=event.frame,
                name=name if isinstance(name, str) else "",
                detail=detail if isinstance(detail, str) else "",
            )
        )
    return summary


def build_inspect_json(pid: int, scope: str = "", temp_dir=None) -> dict:
    """Document of state, recent events and invariants for ``pid``.

    ``scope`` selects one of "state", "events", "invariants"; empty means all.
    """
    if scope not in ("", *JSON_SCOPES):
        raise ValueError(
            f"inspect --json: unknown --inspectable {scope!r}; valid scopes for "
            f"--json: {', '.join(JSON_SCOPES)}"
        )
    if pid <= 0:
        raise ValueError("inspect --json: a valid game pid is required")

    snapshot_path, events_path = artifact_paths(pid, temp_dir)
    out: dict[str, Any] = {"pid": pid}
    want_events = scope in ("", "events")
    want_invariants = scope in ("", "invariants")

    if scope in ("", "state"):
        out["state"] = read_snapshot_json(snapshot_path)

    if want_events or want_invariants:
        events = read_events_jsonl(events_path, EVENT_TAIL)
        if want_events and events:
            out["events"] = [e.to_dict() for e in events]
        if want_invariants:
            out["invariants"] = extract_invariants(events).to_dict()
    return out


def run_inspect_json(pid: int, scope: str = "") -> None:
    """Print the inspect document for ``pid`` as indented JSON on stdout."""
    document = build_inspect_json(pid, scope)
    sys.stdout.write(json.dumps(document, indent=2, ensure_ascii=False) + "\n")


def locate_inspector_exe(engine_tag: str = "latest") -> Path:
    """Path of the engine's inspector executable.

    An explicit tag selects that engine; otherwise the project's pinned one.
    """
    if engine_tag and engine_tag != "latest":
        try:
            engine_root = ensure_source(engine_tag, sys.stdout)
        except EngineError as exc:
            raise SubsystemError(f"inspect: fetch engine {engine_tag}: {exc}") from exc
    else:
        try:
            engine_root = resolve_engine_root(".")
        except SubsystemError as exc:
            raise SubsystemError(f"inspect: {exc}") from exc
    return find_engine_exe(engine_root, INSPECTOR_TARGET, INSPECTOR_EXE)


def run_inspect(
    pid: int = 0,
    file_path: str | None = None,
    inspectable: str | None = None,
    engine_tag: str = "latest",
) -> None:
    """Run one inspector window watching ``pid`` or a snapshot file."""
    if not _is_windows():
        raise SubsystemError(
            f"mitiru inspect is currently Windows-only (running on {_current_os()})"
        )
    exe_path = locate_inspector_exe(engine_tag)

    if file_path:
        args = ["--file", os.path.abspath(file_path)]
    else:
        args = [str(pid)]
    if inspectable:
        args += ["--inspectable", inspectable]

    print(f"Running {exe_path} [{' '.join(args)}]")
    try:
        completed = subprocess.run(
            [str(exe_path), *args], cwd=str(exe_path.parent), check=False
        )
    except OSError as exc:
        raise SubsystemError(f"inspect: {exc}") from exc
    if completed.returncode != 0:
        raise SubsystemError(f"{exe_path} exited with status {completed.returncode}")


def run_inspect_all(pid: int, engine_tag: str = "latest") -> int:
    """Start one inspector window per named panel without waiting.

    Returns how many windows were launched; raises when none could be.
    """
    if not _is_windows():
        raise SubsystemError(
            f"mitiru inspect --all is currently Windows-only (running on {_current_os()})"
        )
    if pid <= 0:
        raise ValueError("inspect --all: a valid game pid is required")

    exe_path = locate_inspector_exe(engine_tag)
    launched = 0
    for name in ALL_INSPECTABLES:
        try:
            child = subprocess.Popen(
                [str(exe_path), str(pid), "--inspectable", name],
                cwd=str(exe_path.parent),
            )
        except OSError as exc:
            sys.stderr.write(
                f"warning: inspect --all: failed to launch {name} panel: {exc}\n"
            )
            continue
        launched += 1
        print(
            f"Launched {name} inspector window (pid {child.pid}, watching game {pid})"
        )

    if launched == 0:
        raise SubsystemError("inspect --all: no inspector windows could be launched")
    print(
        f"Opened {launched}/{len(ALL_INSPECTABLES)} sub-windows for game {pid} "
        "(each is an independent OS window — axis 5)"
    )
    return launched