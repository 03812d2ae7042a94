"""Scan of game sources for patterns that break deterministic replay."""

import os
import sys
from dataclasses import dataclass
from pathlib import Path

_WALL_CLOCK = "use the engine's dt (frame delta), not wall-clock"
_BREAKS_REPLAY = "wall-clock breaks determinism/replay; use dt"
_SEEDED = "use a seeded std::mt19937 stored in GameMemory"

PATTERNS: tuple[tuple[str, str], ...] = (
    ("rand(", _SEEDED),
    ("srand(", _SEEDED),
    ("std::random_device", "non-deterministic seed; use a fixed/replay seed"),
    ("std::chrono::system_clock", _WALL_CLOCK),
    ("std::chrono::high_resolution_clock", _WALL_CLOCK),
    ("steady_clock::now", _WALL_CLOCK),
    ("chrono::now()", _WALL_CLOCK),
    ("time(", _BREAKS_REPLAY),
    ("::time(", _BREAKS_REPLAY),
    ("GetTickCount", _BREAKS_REPLAY),
    ("timeGetTime", _BREAKS_REPLAY),
    ("QueryPerformanceCounter", _BREAKS_REPLAY),
)


@dataclass
class DetFinding:
    file: str
    line: int
    token: str
    suggestion: str


def _ext(name: str) -> str:
    dot = name.rfind(".")
    return name[dot:].lower() if dot >= 0 else ""


def run_determinism_lint(project_root) -> list[DetFinding]:
    """Scan ``src/**/*.cpp`` and ``src/**/*.hpp``; a missing src/ yields nothing."""
    findings: list[DetFinding] = []
    for dirpath, dirnames, filenames in os.walk(Path(project_root) / "src"):
        dirnames.sort()
        for name in sorted(filenames):
            if _ext(name) in (".cpp", ".hpp"):
                findings.extend(scan_file(os.path.join(dirpath, name)))
    return findings


def scan_file(path) -> list[DetFinding]:
    """Findings in one file; at most one per line, single-line comments skipped."""
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []

    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    findings = []
    for line_num, raw in enumerate(lines, start=1):
        trimmed = raw.strip()
        if trimmed.startswith("//"):
            continue
        stripped = strip_string_literals(trimmed)
        for token, suggestion in PATTERNS:
            if token in stripped:
                findings.append(DetFinding(str(path), line_num, token, suggestion))
                break
    return findings


def strip_string_literals(line: str) -> str:
    """Drop the contents of double-quoted strings, keeping the quotes."""
    out = []
    in_string = False
    prev = ""
    for ch in line:
        if ch == '"' and prev != "\\":
            in_string = not in_string
            out.append(ch)
        elif not in_string:
            out.append(ch)
        prev = ch
    return "".join(out)


def print_determinism_report(findings, stream=None) -> None:
    """Write the determinism lint report; findings are warnings only."""
    out = stream if stream is not None else sys.stdout
    out.write("\n  --- determinism lint ---\n")
    if not findings:
        out.write("  deterministic: no nondeterministic sources found.\n")
        return
    for f in findings:
        out.write(f"  {f.file}:{f.line}  {f.token}  →  {f.suggestion}\n")
    out.write(
        f"\n  {len(findings)} finding(s). These patterns break replay and "
        "time-travel. See suggestions above.\n"
    )