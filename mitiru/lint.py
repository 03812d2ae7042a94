"""Static cross-check of scene.html data-m-* bindings against C++ state keys."""

import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path

from mitiru.config import ProjectConfig, find_manifest, load

_DOTTED_PATH = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)+")
_DATA_M_ATTR = re.compile(r'data-m-([a-z]+)\s*=\s*"([^"]*)"')
_QUOTED_DOTTED = re.compile(r'"([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)+)"')

_SOURCE_EXTS = {".cpp", ".hpp", ".cc", ".h"}


@dataclass
class BindFinding:
    """One lint finding; ``line`` is 0 for file-level findings."""

    line: int
    kind: str
    detail: str


def _ext(name: str) -> str:
    dot = name.rfind(".")
    return name[dot:].lower() if dot >= 0 else ""


def scene_rel_path(config: ProjectConfig) -> str:
    """Project-relative scene path from the manifest, default assets/scene.html."""
    return config.cef.start_url or "assets/scene.html"


def structural_checks(verb: str, value: str, line: int) -> list[BindFinding]:
    """Validate a single data-m-<verb>="value" attribute."""
    if verb == "tpl" and value.count("{") != value.count("}"):
        return [
            BindFinding(
                line,
                "tpl-braces",
                f"data-m-tpl has unbalanced {{ }} braces: {_go_quote(value)}",
            )
        ]
    if verb == "action" and not value.strip():
        return [BindFinding(line, "empty-action", "data-m-action has no action name")]
    if verb == "arg" and not value.strip():
        return [BindFinding(line, "empty-arg", "data-m-arg has no value")]
    return []


def _go_quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def analyze_scene(html: str) -> tuple[dict[str, int], list[BindFinding]]:
    """Return consumed dotted keys (key -> first line) and structural findings."""
    consumed: dict[str, int] = {}
    structural: list[BindFinding] = []
    saw_binding = False
    saw_repeat = False
    has_template = "<template" in html
    has_binder = False

    for line_num, raw in enumerate(html.split("\n"), start=1):
        if "mitiru_bind.js" in raw:
            has_binder = True
        for match in _DATA_M_ATTR.finditer(raw):
            verb, value = match.group(1), match.group(2)
            saw_binding = True
            if verb == "repeat":
                saw_repeat = True
            structural.extend(structural_checks(verb, value, line_num))
            for key in _DOTTED_PATH.findall(value):
                consumed.setdefault(key, line_num)

    if saw_binding and not has_binder:
        structural.append(
            BindFinding(
                0,
                "no-binder",
                "scene uses data-m-* but does not load mitiru_runtime/mitiru_bind.js",
            )
        )
    if saw_repeat and not has_template:
        structural.append(
            BindFinding(
                0,
                "repeat-no-template",
                "data-m-repeat present but no <template> child to clone per item",
            )
        )
    return consumed, structural


def scan_produced_keys(src_dir) -> set[str]:
    """Collect every dotted path appearing in a string literal in C++ sources."""
    produced: set[str] = set()
    for dirpath, dirnames, filenames in os.walk(src_dir):
        dirnames.sort()
        for name in sorted(filenames):
            if _ext(name) not in _SOURCE_EXTS:
                continue
            try:
                text = Path(dirpath, name).read_text(encoding="utf-8", errors="replace")
            except OSError:
                continue
            produced.update(_QUOTED_DOTTED.findall(text))
    return produced


def segment_prefix(a: list[str], b: list[str]) -> bool:
    """True when the shorter segment list is a prefix of the longer one."""
    if len(a) > len(b):
        a, b = b, a
    return b[: len(a)] == a


def produced_covers(produced, key: str) -> bool:
    """True when some produced key equals or segment-prefixes ``key`` (either way)."""
    segments = key.split(".")
    return any(segment_prefix(p.split("."), segments) for p in produced)


def print_bind_report(scene: str, structural, missing, stream=None) -> int:
    """Write the lint report and return the number of findings."""
    out = stream if stream is not None else sys.stdout
    out.write("\n  --- bind lint ---\n")

    findings = sorted([*structural, *missing], key=lambda f: f.line)
    if not findings:
        out.write(f"  ok: {scene} bindings all resolve to pushed C++ keys.\n")
        return 0

    for finding in findings:
        if finding.line > 0:
            out.write(f"  {scene}:{finding.line}  {finding.detail}\n")
        else:
            out.write(f"  {scene}  {finding.detail}\n")
    out.write(
        f"\n  {len(findings)} finding(s). A bound key with no C++ push renders "
        "the HTML fallback silently.\n"
    )
    return len(findings)


def run_lint(strict: bool = False, start_dir=".") -> int:
    """Lint the project above ``start_dir``; raise under ``strict`` on findings."""
    manifest, project_root = find_manifest(start_dir)
    config = load(manifest)

    scene_path = project_root / Path(scene_rel_path(config))
    try:
        html = scene_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        sys.stdout.write(
            f"\n  --- bind lint ---\n  no scene found at {scene_path} (nothing to check)\n"
        )
        return 0

    consumed, structural = analyze_scene(html)
    produced = scan_produced_keys(project_root / "src")
    missing = [
        BindFinding(
            line,
            "unpushed",
            f"{_go_quote(key)} is bound in scene.html but never pushed from C++ (typo?)",
        )
        for key, line in consumed.items()
        if not produced_covers(produced, key)
    ]

    total = print_bind_report(scene_path.name, structural, missing)
    if strict and total > 0:
        raise RuntimeError(f"bind lint: {total} finding(s)")
    return total