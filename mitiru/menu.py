"""Interactive launcher offering the commands that fit the current directory."""

import subprocess
import sys
from dataclasses import dataclass

from mitiru.config import ConfigError, find_manifest, load


@dataclass(frozen=True)
class MenuEntry:
    """A menu choice; a non-empty ``prompt`` asks for one extra argument."""

    label: str
    args: tuple[str, ...]
    prompt: str = ""


_PROJECT_ENTRIES = (
    MenuEntry("run      build & run", ("run",)),
    MenuEntry("watch    hot-reload dev loop (rebuild on save)", ("watch",)),
    MenuEntry("debug    debug build & run", ("debug",)),
    MenuEntry("build    build only", ("build",)),
    MenuEntry("ui       preview HTML/CSS UI in browser", ("ui",)),
    MenuEntry("lint     check data-m-* bindings", ("lint",)),
    MenuEntry("clean    remove build/", ("clean",)),
    MenuEntry("doctor   check toolchain", ("doctor",)),
    MenuEntry("version  version info", ("version",)),
)

_OUTSIDE_ENTRIES = (
    MenuEntry("new      create a new project", ("new",), "project name: "),
    MenuEntry("ui       preview an HTML/CSS file", ("ui",)),
    MenuEntry("doctor   check toolchain", ("doctor",)),
    MenuEntry("version  version info", ("version",)),
)


def menu_entries_for_context(start_dir=".") -> tuple[list[MenuEntry], str]:
    """Entries and header depending on whether ``start_dir`` is in a project."""
    try:
        manifest, _ = find_manifest(start_dir)
    except ConfigError:
        return list(_OUTSIDE_ENTRIES), "mitiru — (no project in this directory)"
    name = "(project)"
    try:
        config = load(manifest)
    except ConfigError:
        config = None
    if config is not None and config.project.name:
        name = config.project.name
    return list(_PROJECT_ENTRIES), f"mitiru — {name}"


def run_self(*args: str) -> None:
    """Run this CLI again with ``args``, inheriting stdio; raise on failure."""
    completed = subprocess.run([sys.executable, "-m", "mitiru.cli", *args], check=False)
    if completed.returncode != 0:
        raise RuntimeError(f"exit status {completed.returncode}")


def run_menu(stdin=None, stdout=None) -> None:
    """Show the menu until the user quits or input ends."""
    stdin = stdin if stdin is not None else sys.stdin
    out = stdout if stdout is not None else sys.stdout

    while True:
        entries, header = menu_entries_for_context(".")
        out.write(f"\n  {header}\n")
        for number, entry in enumerate(entries, start=1):
            out.write(f"   {number:2d}) {entry.label}\n")
        out.write("    q) quit\n\n  > ")
        out.flush()

        line = stdin.readline()
        if not line.endswith("\n"):
            out.write("\n")
            return
        choice = line.strip()
        if choice in ("", "q", "quit"):
            return
        try:
            index = int(choice)
        except ValueError:
            index = 0
        if not 1 <= index <= len(entries):
            out.write("  ? その番号は無い\n")
            continue

        entry = entries[index - 1]
        run_args = list(entry.args)
        if entry.prompt:
            out.write("  " + entry.prompt)
            out.flush()
            arg_line = stdin.readline()
            if not arg_line.endswith("\n"):
                out.write("\n")
                return
            arg = arg_line.strip()
            if not arg:
                out.write("  キャンセル\n")
                continue
            run_args.append(arg)

        joined = " ".join(run_args)
        out.write(f"\n  $ mitiru {joined}\n")
        out.flush()
        try:
            run_self(*run_args)
        except (OSError, RuntimeError) as exc:
            sys.stderr.write(f"  (mitiru {joined} 終了: {exc})\n")