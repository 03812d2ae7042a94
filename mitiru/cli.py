"""Command-line entry point of the mitiru project tool."""

import argparse
import re
import sys

from mitiru.clean import run_clean
from mitiru.doctor import run_doctor
from mitiru.inspector import (
    auto_detect_producer_pid,
    run_inspect,
    run_inspect_all,
    run_inspect_json,
)
from mitiru.lint import run_lint
from mitiru.menu import run_menu
from mitiru.projectupdate import run_update
from mitiru.subsystems import launch_subsystem, run_audio, run_replay
from mitiru.ui import DEFAULT_PORT, run_ui
from mitiru.updates import (
    CLI_VERSION,
    _current_arch,
    _current_os,
    cleanup_stale_self_update,
    run_self_update,
)

CLI_NAME = "mitiru"
DEFAULT_ENGINE_VERSION = "0.7.4"

_DESCRIPTION = """mitiru — MitiruEngine project tool.

  mitiru renderer        launch the renderer subsystem standalone
  mitiru audio [file]    launch the audio subsystem standalone
  mitiru input           launch the input subsystem standalone
  mitiru scene           launch the scene subsystem standalone
  mitiru replay          record / play back an input replay
  mitiru ui [scene.html] preview HTML/CSS UI in the browser with mock state
  mitiru inspect <pid>   open a sub-window inspector for a running game
  mitiru clean           remove build/ (--all also clears engine cache)
  mitiru doctor          check that prerequisites are installed
  mitiru version         print version

Without a command, an interactive launcher opens."""

_PID = re.compile(r"[+-]?[0-9]+")


def version_text() -> str:
    """The two-line version report."""
    return (
        f"{CLI_NAME} {CLI_VERSION} ({_current_os()}/{_current_arch()})\n"
        f"  scaffolds engine {DEFAULT_ENGINE_VERSION} by default"
    )


def _inspect(ns) -> None:
    if ns.all and ns.inspectable:
        raise ValueError("inspect: --all and --inspectable are mutually exclusive")
    if ns.all and ns.file:
        raise ValueError("inspect: --all watches a pid and cannot be combined with --file")

    pid = 0
    if not ns.file and ns.pid is None:
        try:
            pid = auto_detect_producer_pid()
        except (OSError, LookupError) as exc:
            raise LookupError(f"inspect: {exc}") from exc
        print(f"Auto-detected producer pid: {pid}")
    elif ns.pid is not None:
        if not _PID.fullmatch(ns.pid):
            raise ValueError(f'inspect: "{ns.pid}" is not a valid pid')
        pid = int(ns.pid)

    if ns.all:
        run_inspect_all(pid, ns.engine)
    elif ns.json:
        run_inspect_json(pid, ns.inspectable or "")
    else:
        run_inspect(pid, ns.file or None, ns.inspectable or None, ns.engine)


def build_parser() -> argparse.ArgumentParser:
    """Argument parser with every subcommand attached."""
    parser = argparse.ArgumentParser(
        prog=CLI_NAME,
        description=_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="command")

    def add(name, help_text, handler, aliases=()):
        p = sub.add_parser(name, help=help_text, aliases=list(aliases))
        p.set_defaults(handler=handler)
        return p

    add("menu", "interactive launcher — pick a command instead of typing it",
        lambda ns: run_menu(), aliases=("m",))

    for name in ("renderer", "input", "scene"):
        add(name, f"launch the {name} subsystem standalone (no game logic)",
            lambda ns, n=name: launch_subsystem(n))

    p = add("audio", "launch the audio subsystem standalone (no game logic)",
            lambda ns: run_audio(ns.file))
    p.add_argument("file", nargs="?", help=".wav / .mp3 / .flac to load on startup")

    p = add("replay", "record, play back, or regression-test an input replay",
            lambda ns: run_replay(ns.record, ns.replay, ns.test, ns.expect))
    p.add_argument("--record", default="", help="record a session to <file>")
    p.add_argument("--replay", default="", help="play back <file>")
    p.add_argument("--test", default="", help="headless regression test against <file>")
    p.add_argument("--expect", default="", help="expected final-state JSON for --test")

    p = add("ui", "preview HTML/CSS game UI in the browser, no build needed",
            lambda ns: run_ui(ns.scene, ns.state, ns.port))
    p.add_argument("scene", nargs="?", help="scene HTML path (default assets/scene.html)")
    p.add_argument("--state", default="", help="JSON file with initial mock state values")
    p.add_argument("--port", type=int, default=DEFAULT_PORT, help="local port to serve on")

    p = add("inspect", "open a sub-window inspector watching a running game", _inspect)
    p.add_argument("pid", nargs="?")
    p.add_argument("--engine", default="latest", help="engine version to build against")
    p.add_argument("--file", default="", help="watch a snapshot file directly")
    p.add_argument("--inspectable", default="", help="open a single named panel")
    p.add_argument("--all", action="store_true",
                   help="open gameplay + input + timetravel windows side by side")
    p.add_argument("--json", action="store_true",
                   help="print state, recent events and invariant status as JSON")

    p = add("update", "update this project's pinned engine version",
            lambda ns: run_update(ns.check, ns.yes))
    p.add_argument("--check", action="store_true", help="report the latest version only")
    p.add_argument("-y", "--yes", action="store_true", help="apply without confirmation")

    p = add("self-update", "update the mitiru CLI itself to the latest release",
            lambda ns: run_self_update(ns.check))
    p.add_argument("--check", action="store_true", help="report the latest version only")

    p = add("clean", "delete build artefacts", lambda ns: run_clean(ns.all))
    p.add_argument("--all", action="store_true",
                   help="also delete the global engine cache (~/.mitiru/cache/)")

    p = add("lint", "check scene.html data-m-* bindings against C++ state keys",
            lambda ns: run_lint(ns.strict))
    p.add_argument("--strict", action="store_true", help="exit non-zero if any findings")

    add("doctor", "check that prerequisites are installed", lambda ns: run_doctor())
    add("version", "print version information", lambda ns: print(version_text()))
    return parser


def main(argv=None) -> int:
    """Run the CLI; return the process exit status."""
    cleanup_stale_self_update()
    ns = build_parser().parse_args(argv)
    handler = getattr(ns, "handler", None)
    try:
        if handler is None:
            run_menu()
        else:
            handler(ns)
    except Exception as exc:
        sys.stderr.write(f"{exc}\n")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())