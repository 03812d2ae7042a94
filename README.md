# mitiru

A command-line tool for working with MitiruEngine game projects. It reads the
project's `mitiru.toml` manifest, keeps a local cache of engine sources, checks
HTML bindings and game sources for common mistakes, previews the HTML UI in a
browser, and starts the engine's standalone subsystems and inspector windows.

## Installation

```
pip install .
```

Python 3.11 or newer is required. The package has no third-party runtime
dependencies. To run the test suite:

```
pip install ".[test]"
pytest
```

## Usage

Run `mitiru` with no arguments (or `mitiru menu`, alias `mitiru m`) to open an
interactive menu. The commands available directly are:

```
mitiru version              show the tool version and the default engine version
mitiru doctor               check for CMake, git, Visual Studio Build Tools and the Windows SDK
mitiru lint                 check scene.html data-m-* bindings against C++ state keys
mitiru lint --strict        same, but exit non-zero when anything is found (for CI)
mitiru clean                remove the project's build/ directory
mitiru clean --all          also remove the global engine cache
mitiru update               move the project's engine pin to the latest release
mitiru update --check       only report whether a newer engine exists
mitiru update --yes         apply without the confirmation prompt
mitiru self-update          replace the running program with the latest CLI release
mitiru self-update --check  only report whether a newer CLI release exists
mitiru renderer             launch the renderer subsystem on its own
mitiru audio [file]         launch the audio subsystem, optionally loading a file
mitiru input                launch the input subsystem on its own
mitiru scene                launch the scene subsystem on its own
mitiru replay --record f    record an input session
mitiru replay --replay f    play a recorded session back
mitiru replay --test f      headless regression test (add --expect baseline.json to compare)
mitiru inspect [pid]        open the inspector for a running game (pid auto-detected if omitted)
mitiru inspect --all pid    open the gameplay, input and timetravel panels side by side
mitiru inspect --json pid   print the game state, recent events and invariants as JSON
mitiru ui [scene.html]      serve assets/ on 127.0.0.1:8137 and open the scene with mock state
```

`mitiru ui` also takes `--state mock.json` (a flat JSON object of initial state
values) and `--port`. `mitiru inspect` also takes `--file`, `--inspectable`
and `--engine`.

After `doctor` finds every prerequisite, and the current directory is inside a
project, it also reports source lines in `src/` that use wall-clock time or
unseeded randomness, which break deterministic replay. These are warnings only.

### The manifest

Commands that act on a project search the current directory and its parents
for `mitiru.toml`. `[project]` must set `name` and `engine`; window size
defaults to 1280x720 and the scene to `assets/scene.html` (`[cef] start_url`).
`mitiru update` rewrites only the `engine = "..."` line, so comments in the
file survive. `mitiru.hostargs.host_args_from_config` turns the `[window]`,
`[font]` and `[lofi]` sections into launch arguments for the game host.

### Environment variables

- `MITIRU_ENGINE_ROOT` — use an already unpacked engine source tree instead of
  downloading one.
- `MITIRU_CACHE_DIR` — put the engine cache somewhere other than
  `~/.mitiru/cache`.
- `MITIRU_HOME` — look for subsystem executables under `$MITIRU_HOME/bin`.
- `MITIRU_NO_UPDATE_CHECK` — never print the "new version available" footer.
- `MITIRU_CLI_REPO` — the `owner/name` repository whose releases
  `self-update` reads.

## What this tool does not do

- It does not create, build, run, debug or watch projects: there are no
  `new`, `build`, `run`, `debug`, `watch` or `install` commands. The
  interactive menu still lists some of these, and choosing them fails.
- It does not compile engine executables. Subsystems and the inspector are
  looked up in `$MITIRU_HOME/bin`, next to the running program, or under the
  engine tree's `build/examples/`; if none is there, the error names the
  `cmake --build` command to run yourself.
- Launching subsystems and inspector windows works on Windows only.