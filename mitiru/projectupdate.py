"""Bumping a project's pinned engine version to the latest release."""

import os
import sys

from mitiru.config import MANIFEST_FILENAME, find_manifest, load, set_engine
from mitiru.enginecache import ensure_source
from mitiru.semver import latest_version, parse_semver


def confirm(prompt: str) -> bool:
    """Ask a y/N question on stdin; anything but y/yes (or no input) is No."""
    print(f"{prompt} [y/N]: ", end="", flush=True)
    line = sys.stdin.readline()
    if not line:
        return False
    return line.strip().lower() in ("y", "yes")


def run_update(check_only: bool = False, assume_yes: bool = False, start_dir=".") -> None:
    """Update the engine pin in the manifest above ``start_dir``."""
    manifest, _ = find_manifest(start_dir)
    config = load(manifest)

    current = parse_semver(config.project.engine)
    if current is None:
        raise ValueError(
            f"{MANIFEST_FILENAME} engine={config.project.engine!r} is not a X.Y.Z "
            "version; fix it by hand"
        )

    print("Resolving latest MitiruEngine release...")
    try:
        latest = latest_version()
    except (OSError, ValueError, LookupError) as exc:
        raise RuntimeError(
            f"could not resolve latest version (pin left at {current}): {exc}"
        ) from exc

    order = latest.compare(current)
    if order == 0:
        print(f"Already up to date: engine {current} is the latest release.")
        return
    if order < 0:
        print(
            f"Pinned engine {current} is newer than the latest published release "
            f"{latest}; leaving it."
        )
        return

    breaking = latest.major > current.major or latest.minor > current.minor
    print(f"\n  update available: {current} -> {latest}")
    if breaking:
        print("  WARNING: this is a minor/major bump and may break ABI.")
        print("           rebuild from clean (mitiru clean && mitiru build) after updating.")

    if check_only:
        print("\n  (--check) no changes made. Run 'mitiru update' to apply.")
        return

    if not assume_yes and not confirm(f'\nUpdate mitiru.toml to engine = "{latest}"?'):
        print("Aborted; pin unchanged.")
        return

    set_engine(manifest, str(latest))
    print(f'Pinned engine = "{latest}" in {MANIFEST_FILENAME}')

    override = os.environ.get("MITIRU_ENGINE_ROOT", "").strip()
    if override:
        print(f"MITIRU_ENGINE_ROOT is set ({override}); builds use that local checkout.")
        print("The pin was updated but no download is needed. Rebuild to pick up changes.")
        return

    print("Pre-fetching the engine source...")
    try:
        ensure_source(str(latest), sys.stdout)
    except Exception as exc:
        raise RuntimeError(f"prefetch engine {latest}: {exc}") from exc
    print(f"Done. Run 'mitiru build' to build against engine {latest}.")