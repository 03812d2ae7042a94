"""Removal of build output and of the global engine cache."""

import os
import shutil

from mitiru.config import ConfigError, find_manifest
from mitiru.enginecache import cache_root


def remove_if_present(path, label: str) -> bool:
    """Delete the directory at ``path``; return False if it did not exist."""
    try:
        st = os.stat(path)
    except FileNotFoundError:
        print(f"Skipping {label} ({path} does not exist).")
        return False
    except OSError as exc:
        raise OSError(f"stat {path}: {exc}") from exc

    if not os.path.isdir(path) or not (st.st_mode & 0o040000):
        raise NotADirectoryError(f"{label} is not a directory: {path}")
    try:
        shutil.rmtree(path)
    except OSError as exc:
        raise OSError(f"remove {path}: {exc}") from exc
    print(f"Deleted {label}: {path}")
    return True


def run_clean(clean_all: bool = False, start_dir=".") -> None:
    """Delete the project's build/ and, with ``clean_all``, the engine cache."""
    try:
        _, project_root = find_manifest(start_dir)
    except ConfigError:
        if not clean_all:
            raise
        print("Note: not inside a mitiru project; skipping local build/ cleanup.")
    else:
        remove_if_present(project_root / "build", "build directory")

    if clean_all:
        remove_if_present(cache_root(), "engine cache")