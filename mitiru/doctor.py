"""Checking that the build prerequisites are installed."""

import glob
import os
import shutil
import sys
from dataclasses import dataclass
from typing import Callable

from mitiru.config import ConfigError, find_manifest
from mitiru.determinism import print_determinism_report, run_determinism_lint

_VCVARS_CANDIDATES = (
    r"C:\Program Files\Microsoft Visual Studio\18\Community\VC\Auxiliary\Build\vcvars64.bat",
    r"C:\Program Files\Microsoft Visual Studio\2022\Community\VC\Auxiliary\Build\vcvars64.bat",
    r"C:\Program Files\Microsoft Visual Studio\2022\Professional\VC\Auxiliary\Build\vcvars64.bat",
    r"C:\Program Files\Microsoft Visual Studio\2022\Enterprise\VC\Auxiliary\Build\vcvars64.bat",
    r"C:\Program Files\Microsoft Visual Studio\2022\BuildTools\VC\Auxiliary\Build\vcvars64.bat",
)
_VCVARS_GLOB = r"C:\Program Files\Microsoft Visual Studio\*\*\VC\Auxiliary\Build\vcvars64.bat"
_VS_CMAKE_GLOB = (
    r"C:\Program Files\Microsoft Visual Studio\*\*\Common7\IDE\CommonExtensions"
    r"\Microsoft\CMake\CMake\bin\cmake.exe"
)
_WINDOWS_KITS = r"C:\Program Files (x86)\Windows Kits\10"


@dataclass
class Check:
    name: str
    hint: str
    done_fn: Callable[[], bool]


def has_cmake() -> bool:
    """True for cmake on PATH or the CMake bundled with Visual Studio."""
    if shutil.which("cmake"):
        return True
    return bool(glob.glob(_VS_CMAKE_GLOB))


def has_vcvars64() -> bool:
    """True when a Visual Studio vcvars64.bat can be found."""
    if any(os.path.exists(p) for p in _VCVARS_CANDIDATES):
        return True
    return bool(glob.glob(_VCVARS_GLOB))


def has_windows_sdk() -> bool:
    """True when WindowsSdkDir is set or the Windows Kits directory exists."""
    return bool(os.environ.get("WindowsSdkDir")) or os.path.isdir(_WINDOWS_KITS)


def _checks() -> list[Check]:
    return [
        Check(
            "OS",
            "Windows is the primary supported platform",
            lambda: sys.platform.startswith("win"),
        ),
        Check(
            "CMake",
            "Install CMake (or 'winget install Kitware.CMake'). Alternatively, install "
            "Visual Studio 2022 with the 'C++ CMake tools for Windows' component.",
            has_cmake,
        ),
        Check(
            "git",
            "Install git (or 'winget install Git.Git')",
            lambda: shutil.which("git") is not None,
        ),
        Check(
            "Visual Studio Build Tools",
            "Install Visual Studio 2022 Build Tools (C++ workload). "
            "vcvars64.bat must exist.",
            has_vcvars64,
        ),
        Check("Windows SDK", "Installed alongside Visual Studio 2022.", has_windows_sdk),
    ]


def run_doctor(start_dir=".") -> None:
    """Report each prerequisite; raise RuntimeError when any is missing.

    When everything is present and ``start_dir`` is inside a project, the
    determinism lint report follows (warnings only).
    """
    all_ok = True
    for check in _checks():
        ok = check.done_fn()
        mark = "OK" if ok else "MISSING"
        print(f"  [{mark:<7}] {check.name}")
        if not ok:
            all_ok = False
            print(f"            hint: {check.hint}")

    if not all_ok:
        print()
        print("Some prerequisites are missing. See hints above.")
        raise RuntimeError("doctor: prerequisites missing")

    print()
    print("All prerequisites look good.")

    try:
        _, project_root = find_manifest(start_dir)
    except ConfigError:
        return
    print_determinism_report(run_determinism_lint(project_root))