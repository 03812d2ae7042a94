"""Project name validation and C++-safe identifier forms."""

import re

_PROJECT_NAME = re.compile(r"[A-Za-z][A-Za-z0-9_-]*")


def validate_project_name(name: str) -> str:
    """Return ``name`` if it is a valid project name, else raise ValueError."""
    if not _PROJECT_NAME.fullmatch(name):
        raise ValueError(
            f"new: invalid project name {name!r}: must start with a letter and "
            "contain only A-Z, a-z, 0-9, '_', '-'"
        )
    return name


def to_upper_snake(s: str) -> str:
    """UPPER_SNAKE_CASE form, e.g. "myGame" -> "MY_GAME"."""
    out: list[str] = []
    prev_was_upper = True
    for index, ch in enumerate(s):
        if ch in "-_":
            if out and out[-1] != "_":
                out.append("_")
            prev_was_upper = True
        elif "A" <= ch <= "Z":
            if index > 0 and not prev_was_upper and out and out[-1] != "_":
                out.append("_")
            out.append(ch)
            prev_was_upper = True
        else:
            out.append(ch.upper() if "a" <= ch <= "z" else ch)
            prev_was_upper = False
    return "".join(out)


def to_lower_snake(s: str) -> str:
    """lower_snake_case form usable as a C++ namespace, e.g. "my-game" -> "my_game"."""
    return "".join(
        ch.lower() if "A" <= ch <= "Z" else ch for ch in to_upper_snake(s)
    )