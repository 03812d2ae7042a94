"""Plain X.Y.Z version triples and lookup of the newest engine tag."""

import json
import re
import urllib.error
import urllib.request
from dataclasses import dataclass

PUBLIC_REPO = "mogmog-0110/MitiruEngine"
USER_AGENT = "mitiru-cli"
HTTP_TIMEOUT = 300.0

_NUMBER = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True, order=True)
class Semver:
    major: int
    minor: int
    patch: int

    def compare(self, other: "Semver") -> int:
        """Return -1, 0 or 1 as this version is below, equal to or above ``other``."""
        mine = (self.major, self.minor, self.patch)
        theirs = (other.major, other.minor, other.patch)
        return (mine > theirs) - (mine < theirs)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_semver(s: str) -> Semver | None:
    """Parse "0.7.0" or "v0.7.0"; anything else yields None."""
    text = s.strip()
    text = text.removeprefix("v").removeprefix("V")
    parts = text.split(".")
    if len(parts) != 3:
        return None
    numbers = []
    for part in parts:
        if not _NUMBER.fullmatch(part):
            return None
        value = int(part)
        if value < 0:
            return None
        numbers.append(value)
    return Semver(*numbers)


def _error_body(exc: urllib.error.HTTPError) -> str:
    try:
        return exc.read(1 << 14).decode("utf-8", "replace").strip()
    except Exception:
        return ""


def latest_version(timeout: float = HTTP_TIMEOUT) -> Semver:
    """Return the highest X.Y.Z tag published on the engine repository."""
    url = f"https://api.github.com/repos/{PUBLIC_REPO}/tags?per_page=100"
    request = urllib.request.Request(
        url,
        headers={"Accept": "application/vnd.github+json", "User-Agent": USER_AGENT},
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            payload = response.read()
    except urllib.error.HTTPError as exc:
        raise OSError(
            f"github tags API returned {exc.code} {exc.reason}: {_error_body(exc)}"
        ) from exc
    except OSError as exc:
        raise OSError(f"list tags on {PUBLIC_REPO}: {exc}") from exc

    try:
        tags = json.loads(payload)
    except ValueError as exc:
        raise ValueError(f"decode tags response: {exc}") from exc
    if not isinstance(tags, list):
        raise ValueError("decode tags response: expected a JSON array")

    versions = [
        version
        for tag in tags
        if isinstance(tag, dict)
        and isinstance(tag.get("name"), str)
        and (version := parse_semver(tag["name"])) is not None
    ]
    if not versions:
        raise LookupError(f"no semver tags found on {PUBLIC_REPO}")
    return max(versions)