"""
Semantic version utilities.

Supports the constraint forms used by inventories and source
references: ``*``, ``^1.2.3``, ``~1.2.3``, ``>=``, ``<=``, ``>``, ``<``
and exact versions.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

SEMVER_RE = re.compile(
    r"^(\d+)\.(\d+)\.(\d+)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


@dataclass(frozen=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None
    build: Optional[str] = None

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text


def is_valid(version: str) -> bool:
    return isinstance(version, str) and SEMVER_RE.match(version) is not None


def parse(version: str) -> Optional[SemVer]:
    """Parse ``version`` into components, or ``None`` if malformed."""
    if not isinstance(version, str):
        return None
    match = SEMVER_RE.match(version)
    if match is None:
        return None
    return SemVer(
        major=int(match.group(1)),
        minor=int(match.group(2)),
        patch=int(match.group(3)),
        prerelease=match.group(4),
        build=match.group(5),
    )


def compare(left: str, right: str) -> int:
    """
    Compare two versions.

    Returns a negative number, zero or a positive number. Build metadata
    is ignored; a prerelease sorts before its release.

    Raises:
        ValueError: If either version is malformed
    """
    a, b = parse(left), parse(right)
    if a is None or b is None:
        raise ValueError(f"Invalid version format: {left!r} / {right!r}")

    for x, y in ((a.major, b.major), (a.minor, b.minor), (a.patch, b.patch)):
        if x != y:
            return x - y

    if a.prerelease and not b.prerelease:
        return -1
    if b.prerelease and not a.prerelease:
        return 1
    if a.prerelease and b.prerelease and a.prerelease != b.prerelease:
        return -1 if a.prerelease < b.prerelease else 1
    return 0


def satisfies(version: str, constraint: Optional[str]) -> bool:
    """Check whether ``version`` satisfies ``constraint``."""
    if not constraint:
        return True
    constraint = constraint.strip()
    if constraint in ("*", "x", "latest"):
        return True

    try:
        if constraint.startswith("^"):
            target = parse(constraint[1:].strip())
            current = parse(version)
            if target is None or current is None:
                return False
            return current.major == target.major and compare(version, str(target)) >= 0

        if constraint.startswith("~"):
            target = parse(constraint[1:].strip())
            current = parse(version)
            if target is None or current is None:
                return False
            return (
                current.major == target.major
                and current.minor == target.minor
                and compare(version, str(target)) >= 0
            )

        for op in (">=", "<=", ">", "<"):
            if constraint.startswith(op):
                result = compare(version, constraint[len(op):].strip())
                return {
                    ">=": result >= 0,
                    "<=": result <= 0,
                    ">": result > 0,
                    "<": result < 0,
                }[op]
    except ValueError:
        return False

    return version == constraint


def latest(versions: Iterable[str]) -> Optional[str]:
    """Highest valid version, or ``None``."""
    valid = [v for v in versions if is_valid(v)]
    if not valid:
        return None
    best = valid[0]
    for candidate in valid[1:]:
        if compare(candidate, best) > 0:
            best = candidate
    return best


def matching(versions: Iterable[str], constraint: str) -> List[str]:
    return [v for v in versions if satisfies(v, constraint)]


def increment(version: str, part: str) -> str:
    parsed = parse(version)
    if parsed is None:
        raise ValueError(f"Invalid version format: {version!r}")
    if part == "major":
        return f"{parsed.major + 1}.0.0"
    if part == "minor":
        return f"{parsed.major}.{parsed.minor + 1}.0"
    if part == "patch":
        return f"{parsed.major}.{parsed.minor}.{parsed.patch + 1}"
    raise ValueError(f"Invalid increment type: {part!r}")


def is_prerelease(version: str) -> bool:
    parsed = parse(version)
    return bool(parsed and parsed.prerelease)
