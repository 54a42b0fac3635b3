"""
URL utilities for sources and cargo entries.
"""

from urllib.parse import urlsplit

INVENTORY_FILENAME = "expozr.inventory.json"


def normalize_url(url: str) -> str:
    """Strip a single trailing slash."""
    return url[:-1] if url.endswith("/") else url


def join_url(base: str, *parts: str) -> str:
    """
    Join a base location with path segments.

    Example:
        join_url("http://cdn/app/", "/lib", "math.py") -> "http://cdn/app/lib/math.py"
    """
    joined = normalize_url(base)
    for part in parts:
        if not part:
            continue
        clean = part.strip("/")
        if clean.startswith("./"):
            clean = clean[2:]
        if clean:
            joined = f"{joined}/{clean}"
    return joined


def inventory_url(source_url: str) -> str:
    """Well-known inventory location under a source base URL."""
    return join_url(source_url, INVENTORY_FILENAME)


def module_url(source_url: str, entry: str) -> str:
    return join_url(source_url, entry)


def cargo_key(source: str, cargo: str, version: str = "") -> str:
    """Unique key of a (source, cargo) pair."""
    suffix = f"@{version}" if version else ""
    return f"{source}:{cargo}{suffix}"


def is_valid_url(url: str) -> bool:
    """Absolute URL with scheme and location, or a relative path."""
    if not isinstance(url, str) or not url:
        return False
    parts = urlsplit(url)
    if parts.scheme in ("http", "https"):
        return bool(parts.netloc)
    if parts.scheme == "file":
        return bool(parts.path)
    return url.startswith(("/", "./", "../"))


def file_extension(url: str) -> str:
    """Lower-cased final extension without the dot."""
    path = url.split("?", 1)[0].split("#", 1)[0]
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()
