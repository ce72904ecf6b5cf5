"""Strategies mapping an ``<img src>`` reference to a file on disk."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional, Protocol
from urllib.parse import unquote, urlsplit

__all__ = [
    "CallableResolver",
    "DocumentRootResolver",
    "FilesystemResolver",
    "PathResolverProtocol",
]

_REMOTE_SCHEMES = frozenset({"http", "https", "data", "ftp", "blob"})


class PathResolverProtocol(Protocol):
    def resolve(self, reference: str) -> Optional[Path]: ...


class FilesystemResolver:
    """Treat the reference as a filesystem path, optionally relative to ``base_dir``."""

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir = base_dir

    def resolve(self, reference: str) -> Optional[Path]:
        if not reference:
            return None
        path = Path(reference)
        if self.base_dir is not None and not path.is_absolute():
            path = self.base_dir / path
        return path


class DocumentRootResolver:
    """
    Map URL paths onto a web document root.

    ``/media/a.jpg`` resolves to ``<root>/media/a.jpg``; remote and ``data:`` URIs are
    left unresolved and query strings/fragments are ignored. ``url_prefix`` is
    stripped from the path first when present.
    """

    def __init__(self, root: Path, *, url_prefix: str = "") -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def resolve(self, reference: str) -> Optional[Path]:
        if not reference:
            return None
        parts = urlsplit(reference.strip())
        if parts.scheme.lower() in _REMOTE_SCHEMES or parts.netloc:
            return None
        url_path = unquote(parts.path)
        if self.url_prefix and url_path.startswith(self.url_prefix + "/"):
            url_path = url_path[len(self.url_prefix):]
        relative = url_path.lstrip("/")
        if not relative:
            return None
        candidate = (self.root / relative).resolve()
        try:
            candidate.relative_to(self.root.resolve())
        except ValueError:
            return None
        return candidate


class CallableResolver:
    """Adapt a plain ``reference -> path`` function."""

    def __init__(self, func: Callable[[str], Path | str | None]) -> None:
        self.func = func

    def resolve(self, reference: str) -> Optional[Path]:
        result = self.func(reference)
        if not result:
            return None
        return Path(result)
