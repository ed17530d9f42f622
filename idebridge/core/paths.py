"""Path normalization and prefix ownership checks."""

import os
import posixpath
import sys
from pathlib import Path

SEPARATOR = "/"


def is_case_insensitive_host() -> bool:
    return sys.platform in ("win32", "cygwin") or os.name == "nt"


def normalize_path(path: str, case_insensitive: bool | None = None) -> str:
    """Normalize separators, collapse ``.``/``..`` segments and trailing separators,
    case-fold when the host ignores case."""
    normalized = path.replace("\\", SEPARATOR)
    if normalized:
        normalized = posixpath.normpath(normalized)
    fold = is_case_insensitive_host() if case_insensitive is None else case_insensitive
    return normalized.casefold() if fold else normalized


def canonical_path(path: str | Path) -> str:
    """Absolute form of ``path`` with symlinks resolved, in forward-slash notation.

    Missing trailing components are kept as given.
    """
    return Path(str(path).replace("\\", SEPARATOR)).expanduser().resolve(strict=False).as_posix()


def is_under(path: str, root: str) -> bool:
    """Both arguments must already be normalized."""
    if path == root:
        return True
    prefix = root if root.endswith(SEPARATOR) else root + SEPARATOR
    return path.startswith(prefix)


def longest_root(path: str, roots: list[str], case_insensitive: bool | None = None) -> str | None:
    """Return the most specific root containing ``path``, or None.

    The returned value is the root as given, not its normalized form.
    """
    target = normalize_path(path, case_insensitive)
    best: str | None = None
    best_length = -1
    for root in roots:
        normalized_root = normalize_path(root, case_insensitive)
        if is_under(target, normalized_root) and len(normalized_root) > best_length:
            best = root
            best_length = len(normalized_root)
    return best
