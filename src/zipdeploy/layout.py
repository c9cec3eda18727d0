"""Project layout detection for extracted archives.

Archive tools differ in whether they wrap contents in a top-level folder, so
the backend directory is searched shallowest-first: the extraction root, then
a single wrapping folder, then any folder two levels down.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import LayoutNotFound

logger = logging.getLogger("zipdeploy.layout")

# Directories archive tools add next to the real content.
IGNORED_DIRS = {"__MACOSX"}


def _subdirs(path: Path) -> list[Path]:
    return sorted(
        p for p in path.iterdir()
        if p.is_dir() and p.name not in IGNORED_DIRS and not p.name.startswith(".")
    )


def has_backend(path: Path, backend_subdir: str) -> bool:
    return (path / backend_subdir).is_dir()


def detect_project_root(root: str | Path, backend_subdir: str = "backend") -> Path:
    """Return the directory that directly contains ``backend_subdir``.

    Raises:
        LayoutNotFound: if the backend folder is not within two levels of ``root``.
    """
    root = Path(root).resolve()
    if not root.is_dir():
        raise LayoutNotFound(root, backend_subdir)

    if has_backend(root, backend_subdir):
        logger.debug(f"Flat layout: {root}")
        return root

    children = _subdirs(root)
    if len(children) == 1 and has_backend(children[0], backend_subdir):
        logger.debug(f"Single wrapping folder: {children[0]}")
        return children[0]

    for child in children:
        if has_backend(child, backend_subdir):
            logger.debug(f"Found {backend_subdir} two levels deep in {child}")
            return child

    raise LayoutNotFound(root, backend_subdir)
