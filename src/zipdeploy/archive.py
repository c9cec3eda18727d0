"""Locate and unpack the application archive."""

from __future__ import annotations

import logging
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Iterable, Optional

from .errors import ArchiveError, PreconditionError

logger = logging.getLogger("zipdeploy.archive")


def resolve_archive(candidates: Iterable[str], base: Optional[Path] = None) -> Path:
    """Return the first candidate that exists.

    Candidates may be glob patterns (``bundle/*.zip``); matches are tried in
    sorted order. Relative candidates are resolved against ``base``.
    """
    base = Path(base) if base is not None else Path.cwd()
    tried: list[str] = []
    for candidate in candidates:
        tried.append(candidate)
        if any(ch in candidate for ch in "*?["):
            matches = sorted(p for p in base.glob(candidate) if p.is_file())
            if matches:
                return matches[0].resolve()
            continue
        path = Path(candidate)
        if not path.is_absolute():
            path = base / path
        if path.is_file():
            return path.resolve()
    raise PreconditionError(
        "Archive not found at: " + ", ".join(tried)
        + "\n   Put your archive there or set ZIPDEPLOY_ARCHIVE / archive_candidates"
    )


def _inside(path: Path, dest: Path) -> bool:
    return path == dest or dest in path.parents


def _check_zip(archive: Path, dest: Path) -> int:
    with zipfile.ZipFile(archive) as zf:
        names = zf.namelist()
    for name in names:
        if not _inside((dest / name).resolve(), dest):
            raise ArchiveError(f"Archive member escapes the workspace: {name}")
    return len(names)


def _check_tar(archive: Path, dest: Path) -> int:
    with tarfile.open(archive) as tf:
        members = tf.getmembers()
    for member in members:
        target = (dest / member.name).resolve()
        if not _inside(target, dest):
            raise ArchiveError(f"Archive member escapes the workspace: {member.name}")
        if member.issym():
            link = (target.parent / member.linkname).resolve()
        elif member.islnk():
            link = (dest / member.linkname).resolve()
        else:
            continue
        if not _inside(link, dest):
            raise ArchiveError(
                f"Archive link escapes the workspace: {member.name} -> {member.linkname}"
            )
    return len(members)


def _check_workdir(archive: Path, workdir: Path, base: Optional[Path]) -> None:
    # The workspace is wiped before extraction.
    if _inside(archive.resolve(), workdir):
        raise ArchiveError(f"Archive {archive} lies inside the workspace {workdir}; it would be deleted")
    if base is not None and _inside(Path(base).resolve(), workdir):
        raise ArchiveError(f"Workspace {workdir} must be a subdirectory of {base}")


def extract_archive(archive: str | Path, workdir: str | Path, base: Optional[Path] = None) -> Path:
    """Recreate ``workdir`` and unpack ``archive`` into it.

    Raises:
        ArchiveError: if the archive is unreadable, lives inside ``workdir``,
            ``workdir`` contains ``base``, or a member or link would land
            outside ``workdir``.
    """
    archive = Path(archive)
    workdir = Path(workdir).resolve()
    _check_workdir(archive, workdir, base)

    if zipfile.is_zipfile(archive):
        is_zip = True
        count = _check_zip(archive, workdir)
    elif tarfile.is_tarfile(archive):
        is_zip = False
        count = _check_tar(archive, workdir)
    else:
        raise ArchiveError(f"Unsupported archive format: {archive}")

    if workdir.exists():
        logger.debug(f"Removing previous workspace {workdir}")
        shutil.rmtree(workdir)
    workdir.mkdir(parents=True)

    try:
        if is_zip:
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(workdir)
        else:
            with tarfile.open(archive) as tf:
                if hasattr(tarfile, "data_filter"):
                    tf.extractall(workdir, filter="data")
                else:
                    tf.extractall(workdir)
    except (zipfile.BadZipFile, tarfile.TarError, OSError) as e:
        raise ArchiveError(f"Could not extract {archive}: {e}") from e

    logger.info(f"Extracted {archive.name} -> {workdir} ({count} entries)")
    return workdir
