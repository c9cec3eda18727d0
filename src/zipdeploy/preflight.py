"""Checks for external tools the deployment needs."""

import logging
import shutil
from typing import Callable, Iterable, Optional

from .errors import PreconditionError

logger = logging.getLogger("zipdeploy.preflight")


def need_cmd(name: str, which: Callable[[str], Optional[str]] = shutil.which) -> str:
    """Return the resolved path of ``name`` or raise PreconditionError."""
    path = which(name)
    if not path:
        raise PreconditionError(f"Missing required command: {name}")
    return path


def check_required_tools(
    tools: Iterable[str],
    which: Callable[[str], Optional[str]] = shutil.which,
) -> dict[str, str]:
    found: dict[str, str] = {}
    missing: list[str] = []
    for tool in tools:
        try:
            found[tool] = need_cmd(tool, which)
        except PreconditionError:
            missing.append(tool)
    if missing:
        raise PreconditionError(f"Missing required command(s): {', '.join(missing)}")
    logger.debug(f"Preflight tools: {found}")
    return found
