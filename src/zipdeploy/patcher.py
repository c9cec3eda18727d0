"""Rewrite hardcoded privileged ports in the application's startup file.

Only literal ``.listen(80`` and ``.listen(443`` calls are recognised. Other
ways of binding those ports are left alone.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from enum import Enum
from pathlib import Path
from typing import Optional

logger = logging.getLogger("zipdeploy.patcher")

ENTRYPOINT_CANDIDATES = ("server.js", "index.js", "app.js")

BACKUP_SUFFIX = ".bak"

_LISTEN_HTTP = re.compile(r"\.listen\(\s*80(?!\d)")
_LISTEN_HTTPS = re.compile(r"\.listen\(\s*443(?!\d)")


class PatchResult(str, Enum):
    PATCHED = "patched"
    UNCHANGED = "unchanged"


def patch_source(text: str, http_port: int, https_port: int) -> tuple[str, int]:
    """Return the rewritten text and the number of replacements made."""
    text, n_http = _LISTEN_HTTP.subn(
        f".listen(Number(process.env.HTTP_PORT) || {int(http_port)}", text
    )
    text, n_https = _LISTEN_HTTPS.subn(
        f".listen(Number(process.env.HTTPS_PORT) || {int(https_port)}", text
    )
    return text, n_http + n_https


def patch_privileged_ports(source_file: str | Path, http_port: int, https_port: int) -> PatchResult:
    """Patch ``source_file`` in place, keeping a ``.bak`` copy of the original."""
    source_file = Path(source_file)
    original = source_file.read_text(encoding="utf-8")
    patched, count = patch_source(original, http_port, https_port)
    if count == 0:
        logger.debug(f"No privileged port bindings in {source_file.name}")
        return PatchResult.UNCHANGED

    backup = source_file.with_name(source_file.name + BACKUP_SUFFIX)
    if not backup.exists():
        shutil.copy2(source_file, backup)
    source_file.write_text(patched, encoding="utf-8")
    logger.info(
        f"Patched {count} privileged port binding(s) in {source_file.name} "
        f"(HTTP {http_port}, HTTPS {https_port}); original saved as {backup.name}"
    )
    return PatchResult.PATCHED


def find_entrypoint(backend_dir: str | Path) -> Optional[Path]:
    """Locate the backend's startup file.

    ``package.json`` ``main`` wins; otherwise the first of server.js, index.js
    and app.js that exists.
    """
    backend_dir = Path(backend_dir)
    pkg = backend_dir / "package.json"
    if pkg.is_file():
        try:
            main = json.loads(pkg.read_text(encoding="utf-8")).get("main")
        except (json.JSONDecodeError, AttributeError):
            logger.warning(f"Could not parse {pkg}")
            main = None
        if isinstance(main, str) and main.strip():
            candidate = backend_dir / main.strip()
            if candidate.is_file():
                return candidate

    for name in ENTRYPOINT_CANDIDATES:
        candidate = backend_dir / name
        if candidate.is_file():
            return candidate
    return None
