"""Best-effort provisioning steps: env file, TLS material, SQLite schema.

None of these raise; problems are logged as warnings and reported through
the return value.
"""

from __future__ import annotations

import logging
import shutil
import sqlite3
from pathlib import Path

from .config import TLSConfig

logger = logging.getLogger("zipdeploy.provision")


def ensure_env_file(backend_dir: Path) -> bool:
    """Copy ``.env.example`` to ``.env`` when the latter is missing.

    Returns True if a ``.env`` exists afterwards.
    """
    env_file = backend_dir / ".env"
    example = backend_dir / ".env.example"
    if env_file.exists():
        return True
    if example.exists():
        shutil.copyfile(example, env_file)
        logger.info(f"Created {backend_dir.name}/.env from .env.example")
        return True
    logger.warning(f"No .env or .env.example found in {backend_dir.name}/. Proceeding anyway.")
    return False


def provision_tls(tls: TLSConfig, backend_dir: Path) -> list[Path]:
    """Copy certificate and key into ``<backend>/<target_subdir>``."""
    if not tls.source:
        logger.debug("No TLS source configured; skipping")
        return []

    source = Path(tls.source).expanduser()
    target_dir = backend_dir / tls.target_subdir
    copied: list[Path] = []
    for name in (tls.cert, tls.key):
        src = source / name
        if not src.is_file():
            logger.warning(f"TLS file not found: {src}")
            continue
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            dst = target_dir / name
            shutil.copyfile(src, dst)
            dst.chmod(0o600)
        except OSError as e:
            logger.warning(f"Could not copy {src}: {e}")
            continue
        copied.append(dst)

    if copied:
        logger.info(f"Provisioned {len(copied)} TLS file(s) into {target_dir}")
    return copied


def init_database(database_dir: Path, schema: str = "schema.sql", db_name: str = "app.db") -> bool:
    """Create ``app.db`` from ``schema.sql`` if the database does not exist yet.

    Returns True only when a new database was created.
    """
    schema_path = database_dir / schema
    db_path = database_dir / db_name
    if not schema_path.is_file():
        return False
    if db_path.exists():
        logger.info(f"{database_dir.name}/{db_name} already exists. Skipping DB init.")
        return False

    try:
        script = schema_path.read_text(encoding="utf-8")
        conn = sqlite3.connect(db_path)
        try:
            conn.executescript(script)
            conn.commit()
        finally:
            conn.close()
    except (OSError, sqlite3.Error) as e:
        logger.warning(f"SQLite init failed: {e}")
        if db_path.exists():
            db_path.unlink()
        return False

    logger.info(f"Created {database_dir.name}/{db_name} from {schema}")
    return True
