"""``config/database.yml`` that reads ``DATABASE_URL`` when the app boots."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DATABASE_YML = Path("config") / "database.yml"


def write_database_yml(build_dir: Path, template: Path) -> Path | None:
    """Write the ERB database config into an app with a ``config/`` directory.

    Any existing ``config/database.yml`` is replaced. Returns the written
    path, or ``None`` when the app has no ``config/`` directory.
    """
    build_dir = Path(build_dir)
    if not (build_dir / DATABASE_YML.parent).is_dir():
        return None
    target = build_dir / DATABASE_YML
    logger.info("Writing config/database.yml to read from DATABASE_URL")
    target.write_text(template.read_text(encoding="utf-8"), encoding="utf-8")
    return target
