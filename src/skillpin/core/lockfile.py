"""agents.lock reader and writer."""

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from skillpin.errors import LockfileError
from skillpin.models import Lockfile

logger = logging.getLogger("skillpin.lockfile")


def load_lockfile(path: Path) -> Lockfile | None:
    """Load and validate agents.lock. Returns None if it doesn't exist yet."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise LockfileError(f"Cannot read lockfile {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise LockfileError(f"Invalid JSON in lockfile {path}: {e}") from e

    try:
        return Lockfile.model_validate(data)
    except ValidationError as e:
        raise LockfileError(f"Invalid lockfile schema in {path}:\n{e}") from e


def dump_lockfile(lockfile: Lockfile) -> str:
    """Serialize with skills sorted by name; the kind tag stays implicit on disk."""
    skills = {
        name: lockfile.skills[name].model_dump(exclude={"kind"}, exclude_none=True)
        for name in sorted(lockfile.skills)
    }
    return json.dumps({"version": lockfile.version, "skills": skills}, indent=2) + "\n"


def write_lockfile(path: Path, lockfile: Lockfile) -> None:
    """Write agents.lock via a temp file + rename so readers never see half a file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(dump_lockfile(lockfile))
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    logger.debug("Wrote lockfile %s (%d skills)", path, len(lockfile.skills))
