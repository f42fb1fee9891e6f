"""Content-addressed integrity hashing of skill directories."""

import base64
import hashlib
import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger("skillpin.integrity")

INTEGRITY_PREFIX = "sha256-"


def hash_directory(path: Path) -> str:
    """Compute a deterministic integrity hash of a directory tree.

    1. Collect regular files (symlinks and special files are skipped)
    2. sha256 each file's bytes
    3. Sort by relative posix path bytes and join as "<path>\\0<hex>\\n"
    4. sha256 the joined bytes, base64-encode, prefix with "sha256-"

    Timestamps, permissions and traversal order do not affect the result.
    """
    root = Path(path)
    # Names are hashed as their on-disk bytes; they need not be valid UTF-8
    entries = [(os.fsencode(rel), _file_digest(root / rel)) for rel in _walk_files(root)]
    entries.sort(key=lambda e: e[0])

    combined = b"".join(rel + b"\0" + digest.encode("ascii") + b"\n" for rel, digest in entries)
    digest = hashlib.sha256(combined).digest()
    return INTEGRITY_PREFIX + base64.b64encode(digest).decode("ascii")


def _walk_files(root: Path) -> list[str]:
    results: list[str] = []
    stack = [root]
    while stack:
        current = stack.pop()
        with os.scandir(current) as it:
            for entry in it:
                if entry.is_symlink():
                    continue
                if entry.is_dir(follow_symlinks=False):
                    stack.append(Path(entry.path))
                elif entry.is_file(follow_symlinks=False):
                    results.append(Path(entry.path).relative_to(root).as_posix())
    return results


def _file_digest(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def copy_dir(src: Path, dest: Path) -> None:
    """Replace dest with a copy of src. Stale files from a previous copy never linger."""
    if dest.is_symlink() or dest.is_file():
        dest.unlink()
    elif dest.exists():
        shutil.rmtree(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(src, dest, symlinks=True, ignore=shutil.ignore_patterns(".git"))
    logger.debug("Copied %s -> %s", src, dest)
