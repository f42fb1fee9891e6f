"""Keep each agent's skills/ directory pointed at the managed store."""

import logging
import os
import shutil
from pathlib import Path

from skillpin.errors import SymlinkError
from skillpin.models import SymlinkIssue, SymlinkResult

logger = logging.getLogger("skillpin.symlinks")


def _link_target(agents_dir: Path, target_dir: Path) -> str:
    return os.path.relpath(agents_dir / "skills", target_dir)


def ensure_skills_symlink(agents_dir: Path, target_dir: Path) -> SymlinkResult:
    """Make <target_dir>/skills a relative symlink to <agents_dir>/skills.

    - absent: create the link
    - correct link: nothing to do
    - link elsewhere: replace it
    - real directory: move its entries into the store, then link. Entries
      whose name already exists in the store are kept in <target>/skills.bak
      rather than deleted.
    """
    store = agents_dir / "skills"
    link = target_dir / "skills"
    relative_target = _link_target(agents_dir, target_dir)

    if (target_dir.resolve() / "skills") == store.resolve():
        raise SymlinkError(f"{link} is the skill store itself; refusing to link it to itself")

    target_dir.mkdir(parents=True, exist_ok=True)
    store.mkdir(parents=True, exist_ok=True)

    if link.is_symlink():
        if os.readlink(link) == relative_target:
            return SymlinkResult(created=False)
        link.unlink()
        link.symlink_to(relative_target, target_is_directory=True)
        logger.info("Symlink replaced: %s -> %s", link, relative_target)
        return SymlinkResult(created=True)

    if not link.exists():
        link.symlink_to(relative_target, target_is_directory=True)
        logger.info("Symlink: %s -> %s", link, relative_target)
        return SymlinkResult(created=True)

    if not link.is_dir():
        raise SymlinkError(f"{link} exists but is not a directory or symlink")

    migrated = _migrate_directory(link, store)
    backup = None
    if any(link.iterdir()):
        backup_path = _free_path(target_dir / "skills.bak")
        link.rename(backup_path)
        backup = str(backup_path)
        logger.warning("Kept colliding entries of %s in %s", link, backup_path)
    else:
        link.rmdir()
    link.symlink_to(relative_target, target_is_directory=True)
    logger.info("Migrated %d entries from %s into the store", len(migrated), link)
    return SymlinkResult(created=True, migrated=migrated, backup=backup)


def _migrate_directory(src: Path, dest: Path) -> list[str]:
    migrated: list[str] = []
    for entry in sorted(src.iterdir()):
        target = dest / entry.name
        if target.exists() or target.is_symlink():
            continue
        shutil.move(str(entry), str(target))
        migrated.append(entry.name)
    return migrated


def _free_path(path: Path) -> Path:
    candidate = path
    n = 1
    while candidate.exists() or candidate.is_symlink():
        candidate = path.with_name(f"{path.name}.{n}")
        n += 1
    return candidate


def verify_symlinks(agents_dir: Path, targets: list[Path]) -> list[SymlinkIssue]:
    """Read-only audit of <target>/skills for each target."""
    issues: list[SymlinkIssue] = []
    for target in targets:
        link = target / "skills"
        expected = _link_target(agents_dir, target)
        if link.is_symlink():
            current = os.readlink(link)
            if current != expected:
                issues.append(SymlinkIssue(
                    target=str(target),
                    issue=f"{link} points to {current}, expected {expected}",
                ))
        elif link.exists():
            issues.append(SymlinkIssue(target=str(target), issue=f"{link} is not a symlink"))
        else:
            issues.append(SymlinkIssue(target=str(target), issue=f"{link} does not exist"))
    return issues
