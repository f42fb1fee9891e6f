"""Inventory tools: list skill status and reconcile drift."""

import logging
from pathlib import Path

from skillpin.config import Scope, resolve_scope
from skillpin.core.installer import run_list, run_sync
from skillpin.errors import SkillpinError
from skillpin.models import SyncResult

logger = logging.getLogger("skillpin.tools")


async def list_skills(scope: Scope = "project", project_root: Path | None = None) -> dict:
    """List declared skills with their lock and integrity status.

    Args:
        scope: "project" or "user"
        project_root: Project directory (default: cwd)

    Returns:
        Dictionary with the store location and one entry per skill.
    """
    try:
        root = resolve_scope(scope, project_root)
        statuses = await run_list(root)
    except SkillpinError as e:
        return {"error": str(e)}

    return {
        "total": len(statuses),
        "skills_dir": str(root.skills_dir),
        "skills": [s.model_dump() for s in statuses],
    }


async def sync_skills(scope: Scope = "project", project_root: Path | None = None) -> SyncResult:
    """Adopt orphans, report missing/modified skills, repair symlinks and agent configs."""
    try:
        return await run_sync(resolve_scope(scope, project_root))
    except SkillpinError as e:
        logger.error("Sync failed: %s", e)
        return SyncResult(success=False, errors=[str(e)])
