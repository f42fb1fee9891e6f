"""Add, install, update and remove tools for skill management."""

import logging
from pathlib import Path

from skillpin.config import Scope, resolve_scope
from skillpin.core.installer import run_add, run_install, run_remove, run_update
from skillpin.errors import SkillpinError
from skillpin.models import AddResult, InstallResult, RemoveResult, UpdateResult

logger = logging.getLogger("skillpin.tools")


async def install_skills(
    scope: Scope = "project",
    project_root: Path | None = None,
    frozen: bool = False,
    force: bool = False,
) -> InstallResult:
    """Install every skill declared in agents.toml.

    Pipeline: resolve -> stage + hash -> move into store -> agents.lock -> symlinks.

    Args:
        scope: "project" (agents.toml in project_root) or "user" (~/.agents)
        project_root: Project directory (default: cwd)
        frozen: Fail instead of changing agents.lock; verify every integrity hash
        force: Ignore locked commits and re-resolve every ref

    Returns:
        InstallResult with installed names, warnings, and any errors.
    """
    try:
        return await run_install(resolve_scope(scope, project_root), frozen=frozen, force=force)
    except SkillpinError as e:
        logger.error("Install failed: %s", e)
        return InstallResult(success=False, errors=[str(e)])


async def update_skills(
    name: str | None = None,
    scope: Scope = "project",
    project_root: Path | None = None,
) -> UpdateResult:
    """Move git skills to the latest commit of their ref.

    Args:
        name: Only update this skill (default: all)
        scope: "project" or "user"
        project_root: Project directory (default: cwd)
    """
    try:
        return await run_update(resolve_scope(scope, project_root), skill_name=name)
    except SkillpinError as e:
        logger.error("Update failed: %s", e)
        return UpdateResult(success=False, errors=[str(e)])


async def remove_skill(
    name: str,
    scope: Scope = "project",
    project_root: Path | None = None,
) -> RemoveResult:
    """Remove a skill from agents.toml, agents.lock and the store."""
    try:
        return await run_remove(resolve_scope(scope, project_root), name)
    except SkillpinError as e:
        logger.error("Remove failed: %s", e)
        return RemoveResult(skill_name=name, success=False, errors=[str(e)])


async def add_skill(
    source: str,
    name: str | None = None,
    ref: str | None = None,
    all_skills: bool = False,
    scope: Scope = "project",
    project_root: Path | None = None,
) -> AddResult:
    """Add a skill to agents.toml and install it.

    Args:
        source: owner/repo[@ref], a GitHub URL, git:<url> or path:<dir>
        name: Skill to pick when the source holds several
        ref: Branch, tag or commit (overrides an inline @ref)
        all_skills: Add every skill of the source as a name = "*" entry
        scope: "project" or "user"
        project_root: Project directory (default: cwd)
    """
    try:
        return await run_add(
            resolve_scope(scope, project_root), source, ref=ref, name=name, all_skills=all_skills
        )
    except SkillpinError as e:
        logger.error("Add failed: %s", e)
        return AddResult(name=name or "", success=False, errors=[str(e)])
