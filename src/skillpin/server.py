"""skillpin MCP server.

Provides 6 tools for declarative, lockfile-pinned skill management:
- add_skill: Declare a skill (or every skill of a source) in agents.toml and install it
- install_skills: Resolve agents.toml, install into the store, write agents.lock
- update_skills: Move git skills to the newest commit of their ref
- sync_skills: Adopt orphans, report drift, repair symlinks and agent configs
- remove_skill: Drop a skill from agents.toml, agents.lock and the store
- list_skills: Per-skill status (ok, modified, missing, unlocked)
"""

import json
import logging
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from skillpin.config import Scope

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

mcp = FastMCP(
    "skillpin",
    instructions=(
        "skillpin installs agent skills declared in agents.toml and pins them in agents.lock. "
        "Use add_skill to declare a new skill, or install_skills after editing agents.toml by hand. "
        "Use install_skills with frozen=true in CI. "
        "Use sync_skills to pick up skills dropped into .agents/skills by hand. "
        "Use list_skills to see which skills are locally modified or missing."
    ),
)


def _root(project_root: str) -> Path | None:
    return Path(project_root) if project_root else None


@mcp.tool()
async def install_skills(
    project_root: str = "", scope: Scope = "project", frozen: bool = False, force: bool = False
) -> str:
    """Install every skill declared in agents.toml and write agents.lock.

    Args:
        project_root: Directory holding agents.toml (default: server cwd)
        scope: "project" or "user"
        frozen: Never change agents.lock; fail on any integrity mismatch
        force: Ignore locked commits and re-resolve refs
    """
    from skillpin.tools.install import install_skills as _install

    result = await _install(scope=scope, project_root=_root(project_root), frozen=frozen, force=force)
    return json.dumps(result.model_dump(), indent=2)


@mcp.tool()
async def add_skill(
    source: str,
    name: str = "",
    ref: str = "",
    all_skills: bool = False,
    project_root: str = "",
    scope: Scope = "project",
) -> str:
    """Add a skill to agents.toml and install it.

    Args:
        source: owner/repo[@ref], a GitHub URL, git:<url> or path:<dir>
        name: Skill to pick when the source holds several
        ref: Branch, tag or commit (overrides an inline @ref)
        all_skills: Add every skill of the source as a name = "*" entry
        project_root: Directory holding agents.toml (default: server cwd)
        scope: "project" or "user"
    """
    from skillpin.tools.install import add_skill as _add

    result = await _add(
        source=source,
        name=name or None,
        ref=ref or None,
        all_skills=all_skills,
        scope=scope,
        project_root=_root(project_root),
    )
    return json.dumps(result.model_dump(), indent=2)


@mcp.tool()
async def update_skills(name: str = "", project_root: str = "", scope: Scope = "project") -> str:
    """Update git skills to the latest commit of their ref.

    Args:
        name: Only update this skill (default: all)
        project_root: Directory holding agents.toml (default: server cwd)
        scope: "project" or "user"
    """
    from skillpin.tools.install import update_skills as _update

    result = await _update(name=name or None, scope=scope, project_root=_root(project_root))
    return json.dumps(result.model_dump(), indent=2)


@mcp.tool()
async def sync_skills(project_root: str = "", scope: Scope = "project") -> str:
    """Reconcile agents.toml, agents.lock and the installed store.

    Args:
        project_root: Directory holding agents.toml (default: server cwd)
        scope: "project" or "user"
    """
    from skillpin.tools.inventory import sync_skills as _sync

    result = await _sync(scope=scope, project_root=_root(project_root))
    return json.dumps(result.model_dump(), indent=2)


@mcp.tool()
async def remove_skill(name: str, project_root: str = "", scope: Scope = "project") -> str:
    """Remove a skill from agents.toml, agents.lock and the store.

    Args:
        name: Skill name to remove
        project_root: Directory holding agents.toml (default: server cwd)
        scope: "project" or "user"
    """
    from skillpin.tools.install import remove_skill as _remove

    result = await _remove(name=name, scope=scope, project_root=_root(project_root))
    return json.dumps(result.model_dump(), indent=2)


@mcp.tool()
async def list_skills(project_root: str = "", scope: Scope = "project") -> str:
    """List declared skills with commit and integrity status.

    Args:
        project_root: Directory holding agents.toml (default: server cwd)
        scope: "project" or "user"
    """
    from skillpin.tools.inventory import list_skills as _list

    result = await _list(scope=scope, project_root=_root(project_root))
    return json.dumps(result, indent=2)


def main():
    """Entry point for the MCP server."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
