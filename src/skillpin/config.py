"""Configuration for skillpin."""

from pathlib import Path
from typing import Literal, get_args

from pydantic import BaseModel
from pydantic_settings import BaseSettings

from skillpin.errors import ScopeError

Scope = Literal["project", "user"]


class Settings(BaseSettings):
    """Skillpin configuration loaded from environment and .env file."""

    # Global object cache (git checkouts shared by every project)
    state_dir: Path = Path.home() / ".local" / "skillpin"

    # Unpinned checkouts older than this are re-fetched
    cache_ttl: int = 86400  # 24 hours

    # Root of the user scope (~/.agents holds agents.toml, agents.lock, skills/)
    user_home: Path = Path.home() / ".agents"

    # External version-control executable
    git_executable: str = "git"
    max_output_bytes: int = 50 * 1024 * 1024

    manifest_file: str = "agents.toml"
    lock_file: str = "agents.lock"

    model_config = {"env_prefix": "SKILLPIN_", "env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


class ScopeRoot(BaseModel):
    """Resolved paths for one scope."""

    scope: Scope
    root: Path  # project root, or user_home for the user scope
    agents_dir: Path  # .agents/ (same as root for the user scope)
    manifest_path: Path
    lock_path: Path
    skills_dir: Path

    def skill_dir(self, name: str) -> Path:
        """Return the store directory of a skill: skills_dir/{name}/"""
        return self.skills_dir / name


def resolve_scope(scope: Scope = "project", project_root: Path | None = None) -> ScopeRoot:
    """Resolve paths for the given scope.

    Project scope is rooted at project_root (default: cwd), with the store
    under .agents/skills. User scope is rooted at settings.user_home.
    """
    if scope not in get_args(Scope):
        raise ScopeError(f'Unknown scope "{scope}". Expected one of: {", ".join(get_args(Scope))}.')
    if scope == "user":
        home = settings.user_home
        return ScopeRoot(
            scope="user",
            root=home,
            agents_dir=home,
            manifest_path=home / settings.manifest_file,
            lock_path=home / settings.lock_file,
            skills_dir=home / "skills",
        )

    root = (project_root or Path.cwd()).resolve()
    agents_dir = root / ".agents"
    return ScopeRoot(
        scope="project",
        root=root,
        agents_dir=agents_dir,
        manifest_path=root / settings.manifest_file,
        lock_path=root / settings.lock_file,
        skills_dir=agents_dir / "skills",
    )


settings = Settings()
