"""Data models for skillpin."""

from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator

# ─── Source specifiers ───────────────────────────────────────────────────


class GitHubSpecifier(BaseModel):
    """owner/repo shorthand, or an HTTPS / SCP-style SSH GitHub URL."""

    kind: Literal["github"] = "github"
    owner: str
    repo: str
    ref: str | None = None
    url: str  # clone URL
    cache_key: str  # "owner/repo"


class GitSpecifier(BaseModel):
    """Explicit git URL from a `git:` source."""

    kind: Literal["git"] = "git"
    url: str
    ref: str | None = None
    cache_key: str  # host/path, scheme and .git stripped


class LocalSpecifier(BaseModel):
    """`path:` source, relative to the manifest root."""

    kind: Literal["local"] = "local"
    path: str


# ─── Discovery ───────────────────────────────────────────────────────────


class SkillMeta(BaseModel):
    """Frontmatter of a SKILL.md. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)


class DiscoveredSkill(BaseModel):
    """A skill found inside a checkout."""

    path: str  # relative, posix separators
    meta: SkillMeta


class CacheResult(BaseModel):
    """A checkout in the object cache."""

    repo_dir: Path
    commit: str


# ─── Resolution ──────────────────────────────────────────────────────────


class GitResolvedSkill(BaseModel):
    kind: Literal["git"] = "git"
    source: str
    resolved_url: str
    resolved_path: str
    resolved_ref: str | None = None
    commit: str  # full 40-char sha
    skill_dir: Path  # absolute path inside the cached checkout


class LocalResolvedSkill(BaseModel):
    kind: Literal["local"] = "local"
    source: str
    skill_dir: Path


ResolvedSkill = Annotated[
    Union[GitResolvedSkill, LocalResolvedSkill],
    Field(discriminator="kind"),
]


class NamedResolvedSkill(BaseModel):
    name: str
    resolved: ResolvedSkill
    wildcard_source: str | None = None  # set when produced by a name = "*" entry


# ─── Lockfile ────────────────────────────────────────────────────────────


class GitLockEntry(BaseModel):
    """Lock entry for a skill installed from a git checkout."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["git"] = "git"
    source: str
    resolved_url: str
    resolved_path: str
    resolved_ref: str | None = None
    commit: str
    integrity: str


class LocalLockEntry(BaseModel):
    """Lock entry for a skill copied from a local path."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["local"] = "local"
    source: str
    integrity: str


def _lock_entry_kind(value: Any) -> str:
    # On disk entries carry no tag; a commit means git-backed.
    if isinstance(value, dict):
        if value.get("kind"):
            return value["kind"]
        return "git" if "commit" in value or "resolved_url" in value else "local"
    return getattr(value, "kind", "local")


LockEntry = Annotated[
    Union[Annotated[GitLockEntry, Tag("git")], Annotated[LocalLockEntry, Tag("local")]],
    Discriminator(_lock_entry_kind),
]


class Lockfile(BaseModel):
    """agents.lock: what was actually installed, per skill name."""

    version: Literal[1] = 1
    skills: dict[str, LockEntry] = Field(default_factory=dict)


# ─── Manifest ────────────────────────────────────────────────────────────

WILDCARD_NAME = "*"


class RegularDependency(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    source: str = Field(min_length=1)
    ref: str | None = None
    path: str | None = None

    @field_validator("name")
    @classmethod
    def _not_wildcard(cls, v: str) -> str:
        if v == WILDCARD_NAME:
            raise ValueError('"*" is reserved for wildcard dependencies')
        return v


class WildcardDependency(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Literal["*"] = WILDCARD_NAME
    source: str = Field(min_length=1)
    ref: str | None = None
    exclude: list[str] = Field(default_factory=list)


def _dependency_kind(value: Any) -> str:
    name = value.get("name") if isinstance(value, dict) else getattr(value, "name", None)
    return "wildcard" if name == WILDCARD_NAME else "regular"


Dependency = Annotated[
    Union[Annotated[RegularDependency, Tag("regular")], Annotated[WildcardDependency, Tag("wildcard")]],
    Discriminator(_dependency_kind),
]


class SymlinksConfig(BaseModel):
    targets: list[str] = Field(default_factory=list)


class McpDeclaration(BaseModel):
    """Universal MCP server declaration: stdio (command) or HTTP (url)."""

    name: str
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    env: list[str] = Field(default_factory=list)  # variable names only


HookEvent = Literal["PreToolUse", "PostToolUse", "UserPromptSubmit", "Stop"]


class HookDeclaration(BaseModel):
    event: HookEvent
    matcher: str | None = None
    command: str


class Manifest(BaseModel):
    """agents.toml as an in-memory record."""

    version: Literal[1] = 1
    agents: list[str] = Field(default_factory=list)
    symlinks: SymlinksConfig = Field(default_factory=SymlinksConfig)
    skills: list[Dependency] = Field(default_factory=list)
    mcp: list[McpDeclaration] = Field(default_factory=list)
    hooks: list[HookDeclaration] = Field(default_factory=list)

    @property
    def regular_dependencies(self) -> list[RegularDependency]:
        return [d for d in self.skills if isinstance(d, RegularDependency)]

    @property
    def wildcard_dependencies(self) -> list[WildcardDependency]:
        return [d for d in self.skills if isinstance(d, WildcardDependency)]

    def find(self, name: str) -> RegularDependency | None:
        for dep in self.regular_dependencies:
            if dep.name == name:
                return dep
        return None


# ─── Results ─────────────────────────────────────────────────────────────


class SymlinkResult(BaseModel):
    created: bool = False
    migrated: list[str] = Field(default_factory=list)
    backup: str | None = None  # where colliding entries were set aside


class SymlinkIssue(BaseModel):
    target: str
    issue: str


class SyncIssue(BaseModel):
    """One drift finding from a sync pass."""

    type: Literal["missing", "modified", "symlink", "mcp", "hooks"]
    name: str
    message: str


class InstallResult(BaseModel):
    """Result of an install run."""

    success: bool = True
    installed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class AddResult(BaseModel):
    """Result of adding one skill (or a whole source) to agents.toml."""

    name: str = ""  # "*" when every skill of the source was added
    success: bool = True
    installed: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class UpdatedSkill(BaseModel):
    name: str
    old_commit: str  # short sha, or "(new)"
    new_commit: str


class UpdateResult(BaseModel):
    success: bool = True
    updated: list[UpdatedSkill] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class SyncResult(BaseModel):
    success: bool = True
    issues: list[SyncIssue] = Field(default_factory=list)
    adopted: list[str] = Field(default_factory=list)
    symlinks_repaired: int = 0
    errors: list[str] = Field(default_factory=list)


class RemoveResult(BaseModel):
    skill_name: str
    success: bool = True
    errors: list[str] = Field(default_factory=list)


class SkillStatus(BaseModel):
    name: str
    source: str
    commit: str | None = None  # short sha
    status: Literal["ok", "modified", "missing", "unlocked"]
