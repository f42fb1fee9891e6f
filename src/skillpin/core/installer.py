"""Add / install / update / sync / remove pipelines over one scope.

Every pipeline works on one manifest, one lockfile and one store:
1. Load agents.toml and agents.lock
2. Resolve dependencies one at a time, in manifest order
3. Stage copies in a temp dir next to the store, hash them
4. Move staged copies into the store, rewrite agents.lock wholesale
5. Reconcile agent symlinks and MCP/hook config files

Resolution failures abort before the store is touched. Sync's adoption and
reporting passes are best effort and keep going past individual failures.
"""

import logging
import os
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path

from skillpin.config import ScopeRoot
from skillpin.core.agents import (
    get_agent,
    verify_hook_configs,
    verify_mcp_configs,
    write_hook_configs,
    write_mcp_configs,
)
from skillpin.core.cache import ObjectCache, default_cache
from skillpin.core.discovery import SKILL_FILENAME, discover_all_skills, discover_skill, load_skill_md
from skillpin.core.integrity import copy_dir, hash_directory
from skillpin.core.lockfile import load_lockfile, write_lockfile
from skillpin.core.manifest import (
    add_skill_to_manifest,
    add_wildcard_to_manifest,
    load_manifest,
    remove_skill_from_manifest,
)
from skillpin.core.resolver import VALID_SKILL_NAME, expand_dependencies, resolve_local_source
from skillpin.core.sources import parse_source, sources_match
from skillpin.core.symlinks import ensure_skills_symlink, verify_symlinks
from skillpin.errors import (
    AddError,
    InstallError,
    IntegrityMismatch,
    RemoveError,
    SkillLoadError,
    SkillpinError,
    SymlinkError,
    UpdateError,
)
from skillpin.models import (
    WILDCARD_NAME,
    AddResult,
    GitHubSpecifier,
    GitLockEntry,
    GitResolvedSkill,
    GitSpecifier,
    InstallResult,
    LocalLockEntry,
    LocalSpecifier,
    LockEntry,
    Lockfile,
    Manifest,
    NamedResolvedSkill,
    RemoveResult,
    SkillStatus,
    SyncIssue,
    SyncResult,
    UpdatedSkill,
    UpdateResult,
)

logger = logging.getLogger("skillpin.installer")

# Yes/no trust policy, consulted for every source before anything is resolved
TrustGate = Callable[[str], bool]


def _lock_entry(resolved, integrity: str) -> LockEntry:
    if isinstance(resolved, GitResolvedSkill):
        return GitLockEntry(
            source=resolved.source,
            resolved_url=resolved.resolved_url,
            resolved_path=resolved.resolved_path,
            resolved_ref=resolved.resolved_ref,
            commit=resolved.commit,
            integrity=integrity,
        )
    return LocalLockEntry(source=resolved.source, integrity=integrity)


def _same_dir(a: Path, b: Path) -> bool:
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return False


def _check_trust(manifest: Manifest, trust_gate: TrustGate | None, error: type[SkillpinError]) -> None:
    if trust_gate is None:
        return
    for dep in manifest.skills:
        if not trust_gate(dep.source):
            raise error(f'Source "{dep.source}" is not trusted.')


class _Stage:
    """Temp directory beside the store; copies are moved in only once all succeed."""

    def __init__(self, scope: ScopeRoot):
        self.scope = scope
        scope.skills_dir.mkdir(parents=True, exist_ok=True)
        self.dir = Path(tempfile.mkdtemp(prefix=".staging-", dir=scope.agents_dir))
        self.staged: list[str] = []

    def add(self, item: NamedResolvedSkill) -> str:
        """Copy one resolved skill in and return its integrity hash."""
        dest = self.scope.skill_dir(item.name)
        if _same_dir(item.resolved.skill_dir, dest):
            # Adopted in-place skill: its source is the store entry itself
            return hash_directory(dest)
        staged = self.dir / item.name
        copy_dir(item.resolved.skill_dir, staged)
        self.staged.append(item.name)
        return hash_directory(staged)

    def commit(self) -> None:
        for name in self.staged:
            dest = self.scope.skill_dir(name)
            if dest.is_symlink() or dest.is_file():
                dest.unlink()
            elif dest.exists():
                shutil.rmtree(dest)
            os.replace(self.dir / name, dest)
            logger.info("Installed '%s' -> %s", name, dest)

    def cleanup(self) -> None:
        shutil.rmtree(self.dir, ignore_errors=True)


def _symlink_targets(scope: ScopeRoot, manifest: Manifest) -> list[Path]:
    targets: list[Path] = []
    for t in manifest.symlinks.targets:
        targets.append(scope.root / Path(t).expanduser())
    if scope.scope == "project":
        for agent_id in manifest.agents:
            agent = get_agent(agent_id)
            if agent is not None:
                targets.append(scope.root / agent.skills_parent_dir)
    unique: list[Path] = []
    for t in targets:
        if t not in unique:
            unique.append(t)
    return unique


def _reconcile_agents(scope: ScopeRoot, manifest: Manifest) -> list[str]:
    """Symlinks plus MCP/hook files. Returns warnings; a bad target never stops the others."""
    warnings: list[str] = []
    for target in _symlink_targets(scope, manifest):
        try:
            result = ensure_skills_symlink(scope.agents_dir, target)
        except (SymlinkError, OSError) as e:
            warnings.append(str(e))
            logger.warning("Symlink failed for %s: %s", target, e)
            continue
        if result.backup:
            warnings.append(f"Entries already in the store were kept in {result.backup}")

    if scope.scope == "project":
        try:
            write_mcp_configs(scope.root, manifest.agents, manifest.mcp)
        except (OSError, ValueError) as e:
            warnings.append(f"Could not write MCP configs: {e}")
            logger.warning("MCP config write failed: %s", e)
        try:
            warnings += write_hook_configs(scope.root, manifest.agents, manifest.hooks)
        except (OSError, ValueError) as e:
            warnings.append(f"Could not write hook configs: {e}")
            logger.warning("Hook config write failed: %s", e)
    return warnings


# ─── Install ─────────────────────────────────────────────────────────────


async def run_install(
    scope: ScopeRoot,
    frozen: bool = False,
    force: bool = False,
    cache: ObjectCache | None = None,
    trust_gate: TrustGate | None = None,
) -> InstallResult:
    """Install every declared skill.

    Locked git skills are checked out at their locked commit unless force is
    set. frozen requires agents.lock to cover every skill with a matching
    integrity, and never rewrites it.
    """
    manifest = load_manifest(scope.manifest_path)
    lockfile = load_lockfile(scope.lock_path)

    if not manifest.skills:
        logger.info("No skills declared in %s", scope.manifest_path.name)
        return InstallResult(warnings=_reconcile_agents(scope, manifest))

    if frozen:
        if lockfile is None:
            raise InstallError("--frozen requires agents.lock to exist.")
        for dep in manifest.regular_dependencies:
            if dep.name not in lockfile.skills:
                raise InstallError(
                    f'--frozen: skill "{dep.name}" is in agents.toml but missing from agents.lock.'
                )

    _check_trust(manifest, trust_gate, InstallError)

    try:
        named = await expand_dependencies(
            manifest, scope.root, lockfile=lockfile, use_lock=not force, cache=cache
        )
    except SkillpinError as e:
        raise InstallError(f"Failed to resolve skills: {e}") from e

    if frozen:
        for item in named:
            if item.name not in lockfile.skills:
                raise InstallError(
                    f'--frozen: skill "{item.name}" from {item.resolved.source} is missing from agents.lock.'
                )

    new_lock = Lockfile()
    stage = _Stage(scope)
    try:
        for item in named:
            integrity = stage.add(item)
            if frozen:
                _verify_frozen(scope, lockfile, item, integrity)
            new_lock.skills[item.name] = _lock_entry(item.resolved, integrity)
        stage.commit()
    finally:
        stage.cleanup()

    if not frozen:
        write_lockfile(scope.lock_path, new_lock)

    warnings = _reconcile_agents(scope, manifest)
    installed = [item.name for item in named]
    logger.info("Installed %d skill(s): %s", len(installed), ", ".join(installed))
    return InstallResult(installed=installed, warnings=warnings)


def _verify_frozen(scope: ScopeRoot, lockfile: Lockfile, item: NamedResolvedSkill, integrity: str) -> None:
    expected = lockfile.skills[item.name].integrity
    if integrity != expected:
        raise IntegrityMismatch(item.name, expected, integrity)
    # Local edits to the store are not silently overwritten either
    dest = scope.skill_dir(item.name)
    if dest.is_dir() and not _same_dir(item.resolved.skill_dir, dest):
        on_disk = hash_directory(dest)
        if on_disk != expected:
            raise IntegrityMismatch(item.name, expected, on_disk)


# ─── Add ─────────────────────────────────────────────────────────────────


async def _discover_git_name(
    spec: GitHubSpecifier | GitSpecifier,
    specifier: str,
    ref: str | None,
    name: str | None,
    cache: ObjectCache | None,
) -> str:
    cache = cache or default_cache()
    cached = await cache.ensure_cached(url=spec.url, cache_key=spec.cache_key, ref=ref)

    if name:
        try:
            found = discover_skill(cached.repo_dir, name)
        except SkillLoadError as e:
            raise AddError(f'Skill "{name}" in {specifier} is invalid: {e}') from e
        if found is None:
            raise AddError(
                f'Skill "{name}" not found in {specifier}. '
                "Add the source without a name to see the available skills."
            )
        return name

    skills = discover_all_skills(cached.repo_dir)
    if not skills:
        raise AddError(f"No skills found in {specifier}.")
    if len(skills) > 1:
        names = sorted(s.meta.name for s in skills)
        raise AddError(
            f"Multiple skills found in {specifier}: {', '.join(names)}. "
            "Pass a name to pick one, or add them all."
        )
    return skills[0].meta.name


def _local_name(scope: ScopeRoot, spec: LocalSpecifier, name: str | None) -> str:
    skill_dir = resolve_local_source(scope.root, spec.path)
    try:
        meta = load_skill_md(skill_dir / SKILL_FILENAME)
    except SkillLoadError as e:
        raise AddError(f"Invalid skill at {spec.path}: {e}") from e
    return name or meta.name


async def run_add(
    scope: ScopeRoot,
    specifier: str,
    ref: str | None = None,
    name: str | None = None,
    all_skills: bool = False,
    cache: ObjectCache | None = None,
    trust_gate: TrustGate | None = None,
) -> AddResult:
    """Declare a new skill in agents.toml, then install.

    Without a name, a git source must hold exactly one skill. all_skills adds a
    name = "*" entry for the whole source instead. If the install fails,
    agents.toml is restored to what it was.
    """
    manifest = load_manifest(scope.manifest_path)
    if trust_gate is not None and not trust_gate(specifier):
        raise AddError(f'Source "{specifier}" is not trusted.')

    spec = parse_source(specifier)
    if spec.kind == "local":
        if ref:
            raise AddError(f"A ref only applies to git sources, not {specifier}.")
        effective_ref = None
    else:
        # The explicit ref wins over an inline @ref
        effective_ref = ref or spec.ref

    previous = scope.manifest_path.read_text(encoding="utf-8")

    if all_skills:
        if name:
            raise AddError("Adding every skill of a source cannot be combined with a name.")
        if any(sources_match(d.source, specifier) for d in manifest.wildcard_dependencies):
            raise AddError(f'A wildcard entry for "{specifier}" already exists in agents.toml.')
        add_wildcard_to_manifest(scope.manifest_path, specifier, ref=effective_ref)
        skill_name = WILDCARD_NAME
    else:
        if spec.kind == "local":
            skill_name = _local_name(scope, spec, name)
        else:
            skill_name = await _discover_git_name(spec, specifier, effective_ref, name, cache)

        if not VALID_SKILL_NAME.match(skill_name):
            raise AddError(f'Invalid skill name "{skill_name}".')
        if manifest.find(skill_name) is not None:
            raise AddError(
                f'Skill "{skill_name}" already exists in agents.toml. Remove it first or update it instead.'
            )
        add_skill_to_manifest(scope.manifest_path, skill_name, specifier, ref=effective_ref)

    try:
        installed = await run_install(scope, cache=cache, trust_gate=trust_gate)
    except SkillpinError as e:
        scope.manifest_path.write_text(previous, encoding="utf-8")
        logger.warning("Install after adding %s failed, agents.toml restored: %s", specifier, e)
        raise

    logger.info("Added '%s' from %s", skill_name, specifier)
    return AddResult(name=skill_name, installed=installed.installed, warnings=installed.warnings)


# ─── Update ──────────────────────────────────────────────────────────────


def _short(commit: str) -> str:
    return commit[:8]


async def run_update(
    scope: ScopeRoot,
    skill_name: str | None = None,
    cache: ObjectCache | None = None,
    trust_gate: TrustGate | None = None,
) -> UpdateResult:
    """Re-resolve git skills against their refs, ignoring locked commits.

    With skill_name, only that skill (or, for a wildcard-provided skill, every
    skill of its source) is updated. Wildcard skills that disappeared upstream
    are removed.
    """
    manifest = load_manifest(scope.manifest_path)
    lockfile = load_lockfile(scope.lock_path)
    if lockfile is None:
        raise UpdateError("No agents.lock found. Run install first.")

    explicit = {d.name for d in manifest.regular_dependencies}
    selected_source: str | None = None
    if skill_name and skill_name not in explicit:
        locked = lockfile.skills.get(skill_name)
        wdep = next(
            (w for w in manifest.wildcard_dependencies if locked and sources_match(w.source, locked.source)),
            None,
        )
        if wdep is None:
            raise UpdateError(f'Skill "{skill_name}" not found in agents.toml.')
        selected_source = wdep.source

    def selected(item: NamedResolvedSkill) -> bool:
        if skill_name is None:
            return True
        if selected_source is not None:
            return item.wildcard_source is not None and sources_match(item.wildcard_source, selected_source)
        return item.name == skill_name

    _check_trust(manifest, trust_gate, UpdateError)

    try:
        named = await expand_dependencies(manifest, scope.root, lockfile=None, use_lock=False, cache=cache)
    except SkillpinError as e:
        raise UpdateError(f"Failed to resolve skills: {e}") from e

    new_lock = Lockfile(skills=dict(lockfile.skills))
    updated: list[UpdatedSkill] = []
    stage = _Stage(scope)
    try:
        for item in named:
            if not selected(item) or not isinstance(item.resolved, GitResolvedSkill):
                continue
            old = lockfile.skills.get(item.name)
            old_commit = old.commit if isinstance(old, GitLockEntry) else None
            if old_commit == item.resolved.commit and sources_match(old.source, item.resolved.source):
                continue
            integrity = stage.add(item)
            new_lock.skills[item.name] = _lock_entry(item.resolved, integrity)
            updated.append(UpdatedSkill(
                name=item.name,
                old_commit=_short(old_commit) if old_commit else "(new)",
                new_commit=_short(item.resolved.commit),
            ))
        stage.commit()
    finally:
        stage.cleanup()

    removed = _drop_vanished_wildcard_skills(scope, manifest, new_lock, named, explicit, selected_source, skill_name)

    if updated or removed:
        write_lockfile(scope.lock_path, new_lock)
    for u in updated:
        logger.info("Updated '%s': %s -> %s", u.name, u.old_commit, u.new_commit)
    return UpdateResult(updated=updated, removed=removed)


def _drop_vanished_wildcard_skills(
    scope: ScopeRoot,
    manifest: Manifest,
    lock: Lockfile,
    named: list[NamedResolvedSkill],
    explicit: set[str],
    selected_source: str | None,
    skill_name: str | None,
) -> list[str]:
    if skill_name and selected_source is None:
        return []
    present = {item.name for item in named}
    removed: list[str] = []
    for wdep in manifest.wildcard_dependencies:
        if selected_source is not None and not sources_match(wdep.source, selected_source):
            continue
        for name, entry in list(lock.skills.items()):
            if name in explicit or name in present or name in wdep.exclude:
                continue
            if sources_match(entry.source, wdep.source):
                del lock.skills[name]
                shutil.rmtree(scope.skill_dir(name), ignore_errors=True)
                removed.append(name)
                logger.info("Removed '%s' (no longer upstream in %s)", name, wdep.source)
    return removed


# ─── Sync ────────────────────────────────────────────────────────────────


def expected_names(manifest: Manifest, lockfile: Lockfile | None) -> set[str]:
    """Declared names plus lock entries that a wildcard entry accounts for."""
    names = {d.name for d in manifest.regular_dependencies}
    if lockfile is not None:
        for name, entry in lockfile.skills.items():
            for wdep in manifest.wildcard_dependencies:
                if name not in wdep.exclude and sources_match(entry.source, wdep.source):
                    names.add(name)
    return names


def _store_entries(skills_dir: Path) -> list[str]:
    if not skills_dir.is_dir():
        return []
    return sorted(p.name for p in skills_dir.iterdir() if p.is_dir() and not p.name.startswith("."))


def _adopt_orphans(scope: ScopeRoot, manifest: Manifest, lock: Lockfile, result: SyncResult) -> None:
    expected = expected_names(manifest, lock)
    for name in _store_entries(scope.skills_dir):
        if name in expected:
            continue
        skill_dir = scope.skill_dir(name)
        source = "path:" + Path(os.path.relpath(skill_dir, scope.root)).as_posix()
        try:
            integrity = hash_directory(skill_dir)
            add_skill_to_manifest(scope.manifest_path, name, source)
        except (OSError, SkillpinError) as e:
            logger.warning("Could not adopt '%s': %s", name, e)
            result.errors.append(f'Could not adopt "{name}": {e}')
            continue
        lock.skills[name] = LocalLockEntry(source=source, integrity=integrity)
        result.adopted.append(name)
        logger.info("Adopted orphan '%s' as %s", name, source)


async def run_sync(scope: ScopeRoot) -> SyncResult:
    """Detect and repair drift between agents.toml, agents.lock and the store.

    Store entries nobody declares are adopted as local dependencies; content
    already on disk is treated as authoritative. Nothing is fetched.
    """
    manifest = load_manifest(scope.manifest_path)
    lockfile = load_lockfile(scope.lock_path)
    lock = lockfile or Lockfile()
    result = SyncResult()

    _adopt_orphans(scope, manifest, lock, result)
    if result.adopted:
        write_lockfile(scope.lock_path, lock)
        manifest = load_manifest(scope.manifest_path)

    for name in sorted(expected_names(manifest, lock)):
        if not scope.skill_dir(name).is_dir():
            result.issues.append(SyncIssue(
                type="missing",
                name=name,
                message=f'"{name}" is in agents.toml but not installed. Run install.',
            ))

    for name, entry in sorted(lock.skills.items()):
        installed = scope.skill_dir(name)
        if not installed.is_dir():
            continue
        try:
            integrity = hash_directory(installed)
        except OSError as e:
            result.errors.append(f'Could not hash "{name}": {e}')
            continue
        if integrity != entry.integrity:
            result.issues.append(SyncIssue(
                type="modified",
                name=name,
                message=f'"{name}" has been locally modified (integrity mismatch)',
            ))

    targets = _symlink_targets(scope, manifest)
    for issue in verify_symlinks(scope.agents_dir, targets):
        try:
            ensure_skills_symlink(scope.agents_dir, Path(issue.target))
            result.symlinks_repaired += 1
        except (SymlinkError, OSError) as e:
            result.issues.append(SyncIssue(type="symlink", name=issue.target, message=str(e)))

    if scope.scope == "project":
        for agent_id, message in verify_mcp_configs(scope.root, manifest.agents, manifest.mcp):
            result.issues.append(SyncIssue(type="mcp", name=agent_id, message=message))
        for agent_id, message in verify_hook_configs(scope.root, manifest.agents, manifest.hooks):
            result.issues.append(SyncIssue(type="hooks", name=agent_id, message=message))
        try:
            write_mcp_configs(scope.root, manifest.agents, manifest.mcp)
            write_hook_configs(scope.root, manifest.agents, manifest.hooks)
        except (OSError, ValueError) as e:
            result.errors.append(f"Could not rewrite agent configs: {e}")

    return result


# ─── Remove / list ───────────────────────────────────────────────────────


async def run_remove(scope: ScopeRoot, name: str) -> RemoveResult:
    """Drop a skill from agents.toml, the store and agents.lock."""
    manifest = load_manifest(scope.manifest_path)
    if manifest.find(name) is None:
        lockfile = load_lockfile(scope.lock_path)
        if lockfile and name in expected_names(manifest, lockfile):
            raise RemoveError(
                f'Skill "{name}" comes from a wildcard entry. Add it to that entry\'s exclude list instead.'
            )
        raise RemoveError(f'Skill "{name}" not found in agents.toml.')

    remove_skill_from_manifest(scope.manifest_path, name)
    shutil.rmtree(scope.skill_dir(name), ignore_errors=True)

    lockfile = load_lockfile(scope.lock_path)
    if lockfile is not None and lockfile.skills.pop(name, None) is not None:
        write_lockfile(scope.lock_path, lockfile)

    logger.info("Removed '%s'", name)
    return RemoveResult(skill_name=name)


async def run_list(scope: ScopeRoot) -> list[SkillStatus]:
    """Status of every declared or wildcard-locked skill."""
    manifest = load_manifest(scope.manifest_path)
    lockfile = load_lockfile(scope.lock_path)

    results: list[SkillStatus] = []
    for name in sorted(expected_names(manifest, lockfile)):
        dep = manifest.find(name)
        locked = lockfile.skills.get(name) if lockfile else None
        source = dep.source if dep else (locked.source if locked else "")
        installed = scope.skill_dir(name)

        if not installed.is_dir():
            results.append(SkillStatus(name=name, source=source, status="missing"))
            continue
        if locked is None:
            results.append(SkillStatus(name=name, source=source, status="unlocked"))
            continue

        commit = _short(locked.commit) if isinstance(locked, GitLockEntry) else None
        status = "ok" if hash_directory(installed) == locked.integrity else "modified"
        results.append(SkillStatus(name=name, source=source, commit=commit, status=status))
    return results
