"""Resolve manifest dependencies to concrete skill directories.

Composes the source parser, the object cache and discovery. Git sources are
resolved to (checkout, commit, in-repo path); local sources to a directory
inside the project root.
"""

import logging
import re
from pathlib import Path

from skillpin.core.cache import ObjectCache, default_cache
from skillpin.core.discovery import (
    SKILL_FILENAME,
    discover_all_skills,
    discover_skill,
    load_skill_md,
    suggest_names,
)
from skillpin.core.sources import normalize_source, parse_source, sources_match
from skillpin.errors import ManifestError, ResolveError, SkillLoadError
from skillpin.models import (
    CacheResult,
    DiscoveredSkill,
    GitLockEntry,
    GitResolvedSkill,
    GitHubSpecifier,
    GitSpecifier,
    LocalResolvedSkill,
    Lockfile,
    Manifest,
    NamedResolvedSkill,
    RegularDependency,
    WildcardDependency,
)

logger = logging.getLogger("skillpin.resolver")

# Skill names become directory names in the store
VALID_SKILL_NAME = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]*$")


def resolve_local_source(project_root: Path, relative_path: str) -> Path:
    """Resolve a path: source to an absolute directory inside the project root."""
    abs_root = project_root.resolve()
    abs_path = (abs_root / relative_path).resolve()

    if not abs_path.is_relative_to(abs_root):
        raise ResolveError(f'Local source "{relative_path}" resolves outside project root')
    if not abs_path.exists():
        raise ResolveError(f"Local source not found: {abs_path}")
    if not abs_path.is_dir():
        raise ResolveError(f"Local source is not a directory: {abs_path}")
    return abs_path


async def _checkout(
    spec: GitHubSpecifier | GitSpecifier,
    ref: str | None,
    locked_commit: str | None,
    cache: ObjectCache | None,
) -> CacheResult:
    cache = cache or default_cache()
    return await cache.ensure_cached(
        url=spec.url,
        cache_key=spec.cache_key,
        ref=ref,
        pinned_commit=locked_commit,
    )


def _load_explicit_path(repo_dir: Path, skill_path: str, source: str) -> DiscoveredSkill:
    skill_dir = (repo_dir / skill_path).resolve()
    if not skill_dir.is_relative_to(repo_dir.resolve()):
        raise ResolveError(f'Path "{skill_path}" escapes the repository of {source}')
    try:
        meta = load_skill_md(skill_dir / SKILL_FILENAME)
    except SkillLoadError as e:
        raise ResolveError(f'Invalid skill at "{skill_path}" in {source}: {e}') from e
    return DiscoveredSkill(path=skill_path.strip("/"), meta=meta)


async def resolve_skill(
    name: str,
    dep: RegularDependency,
    project_root: Path,
    locked_commit: str | None = None,
    cache: ObjectCache | None = None,
) -> GitResolvedSkill | LocalResolvedSkill:
    """Resolve one named dependency.

    locked_commit pins the checkout to the commit recorded in agents.lock, so a
    locked install never re-resolves a moving ref.
    """
    spec = parse_source(dep.source)

    if spec.kind == "local":
        skill_dir = resolve_local_source(project_root, spec.path)
        return LocalResolvedSkill(source=dep.source, skill_dir=skill_dir)

    ref = dep.ref or spec.ref
    cached = await _checkout(spec, ref, locked_commit, cache)

    if dep.path:
        discovered = _load_explicit_path(cached.repo_dir, dep.path, dep.source)
    else:
        try:
            discovered = discover_skill(cached.repo_dir, name)
        except SkillLoadError as e:
            raise ResolveError(f'Skill "{name}" in {dep.source} is invalid: {e}') from e

    if discovered is None:
        available = [d.meta.name for d in discover_all_skills(cached.repo_dir)]
        message = (
            f'Skill "{name}" not found in {dep.source}. '
            "Tried conventional directories. Use the 'path' field to specify the location explicitly."
        )
        close = suggest_names(name, available)
        if close:
            message += f" Did you mean: {', '.join(close)}?"
        raise ResolveError(message)

    logger.debug("Resolved '%s' -> %s@%s:%s", name, spec.url, cached.commit[:8], discovered.path)
    return GitResolvedSkill(
        source=dep.source,
        resolved_url=spec.url,
        resolved_path=discovered.path,
        resolved_ref=ref,
        commit=cached.commit,
        skill_dir=cached.repo_dir / discovered.path,
    )


async def resolve_wildcard_skills(
    dep: WildcardDependency,
    project_root: Path,
    locked_commit: str | None = None,
    cache: ObjectCache | None = None,
) -> list[NamedResolvedSkill]:
    """Expand a name = "*" dependency into every discoverable skill of its source.

    Excluded names and names unsafe as directory names are dropped; the
    latter come from SKILL.md frontmatter, which the source's author controls.
    """
    spec = parse_source(dep.source)
    exclude = set(dep.exclude)

    if spec.kind == "local":
        base = resolve_local_source(project_root, spec.path)
        found = discover_all_skills(base)
    else:
        ref = dep.ref or spec.ref
        cached = await _checkout(spec, ref, locked_commit, cache)
        base = cached.repo_dir
        found = discover_all_skills(base)

    results: list[NamedResolvedSkill] = []
    for d in found:
        name = d.meta.name
        if name in exclude:
            continue
        if not VALID_SKILL_NAME.match(name):
            logger.warning("Skipping skill with unsafe name %r from %s", name, dep.source)
            continue
        if spec.kind == "local":
            resolved = LocalResolvedSkill(source=dep.source, skill_dir=base / d.path)
        else:
            resolved = GitResolvedSkill(
                source=dep.source,
                resolved_url=spec.url,
                resolved_path=d.path,
                resolved_ref=ref,
                commit=cached.commit,
                skill_dir=base / d.path,
            )
        results.append(NamedResolvedSkill(name=name, resolved=resolved, wildcard_source=dep.source))
    return results


def locked_commit_for(lockfile: Lockfile | None, name: str, source: str) -> str | None:
    """Commit recorded for name, as long as it came from the same source."""
    if lockfile is None:
        return None
    entry = lockfile.skills.get(name)
    if isinstance(entry, GitLockEntry) and sources_match(entry.source, source):
        return entry.commit
    return None


def wildcard_locked_commit(
    lockfile: Lockfile | None, source: str, explicit_names: set[str]
) -> str | None:
    """Shared commit of every lock entry produced by a wildcard source.

    Returns None when there are none or they disagree, in which case the
    wildcard is resolved unpinned.
    """
    if lockfile is None:
        return None
    commits = {
        entry.commit
        for name, entry in lockfile.skills.items()
        if name not in explicit_names
        and isinstance(entry, GitLockEntry)
        and sources_match(entry.source, source)
    }
    return commits.pop() if len(commits) == 1 else None


async def expand_dependencies(
    manifest: Manifest,
    project_root: Path,
    lockfile: Lockfile | None = None,
    use_lock: bool = True,
    cache: ObjectCache | None = None,
) -> list[NamedResolvedSkill]:
    """Resolve every declared dependency, one at a time in manifest order.

    Regular dependencies come first and always win their name. Two wildcard
    sources producing the same unclaimed name is a conflict.
    """
    lock = lockfile if use_lock else None
    regular = manifest.regular_dependencies
    explicit = {d.name for d in regular}

    results: list[NamedResolvedSkill] = []
    for dep in regular:
        resolved = await resolve_skill(
            dep.name,
            dep,
            project_root,
            locked_commit=locked_commit_for(lock, dep.name, dep.source),
            cache=cache,
        )
        results.append(NamedResolvedSkill(name=dep.name, resolved=resolved))

    seen_sources: dict[str, str] = {}
    produced_by: dict[str, str] = {}
    for wdep in manifest.wildcard_dependencies:
        key = normalize_source(wdep.source)
        if key in seen_sources:
            raise ManifestError(
                f'Duplicate wildcard source: "{wdep.source}" and "{seen_sources[key]}"'
            )
        seen_sources[key] = wdep.source

        expanded = await resolve_wildcard_skills(
            wdep,
            project_root,
            locked_commit=wildcard_locked_commit(lock, wdep.source, explicit),
            cache=cache,
        )
        for item in expanded:
            if item.name in explicit:
                logger.debug("'%s' from %s overridden by explicit entry", item.name, wdep.source)
                continue
            if item.name in produced_by:
                raise ResolveError(
                    f'Skill "{item.name}" is provided by both {produced_by[item.name]} and '
                    f'{wdep.source}. Declare it explicitly or exclude it from one source.'
                )
            produced_by[item.name] = wdep.source
            results.append(item)

    return results
