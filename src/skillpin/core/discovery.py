"""Skill discovery: locate SKILL.md directories inside an arbitrary checkout."""

import logging
import re
from pathlib import Path

import yaml
from pydantic import ValidationError
from rapidfuzz import fuzz, process

from skillpin.errors import SkillLoadError
from skillpin.models import DiscoveredSkill, SkillMeta

logger = logging.getLogger("skillpin.discovery")

SKILL_FILENAME = "SKILL.md"

# Conventional parents of skill directories, in priority order
SKILL_DIRS = (".", "skills", ".agents/skills", ".claude/skills")

_FRONTMATTER = re.compile(r"^---\r?\n(.*?)\r?\n---", re.DOTALL)


def load_skill_md(path: Path) -> SkillMeta:
    """Parse the YAML frontmatter of a SKILL.md file."""
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SkillLoadError(f"{SKILL_FILENAME} not readable: {path}") from e

    fm_match = _FRONTMATTER.match(content)
    if not fm_match:
        raise SkillLoadError(f"No YAML frontmatter in {path}")

    try:
        meta = yaml.safe_load(fm_match.group(1))
    except yaml.YAMLError as e:
        raise SkillLoadError(f"Invalid YAML frontmatter in {path}: {e}") from e
    if not isinstance(meta, dict):
        raise SkillLoadError(f"Frontmatter in {path} is not a mapping")

    try:
        return SkillMeta.model_validate(meta)
    except ValidationError as e:
        raise SkillLoadError(
            f"Missing or empty 'name'/'description' in {SKILL_FILENAME} frontmatter: {path}"
        ) from e


def _rel(*parts: str) -> str:
    return "/".join(p for p in parts if p and p != ".")


def discover_skill(repo_dir: Path, name: str) -> DiscoveredSkill | None:
    """Find a skill by directory name.

    Tries <name>, skills/<name>, .agents/skills/<name>, .claude/skills/<name>,
    then the marketplace layout plugins/*/skills/<name>. First SKILL.md wins.
    """
    for scan_dir in SKILL_DIRS:
        rel_path = _rel(scan_dir, name)
        skill_md = repo_dir / rel_path / SKILL_FILENAME
        if skill_md.is_file():
            return DiscoveredSkill(path=rel_path, meta=load_skill_md(skill_md))

    for plugin in _marketplace_plugins(repo_dir):
        skill_md = plugin / "skills" / name / SKILL_FILENAME
        if skill_md.is_file():
            rel_path = _rel("plugins", plugin.name, "skills", name)
            return DiscoveredSkill(path=rel_path, meta=load_skill_md(skill_md))

    return None


def discover_all_skills(repo_dir: Path) -> list[DiscoveredSkill]:
    """Return every skill in the checkout, deduplicated by frontmatter name.

    Higher-priority locations are scanned first and win on name collisions.
    Skills with an invalid SKILL.md are skipped.
    """
    found: dict[str, DiscoveredSkill] = {}

    for scan_dir in SKILL_DIRS:
        for entry in _subdirs(repo_dir / scan_dir):
            _collect(found, entry, _rel(scan_dir, entry.name))

    for plugin in _marketplace_plugins(repo_dir):
        for entry in _subdirs(plugin / "skills"):
            _collect(found, entry, _rel("plugins", plugin.name, "skills", entry.name))

    return list(found.values())


def _collect(found: dict[str, DiscoveredSkill], skill_dir: Path, rel_path: str) -> None:
    skill_md = skill_dir / SKILL_FILENAME
    if not skill_md.is_file():
        return
    try:
        meta = load_skill_md(skill_md)
    except SkillLoadError as e:
        logger.debug("Skipping %s: %s", rel_path, e)
        return
    if meta.name not in found:
        found[meta.name] = DiscoveredSkill(path=rel_path, meta=meta)


def _subdirs(directory: Path) -> list[Path]:
    try:
        return sorted(p for p in directory.iterdir() if p.is_dir())
    except OSError:
        return []


def _marketplace_plugins(repo_dir: Path) -> list[Path]:
    """Plugin directories of a marketplace repo (.claude-plugin/ + plugins/*/)."""
    if not (repo_dir / ".claude-plugin").is_dir():
        return []
    return _subdirs(repo_dir / "plugins")


def suggest_names(name: str, candidates: list[str], limit: int = 3) -> list[str]:
    """Close matches for a skill name that was not found."""
    matches = process.extract(name, candidates, scorer=fuzz.WRatio, limit=limit, score_cutoff=70)
    return [m[0] for m in matches]
