"""agents.toml reader and minimal writer.

Only the operations the engine needs: loading into a Manifest record, and
appending/removing [[skills]] blocks (add, orphan adoption, remove). Edits are
textual so user comments and formatting elsewhere in the file survive.
"""

import json
import logging
import tomllib
from pathlib import Path

from pydantic import ValidationError

from skillpin.core.agents import all_agent_ids
from skillpin.core.sources import normalize_source
from skillpin.errors import ManifestError
from skillpin.models import WILDCARD_NAME, Manifest

logger = logging.getLogger("skillpin.manifest")

SKILLS_HEADER = "[[skills]]"


def load_manifest(path: Path) -> Manifest:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ManifestError(f"Manifest not found: {path}") from e

    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ManifestError(f"Invalid TOML in {path}: {e}") from e

    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as e:
        issues = "\n".join(
            f"  - {'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ManifestError(f"Invalid manifest {path}:\n{issues}") from e

    unknown = [a for a in manifest.agents if a not in all_agent_ids()]
    if unknown:
        raise ManifestError(
            f"Unknown agent(s) in {path}: {', '.join(unknown)}. "
            f"Valid agents: {', '.join(all_agent_ids())}"
        )

    seen: dict[str, str] = {}
    for dep in manifest.wildcard_dependencies:
        key = normalize_source(dep.source)
        if key in seen:
            raise ManifestError(
                f'Duplicate wildcard source in {path}: "{dep.source}" and "{seen[key]}". '
                'Only one name = "*" entry per source is allowed.'
            )
        seen[key] = dep.source

    names = [d.name for d in manifest.regular_dependencies]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ManifestError(f"Duplicate skill name(s) in {path}: {', '.join(dupes)}")

    return manifest


def _toml_str(value: str) -> str:
    # JSON string escapes are a subset of TOML basic-string escapes
    return json.dumps(value)


def add_skill_to_manifest(
    path: Path,
    name: str,
    source: str,
    ref: str | None = None,
    skill_path: str | None = None,
) -> None:
    """Append a [[skills]] block to agents.toml."""
    content = path.read_text(encoding="utf-8") if path.exists() else "version = 1\n"

    lines = [SKILLS_HEADER, f"name = {_toml_str(name)}", f"source = {_toml_str(source)}"]
    if ref:
        lines.append(f"ref = {_toml_str(ref)}")
    if skill_path:
        lines.append(f"path = {_toml_str(skill_path)}")

    path.write_text(content.rstrip() + "\n\n" + "\n".join(lines) + "\n", encoding="utf-8")
    logger.info("Added skill '%s' to %s", name, path.name)


def add_wildcard_to_manifest(
    path: Path,
    source: str,
    ref: str | None = None,
    exclude: list[str] | None = None,
) -> None:
    """Append a name = "*" block that installs every skill in source."""
    content = path.read_text(encoding="utf-8") if path.exists() else "version = 1\n"

    lines = [SKILLS_HEADER, f"name = {_toml_str(WILDCARD_NAME)}", f"source = {_toml_str(source)}"]
    if ref:
        lines.append(f"ref = {_toml_str(ref)}")
    lines.append(f"exclude = {json.dumps(list(exclude or []))}")

    path.write_text(content.rstrip() + "\n\n" + "\n".join(lines) + "\n", encoding="utf-8")
    logger.info("Added wildcard for %s to %s", source, path.name)


def remove_skill_from_manifest(path: Path, name: str) -> bool:
    """Drop the [[skills]] block whose name matches. Returns True if one was removed."""
    lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
    out: list[str] = []
    removed = False
    i = 0
    while i < len(lines):
        if lines[i].strip() != SKILLS_HEADER:
            out.append(lines[i])
            i += 1
            continue

        j = i + 1
        while j < len(lines) and not lines[j].lstrip().startswith("["):
            j += 1
        try:
            block_name = tomllib.loads("".join(lines[i + 1 : j])).get("name")
        except tomllib.TOMLDecodeError:
            block_name = None

        if block_name == name and not removed:
            removed = True
        else:
            out.extend(lines[i:j])
        i = j

    if removed:
        path.write_text("".join(out).rstrip() + "\n", encoding="utf-8")
        logger.info("Removed skill '%s' from %s", name, path.name)
    return removed
