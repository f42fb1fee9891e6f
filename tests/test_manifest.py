"""agents.toml loading and editing tests."""

import tempfile
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from skillpin.core.manifest import (
    add_skill_to_manifest,
    add_wildcard_to_manifest,
    load_manifest,
    remove_skill_from_manifest,
)
from skillpin.errors import ManifestError

MANIFEST = """\
version = 1
agents = ["claude", "cursor"]

[symlinks]
targets = [".windsurf"]

# PDF tooling
[[skills]]
name = "pdf"
source = "anthropics/skills"
ref = "v1"

[[skills]]
name = "*"
source = "git:https://git.example.com/team/skills.git"
exclude = ["draft"]

[[mcp]]
name = "github"
command = "npx"
args = ["-y", "@modelcontextprotocol/server-github"]
env = ["GITHUB_TOKEN"]

[[hooks]]
event = "PreToolUse"
matcher = "Bash"
command = "echo checking"
"""


def _write(tmp: str, content: str) -> Path:
    path = Path(tmp) / "agents.toml"
    path.write_text(content)
    return path


def test_load_manifest():
    with tempfile.TemporaryDirectory() as tmp:
        manifest = load_manifest(_write(tmp, MANIFEST))
        assert manifest.agents == ["claude", "cursor"]
        assert manifest.symlinks.targets == [".windsurf"]
        assert [d.name for d in manifest.regular_dependencies] == ["pdf"]
        wildcard = manifest.wildcard_dependencies[0]
        assert wildcard.exclude == ["draft"]
        assert manifest.find("pdf").ref == "v1"
        assert manifest.find("*") is None
        assert manifest.mcp[0].env == ["GITHUB_TOKEN"]
        assert manifest.hooks[0].matcher == "Bash"
        print(f"  PASS: loaded {len(manifest.skills)} dependencies")


@pytest.mark.parametrize("content", [
    'version = 1\nagents = ["emacs"]\n',
    'version = 2\n',
    'version = 1\n[[skills]]\nname = "pdf"\n',
    'version = 1\n[[skills]]\nname = "pdf"\nsource = "a/b"\nbogus = 1\n',
    'version = 1\n[[skills]]\nname = "pdf"\nsource = "a/b"\n[[skills]]\nname = "pdf"\nsource = "c/d"\n',
    'version = 1\n[[skills]]\nname = "*"\nsource = "Owner/Repo"\n'
    '[[skills]]\nname = "*"\nsource = "https://github.com/owner/repo.git"\n',
    'version = 1\n[[skills\n',
])
def test_invalid_manifests(content):
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(ManifestError):
            load_manifest(_write(tmp, content))


def test_missing_manifest():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(ManifestError):
            load_manifest(Path(tmp) / "agents.toml")


def test_add_and_remove_keep_other_content():
    with tempfile.TemporaryDirectory() as tmp:
        path = _write(tmp, MANIFEST)
        add_skill_to_manifest(path, "orphan", "path:.agents/skills/orphan")
        manifest = load_manifest(path)
        assert manifest.find("orphan").source == "path:.agents/skills/orphan"

        assert remove_skill_from_manifest(path, "pdf") is True
        assert remove_skill_from_manifest(path, "pdf") is False
        text = path.read_text()
        assert "anthropics/skills" not in text
        assert "[[mcp]]" in text

        manifest = load_manifest(path)
        assert [d.name for d in manifest.regular_dependencies] == ["orphan"]
        assert len(manifest.wildcard_dependencies) == 1
        assert manifest.mcp[0].name == "github"
        print("  PASS: add/remove edited only their own blocks")


def test_add_wildcard_block():
    with tempfile.TemporaryDirectory() as tmp:
        path = _write(tmp, "version = 1\n")
        add_wildcard_to_manifest(path, "acme/skills", ref="v2", exclude=["draft"])
        add_skill_to_manifest(path, "pdf", "path:pdf")

        manifest = load_manifest(path)
        wildcard = manifest.wildcard_dependencies[0]
        assert wildcard.source == "acme/skills"
        assert wildcard.ref == "v2"
        assert wildcard.exclude == ["draft"]
        assert manifest.find("pdf") is not None

        add_wildcard_to_manifest(path, "https://github.com/acme/skills")
        with pytest.raises(ManifestError, match="Duplicate wildcard"):
            load_manifest(path)


def test_add_escapes_strings():
    with tempfile.TemporaryDirectory() as tmp:
        path = _write(tmp, "version = 1\n")
        add_skill_to_manifest(path, "odd", 'path:dir with "quotes"', ref="v1", skill_path="a\\b")
        dep = load_manifest(path).find("odd")
        assert dep.source == 'path:dir with "quotes"'
        assert dep.path == "a\\b"
