"""End-to-end tests against real git repositories built in temp directories.

Each test gets its own object cache under the temp dir, so nothing touches
~/.local/skillpin.
"""

import asyncio
import shutil
import subprocess
import tempfile
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from skillpin.config import resolve_scope
from skillpin.core.cache import ObjectCache
from skillpin.core.installer import run_add, run_install, run_update
from skillpin.core.lockfile import load_lockfile
from skillpin.core.manifest import load_manifest
from skillpin.errors import AddError, InstallError, IntegrityMismatch
from skillpin.models import GitLockEntry

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")

_GIT_IDENTITY = [
    "-c", "user.name=skillpin-tests",
    "-c", "user.email=tests@skillpin.invalid",
    "-c", "commit.gpgsign=false",
]


def _git(repo: Path, *args: str) -> str:
    out = subprocess.run(
        ["git", *_GIT_IDENTITY, *args], cwd=repo, check=True, capture_output=True, text=True
    )
    return out.stdout.strip()


def _skill(directory: Path, name: str, body: str = "") -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "SKILL.md").write_text(f"---\nname: {name}\ndescription: {name} skill\n---\n{body}")


def _commit(repo: Path, message: str) -> str:
    _git(repo, "add", "-A")
    _git(repo, "commit", "--quiet", "-m", message)
    return _git(repo, "rev-parse", "HEAD")


def _make_repo(path: Path, skills: dict[str, str]) -> str:
    """Create a repo with {relative_dir: skill_name} and return its file:// URL."""
    path.mkdir(parents=True)
    _git(path, "init", "--quiet")
    # Shallow fetches of an exact commit
    _git(path, "config", "uploadpack.allowAnySHA1InWant", "true")
    for rel, name in skills.items():
        _skill(path / rel, name)
    _commit(path, "initial")
    return f"file://{path.as_posix()}"


def _setup(tmp: str, manifest: str) -> tuple:
    root = Path(tmp) / "project"
    root.mkdir()
    (root / "agents.toml").write_text(manifest)
    scope = resolve_scope("project", root)
    cache = ObjectCache(Path(tmp) / "state", ttl=3600)
    return scope, cache


def test_scenario_a_single_git_skill():
    with tempfile.TemporaryDirectory() as tmp:
        url = _make_repo(Path(tmp) / "remote", {"pdf": "pdf"})
        scope, cache = _setup(tmp, f'version = 1\n\n[[skills]]\nname = "pdf"\nsource = "git:{url}"\n')

        result = asyncio.run(run_install(scope, cache=cache))
        assert result.installed == ["pdf"]
        assert (scope.skills_dir / "pdf" / "SKILL.md").is_file()
        assert not (scope.skills_dir / "pdf" / ".git").exists()

        lock = load_lockfile(scope.lock_path)
        assert list(lock.skills) == ["pdf"]
        entry = lock.skills["pdf"]
        assert isinstance(entry, GitLockEntry)
        assert len(entry.commit) == 40
        assert entry.commit == _git(Path(tmp) / "remote", "rev-parse", "HEAD")
        assert entry.resolved_path == "pdf"
        assert entry.integrity.startswith("sha256-")
        print(f"  PASS: pdf locked at {entry.commit[:8]}")


def test_scenario_b_wildcard_exclude():
    with tempfile.TemporaryDirectory() as tmp:
        url = _make_repo(Path(tmp) / "remote", {"skills/pdf": "pdf", "skills/review": "review"})
        scope, cache = _setup(tmp, (
            f'version = 1\n\n[[skills]]\nname = "*"\nsource = "git:{url}"\nexclude = ["review"]\n'
        ))

        asyncio.run(run_install(scope, cache=cache))
        assert sorted(p.name for p in scope.skills_dir.iterdir()) == ["pdf"]
        assert list(load_lockfile(scope.lock_path).skills) == ["pdf"]


def test_scenario_c_frozen_mismatch_writes_nothing():
    with tempfile.TemporaryDirectory() as tmp:
        url = _make_repo(Path(tmp) / "remote", {"pdf": "pdf"})
        scope, cache = _setup(tmp, f'version = 1\n\n[[skills]]\nname = "pdf"\nsource = "git:{url}"\n')
        asyncio.run(run_install(scope, cache=cache))

        installed = scope.skills_dir / "pdf" / "SKILL.md"
        installed.write_text("tampered\n")
        lock_before = scope.lock_path.read_bytes()

        with pytest.raises(IntegrityMismatch):
            asyncio.run(run_install(scope, frozen=True, cache=cache))
        assert installed.read_text() == "tampered\n"
        assert scope.lock_path.read_bytes() == lock_before
        print("  PASS: frozen install aborted on tampered skill")


def test_locked_install_ignores_upstream_until_update():
    with tempfile.TemporaryDirectory() as tmp:
        remote = Path(tmp) / "remote"
        url = _make_repo(remote, {"pdf": "pdf"})
        scope, cache = _setup(tmp, f'version = 1\n\n[[skills]]\nname = "pdf"\nsource = "git:{url}"\n')
        asyncio.run(run_install(scope, cache=cache))
        old = load_lockfile(scope.lock_path).skills["pdf"].commit

        _skill(remote / "pdf", "pdf", "# v2\n")
        new = _commit(remote, "v2")

        asyncio.run(run_install(scope, cache=ObjectCache(Path(tmp) / "state", ttl=0)))
        assert load_lockfile(scope.lock_path).skills["pdf"].commit == old
        assert "# v2" not in (scope.skills_dir / "pdf" / "SKILL.md").read_text()

        result = asyncio.run(run_update(scope, cache=ObjectCache(Path(tmp) / "state", ttl=0)))
        assert [(u.name, u.old_commit, u.new_commit) for u in result.updated] == [
            ("pdf", old[:8], new[:8])
        ]
        assert load_lockfile(scope.lock_path).skills["pdf"].commit == new
        assert (scope.skills_dir / "pdf" / "SKILL.md").read_text().endswith("# v2\n")
        print(f"  PASS: update moved pdf {old[:8]} -> {new[:8]}")


def test_sha_ref_pins_checkout():
    with tempfile.TemporaryDirectory() as tmp:
        remote = Path(tmp) / "remote"
        url = _make_repo(remote, {"pdf": "pdf"})
        first = _git(remote, "rev-parse", "HEAD")
        _skill(remote / "pdf", "pdf", "# later\n")
        _commit(remote, "later")

        scope, cache = _setup(tmp, (
            f'version = 1\n\n[[skills]]\nname = "pdf"\nsource = "git:{url}"\nref = "{first}"\n'
        ))
        asyncio.run(run_install(scope, cache=cache))
        assert load_lockfile(scope.lock_path).skills["pdf"].commit == first
        assert "# later" not in (scope.skills_dir / "pdf" / "SKILL.md").read_text()

        result = asyncio.run(run_update(scope, cache=cache))
        assert result.updated == []


def test_update_removes_skills_gone_upstream():
    with tempfile.TemporaryDirectory() as tmp:
        remote = Path(tmp) / "remote"
        url = _make_repo(remote, {"skills/pdf": "pdf", "skills/review": "review"})
        scope, cache = _setup(tmp, f'version = 1\n\n[[skills]]\nname = "*"\nsource = "git:{url}"\n')
        asyncio.run(run_install(scope, cache=cache))
        assert (scope.skills_dir / "review").is_dir()

        shutil.rmtree(remote / "skills" / "review")
        _commit(remote, "drop review")

        result = asyncio.run(run_update(scope, cache=ObjectCache(Path(tmp) / "state", ttl=0)))
        assert result.removed == ["review"]
        assert not (scope.skills_dir / "review").exists()
        assert list(load_lockfile(scope.lock_path).skills) == ["pdf"]


def test_unknown_skill_suggests_close_names():
    with tempfile.TemporaryDirectory() as tmp:
        url = _make_repo(Path(tmp) / "remote", {"skills/pdf-parser": "pdf-parser"})
        scope, cache = _setup(tmp, (
            f'version = 1\n\n[[skills]]\nname = "pdf-parsr"\nsource = "git:{url}"\n'
        ))
        with pytest.raises(InstallError, match="Did you mean: pdf-parser"):
            asyncio.run(run_install(scope, cache=cache))
        assert not scope.lock_path.exists()


def test_bad_repository_fails_cleanly():
    with tempfile.TemporaryDirectory() as tmp:
        missing = Path(tmp) / "nope"
        scope, cache = _setup(tmp, (
            f'version = 1\n\n[[skills]]\nname = "pdf"\nsource = "git:file://{missing.as_posix()}"\n'
        ))
        with pytest.raises(InstallError, match="Failed to clone"):
            asyncio.run(run_install(scope, cache=cache))
        assert not any((Path(tmp) / "state").rglob(".git"))


def test_add_from_repo_with_several_skills():
    with tempfile.TemporaryDirectory() as tmp:
        url = _make_repo(Path(tmp) / "remote", {"skills/review": "review", "skills/pdf": "pdf"})
        scope, cache = _setup(tmp, "version = 1\n")
        source = f"git:{url}"

        with pytest.raises(AddError, match="Multiple skills found") as excinfo:
            asyncio.run(run_add(scope, source, cache=cache))
        assert "pdf, review" in str(excinfo.value)
        assert load_manifest(scope.manifest_path).skills == []

        with pytest.raises(AddError, match="not found"):
            asyncio.run(run_add(scope, source, name="lint", cache=cache))

        result = asyncio.run(run_add(scope, source, name="pdf", cache=cache))
        assert result.name == "pdf"
        assert result.installed == ["pdf"]
        assert load_manifest(scope.manifest_path).find("pdf").source == source
        assert isinstance(load_lockfile(scope.lock_path).skills["pdf"], GitLockEntry)
        print("  PASS: ambiguous add lists names, named add installs")


def test_add_single_skill_repo_without_name():
    with tempfile.TemporaryDirectory() as tmp:
        url = _make_repo(Path(tmp) / "remote", {"pdf": "pdf"})
        scope, cache = _setup(tmp, "version = 1\n")

        result = asyncio.run(run_add(scope, f"git:{url}", cache=cache))
        assert result.name == "pdf"
        assert (scope.skills_dir / "pdf" / "SKILL.md").is_file()
