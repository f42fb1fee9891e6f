"""agents.lock persistence tests."""

import json
import tempfile
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from skillpin.core.lockfile import dump_lockfile, load_lockfile, write_lockfile
from skillpin.errors import LockfileError
from skillpin.models import GitLockEntry, LocalLockEntry, Lockfile

COMMIT = "0123456789abcdef0123456789abcdef01234567"


def _lockfile() -> Lockfile:
    return Lockfile(skills={
        "review": LocalLockEntry(source="path:vendor/review", integrity="sha256-bbb="),
        "pdf": GitLockEntry(
            source="owner/repo",
            resolved_url="https://github.com/owner/repo.git",
            resolved_path="skills/pdf",
            commit=COMMIT,
            integrity="sha256-aaa=",
        ),
    })


def test_roundtrip():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "agents.lock"
        write_lockfile(path, _lockfile())

        loaded = load_lockfile(path)
        assert loaded == _lockfile()
        assert isinstance(loaded.skills["pdf"], GitLockEntry)
        assert isinstance(loaded.skills["review"], LocalLockEntry)
        print("  PASS: lockfile roundtrip preserves git and local entries")


def test_sorted_and_untagged_on_disk():
    text = dump_lockfile(_lockfile())
    data = json.loads(text)
    assert list(data["skills"]) == ["pdf", "review"]
    assert "kind" not in data["skills"]["pdf"]
    assert "resolved_ref" not in data["skills"]["pdf"]
    assert data["skills"]["review"] == {"source": "path:vendor/review", "integrity": "sha256-bbb="}
    assert text == dump_lockfile(_lockfile())


def test_missing_lockfile_is_none():
    with tempfile.TemporaryDirectory() as tmp:
        assert load_lockfile(Path(tmp) / "agents.lock") is None


@pytest.mark.parametrize("content", [
    "{not json",
    '{"version": 2, "skills": {}}',
    '{"version": 1, "skills": {"pdf": {"source": "x"}}}',
    '{"version": 1, "skills": {"pdf": {"source": "x", "integrity": "y", "extra": 1}}}',
])
def test_malformed_lockfile_raises(content):
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "agents.lock"
        path.write_text(content)
        with pytest.raises(LockfileError):
            load_lockfile(path)


def test_write_leaves_no_temp_files():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "agents.lock"
        write_lockfile(path, _lockfile())
        write_lockfile(path, Lockfile())
        assert [p.name for p in Path(tmp).iterdir()] == ["agents.lock"]
        assert load_lockfile(path).skills == {}
