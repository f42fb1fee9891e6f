"""Git subprocess wrapper tests: output cap and authentication hints."""

import asyncio
import shutil
import stat
import tempfile
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from skillpin.core.git import GitClient, run_command, ssh_url_hint
from skillpin.errors import CacheError, ExecError

needs_sh = pytest.mark.skipif(shutil.which("sh") is None, reason="POSIX shell not available")


def _fake_git(directory: Path, stderr: str, exit_code: int) -> Path:
    """Write an executable that prints stderr and exits, standing in for git."""
    script = directory / "fake-git"
    script.write_text(f"#!/bin/sh\necho \"{stderr}\" >&2\nexit {exit_code}\n")
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script


def test_ssh_url_hint():
    assert ssh_url_hint("https://github.com/owner/repo") == "git@github.com:owner/repo.git"
    assert ssh_url_hint("https://github.com/owner/repo.git/") == "git@github.com:owner/repo.git"
    assert ssh_url_hint("https://gitlab.com/owner/repo") is None


@needs_sh
def test_auth_failure_suggests_ssh_url():
    with tempfile.TemporaryDirectory() as tmp:
        script = _fake_git(
            Path(tmp),
            "fatal: could not read Username for 'https://github.com': terminal prompts disabled",
            128,
        )
        client = GitClient(executable=str(script))

        with pytest.raises(CacheError, match="authentication required") as excinfo:
            asyncio.run(client.clone("https://github.com/owner/repo", Path(tmp) / "dest"))
        assert "git@github.com:owner/repo.git" in str(excinfo.value)
        print("  PASS: auth failure points at the SSH URL")


@needs_sh
def test_other_clone_failure_has_no_hint():
    with tempfile.TemporaryDirectory() as tmp:
        script = _fake_git(Path(tmp), "fatal: repository not found", 128)
        client = GitClient(executable=str(script))

        with pytest.raises(CacheError, match="repository not found") as excinfo:
            asyncio.run(client.clone("https://github.com/owner/repo", Path(tmp) / "dest"))
        assert "Hint" not in str(excinfo.value)


@pytest.mark.skipif(shutil.which("yes") is None, reason="yes not available")
def test_output_cap_stops_runaway_command():
    with pytest.raises(ExecError, match="more than 1000 bytes") as excinfo:
        asyncio.run(run_command("yes", [], max_output=1000))
    assert excinfo.value.exit_code is None
    print("  PASS: endless output cut off at the cap")


def test_missing_executable():
    with pytest.raises(ExecError, match="could not be started"):
        asyncio.run(run_command("skillpin-no-such-binary", ["--version"]))


def test_non_zero_exit_carries_stderr():
    with pytest.raises(ExecError) as excinfo:
        asyncio.run(run_command(sys.executable, ["-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"]))
    assert excinfo.value.exit_code == 3
    assert excinfo.value.stderr == "boom"
