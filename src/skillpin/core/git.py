"""Git subprocess wrapper: the only code that talks to the network.

All commands are passed as an argument vector, never through a shell, with
credential and passphrase prompting disabled so a private repo fails fast
instead of hanging on a prompt.
"""

import asyncio
import logging
import os
from pathlib import Path

from skillpin.config import settings
from skillpin.errors import CacheError, ExecError

logger = logging.getLogger("skillpin.git")

_NON_INTERACTIVE_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_SSH_COMMAND": "ssh -o BatchMode=yes",
}

_AUTH_FAILURE_MARKERS = ("terminal prompts disabled", "could not read username")


class _OutputLimitExceeded(Exception):
    pass


async def _read_capped(stream: asyncio.StreamReader, limit: int) -> bytes:
    buf = bytearray()
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return bytes(buf)
        if len(buf) + len(chunk) > limit:
            raise _OutputLimitExceeded()
        buf.extend(chunk)


async def run_command(
    cmd: str,
    args: list[str],
    cwd: Path | None = None,
    max_output: int | None = None,
) -> tuple[str, str]:
    """Run a command and return (stdout, stderr).

    Raises ExecError on a non-zero exit, a missing executable, or output
    larger than max_output bytes.
    """
    if max_output is None:
        max_output = settings.max_output_bytes
    env = {**os.environ, **_NON_INTERACTIVE_ENV}

    try:
        process = await asyncio.create_subprocess_exec(
            cmd,
            *args,
            cwd=str(cwd) if cwd else None,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ExecError(f"{cmd} could not be started: {e}", None, str(e)) from e

    try:
        stdout, stderr = await asyncio.gather(
            _read_capped(process.stdout, max_output),
            _read_capped(process.stderr, max_output),
        )
    except _OutputLimitExceeded:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        raise ExecError(
            f"{cmd} {' '.join(args)} produced more than {max_output} bytes of output",
            None,
            "",
        ) from None
    await process.wait()

    out = stdout.decode("utf-8", errors="replace")
    err = stderr.decode("utf-8", errors="replace")
    if process.returncode != 0:
        raise ExecError(
            f"{cmd} {' '.join(args)} failed: {err.strip() or f'exit code {process.returncode}'}",
            process.returncode,
            err,
        )
    return out, err


def ssh_url_hint(url: str) -> str | None:
    """https://github.com/org/repo[.git][/] -> git@github.com:org/repo.git"""
    prefix = "https://github.com/"
    if not url.startswith(prefix):
        return None
    path = url[len(prefix):].rstrip("/")
    if not path.endswith(".git"):
        path += ".git"
    return f"git@github.com:{path}"


class GitClient:
    """Shallow clone/fetch/checkout via the git executable."""

    def __init__(self, executable: str | None = None):
        self.executable = executable or settings.git_executable

    async def _git(self, args: list[str], cwd: Path | None = None) -> str:
        stdout, _ = await run_command(self.executable, args, cwd=cwd)
        return stdout

    async def clone(self, url: str, dest: Path, ref: str | None = None) -> None:
        """Clone with --depth=1, optionally at a branch or tag."""
        args = ["clone", "--depth=1"]
        if ref:
            args += ["--branch", ref]
        args += ["--", url, str(dest)]

        try:
            await self._git(args)
        except ExecError as e:
            hint = ssh_url_hint(url)
            if hint and any(m in e.stderr.lower() for m in _AUTH_FAILURE_MARKERS):
                raise CacheError(
                    f"Failed to clone {url}: authentication required.\n"
                    f"Hint: for private repos, use the SSH URL instead:\n"
                    f"  {hint}"
                ) from e
            raise CacheError(f"Failed to clone {url}: {e.stderr.strip()}") from e
        logger.info("Cloned: %s -> %s", url, dest)

    async def fetch_ref(self, repo_dir: Path, ref: str) -> None:
        """Fetch one ref (branch, tag or commit) and check it out detached."""
        try:
            await self._git(["fetch", "--depth=1", "--", "origin", ref], cwd=repo_dir)
            await self._git(["checkout", "--quiet", "FETCH_HEAD"], cwd=repo_dir)
        except ExecError as e:
            raise CacheError(f"Failed to fetch ref {ref} in {repo_dir}: {e.stderr.strip()}") from e
        logger.debug("Fetched %s in %s", ref, repo_dir)

    async def fetch_and_reset(self, repo_dir: Path) -> None:
        """Fetch the remote default branch and hard-reset onto it."""
        try:
            await self._git(["fetch", "--depth=1", "--", "origin"], cwd=repo_dir)
            await self._git(["reset", "--hard", "--quiet", "FETCH_HEAD"], cwd=repo_dir)
        except ExecError as e:
            raise CacheError(f"Failed to update {repo_dir}: {e.stderr.strip()}") from e
        logger.debug("Refreshed %s", repo_dir)

    async def head_commit(self, repo_dir: Path) -> str:
        try:
            out = await self._git(["rev-parse", "HEAD"], cwd=repo_dir)
        except ExecError as e:
            raise CacheError(f"Failed to read HEAD in {repo_dir}: {e.stderr.strip()}") from e
        return out.strip()

    def is_checkout(self, repo_dir: Path) -> bool:
        return (repo_dir / ".git").exists()
