"""Object cache: shallow git checkouts shared by every project on the machine.

Layout under the state directory:
    <cache_key>/            unpinned checkout, refreshed when older than the TTL
    <cache_key>@<commit>/   pinned checkout, immutable once present
"""

import logging
import shutil
import time
from pathlib import Path

from skillpin.config import settings
from skillpin.core.git import GitClient
from skillpin.core.sources import is_commit_sha
from skillpin.errors import CacheError
from skillpin.models import CacheResult

logger = logging.getLogger("skillpin.cache")

# Written by every fetch (and by our clone), so its mtime is the last-fetch time
_FETCH_MARKER = Path(".git") / "FETCH_HEAD"


class ObjectCache:
    """Get-or-populate access to git checkouts keyed by cache key."""

    def __init__(
        self,
        state_dir: Path,
        ttl: int = 86400,
        client: GitClient | None = None,
    ):
        self.state_dir = Path(state_dir)
        self.ttl = ttl
        self.client = client or GitClient()

    def entry_dir(self, cache_key: str, pinned_commit: str | None = None) -> Path:
        name = f"{cache_key}@{pinned_commit}" if pinned_commit else cache_key
        path = (self.state_dir / name).resolve()
        if not path.is_relative_to(self.state_dir.resolve()):
            raise CacheError(f"Cache key {cache_key!r} escapes the cache directory")
        return path

    async def ensure_cached(
        self,
        url: str,
        cache_key: str,
        ref: str | None = None,
        pinned_commit: str | None = None,
    ) -> CacheResult:
        """Return a checkout of url, cloning or refreshing as needed.

        With pinned_commit the checkout is looked up by commit and never
        refreshed again. Otherwise the single mutable checkout for cache_key
        is re-fetched once it is older than the TTL.
        """
        if not pinned_commit and is_commit_sha(ref):
            # A full sha ref is already immutable
            pinned_commit, ref = ref, None
        if pinned_commit:
            if is_commit_sha(ref):
                ref = None  # clone --branch only takes branches and tags
            return await self._ensure_pinned(url, cache_key, ref, pinned_commit)

        repo_dir = self.entry_dir(cache_key)

        if self.client.is_checkout(repo_dir):
            if self.is_stale(repo_dir):
                logger.info("Refreshing stale checkout: %s", cache_key)
                if ref:
                    await self.client.fetch_ref(repo_dir, ref)
                else:
                    await self.client.fetch_and_reset(repo_dir)
            else:
                logger.debug("Cache hit: %s", cache_key)
            commit = await self.client.head_commit(repo_dir)
            return CacheResult(repo_dir=repo_dir, commit=commit)

        repo_dir.parent.mkdir(parents=True, exist_ok=True)
        await self._clone(url, repo_dir, ref)
        commit = await self.client.head_commit(repo_dir)
        return CacheResult(repo_dir=repo_dir, commit=commit)

    async def _ensure_pinned(
        self, url: str, cache_key: str, ref: str | None, commit: str
    ) -> CacheResult:
        repo_dir = self.entry_dir(cache_key, commit)
        if self.client.is_checkout(repo_dir):
            logger.debug("Pinned cache hit: %s@%s", cache_key, commit[:8])
            return CacheResult(repo_dir=repo_dir, commit=commit)

        repo_dir.parent.mkdir(parents=True, exist_ok=True)
        await self._clone(url, repo_dir, ref)
        try:
            await self.client.fetch_ref(repo_dir, commit)
            head = await self.client.head_commit(repo_dir)
        except CacheError:
            shutil.rmtree(repo_dir, ignore_errors=True)
            raise
        return CacheResult(repo_dir=repo_dir, commit=head)

    async def _clone(self, url: str, repo_dir: Path, ref: str | None) -> None:
        if repo_dir.exists():
            # Leftover of an interrupted clone
            shutil.rmtree(repo_dir)
        try:
            await self.client.clone(url, repo_dir, ref)
        except CacheError:
            shutil.rmtree(repo_dir, ignore_errors=True)
            raise
        self._touch_marker(repo_dir)

    def is_stale(self, repo_dir: Path) -> bool:
        marker = repo_dir / _FETCH_MARKER
        try:
            fetched_at = marker.stat().st_mtime
        except OSError:
            # Never fetched
            return True
        return time.time() - fetched_at > self.ttl

    @staticmethod
    def _touch_marker(repo_dir: Path) -> None:
        # A fresh clone has no FETCH_HEAD; without one it would count as stale
        marker = repo_dir / _FETCH_MARKER
        if marker.parent.is_dir():
            marker.touch(exist_ok=True)


def default_cache() -> ObjectCache:
    """Build an ObjectCache from settings (SKILLPIN_STATE_DIR, SKILLPIN_CACHE_TTL)."""
    return ObjectCache(
        state_dir=settings.state_dir,
        ttl=settings.cache_ttl,
        client=GitClient(settings.git_executable),
    )
