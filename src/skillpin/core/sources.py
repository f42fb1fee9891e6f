"""Source specifier parsing: turn a dependency's source string into a typed specifier.

Accepted forms:
    owner/repo[@ref]                       GitHub shorthand
    https://github.com/owner/repo[.git][@ref]
    git@github.com:owner/repo[.git][@ref]
    git:<url>                              any git URL (allow-listed schemes only)
    path:<relative/dir>                    local directory under the project root

Everything here is pure. A `git:` URL is later handed to the git executable as a
positional argument, so the scheme allow-list is what keeps option-looking
strings (e.g. "--upload-pack=...") out of that invocation.
"""

import logging
import posixpath
import re

from skillpin.errors import SpecifierError
from skillpin.models import GitHubSpecifier, GitSpecifier, LocalSpecifier

logger = logging.getLogger("skillpin.sources")

_NAME = r"[A-Za-z0-9_.-]+"

GITHUB_HTTPS_URL = re.compile(
    rf"^https?://(?:www\.)?github\.com/({_NAME})/({_NAME}?)(?:\.git)?/?(?:@([^/@\s]+))?$"
)
GITHUB_SSH_URL = re.compile(
    rf"^(?:ssh://)?git@github\.com[:/]({_NAME})/({_NAME}?)(?:\.git)?/?(?:@([^/@\s]+))?$"
)
GITHUB_SHORTHAND = re.compile(rf"^({_NAME})/({_NAME}?)(?:\.git)?(?:@(\S+))?$")

ALLOWED_GIT_PREFIXES = ("https://", "git://", "ssh://", "git@", "file://", "/")

COMMIT_SHA = re.compile(r"^[0-9a-f]{40}$")

_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_SCP_LIKE = re.compile(r"^[^/@:]+@([^/:]+):(.*)$")


def parse_source(source: str) -> GitHubSpecifier | GitSpecifier | LocalSpecifier:
    """Parse a source string. Raises SpecifierError on malformed input."""
    source = source.strip()

    if source.startswith("path:"):
        path = source[len("path:"):].strip()
        if not path:
            raise SpecifierError("Empty local path in source 'path:'")
        return LocalSpecifier(path=path)

    if source.startswith("git:"):
        url = source[len("git:"):].strip()
        if not url.startswith(ALLOWED_GIT_PREFIXES):
            raise SpecifierError(
                f"Unsupported git URL {url!r}: must start with one of "
                + ", ".join(ALLOWED_GIT_PREFIXES)
            )
        return GitSpecifier(url=url, cache_key=git_cache_key(url))

    for pattern in (GITHUB_HTTPS_URL, GITHUB_SSH_URL):
        m = pattern.match(source)
        if m:
            owner, repo, ref = m.groups()
            _check_segments(source, owner, repo)
            # Keep the user's protocol; only the @ref suffix is not part of the URL
            url = source[: m.start(3) - 1] if ref else source
            return GitHubSpecifier(
                owner=owner,
                repo=repo,
                ref=ref,
                url=url.rstrip("/"),
                cache_key=f"{owner}/{repo}",
            )

    m = GITHUB_SHORTHAND.match(source)
    if m:
        owner, repo, ref = m.groups()
        _check_segments(source, owner, repo)
        return GitHubSpecifier(
            owner=owner,
            repo=repo,
            ref=ref,
            url=f"https://github.com/{owner}/{repo}.git",
            cache_key=f"{owner}/{repo}",
        )

    raise SpecifierError(
        f"Unrecognized source {source!r}. Use owner/repo, a GitHub URL, "
        "git:<url> or path:<dir>."
    )


def _check_segments(source: str, *segments: str) -> None:
    for seg in segments:
        if not seg or seg in (".", ".."):
            raise SpecifierError(f"Invalid repository path in source {source!r}")


def git_cache_key(url: str) -> str:
    """Derive a filesystem-safe cache key from a git URL.

    https://git.corp.example.com/team/skills.git -> git.corp.example.com/team/skills
    git@host:team/skills.git                     -> host/team/skills
    """
    key = url.strip()
    scp = _SCP_LIKE.match(key)
    if scp and not _SCHEME.match(key):
        key = f"{scp.group(1)}/{scp.group(2)}"
    else:
        key = _SCHEME.sub("", key)
        # ssh://user@host/... -> host/...
        head, sep, rest = key.partition("/")
        if "@" in head:
            head = head.rsplit("@", 1)[1]
        key = head + sep + rest
    if key.endswith(".git"):
        key = key[: -len(".git")]
    segments = [s for s in key.replace("\\", "/").split("/") if s not in ("", ".", "..")]
    if not segments:
        raise SpecifierError(f"Cannot derive a cache key from {url!r}")
    return "/".join(segments)


def normalize_source(source: str) -> str:
    """Reduce a source to a canonical form for duplicate/overlap detection.

    Every GitHub spelling of a repository collapses to lower-case "owner/repo",
    independent of protocol and .git suffix.
    """
    try:
        spec = parse_source(source)
    except SpecifierError:
        return source.strip()

    if isinstance(spec, GitHubSpecifier):
        return f"{spec.owner}/{spec.repo}".lower()
    if isinstance(spec, GitSpecifier):
        key = spec.cache_key.lower()
        if key.startswith("github.com/") and key.count("/") == 2:
            return key[len("github.com/"):]
        return f"git:{key}"
    return "path:" + posixpath.normpath(spec.path)


def sources_match(a: str, b: str) -> bool:
    """True when two source strings denote the same repository or directory."""
    return normalize_source(a) == normalize_source(b)


def is_commit_sha(ref: str | None) -> bool:
    return bool(ref) and COMMIT_SHA.match(ref) is not None
