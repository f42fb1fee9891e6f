"""Source specifier parsing and normalization tests."""

from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from skillpin.core.sources import (
    git_cache_key,
    is_commit_sha,
    normalize_source,
    parse_source,
    sources_match,
)
from skillpin.errors import SpecifierError
from skillpin.models import GitHubSpecifier, GitSpecifier, LocalSpecifier


def test_github_shorthand_with_ref():
    spec = parse_source("anthropics/skills@v1.2")
    assert isinstance(spec, GitHubSpecifier)
    assert (spec.owner, spec.repo, spec.ref) == ("anthropics", "skills", "v1.2")
    assert spec.url == "https://github.com/anthropics/skills.git"
    assert spec.cache_key == "anthropics/skills"
    print(f"  PASS: shorthand -> {spec.url}@{spec.ref}")


def test_github_urls_keep_protocol():
    https = parse_source("https://github.com/owner/repo@main")
    assert https.url == "https://github.com/owner/repo"
    assert https.ref == "main"

    ssh = parse_source("git@github.com:owner/repo.git")
    assert isinstance(ssh, GitHubSpecifier)
    assert ssh.url == "git@github.com:owner/repo.git"
    assert ssh.ref is None
    print("  PASS: https and ssh GitHub URLs parsed")


def test_git_and_local_sources():
    git = parse_source("git:https://git.corp.example.com/team/skills.git")
    assert isinstance(git, GitSpecifier)
    assert git.cache_key == "git.corp.example.com/team/skills"

    local = parse_source("path:vendor/skills")
    assert isinstance(local, LocalSpecifier)
    assert local.path == "vendor/skills"
    print("  PASS: git: and path: sources parsed")


@pytest.mark.parametrize("source", [
    "git:--upload-pack=touch /tmp/pwned",
    "git:ext::sh -c touch% /tmp/pwned",
    "path:",
    "owner/..",
    "not a source",
])
def test_rejected_sources(source):
    with pytest.raises(SpecifierError):
        parse_source(source)


def test_normalization_equivalence():
    spellings = [
        "Owner/Repo",
        "owner/repo@v2",
        "https://github.com/owner/repo",
        "https://github.com/OWNER/repo.git",
        "git@github.com:owner/repo.git",
        "git:https://github.com/owner/repo.git",
    ]
    assert {normalize_source(s) for s in spellings} == {"owner/repo"}
    assert sources_match(spellings[0], spellings[-1])
    assert not sources_match("owner/repo", "owner/other")
    print("  PASS: all GitHub spellings normalize to owner/repo")


def test_normalize_non_github():
    assert normalize_source("git:git@host:team/skills.git") == "git:host/team/skills"
    assert normalize_source("path:./vendor//skills/") == "path:vendor/skills"
    assert sources_match("path:vendor/skills", "path:./vendor/skills")


def test_cache_key_forms():
    assert git_cache_key("git@host:team/skills.git") == "host/team/skills"
    assert git_cache_key("ssh://git@host/team/skills") == "host/team/skills"
    assert git_cache_key("file:///srv/repos/skills.git") == "srv/repos/skills"
    assert git_cache_key("/srv/repos/../skills") == "srv/repos/skills"


def test_is_commit_sha():
    assert is_commit_sha("a" * 40)
    assert not is_commit_sha("abc123")
    assert not is_commit_sha("main")
    assert not is_commit_sha(None)
