"""Exception types raised by skillpin."""


class SkillpinError(Exception):
    """Base class for every error skillpin raises on purpose."""


class SpecifierError(SkillpinError):
    """Malformed or disallowed source string. Raised before any I/O."""


class ExecError(SkillpinError):
    """External command exited non-zero."""

    def __init__(self, message: str, exit_code: int | None, stderr: str):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class CacheError(SkillpinError):
    """A git operation against the object cache failed."""


class SkillLoadError(SkillpinError):
    """SKILL.md is missing or its frontmatter is invalid."""


class DiscoveryError(SkillpinError):
    """A skill could not be located inside a checkout."""


class ResolveError(DiscoveryError):
    """A dependency could not be resolved to a directory."""


class IntegrityMismatch(SkillpinError):
    """Content hash disagrees with the lockfile."""

    def __init__(self, name: str, expected: str, actual: str):
        super().__init__(
            f'Integrity mismatch for "{name}": expected {expected}, got {actual}.'
        )
        self.name = name
        self.expected = expected
        self.actual = actual


class LockfileError(SkillpinError):
    """agents.lock is unreadable or fails schema validation."""


class ManifestError(SkillpinError):
    """agents.toml is missing, unreadable or inconsistent."""


class SymlinkError(SkillpinError):
    """Something other than a directory or symlink occupies a skills path."""


class InstallError(SkillpinError):
    pass


class UpdateError(SkillpinError):
    pass


class RemoveError(SkillpinError):
    pass


class AddError(SkillpinError):
    pass


class ScopeError(SkillpinError):
    """Unknown scope name."""
