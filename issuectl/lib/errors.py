"""
Exception taxonomy for issuectl.

Lock operations convert these into result values at their public boundary;
the CLI converts anything that escapes into a JSON error on stderr.
"""


class IssueCtlError(Exception):
    """Base class for all issuectl errors."""
    pass


class ValidationError(IssueCtlError):
    """Malformed input: session id, issue id, version or scope target."""
    pass


class StatusError(IssueCtlError):
    """A STATE.md status is missing, unrecognized, or violates the closure rule."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class RaceError(IssueCtlError):
    """Another process installed a lock file first."""
    pass


class OwnershipError(IssueCtlError):
    """A lock operation was attempted by a session that does not own the lock."""

    def __init__(self, owner: str):
        self.owner = owner
        super().__init__(f"Lock owned by different session: {owner}")


class LockNotFoundError(IssueCtlError):
    """An owner-only operation found no lock file."""
    pass


class CorruptLockError(IssueCtlError):
    """A lock file exists but cannot be parsed or fails schema validation."""

    def __init__(self, path, reason: str):
        self.path = path
        super().__init__(f"Corrupt lock file {path}: {reason}")


class ConfigError(IssueCtlError):
    """Project root or configuration is unusable."""
    pass


class DiagnosticsError(IssueCtlError):
    """A diagnostic scan exceeded one of its safety limits."""
    pass


class InvalidTransition(StatusError):
    """A status change that the issue lifecycle does not allow."""

    def __init__(self, issue_id: str, current: str, target: str):
        self.issue_id = issue_id
        self.current = current
        self.target = target
        super().__init__(f"Cannot change status of {issue_id} from '{current}' to '{target}'")
