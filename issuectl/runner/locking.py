"""
Issue-level lock management for issuectl.

One JSON lock file per issue under <root>/locks/<sanitized-id>.lock:
  {"session_id": "<uuid>", "created_at": <epoch>, "worktree": "<path>", "created_iso": "<ISO-8601>"}

A lock is installed by hard-linking a fully written temp file into place,
which fails atomically if another process got there first. Locks never
expire; a crashed session's lock stays until someone force-releases it.

Every operation returns a LockResult value. Only malformed arguments
(ValidationError) and unexpected OS failures escape as exceptions.
"""

import errno
import json
import logging
import os
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from issuectl.lib.config import ProjectConfig
from issuectl.lib.constants import LOCK_SUFFIX, SESSION_ID_PATTERN
from issuectl.lib.errors import (
    CorruptLockError,
    LockNotFoundError,
    OwnershipError,
    RaceError,
    ValidationError,
)
from issuectl.lib.validate import SchemaError, validate_before_write, validate_text

logger = logging.getLogger(__name__)

RACE_RETRIES = 3

FIND_ANOTHER_ISSUE = "FIND_ANOTHER_ISSUE"
LOCKED_GUIDANCE = (
    "Do NOT investigate, remove, or question this lock. Execute a different issue instead. "
    "If you believe this is a stale lock from a crashed session, ask the USER to run "
    "'issuectl force-release <issue-id>'."
)

# errnos meaning "this filesystem can't hard-link", not "the lock exists"
_LINK_UNSUPPORTED = {errno.EPERM, errno.ENOTSUP, errno.EOPNOTSUPP, errno.ENOSYS, errno.EXDEV}


class LockState(Enum):
    """Per-issue lock state as seen by one session."""

    UNLOCKED = "unlocked"
    LOCKED_BY_SELF = "locked_by_self"
    LOCKED_BY_OTHER = "locked_by_other"


# ----- results -----

@dataclass(frozen=True)
class LockResult:
    """Base of the lock outcome hierarchy. Each variant maps to one JSON shape."""

    def to_dict(self) -> dict:
        raise NotImplementedError

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class Acquired(LockResult):
    message: str = "Lock acquired successfully"

    def to_dict(self) -> dict:
        return {"status": "acquired", "message": self.message}


@dataclass(frozen=True)
class Locked(LockResult):
    owner: str
    message: str = "Issue locked by another session"
    action: str = FIND_ANOTHER_ISSUE
    guidance: str = LOCKED_GUIDANCE

    def to_dict(self) -> dict:
        return {
            "status": "locked",
            "message": self.message,
            "owner": self.owner,
            "action": self.action,
            "guidance": self.guidance,
        }


@dataclass(frozen=True)
class Updated(LockResult):
    worktree: str
    message: str = "Lock updated with worktree"

    def to_dict(self) -> dict:
        return {"status": "updated", "message": self.message, "worktree": self.worktree}


@dataclass(frozen=True)
class Released(LockResult):
    message: str = "Lock released successfully"

    def to_dict(self) -> dict:
        return {"status": "released", "message": self.message}


@dataclass(frozen=True)
class LockFailed(LockResult):
    """Operation refused: reason is one of not_found, ownership, corrupt, race."""
    message: str
    reason: str

    def to_dict(self) -> dict:
        return {"status": "error", "message": self.message, "reason": self.reason}


@dataclass(frozen=True)
class CheckLocked(LockResult):
    session_id: str
    age_seconds: int
    worktree: str

    def to_dict(self) -> dict:
        return {
            "locked": True,
            "session_id": self.session_id,
            "age_seconds": self.age_seconds,
            "worktree": self.worktree,
        }


@dataclass(frozen=True)
class CheckUnlocked(LockResult):
    message: str = "Issue not locked"

    def to_dict(self) -> dict:
        return {"locked": False, "message": self.message}


@dataclass(frozen=True)
class LockListEntry:
    issue: str
    session: str
    age_seconds: int

    def to_dict(self) -> dict:
        return {"issue": self.issue, "session": self.session, "age_seconds": self.age_seconds}


# ----- helpers -----

def validate_session_id(session_id: str) -> None:
    """Raise ValidationError unless session_id is a lowercase canonical UUID."""
    if not session_id or not SESSION_ID_PATTERN.match(session_id):
        raise ValidationError(
            f"Invalid session_id format: '{session_id}'. Expected UUID. "
            "Did you swap issue_id and session_id arguments?"
        )


def _require_issue_id(issue_id: str) -> None:
    if not issue_id or not issue_id.strip():
        raise ValidationError("issue_id must not be blank")


def sanitize_issue_id(issue_id: str) -> str:
    """Make an issue id safe to use as a filename (no separators, no '..')."""
    return issue_id.replace("/", "-").replace("\\", "-").replace("..", "-")


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class LockManager:
    """Session-scoped mutual exclusion over issues."""

    def __init__(self, lock_dir: Path, max_lock_files: int = 1000):
        self.lock_dir = lock_dir
        self.max_lock_files = max_lock_files

    @classmethod
    def from_config(cls, config: ProjectConfig) -> "LockManager":
        return cls(config.locks_path, config.max_lock_files)

    def lock_path(self, issue_id: str) -> Path:
        return self.lock_dir / f"{sanitize_issue_id(issue_id)}{LOCK_SUFFIX}"

    # ----- file primitives -----

    def _read_lock(self, lock_file: Path) -> dict | None:
        """Parsed lock data, or None if no lock file exists.

        Raises:
            CorruptLockError: file exists but isn't a valid lock document
        """
        try:
            text = lock_file.read_text()
        except FileNotFoundError:
            return None
        try:
            return validate_text(text, "lock", lock_file)
        except SchemaError as e:
            raise CorruptLockError(lock_file, str(e)) from None

    def _temp_path(self, lock_file: Path) -> Path:
        return lock_file.with_name(f"{lock_file.name}.{os.getpid()}.{uuid.uuid4().hex}.tmp")

    def _install(self, lock_file: Path, data: dict) -> None:
        """Create lock_file with data unless it already exists.

        Raises:
            RaceError: another process holds the file
        """
        validate_before_write(data, "lock", lock_file)
        text = json.dumps(data)
        tmp = self._temp_path(lock_file)
        tmp.write_text(text)
        try:
            os.link(tmp, lock_file)
        except FileExistsError:
            raise RaceError(f"Lock file already exists: {lock_file}") from None
        except OSError as e:
            if e.errno not in _LINK_UNSUPPORTED:
                raise
            logger.debug(f"Hard links unsupported in {self.lock_dir} ({e}); using exclusive create")
            self._install_exclusive(lock_file, text)
        finally:
            tmp.unlink(missing_ok=True)

    def _install_exclusive(self, lock_file: Path, text: str) -> None:
        try:
            fd = os.open(lock_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            raise RaceError(f"Lock file already exists: {lock_file}") from None
        with os.fdopen(fd, "w") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())

    def _replace(self, lock_file: Path, data: dict) -> None:
        """Atomically overwrite an existing lock file."""
        validate_before_write(data, "lock", lock_file)
        tmp = self._temp_path(lock_file)
        tmp.write_text(json.dumps(data))
        try:
            os.replace(tmp, lock_file)
        finally:
            tmp.unlink(missing_ok=True)

    def _owned_lock(self, lock_file: Path, session_id: str) -> dict:
        """Lock data if owned by session_id.

        Raises:
            LockNotFoundError, OwnershipError, CorruptLockError
        """
        data = self._read_lock(lock_file)
        if data is None:
            raise LockNotFoundError(f"No lock exists: {lock_file}")
        if data["session_id"] != session_id:
            raise OwnershipError(data["session_id"])
        return data

    # ----- operations -----

    def acquire(self, issue_id: str, session_id: str, worktree: str = "") -> LockResult:
        """Claim an issue for session_id.

        Re-acquiring a lock this session already holds succeeds without
        touching the file.
        """
        _require_issue_id(issue_id)
        validate_session_id(session_id)

        self.lock_dir.mkdir(parents=True, exist_ok=True)
        lock_file = self.lock_path(issue_id)

        for attempt in range(RACE_RETRIES):
            try:
                existing = self._read_lock(lock_file)
            except CorruptLockError as e:
                logger.warning(str(e))
                return LockFailed(f"{e}. Ask the USER to force-release it.", "corrupt")

            if existing is not None:
                owner = existing["session_id"]
                if owner == session_id:
                    return Acquired("Lock already held by this session")
                return Locked(owner)

            data = {
                "session_id": session_id,
                "created_at": int(time.time()),
                "worktree": worktree,
                "created_iso": _now_iso(),
            }
            try:
                self._install(lock_file, data)
            except RaceError:
                # Loop back and report whoever won
                logger.info(f"Lost lock race for {issue_id} (attempt {attempt + 1})")
                continue

            logger.info(f"Acquired lock for {issue_id} (session {session_id})")
            return Acquired()

        return LockFailed("Race condition: could not read lock owner", "race")

    def update(self, issue_id: str, session_id: str, worktree: str) -> LockResult:
        """Record a new worktree path on a lock this session owns."""
        _require_issue_id(issue_id)
        validate_session_id(session_id)
        if not worktree or not worktree.strip():
            raise ValidationError("worktree must not be blank")

        lock_file = self.lock_path(issue_id)
        try:
            data = self._owned_lock(lock_file, session_id)
        except LockNotFoundError:
            return LockFailed("No lock exists to update", "not_found")
        except OwnershipError as e:
            return LockFailed(str(e), "ownership")
        except CorruptLockError as e:
            return LockFailed(str(e), "corrupt")

        self._replace(lock_file, {
            "session_id": session_id,
            "created_at": data["created_at"],
            "worktree": worktree,
            "created_iso": data.get("created_iso", ""),
        })
        logger.info(f"Updated lock for {issue_id}: worktree={worktree}")
        return Updated(worktree)

    def release(self, issue_id: str, session_id: str) -> LockResult:
        """Delete a lock this session owns. Releasing a missing lock succeeds."""
        _require_issue_id(issue_id)
        validate_session_id(session_id)

        lock_file = self.lock_path(issue_id)
        try:
            self._owned_lock(lock_file, session_id)
        except LockNotFoundError:
            return Released("No lock exists")
        except OwnershipError as e:
            return LockFailed(str(e), "ownership")
        except CorruptLockError as e:
            return LockFailed(str(e), "corrupt")

        lock_file.unlink(missing_ok=True)
        logger.info(f"Released lock for {issue_id} (session {session_id})")
        return Released()

    def force_release(self, issue_id: str) -> LockResult:
        """Delete a lock regardless of owner. For stale locks left by crashed sessions."""
        _require_issue_id(issue_id)

        lock_file = self.lock_path(issue_id)
        try:
            data = self._read_lock(lock_file)
        except CorruptLockError as e:
            logger.warning(f"Force-releasing corrupt lock: {e}")
            owner = "unknown (corrupt lock file)"
        else:
            if data is None:
                return Released("No lock exists")
            owner = data["session_id"]

        lock_file.unlink(missing_ok=True)
        logger.info(f"Force-released lock for {issue_id} (was owned by {owner})")
        return Released(f"Lock forcibly released (was owned by {owner})")

    def check(self, issue_id: str) -> LockResult:
        """Report lock owner and age without changing anything."""
        _require_issue_id(issue_id)

        try:
            data = self._read_lock(self.lock_path(issue_id))
        except CorruptLockError as e:
            return LockFailed(str(e), "corrupt")
        if data is None:
            return CheckUnlocked()

        age = int(time.time()) - data["created_at"]
        return CheckLocked(data["session_id"], age, data.get("worktree", ""))

    def state(self, issue_id: str, session_id: str) -> LockState:
        """Lock state of an issue from session_id's point of view.

        Corrupt lock files count as held by someone else.
        """
        result = self.check(issue_id)
        if isinstance(result, CheckUnlocked):
            return LockState.UNLOCKED
        if isinstance(result, CheckLocked) and result.session_id == session_id:
            return LockState.LOCKED_BY_SELF
        return LockState.LOCKED_BY_OTHER

    def list(self) -> list[LockListEntry]:
        """All readable locks, sorted by file name.

        Malformed lock files are skipped with a warning. At most
        max_lock_files entries are returned.
        """
        if not self.lock_dir.is_dir():
            return []

        entries = []
        now = int(time.time())
        for lock_file in sorted(self.lock_dir.glob(f"*{LOCK_SUFFIX}")):
            if len(entries) >= self.max_lock_files:
                logger.warning(
                    f"More than {self.max_lock_files} lock files found in {self.lock_dir}. "
                    f"Only the first {self.max_lock_files} are listed."
                )
                break
            try:
                data = self._read_lock(lock_file)
            except (CorruptLockError, OSError) as e:
                logger.warning(f"Skipping malformed lock file {lock_file}: {e}")
                continue
            if data is None:
                # Released between glob and read
                continue
            issue = lock_file.name[:-len(LOCK_SUFFIX)]
            entries.append(LockListEntry(issue, data["session_id"], now - data["created_at"]))

        return entries
