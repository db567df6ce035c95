"""
issuectl acquire/update/release/force-release/check/list - Issue lock commands.
"""

from issuectl.lib.output import print_json
from issuectl.runner.locking import Acquired, LockFailed, LockManager


def _lock_manager(project_config) -> LockManager:
    return LockManager.from_config(project_config)


def cmd_acquire(args, project_config) -> int:
    """Claim an issue. Exit 1 unless the lock is now held by this session."""
    result = _lock_manager(project_config).acquire(args.issue_id, args.session_id, args.worktree or "")
    print_json(result.to_dict())
    return 0 if isinstance(result, Acquired) else 1


def cmd_update(args, project_config) -> int:
    result = _lock_manager(project_config).update(args.issue_id, args.session_id, args.worktree)
    print_json(result.to_dict())
    return 1 if isinstance(result, LockFailed) else 0


def cmd_release(args, project_config) -> int:
    result = _lock_manager(project_config).release(args.issue_id, args.session_id)
    print_json(result.to_dict())
    return 1 if isinstance(result, LockFailed) else 0


def cmd_force_release(args, project_config) -> int:
    result = _lock_manager(project_config).force_release(args.issue_id)
    print_json(result.to_dict())
    return 0


def cmd_check(args, project_config) -> int:
    """Report lock state. Locked and unlocked are both exit 0; a corrupt lock file is 1."""
    result = _lock_manager(project_config).check(args.issue_id)
    print_json(result.to_dict())
    return 1 if isinstance(result, LockFailed) else 0


def cmd_list(args, project_config) -> int:
    entries = _lock_manager(project_config).list()
    print_json([entry.to_dict() for entry in entries])
    return 0
