#!/usr/bin/env python3
"""issuectl CLI entrypoint."""

import argparse
import logging
import sys

from issuectl.commands import lock as cmd_lock_module
from issuectl.commands import next as cmd_next_module
from issuectl.commands import status as cmd_status_module
from issuectl.discovery import SearchScope
from issuectl.lib.config import get_project_config
from issuectl.lib.errors import IssueCtlError
from issuectl.lib.output import print_error


def configure_logging(verbosity: int) -> None:
    """Log to stderr so stdout carries only the JSON document."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cmd_acquire(args, project_config):
    return cmd_lock_module.cmd_acquire(args, project_config)


def cmd_update(args, project_config):
    return cmd_lock_module.cmd_update(args, project_config)


def cmd_release(args, project_config):
    return cmd_lock_module.cmd_release(args, project_config)


def cmd_force_release(args, project_config):
    return cmd_lock_module.cmd_force_release(args, project_config)


def cmd_check(args, project_config):
    return cmd_lock_module.cmd_check(args, project_config)


def cmd_list(args, project_config):
    return cmd_lock_module.cmd_list(args, project_config)


def cmd_next(args, project_config):
    return cmd_next_module.cmd_next(args, project_config)


def cmd_set_status(args, project_config):
    return cmd_status_module.cmd_set_status(args, project_config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='issuectl', description='Issue lock and discovery CLI')
    parser.add_argument('--root', '-r', help='Project root (default: $ISSUECTL_ROOT or current directory)')
    parser.add_argument('--verbose', '-v', action='count', default=0, help='-v for info, -vv for debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # issuectl acquire
    p_acquire = subparsers.add_parser('acquire', help='Acquire the lock on an issue')
    p_acquire.add_argument('issue_id', help='Issue ID (e.g., 2.1-fix-bug)')
    p_acquire.add_argument('session_id', help='Session UUID')
    p_acquire.add_argument('worktree', nargs='?', default='', help='Worktree path (optional)')
    p_acquire.set_defaults(func=cmd_acquire)

    # issuectl update
    p_update = subparsers.add_parser('update', help='Record the worktree on a held lock')
    p_update.add_argument('issue_id', help='Issue ID')
    p_update.add_argument('session_id', help='Session UUID')
    p_update.add_argument('worktree', help='Worktree path')
    p_update.set_defaults(func=cmd_update)

    # issuectl release
    p_release = subparsers.add_parser('release', help='Release a lock held by this session')
    p_release.add_argument('issue_id', help='Issue ID')
    p_release.add_argument('session_id', help='Session UUID')
    p_release.set_defaults(func=cmd_release)

    # issuectl force-release
    p_force = subparsers.add_parser('force-release', help='Remove a lock regardless of owner (stale locks)')
    p_force.add_argument('issue_id', help='Issue ID')
    p_force.set_defaults(func=cmd_force_release)

    # issuectl check
    p_check = subparsers.add_parser('check', help='Show lock owner and age')
    p_check.add_argument('issue_id', help='Issue ID')
    p_check.set_defaults(func=cmd_check)

    # issuectl list
    p_list = subparsers.add_parser('list', help='List all locks')
    p_list.set_defaults(func=cmd_list)

    # issuectl next
    p_next = subparsers.add_parser('next', help='Find and claim the next executable issue')
    p_next.add_argument('--session', '-s', required=True, help='Session UUID that will own the lock')
    p_next.add_argument('--scope', choices=[s.value for s in SearchScope], default=SearchScope.ALL.value,
                        help='Search scope (default: all)')
    p_next.add_argument('--target', '-t', default='',
                        help='Version for major/minor, issue ID for issue, name for bare_name')
    p_next.add_argument('--exclude', '-x', default='', help='Glob of issue names to skip')
    p_next.add_argument('--override-postconditions', action='store_true',
                        help='Ignore post-condition gating (repair workflows)')
    p_next.set_defaults(func=cmd_next)

    # issuectl set-status
    p_status = subparsers.add_parser('set-status', help='Change an issue status')
    p_status.add_argument('issue_id', help='Issue ID')
    p_status.add_argument('status', help='open, in-progress, closed or blocked')
    p_status.set_defaults(func=cmd_set_status)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        project_config = get_project_config(args.root)
        return args.func(args, project_config)
    except (IssueCtlError, OSError) as e:
        print_error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
