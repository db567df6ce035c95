"""
issuectl next - Find and claim the next executable issue.
"""

from dataclasses import replace

from issuectl.discovery import DiscoveryEngine, Found, NotFound, SearchOptions, SearchScope
from issuectl.discovery.diagnostics import gather
from issuectl.issues import FilesystemRepository
from issuectl.lib.output import print_json
from issuectl.runner.locking import LockManager


def cmd_next(args, project_config) -> int:
    """Run discovery and print the outcome.

    Exit 0 for found and not_found (the latter carries diagnostics),
    1 for every outcome that needs the caller's attention.
    """
    repo = FilesystemRepository(project_config)
    locks = LockManager.from_config(project_config)

    options = SearchOptions(
        scope=SearchScope(args.scope),
        session_id=args.session,
        target=args.target or "",
        exclude_pattern=args.exclude or "",
        override_postconditions=args.override_postconditions,
    )
    result = DiscoveryEngine(repo, locks).find_next(options)

    if isinstance(result, NotFound):
        diagnostics = gather(
            repo,
            locks,
            scan_limit=project_config.diagnostic_scan_limit,
            max_cycle_depth=project_config.max_cycle_depth,
        )
        result = replace(result, diagnostics=diagnostics)

    print_json(result.to_dict())
    return 0 if isinstance(result, (Found, NotFound)) else 1
