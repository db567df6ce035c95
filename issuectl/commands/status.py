"""
issuectl set-status - Move an issue through its lifecycle.
"""

from issuectl.issues import FilesystemRepository, IssueId, normalize_status
from issuectl.lib.output import print_json


def cmd_set_status(args, project_config) -> int:
    issue_id = IssueId.parse(args.issue_id)
    target = normalize_status(args.status)

    previous = FilesystemRepository(project_config).set_status(issue_id, target)

    print_json({
        "status": "updated" if previous else "unchanged",
        "issue_id": str(issue_id),
        "from": str(previous or target),
        "to": str(target),
    })
    return 0
