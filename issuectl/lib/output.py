"""JSON output for CLI commands: one document on stdout, errors on stderr."""

import json
import sys


def print_json(data) -> None:
    print(json.dumps(data, indent=2))


def print_error(message: str) -> None:
    print(json.dumps({"status": "error", "message": message}, indent=2), file=sys.stderr)
