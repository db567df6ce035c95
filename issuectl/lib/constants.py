"""Shared constants for issuectl."""

import re

# Session IDs are lowercase canonical UUIDs
SESSION_ID_PATTERN = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$')

# Version directory names: v2, v2.1, v2.1.3
VERSION_DIR_PATTERN = re.compile(r'^v\d+(\.\d+){0,2}$')
MAJOR_DIR_PATTERN = re.compile(r'^v(\d+)$')
MINOR_DIR_PATTERN = re.compile(r'^v(\d+)\.(\d+)$')
PATCH_DIR_PATTERN = re.compile(r'^v(\d+)\.(\d+)\.(\d+)$')

# Issue identifiers: 2-name, 2.1-name, 2.1.3-name
QUALIFIED_ID_PATTERN = re.compile(r'^(\d+)(?:\.(\d+)(?:\.(\d+))?)?-([a-zA-Z][a-zA-Z0-9_-]*)$')
BARE_NAME_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9_-]*$')
VERSION_TARGET_PATTERN = re.compile(r'^(\d+)(?:\.(\d+)(?:\.(\d+))?)?$')

STATE_FILE = "STATE.md"
PLAN_FILE = "PLAN.md"
LOCK_SUFFIX = ".lock"
CONFIG_FILE = "issuectl.yaml"
ROOT_ENV_VAR = "ISSUECTL_ROOT"
