"""Shared constants for waypost."""

import re

# Project directory layout (all files are direct children of WAYPOST_DIR)
WAYPOST_DIR = ".waypost"
SPEC_FILE = "spec.yaml"
SPEC_LOCK_FILE = "spec.lock.json"
PLAN_FILE = "plan.json"
STATE_FILE = "state.json"
POLICY_FILE = "policy.yaml"
EVENTS_FILE = "events.jsonl"
USAGE_FILE = "usage.json"
CONFIG_FILE = "config.yaml"

# Generated task ids are derived from requirement/feature ids
TASK_ID_PREFIX = "task-"
ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.:-]*$')
