"""
Filesystem persistence for waypost projects.

Everything lives under <root>/.waypost/. The rest of the package never opens
these files directly; it goes through FilesystemRepository.

Contract:
- load_*() returns None when the file does not exist
- load_*() raises PersistenceError on IO, parse or schema errors
- save_*() writes a temp file, fsyncs and renames, so a save either lands
  completely or not at all
- append_event() writes one JSON line and fsyncs before returning
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

import yaml

from waypost.lib.constants import (
    EVENTS_FILE,
    PLAN_FILE,
    POLICY_FILE,
    SPEC_FILE,
    SPEC_LOCK_FILE,
    STATE_FILE,
    USAGE_FILE,
    WAYPOST_DIR,
)
from waypost.lib.errors import (
    JournalWriteError,
    NotInitializedError,
    PersistenceError,
    SchemaValidationError,
)
from waypost.lib.usage import UsageStats
from waypost.lib.validate import validate, validate_before_write
from waypost.pm.models import ProductSpec
from waypost.workflow.models import ExecutionState, Plan
from waypost.workflow.policy import PolicyConfig

logger = logging.getLogger(__name__)


class FilesystemRepository:
    """Loads and saves project documents under root/.waypost."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.base = self.root / WAYPOST_DIR

    def path(self, name: str) -> Path:
        return self.base / name

    # ------------------------------------------------------------------
    # Project lifecycle
    # ------------------------------------------------------------------

    def is_initialized(self) -> bool:
        return self.base.is_dir()

    def require_initialized(self) -> None:
        if not self.is_initialized():
            raise NotInitializedError(self.root)

    def initialize(self, policy: Optional[PolicyConfig] = None) -> bool:
        """Create .waypost with a default policy and empty journal.

        Returns False if the project already existed (nothing is overwritten).
        """
        if self.is_initialized():
            return False
        try:
            self.base.mkdir(parents=True)
            self.path(EVENTS_FILE).touch()
        except OSError as e:
            raise PersistenceError(self.base, f"cannot create project directory: {e}") from e
        self.save_policy(policy or PolicyConfig())
        logger.info(f"[REPO] Initialized project at {self.base}")
        return True

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    def _read_document(self, name: str, schema_name: str, parse: Callable[[str], object]) -> Optional[dict]:
        path = self.path(name)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(path, f"read failed: {e}") from e
        except UnicodeDecodeError as e:
            raise PersistenceError(path, f"not valid UTF-8: {e}") from e

        try:
            data = parse(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise PersistenceError(path, f"parse failed: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise PersistenceError(path, "expected a mapping at top level")

        try:
            validate(data, schema_name)
        except SchemaValidationError as e:
            raise PersistenceError(path, str(e)) from e
        return data

    def _write_atomic(self, name: str, content: str) -> Path:
        path = self.path(name)
        self.require_initialized()
        fd, tmp = tempfile.mkstemp(dir=self.base, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError as e:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise PersistenceError(path, f"write failed: {e}") from e
        return path

    def _write_json(self, name: str, data: dict, schema_name: str) -> Path:
        try:
            validate_before_write(data, schema_name, self.path(name))
        except SchemaValidationError as e:
            raise PersistenceError(self.path(name), str(e)) from e
        return self._write_atomic(name, json.dumps(data, indent=2) + "\n")

    def _write_yaml(self, name: str, data: dict, schema_name: str) -> Path:
        try:
            validate_before_write(data, schema_name, self.path(name))
        except SchemaValidationError as e:
            raise PersistenceError(self.path(name), str(e)) from e
        return self._write_atomic(name, yaml.safe_dump(data, sort_keys=False))

    def _delete(self, name: str) -> None:
        path = self.path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise PersistenceError(path, f"delete failed: {e}") from e

    def _build(self, name: str, data: dict, factory):
        try:
            return factory(data)
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(self.path(name), f"invalid document: {e}") from e

    # ------------------------------------------------------------------
    # Spec
    # ------------------------------------------------------------------

    def load_spec(self) -> Optional[ProductSpec]:
        data = self._read_document(SPEC_FILE, "spec", yaml.safe_load)
        if data is None:
            return None
        return self._build(SPEC_FILE, data, ProductSpec.from_dict)

    def save_spec(self, spec: ProductSpec) -> Path:
        return self._write_yaml(SPEC_FILE, spec.to_dict(), "spec")

    def load_spec_lock(self) -> Optional[dict]:
        return self._read_document(SPEC_LOCK_FILE, "spec_lock", json.loads)

    def save_spec_lock(self, lock: dict) -> Path:
        return self._write_json(SPEC_LOCK_FILE, lock, "spec_lock")

    def delete_spec_lock(self) -> None:
        self._delete(SPEC_LOCK_FILE)

    # ------------------------------------------------------------------
    # Plan and state
    # ------------------------------------------------------------------

    def load_plan(self) -> Optional[Plan]:
        data = self._read_document(PLAN_FILE, "plan", json.loads)
        if data is None:
            return None
        return self._build(PLAN_FILE, data, Plan.from_dict)

    def save_plan(self, plan: Plan) -> Path:
        return self._write_json(PLAN_FILE, plan.to_dict(), "plan")

    def delete_plan(self) -> None:
        self._delete(PLAN_FILE)

    def load_state(self) -> Optional[ExecutionState]:
        data = self._read_document(STATE_FILE, "state", json.loads)
        if data is None:
            return None
        return self._build(STATE_FILE, data, ExecutionState.from_dict)

    def save_state(self, state: ExecutionState) -> Path:
        return self._write_json(STATE_FILE, state.to_dict(), "state")

    def delete_state(self) -> None:
        self._delete(STATE_FILE)

    # ------------------------------------------------------------------
    # Policy and usage
    # ------------------------------------------------------------------

    def load_policy(self) -> Optional[PolicyConfig]:
        data = self._read_document(POLICY_FILE, "policy", yaml.safe_load)
        if data is None:
            return None
        return self._build(POLICY_FILE, data, PolicyConfig.from_dict)

    def save_policy(self, policy: PolicyConfig) -> Path:
        return self._write_yaml(POLICY_FILE, policy.to_dict(), "policy")

    def load_usage(self) -> Optional[UsageStats]:
        data = self._read_document(USAGE_FILE, "usage", json.loads)
        if data is None:
            return None
        return self._build(USAGE_FILE, data, UsageStats.from_dict)

    def save_usage(self, usage: UsageStats) -> Path:
        return self._write_json(USAGE_FILE, usage.to_dict(), "usage")

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------

    def append_event(self, data: dict) -> None:
        """Append one event as a JSON line. Durable when this returns.

        Raises:
            JournalWriteError: The event is invalid or could not be written.
        """
        path = self.path(EVENTS_FILE)
        try:
            validate(data, "event")
        except SchemaValidationError as e:
            raise JournalWriteError(path, str(e)) from e

        line = json.dumps(data, sort_keys=True, ensure_ascii=False) + "\n"
        try:
            self.require_initialized()
            with open(path, "a", encoding="utf-8") as f:
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
        except (OSError, NotInitializedError) as e:
            raise JournalWriteError(path, f"append failed: {e}") from e

    def load_events(self) -> list[dict]:
        """Load all journal events in file order. Skips corrupted lines."""
        path = self.path(EVENTS_FILE)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise PersistenceError(path, f"read failed: {e}") from e
        except UnicodeDecodeError as e:
            raise PersistenceError(path, f"not valid UTF-8: {e}") from e

        # Records end at "\n" only; metadata may hold U+2028 and friends unescaped
        events = []
        for line_num, line in enumerate(text.split("\n"), 1):
            if not line.strip():
                continue
            try:
                data = json.loads(line)
                if not isinstance(data, dict):
                    raise ValueError("not an object")
                validate(data, "event")
            except (json.JSONDecodeError, ValueError, SchemaValidationError) as e:
                logger.warning(f"Skipping corrupted event line {line_num} in {path}: {e}")
                continue
            events.append(data)
        return events
