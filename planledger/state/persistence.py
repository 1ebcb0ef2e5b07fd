"""Workspace persistence with atomic writes."""

import json
import logging
from pathlib import Path
from typing import Optional, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from ..planning.models import ExecutionState, Plan, utcnow
from ..policy.rules import PolicyConfig
from ..spec.models import ProductSpec

logger = logging.getLogger(__name__)

WORKSPACE_DIR = ".planledger"
SPEC_FILE = "spec.yaml"
SPEC_LOCK_FILE = "spec.lock.json"
PLAN_FILE = "plan.json"
STATE_FILE = "state.json"
POLICY_FILE = "policy.yaml"

ModelT = TypeVar("ModelT", bound=BaseModel)


class PersistenceError(Exception):
    """Workspace file could not be read or written."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(message)


class WorkspaceRepository:
    """File-backed store for spec, lock, plan, state and policy.

    Assumes a single writer; writes are atomic per file but not across files.
    """

    def __init__(self, root: Path, dir_name: str = WORKSPACE_DIR, project_id: str = ""):
        """Initialize repository.

        Args:
            root: Project root directory
            dir_name: Workspace directory name under root
            project_id: Project ID for new execution state (defaults to root name)
        """
        self.root = Path(root)
        self.dir = self.root / dir_name
        self.project_id = project_id

    def path(self, filename: str) -> Path:
        return self.dir / filename

    def initialize(self) -> None:
        """Create the workspace directory."""
        try:
            self.dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to create workspace {self.dir}: {e}", self.dir) from e
        logger.info(f"Initialized workspace: {self.dir}")

    def is_initialized(self) -> bool:
        return self.dir.is_dir()

    # Spec

    def load_spec(self) -> ProductSpec:
        """Load spec.yaml.

        Raises:
            PersistenceError: If missing or invalid
        """
        spec = self._load_yaml(SPEC_FILE, ProductSpec)
        if spec is None:
            raise PersistenceError(f"Spec not found: {self.path(SPEC_FILE)}", self.path(SPEC_FILE))
        return spec

    def save_spec(self, spec: ProductSpec) -> None:
        self._write_text(
            SPEC_FILE,
            yaml.safe_dump(spec.model_dump(mode="json"), sort_keys=False),
        )

    def load_spec_lock(self) -> Optional[ProductSpec]:
        """Load the spec snapshot, or None if never locked."""
        return self._load_json(SPEC_LOCK_FILE, ProductSpec)

    def save_spec_lock(self, spec: ProductSpec) -> None:
        self._write_json(SPEC_LOCK_FILE, spec)

    # Plan

    def load_plan(self) -> Optional[Plan]:
        return self._load_json(PLAN_FILE, Plan)

    def save_plan(self, plan: Plan) -> None:
        self._write_json(PLAN_FILE, plan)

    # State

    def load_state(self) -> ExecutionState:
        """Load state.json; a fresh empty state if absent."""
        state = self._load_json(STATE_FILE, ExecutionState)
        if state is None:
            return ExecutionState(project_id=self.project_id or self.root.resolve().name or "unknown")
        return state

    def save_state(self, state: ExecutionState) -> None:
        state.updated_at = utcnow()
        self._write_json(STATE_FILE, state)

    # Policy

    def load_policy(self) -> PolicyConfig:
        """Load policy.yaml; defaults if absent."""
        return self._load_yaml(POLICY_FILE, PolicyConfig) or PolicyConfig()

    def save_policy(self, policy: PolicyConfig) -> None:
        self._write_text(
            POLICY_FILE,
            yaml.safe_dump(policy.model_dump(mode="json"), sort_keys=False),
        )

    # Internals

    def _load_json(self, filename: str, model: type[ModelT]) -> Optional[ModelT]:
        path = self.path(filename)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return model.model_validate(data)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            raise PersistenceError(f"Failed to load {path}: {e}", path) from e

    def _load_yaml(self, filename: str, model: type[ModelT]) -> Optional[ModelT]:
        path = self.path(filename)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
            return model.model_validate(data or {})
        except (OSError, UnicodeDecodeError, yaml.YAMLError, ValidationError) as e:
            raise PersistenceError(f"Failed to load {path}: {e}", path) from e

    def _write_json(self, filename: str, model: BaseModel) -> None:
        self._write_text(filename, json.dumps(model.model_dump(mode="json"), indent=2))

    def _write_text(self, filename: str, content: str) -> None:
        """Atomic write: temp file -> flush -> rename."""
        path = self.path(filename)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
            temp_path.replace(path)
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}", path) from e
        logger.debug(f"Saved {path}")
