"""Drift detection use case."""

import logging
from typing import Optional

from ..drift.detector import CodeInspector, DriftDetector, FilesystemInspector
from ..drift.models import Report
from ..observability.events import EventBus
from ..policy.rules import PolicySet
from ..state.persistence import WorkspaceRepository

logger = logging.getLogger(__name__)


class DriftService:
    """Load workspace inputs and run the drift detector."""

    def __init__(
        self,
        repo: WorkspaceRepository,
        bus: Optional[EventBus] = None,
        inspector: Optional[CodeInspector] = None,
    ):
        self.repo = repo
        self.bus = bus or EventBus()
        self.detector = DriftDetector(inspector or FilesystemInspector(repo.root))

    def detect(self) -> Report:
        """Detect drift for the workspace.

        Raises:
            PersistenceError: If any input cannot be loaded
        """
        spec = self.repo.load_spec()
        plan = self.repo.load_plan()
        state = self.repo.load_state()
        lock = self.repo.load_spec_lock()
        violations = PolicySet.from_config(self.repo.load_policy()).validate(plan, state)

        report = self.detector.detect(spec, plan, state, lock, violations)
        self.bus.emit(
            "drift.detected",
            report_id=report.id,
            issues=len(report.issues),
            critical=report.has_critical(),
        )
        return report

    def accept(self, actor: str = "cli") -> str:
        """Accept the current spec as intended by re-locking it.

        Returns:
            Hash of the locked spec
        """
        spec = self.repo.load_spec()
        self.repo.save_spec_lock(spec)
        spec_hash = spec.hash()
        self.bus.emit("drift.accepted", actor=actor, spec_id=spec.id, spec_hash=spec_hash)
        return spec_hash
