"""Drift detection across spec, plan, execution state and policy."""

import logging
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Optional, Protocol

from ..planning.models import ExecutionState, Plan, TaskStatus
from ..policy.rules import Violation, ViolationLevel
from ..spec.models import ProductSpec, requirement_task_id
from .models import DriftCategory, DriftType, Issue, Report, Severity

logger = logging.getLogger(__name__)


class CodeInspector(Protocol):
    """Inspects the codebase for implementation evidence."""

    def file_exists(self, path: str) -> bool: ...

    def file_not_empty(self, path: str) -> bool: ...


class FilesystemInspector:
    """Inspect files relative to a workspace root."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else Path.cwd()

    def _resolve(self, path: str) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.root / candidate

    def file_exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def file_not_empty(self, path: str) -> bool:
        resolved = self._resolve(path)
        try:
            return resolved.stat().st_size > 0
        except OSError:
            return False


class DriftDetector:
    """Compare spec, plan, state and policy results and report misalignments.

    Inputs are only read. Each pass is independent; issue IDs are derived from
    the component they describe so repeated runs on unchanged inputs produce
    the same ID set.
    """

    def __init__(self, inspector: Optional[CodeInspector] = None):
        self.inspector = inspector or FilesystemInspector()

    def detect(
        self,
        spec: ProductSpec,
        plan: Optional[Plan],
        state: Optional[ExecutionState],
        spec_lock: Optional[ProductSpec] = None,
        violations: Sequence[Violation] = (),
    ) -> Report:
        """Run all detection passes.

        Args:
            spec: Live specification
            plan: Current plan (None treated as empty)
            state: Execution state (None treated as empty)
            spec_lock: Snapshot taken at last plan generation
            violations: Policy evaluator output

        Returns:
            Report (possibly with no issues)

        Raises:
            ValueError: If spec is None
        """
        if spec is None:
            raise ValueError("drift detection requires a spec")

        report = Report(id=f"drift-{int(time.time())}")
        report.issues.extend(self.detect_intent_drift(spec, spec_lock))
        report.issues.extend(self.detect_plan_drift(spec, plan))
        report.issues.extend(self.detect_code_drift(plan, state))
        report.issues.extend(self.detect_policy_drift(violations))

        logger.info(f"Drift detection found {len(report.issues)} issue(s)")
        return report

    def detect_intent_drift(
        self, spec: ProductSpec, spec_lock: Optional[ProductSpec]
    ) -> list[Issue]:
        """Spec changed since the lock was taken."""
        if spec_lock is None or spec.hash() == spec_lock.hash():
            return []
        return [
            Issue(
                id="intent-drift",
                type=DriftType.SPEC,
                category=DriftCategory.MISMATCH,
                severity=Severity.MEDIUM,
                component_id=spec.id,
                message=(
                    "The Specification has changed since the Plan was last updated. "
                    "Your intent and plan may be out of sync."
                ),
                hint=(
                    "Review the changes and run 'planledger plan generate' to align "
                    "your plan with the new Spec."
                ),
            )
        ]

    def detect_plan_drift(self, spec: ProductSpec, plan: Optional[Plan]) -> list[Issue]:
        """Requirements without tasks, and tasks without spec intent."""
        issues = []
        tasks = plan.tasks if plan is not None else []
        task_ids = {t.id for t in tasks}

        for feature in spec.features:
            for req in feature.requirements:
                if requirement_task_id(req.id) in task_ids:
                    continue
                issues.append(
                    Issue(
                        id=f"missing-task-{req.id}",
                        type=DriftType.PLAN,
                        category=DriftCategory.MISSING,
                        severity=Severity.HIGH,
                        component_id=req.id,
                        message=(
                            f"Requirement '{req.title}' (Feature: {feature.title}) "
                            "is missing from Plan."
                        ),
                        hint="Run 'planledger plan generate' to update your plan.",
                    )
                )

        requirement_tasks = spec.requirement_task_ids()
        feature_ids = spec.feature_ids()
        for task in tasks:
            # Matching either a requirement or a live feature is enough
            if task.id in requirement_tasks or task.feature_id in feature_ids:
                continue
            issues.append(
                Issue(
                    id=f"orphan-task-{task.id}",
                    type=DriftType.PLAN,
                    category=DriftCategory.ORPHAN,
                    severity=Severity.MEDIUM,
                    component_id=task.id,
                    message=(
                        f"Task '{task.title}' (ID: {task.id}) exists in Plan but "
                        "corresponds to no active Feature or Requirement in Spec."
                    ),
                    hint=(
                        "Run 'planledger plan prune' to remove orphan tasks or update "
                        "your Spec to include this intent."
                    ),
                )
            )
        return issues

    def detect_code_drift(
        self, plan: Optional[Plan], state: Optional[ExecutionState]
    ) -> list[Issue]:
        """Done tasks whose evidence file is missing or empty."""
        if plan is None or state is None:
            return []

        issues = []
        for task in plan.tasks:
            result = state.task_states.get(task.id)
            if result is None or result.status != TaskStatus.DONE or not result.path:
                continue

            if not self.inspector.file_exists(result.path):
                issues.append(
                    Issue(
                        id=f"missing-code-{task.id}",
                        type=DriftType.CODE,
                        category=DriftCategory.IMPLEMENTATION,
                        severity=Severity.CRITICAL,
                        component_id=task.id,
                        path=result.path,
                        message=f"Task '{task.title}' is DONE but path '{result.path}' is missing.",
                        hint=(
                            "Restore the missing file or mark the task as incomplete "
                            "using 'planledger task reopen'."
                        ),
                    )
                )
            elif not self.inspector.file_not_empty(result.path):
                issues.append(
                    Issue(
                        id=f"empty-code-{task.id}",
                        type=DriftType.CODE,
                        category=DriftCategory.IMPLEMENTATION,
                        severity=Severity.HIGH,
                        component_id=task.id,
                        path=result.path,
                        message=f"Task '{task.title}' is DONE but file '{result.path}' is empty.",
                        hint="Ensure the task implementation is committed to the file.",
                    )
                )
        return issues

    def detect_policy_drift(self, violations: Sequence[Violation]) -> list[Issue]:
        """One issue per policy violation."""
        issues = []
        seen: dict[str, int] = {}
        for violation in violations:
            count = seen.get(violation.rule_id, 0)
            seen[violation.rule_id] = count + 1
            issue_id = f"policy-{violation.rule_id}"
            if count:
                issue_id = f"{issue_id}-{count + 1}"

            severity = Severity.HIGH if violation.level == ViolationLevel.ERROR else Severity.MEDIUM
            issues.append(
                Issue(
                    id=issue_id,
                    type=DriftType.POLICY,
                    category=DriftCategory.VIOLATION,
                    severity=severity,
                    component_id=violation.rule_id,
                    message=violation.message,
                    hint=(
                        "Adjust your execution state or update policy.yaml to resolve "
                        "this violation."
                    ),
                )
            )
        return issues


def detect_drift(
    spec: ProductSpec,
    plan: Optional[Plan],
    state: Optional[ExecutionState],
    spec_lock: Optional[ProductSpec] = None,
    violations: Sequence[Violation] = (),
    inspector: Optional[CodeInspector] = None,
) -> Report:
    """Detect drift with a default detector."""
    return DriftDetector(inspector).detect(spec, plan, state, spec_lock, violations)
