"""planledger CLI entrypoint."""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from .config.loader import ConfigError, create_default_config, load_config
from .drift.models import Severity
from .observability.events import EventBus, log_event
from .planning.dag import PlanValidationError
from .planning.machine import EVENTS, TransitionError
from .planning.models import TaskStatus
from .services.drift_service import DriftService
from .services.plan_service import PlanService, WorkspaceError
from .services.task_service import TaskService
from .spec.models import Feature, ProductSpec, Requirement
from .state.persistence import POLICY_FILE, SPEC_FILE, PersistenceError, WorkspaceRepository
from .utils.logging import setup_logging, setup_logging_from_config

CONTEXT_SETTINGS = {
    "help_option_names": ["-h", "--help"],
}

HANDLED_ERRORS = (
    ConfigError,
    PersistenceError,
    PlanValidationError,
    TransitionError,
    WorkspaceError,
)

SEVERITY_MARKS = {
    Severity.CRITICAL: "✗✗",
    Severity.HIGH: "✗",
    Severity.MEDIUM: "!",
    Severity.LOW: "·",
}


def _fail(message: str) -> None:
    click.echo(f"✗ {message}", err=True)
    sys.exit(1)


def _repo(ctx: click.Context) -> WorkspaceRepository:
    return ctx.obj["repo"]


def _bus(ctx: click.Context) -> EventBus:
    return ctx.obj["bus"]


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "--root",
    "-r",
    default=".",
    help="Project root directory",
    type=click.Path(file_okay=False, path_type=Path),
)
@click.option(
    "--config",
    "-c",
    default=None,
    help="Path to configuration file (default: <root>/.planledger/config.yml)",
    type=click.Path(exists=False, path_type=Path),
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.pass_context
def cli(ctx: click.Context, root: Path, config: Optional[Path], verbose: bool) -> None:
    """planledger - track spec, plan and execution reality, and flag drift."""
    setup_logging(level="DEBUG" if verbose else "WARNING", use_colors=verbose)

    config_path = config or root / ".planledger" / "config.yml"
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        _fail(f"Configuration error: {e}")

    if verbose or cfg.logging.file_logging:
        setup_logging_from_config(cfg.logging, verbose=verbose)

    bus = EventBus()
    bus.subscribe(None, log_event)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["config"] = cfg
    ctx.obj["verbose"] = verbose
    ctx.obj["bus"] = bus
    ctx.obj["repo"] = WorkspaceRepository(
        root,
        dir_name=cfg.workspace.dir_name,
        project_id=cfg.workspace.project_id,
    )


@cli.command()
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing configuration",
)
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Initialize a planledger workspace."""
    config_path: Path = ctx.obj["config_path"]
    repo = _repo(ctx)

    if config_path.exists() and not force:
        click.echo(f"Configuration already exists: {config_path}")
        click.echo("Use --force to overwrite")
        sys.exit(1)

    try:
        repo.initialize()
        create_default_config(config_path)
        if not repo.path(POLICY_FILE).exists():
            repo.save_policy(repo.load_policy())
        if not repo.path(SPEC_FILE).exists():
            repo.save_spec(_starter_spec(repo.root))
    except (OSError, PersistenceError) as e:
        _fail(f"Failed to initialize workspace: {e}")

    click.echo(f"✓ Initialized workspace: {repo.dir}")
    click.echo("\nNext steps:")
    click.echo(f"  1. Describe your features in {repo.path(SPEC_FILE)}")
    click.echo("  2. Run: planledger plan generate")
    click.echo("  3. Run: planledger plan approve")


def _starter_spec(root: Path) -> ProductSpec:
    name = root.resolve().name or "project"
    return ProductSpec(
        id=name,
        title=name,
        version="0.1.0",
        features=[
            Feature(
                id="core",
                title="Core",
                description="Initial feature",
                requirements=[
                    Requirement(id="core-setup", title="Project setup", priority="high"),
                ],
            )
        ],
    )


@cli.group()
def plan() -> None:
    """Generate and govern the task plan."""


@plan.command("generate")
@click.pass_context
def plan_generate(ctx: click.Context) -> None:
    """Regenerate the plan from the spec (one task per requirement)."""
    try:
        result = PlanService(_repo(ctx), _bus(ctx)).generate_plan()
    except HANDLED_ERRORS as e:
        _fail(str(e))
    click.echo(f"✓ Plan {result.id}: {len(result.tasks)} tasks (approval: {result.approval_status.value})")


@plan.command("approve")
@click.pass_context
def plan_approve(ctx: click.Context) -> None:
    """Approve the plan."""
    try:
        result = PlanService(_repo(ctx), _bus(ctx)).approve_plan()
    except HANDLED_ERRORS as e:
        _fail(str(e))
    click.echo(f"✓ Plan {result.id} approved")


@plan.command("reject")
@click.pass_context
def plan_reject(ctx: click.Context) -> None:
    """Reject the plan."""
    try:
        result = PlanService(_repo(ctx), _bus(ctx)).reject_plan()
    except HANDLED_ERRORS as e:
        _fail(str(e))
    click.echo(f"✓ Plan {result.id} rejected")


@plan.command("prune")
@click.option("--state", "prune_state", is_flag=True, help="Also drop execution history of pruned tasks")
@click.pass_context
def plan_prune(ctx: click.Context, prune_state: bool) -> None:
    """Remove tasks with no matching feature or requirement."""
    try:
        removed = PlanService(_repo(ctx), _bus(ctx)).prune_plan(prune_state=prune_state)
    except HANDLED_ERRORS as e:
        _fail(str(e))
    if removed:
        click.echo(f"✓ Pruned {len(removed)} task(s): {', '.join(removed)}")
    else:
        click.echo("✓ Nothing to prune")


@plan.command("show")
@click.pass_context
def plan_show(ctx: click.Context) -> None:
    """Show plan tasks with their status."""
    repo = _repo(ctx)
    try:
        current = repo.load_plan()
        state = repo.load_state()
    except PersistenceError as e:
        _fail(str(e))

    if current is None:
        click.echo("No plan found. Run: planledger plan generate")
        return

    click.echo(f"Plan: {current.id} ({current.approval_status.value})")
    for task in current.tasks:
        status = state.status_of(task.id)
        deps = f" <- {', '.join(task.depends_on)}" if task.depends_on else ""
        click.echo(f"  [{status.value:11}] {task.id}: {task.title}{deps}")


@cli.command()
@click.argument("event", type=click.Choice(EVENTS))
@click.argument("task_id")
@click.option("--actor", "-a", default="", help="Who is acting (owner on start)")
@click.option("--evidence", "-e", default="", help="Evidence to record")
@click.option("--path", "-p", "impl_path", default="", help="Implementation file for drift checks")
@click.pass_context
def task(
    ctx: click.Context,
    event: str,
    task_id: str,
    actor: str,
    evidence: str,
    impl_path: str,
) -> None:
    """Apply a lifecycle EVENT to TASK_ID."""
    try:
        result = TaskService(_repo(ctx), _bus(ctx)).transition(
            task_id, event, actor=actor, evidence=evidence, path=impl_path
        )
    except HANDLED_ERRORS as e:
        _fail(f"cannot {event} task {task_id}: {e}")
    click.echo(f"✓ {task_id} -> {result.status.value}")


@cli.group()
def drift() -> None:
    """Detect and accept drift."""


@drift.command("detect")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.option("--fail-on-critical", is_flag=True, help="Exit 2 when critical drift is found")
@click.pass_context
def drift_detect(ctx: click.Context, as_json: bool, fail_on_critical: bool) -> None:
    """Compare spec, plan, state and policy."""
    try:
        report = DriftService(_repo(ctx), _bus(ctx)).detect()
    except HANDLED_ERRORS as e:
        _fail(str(e))

    if as_json:
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
    elif not report.issues:
        click.echo("✓ No drift detected")
    else:
        click.echo(f"Drift report {report.id}: {len(report.issues)} issue(s)")
        for issue in report.by_severity():
            mark = SEVERITY_MARKS[issue.severity]
            click.echo(f"  {mark:2} [{issue.severity.value}] {issue.id}: {issue.message}")
            if issue.hint:
                click.echo(f"       hint: {issue.hint}")

    if fail_on_critical and report.has_critical():
        sys.exit(2)


@drift.command("accept")
@click.pass_context
def drift_accept(ctx: click.Context) -> None:
    """Accept the current spec as the new baseline."""
    try:
        spec_hash = DriftService(_repo(ctx), _bus(ctx)).accept()
    except HANDLED_ERRORS as e:
        _fail(str(e))
    click.echo(f"✓ Spec locked ({spec_hash[:12]})")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show plan approval and task counts."""
    repo = _repo(ctx)
    if not repo.is_initialized():
        click.echo("No planledger workspace. Run: planledger init")
        return

    try:
        current = repo.load_plan()
        service = TaskService(repo, _bus(ctx))
        counts = service.summary()
        ready = service.ready()
    except PersistenceError as e:
        _fail(str(e))

    if current is None:
        click.echo("No plan found")
        return

    click.echo(f"Plan: {current.id}")
    click.echo(f"Approval: {current.approval_status.value}")
    click.echo(f"Tasks: {len(current.tasks)}")
    for name, count in counts.items():
        click.echo(f"  {TaskStatus(name).display_name}: {count}")
    if ready:
        # Highest priority first, plan order within a priority
        ready = sorted(ready, key=lambda t: -t.priority.order)
        click.echo(f"Ready: {', '.join(t.id for t in ready)}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
