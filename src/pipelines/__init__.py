"""Pipeline definitions and sequential stage execution."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from common import ActionResult
from config import RunContext
from reporting import FAILED, HARD, SKIPPED, SOFT, SUCCEEDED, ExecutionResult, PipelineRun

logger = logging.getLogger(__name__)

PENDING = 'pending'
RUNNING = 'running'


@dataclass(frozen=True)
class Stage:
    """A named unit of work.

    Attributes:
        id: Unique within its pipeline; declaration order is execution order
        action: Object with run(ctx, context) -> ActionResult
        description: Human-readable summary
        policy: 'hard' stops the pipeline on failure, 'soft' logs and continues
        reverse: Stage that undoes this one, used to assemble teardown pipelines
    """
    id: str
    action: Any
    description: str
    policy: str = HARD
    reverse: Optional['Stage'] = None

    def __post_init__(self):
        if self.policy not in (HARD, SOFT):
            raise ValueError(f"Stage '{self.id}': policy must be 'hard' or 'soft', got {self.policy!r}")


def reverse_stages(stages: list[Stage]) -> list[Stage]:
    """Reverse stages of the given stages, last declared first."""
    return [stage.reverse for stage in reversed(stages) if stage.reverse is not None]


@runtime_checkable
class PipelineDefinition(Protocol):
    """Protocol for pipeline definitions.

    Class attributes:
        name: Pipeline identifier ('provision', 'teardown')
        description: Human-readable description
        required_tools: CLIs checked before the pipeline starts
        requires_confirmation: If True, the CLI asks before running (default: False)
        next_steps: Optional method returning follow-ups printed after a successful run
    """
    name: str
    description: str
    required_tools: tuple[str, ...]

    def required_paths(self, ctx: RunContext) -> list[tuple[str, Path, bool]]:
        """Return (name, path, want_dir) inputs checked before the pipeline starts."""
        ...

    def get_stages(self, ctx: RunContext) -> list[Stage]:
        """Return the ordered stages."""
        ...


class Pipeline:
    """Runs stages strictly in order and records their outcomes."""

    def __init__(
        self,
        name: str,
        stages: list[Stage],
        ctx: RunContext,
        skip_stages: Optional[list[str]] = None,
        dry_run: bool = False,
    ):
        seen: set[str] = set()
        for stage in stages:
            if stage.id in seen:
                raise ValueError(f"Duplicate stage id '{stage.id}' in pipeline '{name}'")
            seen.add(stage.id)
        unknown = sorted(set(skip_stages or []) - seen)
        if unknown:
            raise ValueError(f"Unknown stage(s) to skip: {', '.join(unknown)}. Available: {', '.join(s.id for s in stages)}")

        self.name = name
        self.stages = list(stages)
        self.ctx = ctx
        self.skip_stages = list(skip_stages or [])
        self.dry_run = dry_run
        self.run_record = PipelineRun(pipeline=name)
        self.stage_states: dict[str, str] = {stage.id: PENDING for stage in self.stages}

    @classmethod
    def from_definition(cls, definition: PipelineDefinition, ctx: RunContext, **kwargs) -> 'Pipeline':
        return cls(definition.name, definition.get_stages(ctx), ctx, **kwargs)

    def pending_stages(self) -> list[str]:
        """Stage ids that never left the pending state."""
        return [stage_id for stage_id, state in self.stage_states.items() if state == PENDING]

    def preview(self) -> bool:
        """Show what would be executed without running. Returns True."""
        print("")
        print("═══════════════════════════════════════════════════════════════")
        print(f"  DRY-RUN: {self.name}")
        print(f"  Cluster: {self.ctx.cluster_name} ({self.ctx.region}, profile {self.ctx.profile})")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        print("Stages to execute:")
        stage_count = 0
        skip_count = 0
        for stage in self.stages:
            action_type = type(stage.action).__name__
            if stage.id in self.skip_stages:
                print(f"  [SKIP] {stage.id}: {stage.description}")
                skip_count += 1
            else:
                print(f"  [{stage.policy.upper():>4}] {stage.id}: {stage.description}")
                stage_count += 1
            print(f"         Action: {action_type}")
            if hasattr(stage.action, 'timeout'):
                print(f"         Timeout: {stage.action.timeout}s")
            print("")

        print("═══════════════════════════════════════════════════════════════")
        print(f"  Summary: {stage_count} stages to execute, {skip_count} to skip")
        print("  Mode: DRY-RUN (no changes made)")
        print("═══════════════════════════════════════════════════════════════")
        print("")
        return True

    def _record(self, stage: Stage, result: ActionResult, start: float):
        status = SUCCEEDED if result.success else FAILED
        self.stage_states[stage.id] = status
        self.run_record.record(ExecutionResult(
            stage_id=stage.id,
            description=stage.description,
            status=status,
            policy=stage.policy,
            message=result.message,
            command=result.command,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.exit_code,
            duration=result.duration or (time.time() - start),
            timed_out=result.timed_out,
            remediation=tuple(result.remediation),
            notes=tuple(result.notes),
        ))

    def _run_stage(self, stage: Stage) -> ActionResult:
        """Invoke a stage action; exceptions count as that stage failing."""
        start = time.time()
        try:
            result = stage.action.run(self.ctx, dict(self.run_record.context))
        except Exception as e:  # pylint: disable=broad-except
            logger.exception(f"Stage {stage.id} raised exception")
            result = ActionResult(
                success=False,
                message=f"{type(e).__name__}: {e}",
                duration=time.time() - start,
            )
        return result

    def run(self) -> PipelineRun:
        """Run all stages and return the finalized run record."""
        self.run_record.start()
        if self.dry_run:
            self.preview()
            self.run_record.finish()
            return self.run_record

        logger.info(f"Starting pipeline '{self.name}' for cluster {self.ctx.cluster_name} ({self.ctx.region})")
        aborted = False
        cancelled = False
        current: Optional[Stage] = None
        start = time.time()

        try:
            for stage in self.stages:
                if stage.id in self.skip_stages:
                    logger.info(f"Skipping stage: {stage.id}")
                    self.stage_states[stage.id] = SKIPPED
                    self.run_record.record(ExecutionResult(
                        stage_id=stage.id,
                        description=stage.description,
                        status=SKIPPED,
                        policy=stage.policy,
                        message='Skipped by operator',
                    ))
                    continue

                current = stage
                start = time.time()
                self.stage_states[stage.id] = RUNNING
                logger.info(f"Running stage: {stage.id} - {stage.description}")

                result = self._run_stage(stage)
                self._record(stage, result, start)
                current = None

                if result.success:
                    logger.info(f"Stage {stage.id} succeeded")
                    self.run_record.context.update(result.context_updates or {})
                elif stage.policy == SOFT:
                    logger.warning(f"Stage {stage.id} failed (soft, continuing): {result.message}")
                else:
                    logger.error(f"Stage {stage.id} failed, stopping pipeline: {result.message}")
                    aborted = True
                    break
        except KeyboardInterrupt:
            cancelled = True
            logger.error("Interrupted, stopping pipeline")
            if current is not None and self.stage_states[current.id] == RUNNING:
                self._record(current, ActionResult(
                    success=False,
                    message='Interrupted by operator',
                    duration=time.time() - start,
                ), start)

        self.run_record.finish(aborted=aborted, cancelled=cancelled)
        logger.info(f"Pipeline '{self.name}' finished: {self.run_record.status} ({self.run_record.duration:.1f}s)")
        return self.run_record


# Registry of available pipelines
_pipelines: dict[str, type[PipelineDefinition]] = {}


def register_pipeline(cls: type[PipelineDefinition]) -> type[PipelineDefinition]:
    """Decorator to register a pipeline definition class."""
    _pipelines[cls.name] = cls
    return cls


def get_pipeline(name: str) -> PipelineDefinition:
    """Get a pipeline definition instance by name."""
    if name not in _pipelines:
        available = list(_pipelines.keys())
        raise ValueError(f"Unknown pipeline: {name}. Available: {available}")
    return _pipelines[name]()


def list_pipelines() -> list[str]:
    """List available pipeline names."""
    return sorted(_pipelines.keys())


# Import pipelines to trigger registration
from pipelines import provision  # noqa: E402, F401
from pipelines import teardown  # noqa: E402, F401
