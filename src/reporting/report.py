"""Pipeline run records."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

# Stage outcome values
SUCCEEDED = 'succeeded'
FAILED = 'failed'
SKIPPED = 'skipped'

# Overall run verdicts
PARTIAL = 'partial'
ABORTED = 'aborted'

HARD = 'hard'
SOFT = 'soft'


@dataclass(frozen=True)
class ExecutionResult:
    """Recorded outcome of one stage. Never modified after it is appended."""
    stage_id: str
    description: str
    status: str  # 'succeeded', 'failed', 'skipped'
    policy: str = HARD
    message: str = ''
    command: str = ''
    stdout: str = ''
    stderr: str = ''
    exit_code: Optional[int] = None
    duration: float = 0.0
    timed_out: bool = False
    remediation: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()

    @property
    def failed(self) -> bool:
        return self.status == FAILED

    @property
    def hard_failure(self) -> bool:
        return self.failed and self.policy == HARD

    @property
    def soft_failure(self) -> bool:
        return self.failed and self.policy == SOFT


@dataclass
class PipelineRun:
    """Ordered results of one pipeline execution plus the values stages hand forward."""
    pipeline: str
    results: list[ExecutionResult] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    aborted: bool = False
    cancelled: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def start(self):
        """Mark run start."""
        self.started_at = datetime.now()

    def record(self, result: ExecutionResult):
        """Append a stage result."""
        if self.finished_at is not None:
            raise RuntimeError(f"Run '{self.pipeline}' is finalized; cannot record {result.stage_id}")
        self.results.append(result)

    def finish(self, aborted: bool = False, cancelled: bool = False):
        """Finalize the run."""
        self.aborted = aborted or cancelled
        self.cancelled = cancelled
        self.finished_at = datetime.now()

    @property
    def duration(self) -> float:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    @property
    def status(self) -> str:
        """Overall verdict: aborted, failed, partial or succeeded."""
        if self.cancelled:
            return ABORTED
        if any(r.hard_failure for r in self.results):
            return FAILED
        if any(r.soft_failure for r in self.results):
            return PARTIAL
        return SUCCEEDED

    @property
    def succeeded(self) -> bool:
        """True for runs the CLI exits 0 on (full or partial success)."""
        return self.status in (SUCCEEDED, PARTIAL)

    @property
    def warnings(self) -> list[ExecutionResult]:
        return [r for r in self.results if r.soft_failure]

    def result_for(self, stage_id: str) -> Optional[ExecutionResult]:
        for r in self.results:
            if r.stage_id == stage_id:
                return r
        return None

    def stage_ids(self) -> list[str]:
        return [r.stage_id for r in self.results]
