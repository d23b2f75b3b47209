"""Pipeline run records and the terminal report."""

from reporting.report import (
    ABORTED,
    FAILED,
    HARD,
    PARTIAL,
    SKIPPED,
    SOFT,
    SUCCEEDED,
    ExecutionResult,
    PipelineRun,
)
from reporting.outcome import render_report

__all__ = [
    'ABORTED',
    'FAILED',
    'HARD',
    'PARTIAL',
    'SKIPPED',
    'SOFT',
    'SUCCEEDED',
    'ExecutionResult',
    'PipelineRun',
    'render_report',
]
