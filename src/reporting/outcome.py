"""Terminal summary of a pipeline run."""

from reporting.report import ABORTED, FAILED, PARTIAL, SKIPPED, SUCCEEDED, PipelineRun

STATUS_MARKS = {SUCCEEDED: '✓', FAILED: '✗', SKIPPED: '⏭'}

VERDICT_TEXT = {
    SUCCEEDED: 'SUCCEEDED',
    PARTIAL: 'PARTIAL (completed with warnings)',
    FAILED: 'FAILED',
    ABORTED: 'ABORTED',
}

RULE = '═══════════════════════════════════════════════════════════════'

ERROR_TAIL_LINES = 15


def _tail(text: str, limit: int = ERROR_TAIL_LINES) -> list[str]:
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) > limit:
        return [f'... ({len(lines) - limit} earlier lines omitted)'] + lines[-limit:]
    return lines


def render_report(
    run: PipelineRun,
    pending: list[str] | None = None,
    next_steps: list[str] | None = None,
) -> str:
    """Render per-stage results, verdict, remediation and next steps.

    Args:
        run: Finished run
        pending: Stage ids declared after the last recorded one (never attempted)
        next_steps: Pipeline-level follow-ups listed after the stage notes
    """
    status = run.status
    lines = [
        "",
        RULE,
        f"  {run.pipeline}: {VERDICT_TEXT[status]}",
        f"  Duration: {run.duration:.1f}s",
        RULE,
        "",
        "Stages:",
    ]

    for r in run.results:
        mark = STATUS_MARKS.get(r.status, '?')
        policy = ' (soft)' if r.policy == 'soft' and r.failed else ''
        timeout = ' [timed out]' if r.timed_out else ''
        message = f" - {r.message}" if r.message else ''
        lines.append(f"  {mark} {r.stage_id:<24} {r.status}{policy}{timeout} {r.duration:6.1f}s{message}")

    for stage_id in pending or []:
        lines.append(f"  · {stage_id:<24} not run")

    failures = [r for r in run.results if r.failed]
    for r in failures:
        kind = 'Warning' if r.policy == 'soft' else 'Failure'
        lines.extend(["", f"{kind} in stage '{r.stage_id}':"])
        if r.command:
            lines.append(f"  Command: {r.command}")
        if r.timed_out:
            lines.append("  Timed out. The resource may still be provisioning asynchronously; check it before re-running.")
        elif r.exit_code is not None:
            lines.append(f"  Exit code: {r.exit_code}")
        error_lines = _tail(r.stderr) or _tail(r.stdout)
        if error_lines:
            lines.append("  Output:")
            lines.extend(f"    {line}" for line in error_lines)

    remediation = [(r.stage_id, cmd) for r in run.results if r.failed for cmd in r.remediation]
    if remediation:
        lines.extend(["", "To follow up, run:"])
        for stage_id, cmd in remediation:
            lines.append(f"  {cmd}    # {stage_id}")

    if run.cancelled:
        lines.extend([
            "",
            "WARNING: run was interrupted. Infrastructure may be partially created or destroyed.",
            "  Verify state manually (terraform state list, kubectl get all -A) before re-running.",
        ])
    elif status == FAILED:
        lines.extend([
            "",
            "Stages completed before the failure were not rolled back.",
            "  Fix the error and re-run; completed stages converge on re-run.",
        ])

    notes = [note for r in run.results if r.status == SUCCEEDED for note in r.notes]
    notes.extend(next_steps or [])
    if notes and status in (SUCCEEDED, PARTIAL):
        lines.extend(["", "Next steps:"])
        lines.extend(f"  {i}. {note}" for i, note in enumerate(notes, 1))

    lines.append("")
    return '\n'.join(lines)
