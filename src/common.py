"""Common utilities and types for the provisioning orchestrator."""

import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of one external command.

    A non-zero exit is a normal value here, not an exception. ``timed_out``
    is set when the runner had to kill the process at its deadline.
    """
    cmd: tuple[str, ...]
    returncode: int
    stdout: str = ''
    stderr: str = ''
    duration: float = 0.0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def status(self) -> str:
        """One of 'succeeded', 'failed' or 'timed-out'."""
        if self.timed_out:
            return 'timed-out'
        return 'succeeded' if self.returncode == 0 else 'failed'

    @property
    def command_line(self) -> str:
        return shlex.join(self.cmd)


@dataclass
class ActionResult:
    """Result returned by an action."""
    success: bool
    message: str = ''
    duration: float = 0.0
    context_updates: dict = field(default_factory=dict)
    command: str = ''
    stdout: str = ''
    stderr: str = ''
    exit_code: Optional[int] = None
    timed_out: bool = False
    remediation: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


def _drain(stream, lines: list[str], label: str, log_output: bool):
    """Read a child stream line by line until EOF."""
    for line in iter(stream.readline, ''):
        line = line.rstrip('\n')
        lines.append(line)
        if log_output:
            logger.debug(f"  {label}| {line}")


def _kill_group(process: subprocess.Popen):
    """Kill the child and everything it spawned.

    Grandchildren holding the output pipes would otherwise keep the readers
    (and the exit of the Popen context) blocked past the deadline.
    """
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass  # group already gone
    process.wait()


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: Optional[int] = 600,
    env: Optional[dict] = None,
    input: Optional[str] = None,  # pylint: disable=redefined-builtin
    log_output: bool = True,
) -> CommandResult:
    """Run a command, streaming its output to the debug log.

    Args:
        cmd: Argument list (no shell)
        cwd: Working directory
        timeout: Seconds before the process is killed (None waits forever)
        env: Variables overlaid on the current environment
        input: Text written to the child's stdin, never logged
        log_output: Set False for commands that print secrets

    Returns:
        CommandResult; launch errors come back as returncode -1
    """
    logger.debug(f"Running: {shlex.join(cmd)}")
    full_env = {**os.environ, **env} if env else None
    start = time.time()
    out_lines: list[str] = []
    err_lines: list[str] = []
    timed_out = False

    try:
        process = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=full_env,
            stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,  # Line buffered
            start_new_session=True,
        )
    except OSError as e:
        return CommandResult(
            cmd=tuple(cmd),
            returncode=-1,
            stderr=f"Cannot run {cmd[0]}: {e}",
            duration=time.time() - start,
        )

    with process:
        readers = [
            threading.Thread(target=_drain, args=(process.stdout, out_lines, cmd[0], log_output), daemon=True),
            threading.Thread(target=_drain, args=(process.stderr, err_lines, cmd[0], log_output), daemon=True),
        ]
        for reader in readers:
            reader.start()

        try:
            if input is not None:
                try:
                    process.stdin.write(input)
                    process.stdin.close()
                except BrokenPipeError:
                    pass  # child exited before reading stdin
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Command timed out after {timeout}s, killing: {shlex.join(cmd)}")
            timed_out = True
            _kill_group(process)
        except BaseException:
            # Kill the child on KeyboardInterrupt as well
            _kill_group(process)
            raise
        finally:
            for reader in readers:
                reader.join(timeout=5)

    stderr = '\n'.join(err_lines)
    if timed_out:
        note = f'Command timed out after {timeout}s'
        stderr = f'{stderr}\n{note}' if stderr else note

    return CommandResult(
        cmd=tuple(cmd),
        returncode=process.returncode,
        stdout='\n'.join(out_lines),
        stderr=stderr,
        duration=time.time() - start,
        timed_out=timed_out,
    )


def looks_like_timeout(result: CommandResult) -> bool:
    """True when the command was killed at its deadline or reported a wait timeout.

    kubectl wait and similar tools exit non-zero with "timed out waiting"
    when their own --timeout elapses.
    """
    if result.timed_out:
        return True
    return 'timed out waiting' in result.stderr.lower()


def first_line(text: str) -> str:
    """Return the first non-empty line of text."""
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ''


def command_failure(
    name: str,
    result: CommandResult,
    start: float,
    what: str = '',
    remediation: Optional[list[str]] = None,
) -> ActionResult:
    """Build a failed ActionResult that carries the literal command and its error."""
    what = what or f"{result.cmd[0]} failed"
    if looks_like_timeout(result):
        what = f"{what} (timed out)"
    detail = first_line(result.stderr) or first_line(result.stdout) or f"exit code {result.returncode}"
    logger.error(f"[{name}] {what}: {detail}")
    return ActionResult(
        success=False,
        message=f"{what}: {detail}",
        duration=time.time() - start,
        command=result.command_line,
        stdout=result.stdout,
        stderr=result.stderr,
        exit_code=result.returncode,
        timed_out=looks_like_timeout(result),
        remediation=list(remediation or []),
    )
