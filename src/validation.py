"""Pre-flight precondition checks.

Runs before any mutating stage: required CLIs present and working, input
paths present, cloud credentials valid. Every check runs even when an earlier
one failed so the operator sees the complete list in one pass.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from common import first_line, run_command
from config import RunContext

logger = logging.getLogger(__name__)

# Cheap, read-only invocation per tool. docker talks to the daemon so a
# stopped daemon is caught here rather than at build time.
TOOL_PROBES = {
    'aws': ['aws', '--version'],
    'terraform': ['terraform', 'version'],
    'kubectl': ['kubectl', 'version', '--client'],
    'helm': ['helm', 'version', '--short'],
    'docker': ['docker', 'info', '--format', '{{.ServerVersion}}'],
}

INSTALL_HINTS = {
    'aws': 'Install AWS CLI v2: https://docs.aws.amazon.com/cli/latest/userguide/getting-started-install.html',
    'terraform': 'Install Terraform: https://developer.hashicorp.com/terraform/install',
    'kubectl': 'Install kubectl: https://kubernetes.io/docs/tasks/tools/',
    'helm': 'Install Helm: https://helm.sh/docs/intro/install/',
    'docker': 'Install Docker and make sure the daemon is running',
}

PROVISION_TOOLS = ('aws', 'terraform', 'kubectl', 'helm', 'docker')
TEARDOWN_TOOLS = ('aws', 'terraform', 'kubectl')

PROBE_TIMEOUT = 30


@dataclass(frozen=True)
class PreconditionCheck:
    """Outcome of a single precondition."""
    name: str
    passed: bool
    message: str
    command: str = ''


# -----------------------------------------------------------------------------
# Tool checks
# -----------------------------------------------------------------------------

def check_tool(tool: str, timeout: int = PROBE_TIMEOUT) -> PreconditionCheck:
    """Verify a CLI is installed and answers its version probe."""
    cmd = TOOL_PROBES.get(tool, [tool, '--version'])
    result = run_command(cmd, timeout=timeout)
    hint = INSTALL_HINTS.get(tool, f'Install {tool}')

    if result.ok:
        version = first_line(result.stdout) or 'ok'
        return PreconditionCheck(f'tool:{tool}', True, version, result.command_line)

    if result.returncode == -1 and not result.timed_out:
        message = f"{tool} is not installed\n  {hint}"
    elif result.timed_out:
        message = f"{tool} did not respond within {timeout}s"
    else:
        detail = first_line(result.stderr) or f'exit code {result.returncode}'
        message = f"{tool} is not usable: {detail}\n  {hint}"
    return PreconditionCheck(f'tool:{tool}', False, message, result.command_line)


def check_tools(tools) -> list[PreconditionCheck]:
    """Check every tool independently."""
    return [check_tool(tool) for tool in tools]


# -----------------------------------------------------------------------------
# Credential check
# -----------------------------------------------------------------------------

def check_credentials(ctx: RunContext, timeout: int = PROBE_TIMEOUT) -> PreconditionCheck:
    """Verify the AWS profile resolves to a caller identity."""
    cmd = ['aws', 'sts', 'get-caller-identity', '--output', 'json', *ctx.aws_args()]
    result = run_command(cmd, timeout=timeout)

    if not result.ok:
        detail = first_line(result.stderr) or result.status
        return PreconditionCheck(
            'credentials',
            False,
            f"AWS credentials not usable for profile '{ctx.profile}': {detail}\n"
            f"  Run: aws configure --profile {ctx.profile}",
            result.command_line,
        )

    try:
        identity = json.loads(result.stdout)
        account = identity.get('Account', 'unknown')
        arn = identity.get('Arn', '')
    except (json.JSONDecodeError, AttributeError):
        account, arn = 'unknown', ''
    return PreconditionCheck(
        'credentials',
        True,
        f"Profile '{ctx.profile}' is account {account} {arn}".strip(),
        result.command_line,
    )


# -----------------------------------------------------------------------------
# Path checks
# -----------------------------------------------------------------------------

def check_path(name: str, path: Path, want_dir: bool) -> PreconditionCheck:
    """Verify an input file or directory exists."""
    exists = path.is_dir() if want_dir else path.is_file()
    kind = 'directory' if want_dir else 'file'
    if exists:
        return PreconditionCheck(f'path:{name}', True, f"{path}")
    return PreconditionCheck(f'path:{name}', False, f"{name} {kind} not found: {path}")


def provision_paths(ctx: RunContext) -> list[tuple[str, Path, bool]]:
    return [
        ('terraform', ctx.terraform_path, True),
        ('manifests', ctx.manifests_path, True),
        ('dockerfile', ctx.dockerfile_path, False),
    ]


def teardown_paths(ctx: RunContext) -> list[tuple[str, Path, bool]]:
    return [
        ('terraform', ctx.terraform_path, True),
        ('manifests', ctx.manifests_path, True),
    ]


# -----------------------------------------------------------------------------
# Combined
# -----------------------------------------------------------------------------

def run_preflight_checks(ctx: RunContext, tools, paths) -> tuple[bool, list[PreconditionCheck]]:
    """Run all precondition checks.

    Args:
        ctx: Run context (profile/region for the credential probe)
        tools: Tool names to check
        paths: (name, path, want_dir) tuples

    Returns:
        (all_passed, checks)
    """
    checks = check_tools(tools)
    checks.extend(check_path(name, path, want_dir) for name, path, want_dir in paths)
    # Credential probe needs the aws CLI; report it as failing rather than skipping
    checks.append(check_credentials(ctx))

    for check in checks:
        if check.passed:
            logger.debug(f"Precondition {check.name}: {check.message}")
        else:
            logger.error(f"Precondition {check.name} failed: {first_line(check.message)}")
    return all(c.passed for c in checks), checks


def format_preflight_results(pipeline: str, checks: list[PreconditionCheck]) -> str:
    """Format precondition results for display."""
    lines = [f"\nPreflight checks for '{pipeline}':\n"]
    for check in checks:
        marker = '✓' if check.passed else '✗'
        message_lines = check.message.split('\n')
        lines.append(f"{marker} {check.name}: {message_lines[0]}")
        for line in message_lines[1:]:
            lines.append(f"  {line}")
        if not check.passed and check.command:
            lines.append(f"    command: {check.command}")

    lines.append("")
    failed = [c for c in checks if not c.passed]
    if failed:
        lines.append(f"{len(failed)} check(s) failed. Fix issues before running '{pipeline}'.")
    else:
        lines.append("All checks passed.")
    return '\n'.join(lines)
