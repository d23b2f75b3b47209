#!/usr/bin/env python3
"""Tests for validation.py - preflight precondition checks."""

import json
import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import RunContext
from validation import (
    PROVISION_TOOLS,
    PreconditionCheck,
    check_credentials,
    check_path,
    check_tool,
    format_preflight_results,
    provision_paths,
    run_preflight_checks,
    teardown_paths,
)


IDENTITY = json.dumps({
    'UserId': 'AIDAEXAMPLE',
    'Account': '123456789012',
    'Arn': 'arn:aws:iam::123456789012:user/ops',
})


class TestCheckTool:
    """Test single tool probes."""

    def test_installed(self, make_result):
        with patch('validation.run_command', return_value=make_result(stdout='Terraform v1.7.5\non linux_amd64')):
            check = check_tool('terraform')
        assert check.passed
        assert check.name == 'tool:terraform'
        assert check.message == 'Terraform v1.7.5'

    def test_probe_command(self, make_result):
        """kubectl is probed client-side only."""
        with patch('validation.run_command', return_value=make_result()) as mock_cmd:
            check_tool('kubectl')
        assert mock_cmd.call_args[0][0] == ['kubectl', 'version', '--client']

    def test_not_installed(self, make_result):
        """A launch error means the binary is missing; the install hint is attached."""
        with patch('validation.run_command', return_value=make_result(returncode=-1, stderr='Cannot run helm')):
            check = check_tool('helm')
        assert not check.passed
        assert 'helm is not installed' in check.message
        assert 'helm.sh' in check.message

    def test_timeout(self, make_result):
        with patch('validation.run_command', return_value=make_result(returncode=-9, timed_out=True)):
            check = check_tool('aws', timeout=3)
        assert not check.passed
        assert 'did not respond within 3s' in check.message

    def test_docker_daemon_down(self, make_result):
        """docker info fails when the daemon is not running."""
        stderr = 'Cannot connect to the Docker daemon at unix:///var/run/docker.sock.'
        with patch('validation.run_command', return_value=make_result(returncode=1, stderr=stderr)):
            check = check_tool('docker')
        assert not check.passed
        assert 'docker is not usable: Cannot connect to the Docker daemon' in check.message


class TestCheckCredentials:
    """Test the AWS credential probe."""

    def test_valid(self, make_result):
        ctx_args = ['--region', 'eu-west-1', '--profile', 'default']
        with patch('validation.run_command', return_value=make_result(stdout=IDENTITY)) as mock_cmd:
            check = check_credentials(RunContext())
        assert check.passed
        assert '123456789012' in check.message
        assert mock_cmd.call_args[0][0][-4:] == ctx_args

    def test_invalid_carries_remediation(self, make_result):
        stderr = 'The config profile (ops) could not be found'
        with patch('validation.run_command', return_value=make_result(returncode=255, stderr=stderr)):
            check = check_credentials(RunContext(profile='ops'))
        assert not check.passed
        assert 'could not be found' in check.message
        assert 'aws configure --profile ops' in check.message

    def test_unparseable_identity(self, make_result):
        with patch('validation.run_command', return_value=make_result(stdout='not json')):
            check = check_credentials(RunContext())
        assert check.passed
        assert 'unknown' in check.message


class TestCheckPath:
    """Test input path checks."""

    def test_directory_present(self, tmp_path):
        assert check_path('terraform', tmp_path, want_dir=True).passed

    def test_file_expected_but_directory(self, tmp_path):
        check = check_path('dockerfile', tmp_path, want_dir=False)
        assert not check.passed
        assert 'dockerfile file not found' in check.message

    def test_pipeline_paths(self, run_context):
        assert [name for name, _, _ in provision_paths(run_context)] == ['terraform', 'manifests', 'dockerfile']
        assert [name for name, _, _ in teardown_paths(run_context)] == ['terraform', 'manifests']


class TestRunPreflightChecks:
    """Test the combined precondition run."""

    def test_all_pass(self, run_context, make_result):
        def fake_run(cmd, timeout=None):
            return make_result(stdout=IDENTITY if 'sts' in cmd else 'v1')

        with patch('validation.run_command', side_effect=fake_run):
            passed, checks = run_preflight_checks(run_context, PROVISION_TOOLS, provision_paths(run_context))

        assert passed
        assert len(checks) == len(PROVISION_TOOLS) + 3 + 1

    def test_two_missing_tools_both_reported(self, run_context, make_result):
        """Every check runs: two missing tools give two failures in one pass."""
        def fake_run(cmd, timeout=None):
            if cmd[0] in ('helm', 'docker'):
                return make_result(returncode=-1, stderr=f'Cannot run {cmd[0]}', cmd=cmd)
            return make_result(stdout=IDENTITY if 'sts' in cmd else 'v1', cmd=cmd)

        with patch('validation.run_command', side_effect=fake_run):
            passed, checks = run_preflight_checks(run_context, PROVISION_TOOLS, provision_paths(run_context))

        assert not passed
        failed = [c.name for c in checks if not c.passed]
        assert failed == ['tool:helm', 'tool:docker']

    def test_missing_paths_reported_with_tools(self, tmp_path, make_result):
        ctx = RunContext(project_dir=tmp_path)

        with patch('validation.run_command', return_value=make_result(returncode=-1)):
            passed, checks = run_preflight_checks(ctx, ('aws',), teardown_paths(ctx))

        assert not passed
        assert [c.name for c in checks] == ['tool:aws', 'path:terraform', 'path:manifests', 'credentials']
        assert not any(c.passed for c in checks)


class TestFormatPreflightResults:
    """Test preflight rendering."""

    def test_markers_and_summary(self):
        checks = [
            PreconditionCheck('tool:aws', True, 'aws-cli/2.15.0'),
            PreconditionCheck('tool:helm', False, 'helm is not installed\n  Install Helm', 'helm version --short'),
        ]
        text = format_preflight_results('provision', checks)

        assert "Preflight checks for 'provision'" in text
        assert '✓ tool:aws: aws-cli/2.15.0' in text
        assert '✗ tool:helm: helm is not installed' in text
        assert '    Install Helm' in text
        assert 'command: helm version --short' in text
        assert "1 check(s) failed" in text

    def test_all_passed(self):
        text = format_preflight_results('teardown', [PreconditionCheck('credentials', True, 'ok')])
        assert 'All checks passed.' in text
