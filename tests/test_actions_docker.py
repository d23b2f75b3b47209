"""Tests for image build and push actions."""

import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from actions.docker import BuildImageAction, PushImageAction

REPO = '123456789012.dkr.ecr.eu-west-1.amazonaws.com/demoapp'


class TestBuildImageAction:
    """Test BuildImageAction."""

    def test_build_success(self, run_context, make_result):
        with patch('actions.docker.run_command', return_value=make_result()) as mock_cmd:
            result = BuildImageAction(name='build-image').run(run_context, {})

        assert result.success is True
        assert result.context_updates == {'local_image': 'demoapp:latest'}
        cmd = mock_cmd.call_args[0][0]
        assert cmd == [
            'docker', 'build',
            '-f', str(run_context.dockerfile_path),
            '-t', 'demoapp:latest',
            str(run_context.build_context_path),
        ]

    def test_build_failure(self, run_context, make_result):
        with patch('actions.docker.run_command', return_value=make_result(returncode=1, stderr='failed to solve')):
            result = BuildImageAction(name='build-image').run(run_context, {})

        assert result.success is False
        assert 'docker build failed' in result.message
        assert result.command.startswith('cmd')


class TestPushImageAction:
    """Test PushImageAction."""

    def _patches(self, make_result, docker_results=None, repo_url=REPO):
        return (
            patch('actions.docker.terraform_output', return_value=make_result(stdout=repo_url)),
            patch('actions.docker.get_account_id', return_value=make_result(stdout='123456789012')),
            patch('actions.docker.aws', return_value=make_result(stdout='s3cr3t-token')),
            patch('actions.docker.run_command', side_effect=docker_results) if docker_results is not None
            else patch('actions.docker.run_command', return_value=make_result()),
        )

    def test_requires_local_image(self, run_context):
        result = PushImageAction(name='push-image').run(run_context, {})
        assert result.success is False
        assert 'local_image' in result.message

    def test_push_all_tags(self, run_context, make_result):
        """Login via stdin, then tag and push every configured tag."""
        p_out, p_acct, p_aws, p_run = self._patches(make_result)
        with p_out, p_acct, p_aws as mock_aws, p_run as mock_cmd:
            result = PushImageAction(name='push-image').run(run_context, {'local_image': 'demoapp:latest'})

        assert result.success is True
        assert result.context_updates['pushed_images'] == [f'{REPO}:latest', f'{REPO}:v1.0.0']
        assert result.context_updates['ecr_repository_url'] == REPO

        assert mock_aws.call_args[0][1:] == ('ecr', 'get-login-password')
        assert mock_aws.call_args[1]['log_output'] is False

        login = mock_cmd.call_args_list[0]
        assert login[0][0] == [
            'docker', 'login', '--username', 'AWS', '--password-stdin',
            '123456789012.dkr.ecr.eu-west-1.amazonaws.com',
        ]
        assert login[1]['input'] == 's3cr3t-token'
        assert login[1]['log_output'] is False
        # the password is never on a command line
        assert all('s3cr3t-token' not in c[0][0] for c in mock_cmd.call_args_list)

        commands = [c[0][0] for c in mock_cmd.call_args_list[1:]]
        assert commands == [
            ['docker', 'tag', 'demoapp:latest', f'{REPO}:latest'],
            ['docker', 'push', f'{REPO}:latest'],
            ['docker', 'tag', 'demoapp:latest', f'{REPO}:v1.0.0'],
            ['docker', 'push', f'{REPO}:v1.0.0'],
        ]

    def test_registry_url_unavailable(self, run_context, make_result):
        p_out, p_acct, p_aws, p_run = self._patches(make_result, repo_url='')
        with p_out, p_acct, p_aws, p_run as mock_cmd:
            result = PushImageAction(name='push-image').run(run_context, {'local_image': 'demoapp:latest'})

        assert result.success is False
        assert 'ecr_repository_url' in result.message
        mock_cmd.assert_not_called()

    def test_login_failure(self, run_context, make_result):
        p_out, p_acct, p_aws, p_run = self._patches(
            make_result, docker_results=[make_result(returncode=1, stderr='401 Unauthorized')],
        )
        with p_out, p_acct, p_aws, p_run:
            result = PushImageAction(name='push-image').run(run_context, {'local_image': 'demoapp:latest'})

        assert result.success is False
        assert 'docker login failed' in result.message

    def test_push_failure_stops(self, run_context, make_result):
        p_out, p_acct, p_aws, p_run = self._patches(
            make_result,
            docker_results=[make_result(), make_result(), make_result(returncode=1, stderr='denied')],
        )
        with p_out, p_acct, p_aws, p_run as mock_cmd:
            result = PushImageAction(name='push-image').run(run_context, {'local_image': 'demoapp:latest'})

        assert result.success is False
        assert f'docker push {REPO}:latest failed' in result.message
        assert mock_cmd.call_count == 3
