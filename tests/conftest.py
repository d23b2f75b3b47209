"""Shared pytest fixtures for eks-driver tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from common import CommandResult  # noqa: E402
from config import RunContext  # noqa: E402


@pytest.fixture
def project_dir(tmp_path):
    """Create a temporary project tree.

    Creates the inputs the pipelines consume:
    - terraform/main.tf
    - k8s/namespace.yaml, k8s/deployment.yaml (with the image placeholder)
    - docker/Dockerfile
    """
    (tmp_path / 'terraform').mkdir()
    (tmp_path / 'terraform' / 'main.tf').write_text('# terraform\n')

    (tmp_path / 'k8s').mkdir()
    (tmp_path / 'k8s' / 'namespace.yaml').write_text("""apiVersion: v1
kind: Namespace
metadata:
  name: demoapp
""")
    (tmp_path / 'k8s' / 'deployment.yaml').write_text("""apiVersion: apps/v1
kind: Deployment
metadata:
  name: demoapp
  namespace: demoapp
spec:
  template:
    spec:
      containers:
        - name: demoapp
          image: demoapp:latest
""")

    (tmp_path / 'docker').mkdir()
    (tmp_path / 'docker' / 'Dockerfile').write_text('FROM nginx:alpine\n')
    return tmp_path


@pytest.fixture
def run_context(project_dir):
    """RunContext pointing at the temporary project tree, with short waits."""
    return RunContext(
        project_dir=project_dir,
        rollout_timeout=5,
        endpoint_timeout=0,
        poll_interval=0,
    )


@pytest.fixture
def make_result():
    """Factory for CommandResult values returned by mocked run_command."""
    def _make(returncode=0, stdout='', stderr='', timed_out=False, cmd=('cmd',)):
        return CommandResult(
            cmd=tuple(cmd),
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            timed_out=timed_out,
        )
    return _make
