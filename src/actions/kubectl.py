"""Kubernetes workload actions."""

import logging
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path

from actions.terraform import terraform_output
from common import ActionResult, CommandResult, command_failure, run_command
from config import RunContext
from readiness import ReadinessCheck, poll_command_output, wait_until

logger = logging.getLogger(__name__)

MANIFEST_SUFFIXES = ('.yaml', '.yml', '.json')

HOSTNAME_JSONPATH = '{.status.loadBalancer.ingress[0].hostname}'


def kubectl(ctx: RunContext, *args: str, timeout: int = 120) -> CommandResult:
    return run_command(['kubectl', *args], timeout=timeout, env=ctx.env())


def render_manifests(source: Path, dest: Path, placeholder: str, image: str) -> int:
    """Copy manifests into dest with the image placeholder replaced.

    Source files are never modified, so rendering is repeatable.

    Returns:
        Number of placeholder substitutions made
    """
    needle = f'image: {placeholder}'
    replacement = f'image: {image}'
    substitutions = 0
    for path in sorted(source.iterdir()):
        if not path.is_file() or path.suffix not in MANIFEST_SUFFIXES:
            continue
        text = path.read_text(encoding='utf-8')
        substitutions += text.count(needle)
        (dest / path.name).write_text(text.replace(needle, replacement), encoding='utf-8')
    return substitutions


def wait_for_namespace_deletion(ctx: RunContext, namespace: str, timeout: int) -> CommandResult:
    return kubectl(
        ctx, 'wait', '--for=delete', f'namespace/{namespace}', f'--timeout={timeout}s',
        timeout=timeout + 30,
    )


def _already_gone(result: CommandResult) -> bool:
    return 'notfound' in result.stderr.lower().replace(' ', '')


@dataclass
class ApplyManifestsAction:
    """Render the workload manifests against the current registry URL and apply them."""
    name: str
    timeout: int = 300

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """kubectl apply the rendered manifest directory."""
        start = time.time()

        if not ctx.manifests_path.is_dir():
            return ActionResult(
                success=False,
                message=f"Manifest directory not found: {ctx.manifests_path}",
                duration=time.time() - start,
            )

        result = terraform_output(ctx, 'ecr_repository_url')
        if not result.ok or not result.stdout.strip():
            return command_failure(self.name, result, start, 'cannot read ecr_repository_url')
        image = f'{result.stdout.strip()}:{ctx.image_tags[0]}'

        render_dir = Path(tempfile.mkdtemp(prefix=f'manifests-{ctx.app_name}-'))
        try:
            count = render_manifests(ctx.manifests_path, render_dir, ctx.image_placeholder, image)
            if count == 0:
                logger.warning(f"[{self.name}] Placeholder 'image: {ctx.image_placeholder}' not found in {ctx.manifests_path}")
            else:
                logger.info(f"[{self.name}] Image set to {image} ({count} reference(s))")

            logger.info(f"[{self.name}] Applying manifests from {ctx.manifests_path}...")
            result = kubectl(ctx, 'apply', '-f', str(render_dir), timeout=self.timeout)
            if not result.ok:
                return command_failure(self.name, result, start, 'kubectl apply failed')
        finally:
            shutil.rmtree(render_dir, ignore_errors=True)
            logger.debug(f"[{self.name}] Cleaned up rendered manifests: {render_dir}")

        return ActionResult(
            success=True,
            message=f"Workload applied with image {image}",
            duration=time.time() - start,
            context_updates={'deployed_image': image},
        )


@dataclass
class WaitForRolloutAction:
    """Block until the deployment reports Available."""
    name: str

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """kubectl wait --for=condition=available."""
        start = time.time()

        deployment = f'deployment/{ctx.app_name}'
        logger.info(f"[{self.name}] Waiting for {deployment} in {ctx.namespace} (timeout {ctx.rollout_timeout}s)...")
        result = kubectl(
            ctx, 'wait', '--for=condition=available', f'--timeout={ctx.rollout_timeout}s',
            deployment, '-n', ctx.namespace,
            timeout=ctx.rollout_timeout + 30,
        )
        if not result.ok:
            return command_failure(
                self.name, result, start, f'{deployment} not available',
                [
                    f"kubectl rollout status {deployment} -n {ctx.namespace}",
                    f"kubectl get pods -n {ctx.namespace}",
                ],
            )

        return ActionResult(
            success=True,
            message=f"{deployment} available",
            duration=time.time() - start,
        )


@dataclass
class WaitForLoadBalancerAction:
    """Poll a Service or Ingress until its load balancer has a hostname.

    Notes may reference {hostname}; they are reported as next steps once
    the hostname is known.
    """
    name: str
    kind: str  # 'ingress' or 'svc'
    resource: str
    namespace: str
    context_key: str
    timeout: int = 300
    interval: int = 10
    notes: list[str] = field(default_factory=list)

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """Wait for the load balancer hostname."""
        start = time.time()

        target = f'{self.kind}/{self.resource}'
        outcome = wait_until(ReadinessCheck(
            target=f'{target} load balancer',
            poll=poll_command_output(lambda: kubectl(
                ctx, 'get', self.kind, self.resource, '-n', self.namespace,
                '-o', f'jsonpath={HOSTNAME_JSONPATH}',
                timeout=30,
            )),
            interval=self.interval,
            deadline=self.timeout,
        ))

        if not outcome.ready:
            return ActionResult(
                success=False,
                message=f"Load balancer for {target} not ready after {outcome.elapsed:.0f}s",
                duration=time.time() - start,
                timed_out=True,
                remediation=[f"kubectl get {self.kind} {self.resource} -n {self.namespace}"],
            )

        hostname = outcome.value
        return ActionResult(
            success=True,
            message=f"{target} reachable at {hostname}",
            duration=time.time() - start,
            context_updates={self.context_key: hostname},
            notes=[note.format(hostname=hostname) for note in self.notes],
        )


@dataclass
class DeleteManifestsAction:
    """Delete the workload manifests and wait for the namespace to go away."""
    name: str
    timeout: int = 300

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """kubectl delete -f, ignoring resources that are already gone."""
        start = time.time()

        logger.info(f"[{self.name}] Deleting workload from {ctx.manifests_path}...")
        result = kubectl(ctx, 'delete', '-f', str(ctx.manifests_path), '--ignore-not-found=true', timeout=self.timeout)
        if not result.ok:
            return command_failure(self.name, result, start, 'kubectl delete failed')

        logger.info(f"[{self.name}] Waiting for namespace {ctx.namespace} deletion...")
        result = wait_for_namespace_deletion(ctx, ctx.namespace, self.timeout)
        if not result.ok and not _already_gone(result):
            return command_failure(
                self.name, result, start, f'namespace {ctx.namespace} still terminating',
                [f"kubectl get namespace {ctx.namespace}"],
            )

        return ActionResult(
            success=True,
            message=f"Workload removed from {ctx.namespace}",
            duration=time.time() - start,
        )


@dataclass
class DeleteNamespaceAction:
    """Delete a namespace (and with it its volumes) and wait for it to disappear."""
    name: str
    namespace: str
    timeout: int = 300

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """kubectl delete namespace, ignoring an absent namespace."""
        start = time.time()

        logger.info(f"[{self.name}] Deleting namespace {self.namespace}...")
        result = kubectl(ctx, 'delete', 'namespace', self.namespace, '--ignore-not-found=true', '--wait=false')
        if not result.ok:
            return command_failure(self.name, result, start, 'kubectl delete namespace failed')

        result = wait_for_namespace_deletion(ctx, self.namespace, self.timeout)
        if not result.ok and not _already_gone(result):
            return command_failure(
                self.name, result, start, f'namespace {self.namespace} still terminating',
                [f"kubectl get namespace {self.namespace}"],
            )

        return ActionResult(
            success=True,
            message=f"Namespace {self.namespace} deleted",
            duration=time.time() - start,
        )
