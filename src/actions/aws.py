"""AWS CLI actions: cluster access, registry and leftover cleanup."""

import logging
import time
from dataclasses import dataclass

from common import ActionResult, CommandResult, command_failure, first_line, run_command
from config import RunContext
from readiness import ReadinessCheck, wait_until

logger = logging.getLogger(__name__)


def aws(ctx: RunContext, *args: str, timeout: int = 60, log_output: bool = True) -> CommandResult:
    """Run an aws CLI command with the context's region and profile."""
    return run_command(['aws', *args, *ctx.aws_args()], timeout=timeout, env=ctx.env(), log_output=log_output)


def get_account_id(ctx: RunContext) -> CommandResult:
    """Look up the account id fresh for the configured profile."""
    return aws(ctx, 'sts', 'get-caller-identity', '--query', 'Account', '--output', 'text')


def split_ids(text: str) -> list[str]:
    """Split aws --output text into ids, dropping the CLI's None/null placeholders."""
    return [token for token in text.split() if token not in ('None', 'null')]


def update_kubeconfig(ctx: RunContext) -> CommandResult:
    return aws(ctx, 'eks', 'update-kubeconfig', '--name', ctx.cluster_name, timeout=120)


def cluster_info(ctx: RunContext) -> CommandResult:
    return run_command(['kubectl', 'cluster-info'], timeout=60, env=ctx.env())


@dataclass
class UpdateKubeconfigAction:
    """Write kubeconfig credentials for the cluster and verify the connection."""
    name: str

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """Exchange AWS credentials for cluster access."""
        start = time.time()

        logger.info(f"[{self.name}] Updating kubeconfig for {ctx.cluster_name}...")
        result = update_kubeconfig(ctx)
        if not result.ok:
            return command_failure(self.name, result, start, 'aws eks update-kubeconfig failed')

        result = cluster_info(ctx)
        if not result.ok:
            return command_failure(
                self.name, result, start, 'cluster not reachable',
                [f"aws eks describe-cluster --name {ctx.cluster_name} --region {ctx.region} --profile {ctx.profile}"],
            )

        return ActionResult(
            success=True,
            message=f"kubectl configured for {ctx.cluster_name}",
            duration=time.time() - start,
        )


@dataclass
class EnsureClusterAccessAction:
    """Reuse existing kubectl access, configuring it only when the cluster is unreachable."""
    name: str

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """Check cluster access, fall back to update-kubeconfig."""
        start = time.time()

        if cluster_info(ctx).ok:
            return ActionResult(
                success=True,
                message="kubectl already configured",
                duration=time.time() - start,
            )

        logger.warning(f"[{self.name}] kubectl not configured for the cluster, attempting to configure...")
        result = update_kubeconfig(ctx)
        if not result.ok:
            return command_failure(self.name, result, start, 'aws eks update-kubeconfig failed')

        result = cluster_info(ctx)
        if not result.ok:
            return command_failure(self.name, result, start, 'cluster not reachable')

        return ActionResult(
            success=True,
            message=f"kubectl configured for {ctx.cluster_name}",
            duration=time.time() - start,
        )


@dataclass
class DeleteRepositoryAction:
    """Force-delete the ECR repository and every image in it."""
    name: str

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """Delete the repository; an absent repository counts as done."""
        start = time.time()

        logger.info(f"[{self.name}] Deleting ECR repository {ctx.repository_name}...")
        result = aws(ctx, 'ecr', 'delete-repository', '--repository-name', ctx.repository_name, '--force')
        if result.ok:
            return ActionResult(
                success=True,
                message=f"Repository {ctx.repository_name} deleted",
                duration=time.time() - start,
            )
        if 'RepositoryNotFoundException' in result.stderr:
            return ActionResult(
                success=True,
                message=f"Repository {ctx.repository_name} already absent",
                duration=time.time() - start,
            )
        return command_failure(self.name, result, start, 'aws ecr delete-repository failed')


@dataclass
class CleanupLoadBalancersAction:
    """Delete load balancers the cluster's controller created outside terraform.

    ALBs named k8s-* keep the VPC's subnets busy and make terraform destroy
    hang, so they go first.
    """
    name: str
    prefix: str = 'k8s-'
    timeout: int = 180
    interval: int = 10

    def _list(self, ctx: RunContext) -> CommandResult:
        query = f"LoadBalancers[?contains(LoadBalancerName, '{self.prefix}')].LoadBalancerArn"
        return aws(ctx, 'elbv2', 'describe-load-balancers', '--query', query, '--output', 'text')

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """Delete matching load balancers and wait for them to disappear."""
        start = time.time()

        result = self._list(ctx)
        if not result.ok:
            return command_failure(self.name, result, start, 'aws elbv2 describe-load-balancers failed')

        arns = split_ids(result.stdout)
        if not arns:
            return ActionResult(
                success=True,
                message="No load balancers to clean up",
                duration=time.time() - start,
            )

        failed = []
        for arn in arns:
            logger.info(f"[{self.name}] Deleting load balancer: {arn}")
            result = aws(ctx, 'elbv2', 'delete-load-balancer', '--load-balancer-arn', arn)
            if not result.ok:
                logger.warning(f"[{self.name}] Could not delete {arn}: {first_line(result.stderr)}")
                failed.append(arn)

        def _gone():
            listing = self._list(ctx)
            if listing.ok and not split_ids(listing.stdout):
                return 'gone'
            return None

        outcome = wait_until(ReadinessCheck(
            target='load balancer deletion',
            poll=_gone,
            interval=self.interval,
            deadline=self.timeout,
        ))

        remediation = [
            f"aws elbv2 delete-load-balancer --load-balancer-arn {arn} --region {ctx.region} --profile {ctx.profile}"
            for arn in failed
        ]
        if failed or not outcome.ready:
            if not outcome.ready:
                remediation.append(
                    f"aws elbv2 describe-load-balancers --region {ctx.region} --profile {ctx.profile}"
                )
            return ActionResult(
                success=False,
                message=f"{len(arns) - len(failed)}/{len(arns)} load balancers deleted"
                        + ("" if outcome.ready else ", some still present"),
                duration=time.time() - start,
                timed_out=not outcome.ready,
                remediation=remediation,
            )

        return ActionResult(
            success=True,
            message=f"Deleted {len(arns)} load balancer(s)",
            duration=time.time() - start,
        )


@dataclass
class CleanupSecurityGroupsAction:
    """Delete k8s-created security groups that would block VPC deletion."""
    name: str
    pattern: str = '*k8s*'

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """Find the tagged VPC and delete matching groups inside it."""
        start = time.time()

        result = aws(
            ctx, 'ec2', 'describe-vpcs',
            '--filters', f'Name=tag:Name,Values={ctx.vpc_name}',
            '--query', 'Vpcs[0].VpcId', '--output', 'text',
        )
        if not result.ok:
            return command_failure(self.name, result, start, 'aws ec2 describe-vpcs failed')

        vpc_ids = split_ids(result.stdout)
        if not vpc_ids:
            return ActionResult(
                success=True,
                message=f"VPC {ctx.vpc_name} not found, nothing to clean up",
                duration=time.time() - start,
            )
        vpc_id = vpc_ids[0]

        result = aws(
            ctx, 'ec2', 'describe-security-groups',
            '--filters', f'Name=vpc-id,Values={vpc_id}', f'Name=group-name,Values={self.pattern}',
            '--query', 'SecurityGroups[].GroupId', '--output', 'text',
        )
        if not result.ok:
            return command_failure(self.name, result, start, 'aws ec2 describe-security-groups failed')

        groups = split_ids(result.stdout)
        failed = []
        for group in groups:
            logger.info(f"[{self.name}] Deleting security group: {group}")
            result = aws(ctx, 'ec2', 'delete-security-group', '--group-id', group)
            if not result.ok:
                logger.warning(f"[{self.name}] Could not delete {group}: {first_line(result.stderr)}")
                failed.append(group)

        if failed:
            return ActionResult(
                success=False,
                message=f"{len(groups) - len(failed)}/{len(groups)} security groups deleted in {vpc_id}",
                duration=time.time() - start,
                remediation=[
                    f"aws ec2 delete-security-group --group-id {group} --region {ctx.region} --profile {ctx.profile}"
                    for group in failed
                ],
            )

        return ActionResult(
            success=True,
            message=f"Deleted {len(groups)} security group(s) in {vpc_id}" if groups
                    else f"No security groups to clean up in {vpc_id}",
            duration=time.time() - start,
        )
