"""Teardown pipeline.

Removes what the provisioning pipeline created. Resources created by
controllers inside the cluster (ALBs, security groups) are not in terraform
state and would block VPC deletion, so they are cleaned up before destroy.
"""

from actions import (
    CleanupLoadBalancersAction,
    CleanupSecurityGroupsAction,
    EnsureClusterAccessAction,
)
from config import RunContext
from pipelines import Stage, register_pipeline, reverse_stages
from pipelines.provision import ProvisionPipeline
from reporting import SOFT
from validation import TEARDOWN_TOOLS, teardown_paths


@register_pipeline
class TeardownPipeline:
    """Tear down the workload and all infrastructure."""

    name = 'teardown'
    description = 'Delete workload, registry and controller-created resources, then destroy infrastructure'
    required_tools = TEARDOWN_TOOLS
    requires_confirmation = True

    def required_paths(self, ctx: RunContext):
        return teardown_paths(ctx)

    def get_stages(self, ctx: RunContext) -> list[Stage]:
        """Return teardown stages in execution order."""
        provision = ProvisionPipeline().get_stages(ctx)
        infrastructure = provision[0].reverse

        return [
            Stage(
                'ensure-access', EnsureClusterAccessAction(name='ensure-access'),
                'Make sure kubectl can reach the cluster', policy=SOFT,
            ),
            *reverse_stages(provision[1:]),
            Stage(
                'cleanup-load-balancers', CleanupLoadBalancersAction(name='cleanup-load-balancers'),
                'Delete load balancers left by the ingress controller', policy=SOFT,
            ),
            Stage(
                'cleanup-security-groups', CleanupSecurityGroupsAction(name='cleanup-security-groups'),
                'Delete security groups left by the ingress controller', policy=SOFT,
            ),
            infrastructure,
        ]
