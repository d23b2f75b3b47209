"""Reusable provisioning actions."""

from actions.terraform import TerraformApplyAction, TerraformDestroyAction
from actions.aws import (
    UpdateKubeconfigAction,
    EnsureClusterAccessAction,
    DeleteRepositoryAction,
    CleanupLoadBalancersAction,
    CleanupSecurityGroupsAction,
)
from actions.docker import BuildImageAction, PushImageAction
from actions.kubectl import (
    ApplyManifestsAction,
    WaitForRolloutAction,
    WaitForLoadBalancerAction,
    DeleteManifestsAction,
    DeleteNamespaceAction,
)
from actions.http import ProbeEndpointAction

__all__ = [
    'TerraformApplyAction',
    'TerraformDestroyAction',
    'UpdateKubeconfigAction',
    'EnsureClusterAccessAction',
    'DeleteRepositoryAction',
    'CleanupLoadBalancersAction',
    'CleanupSecurityGroupsAction',
    'BuildImageAction',
    'PushImageAction',
    'ApplyManifestsAction',
    'WaitForRolloutAction',
    'WaitForLoadBalancerAction',
    'DeleteManifestsAction',
    'DeleteNamespaceAction',
    'ProbeEndpointAction',
]
