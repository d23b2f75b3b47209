"""Provisioning pipeline.

Brings up the cluster, registry and workload. Every stage converges when
re-run against an environment that is already (partly) provisioned.
"""

from actions import (
    ApplyManifestsAction,
    BuildImageAction,
    DeleteManifestsAction,
    DeleteNamespaceAction,
    DeleteRepositoryAction,
    ProbeEndpointAction,
    PushImageAction,
    TerraformApplyAction,
    TerraformDestroyAction,
    UpdateKubeconfigAction,
    WaitForLoadBalancerAction,
    WaitForRolloutAction,
)
from config import RunContext
from pipelines import Stage, register_pipeline
from reporting import SOFT
from validation import PROVISION_TOOLS, provision_paths


@register_pipeline
class ProvisionPipeline:
    """Provision infrastructure and deploy the application."""

    name = 'provision'
    description = 'Apply terraform, build and push the image, deploy and wait for endpoints'
    required_tools = PROVISION_TOOLS

    def required_paths(self, ctx: RunContext):
        return provision_paths(ctx)

    def next_steps(self, ctx: RunContext) -> list[str]:
        """Manual follow-ups once the environment is up."""
        return [
            'Configure the Jenkins pipeline',
            f'Set up DNS for {ctx.app_host}',
            'Configure SSL certificates',
        ]

    def get_stages(self, ctx: RunContext) -> list[Stage]:
        """Return provisioning stages in execution order."""
        return [
            Stage(
                'provision', TerraformApplyAction(name='provision'),
                'Apply terraform (cluster, registry, controllers, Jenkins)',
                reverse=Stage(
                    'destroy-infrastructure', TerraformDestroyAction(name='destroy-infrastructure'),
                    'Destroy terraform-managed infrastructure',
                ),
            ),
            Stage(
                'configure-access', UpdateKubeconfigAction(name='configure-access'),
                'Configure kubectl for the cluster',
            ),
            Stage(
                'build-image', BuildImageAction(name='build-image'),
                'Build the application image',
            ),
            Stage(
                'push-image', PushImageAction(name='push-image'),
                'Push the image to ECR',
                reverse=Stage(
                    'delete-repository', DeleteRepositoryAction(name='delete-repository'),
                    'Delete the ECR repository and its images', policy=SOFT,
                ),
            ),
            Stage(
                'deploy', ApplyManifestsAction(name='deploy'),
                'Apply Kubernetes manifests',
                reverse=Stage(
                    'delete-workload', DeleteManifestsAction(name='delete-workload'),
                    'Delete the application workload', policy=SOFT,
                ),
            ),
            Stage(
                'wait-for-rollout', WaitForRolloutAction(name='wait-for-rollout'),
                'Wait for the deployment to become available',
            ),
            Stage(
                'wait-for-endpoint', WaitForLoadBalancerAction(
                    name='wait-for-endpoint',
                    kind='ingress',
                    resource=ctx.ingress_name,
                    namespace=ctx.namespace,
                    context_key='app_hostname',
                    timeout=ctx.endpoint_timeout,
                    interval=ctx.poll_interval,
                    notes=[
                        "Application is accessible at: http://{hostname}",
                        f"To use {ctx.app_host}, point it at {{hostname}} (DNS or /etc/hosts)",
                    ],
                ),
                'Wait for the application load balancer', policy=SOFT,
            ),
            Stage(
                'probe-endpoint', ProbeEndpointAction(
                    name='probe-endpoint',
                    timeout=ctx.endpoint_timeout,
                    interval=ctx.poll_interval,
                ),
                'Check the application answers over HTTP', policy=SOFT,
            ),
            Stage(
                'wait-for-jenkins', WaitForLoadBalancerAction(
                    name='wait-for-jenkins',
                    kind='svc',
                    resource=ctx.jenkins_service,
                    namespace=ctx.jenkins_namespace,
                    context_key='jenkins_hostname',
                    timeout=ctx.endpoint_timeout,
                    interval=ctx.poll_interval,
                    notes=[f"Jenkins is accessible at: http://{{hostname}}:{ctx.jenkins_port}"],
                ),
                'Wait for the Jenkins load balancer', policy=SOFT,
                reverse=Stage(
                    'delete-jenkins', DeleteNamespaceAction(name='delete-jenkins', namespace=ctx.jenkins_namespace),
                    'Delete the Jenkins namespace and its volumes', policy=SOFT,
                ),
            ),
        ]
