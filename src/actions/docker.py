"""Container image actions."""

import logging
import time
from dataclasses import dataclass

from actions.aws import aws, get_account_id
from actions.terraform import terraform_output
from common import ActionResult, command_failure, run_command
from config import RunContext

logger = logging.getLogger(__name__)


@dataclass
class BuildImageAction:
    """Build the application image locally."""
    name: str
    timeout: int = 1800

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """Run docker build; the layer cache makes a repeat build cheap."""
        start = time.time()

        image = ctx.local_image
        cmd = ['docker', 'build', '-f', str(ctx.dockerfile_path), '-t', image, str(ctx.build_context_path)]
        logger.info(f"[{self.name}] Building {image} from {ctx.dockerfile_path}...")
        result = run_command(cmd, cwd=ctx.project_dir, timeout=self.timeout)
        if not result.ok:
            return command_failure(self.name, result, start, 'docker build failed')

        return ActionResult(
            success=True,
            message=f"Built {image}",
            duration=time.time() - start,
            context_updates={'local_image': image},
        )


@dataclass
class PushImageAction:
    """Log in to ECR, retag the local image and push every configured tag.

    Pushing an existing tag replaces what the tag points at rather than adding
    a new image record, so re-running after a partial failure converges.
    """
    name: str
    timeout: int = 1800

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """Push the image built by the previous stage."""
        start = time.time()

        local_image = context.get('local_image')
        if not local_image:
            return ActionResult(
                success=False,
                message="No local_image in context (run build-image first)",
                duration=time.time() - start,
            )

        # Registry coordinates are read fresh, never carried over from earlier runs
        result = terraform_output(ctx, 'ecr_repository_url')
        if not result.ok or not result.stdout.strip():
            return command_failure(self.name, result, start, 'cannot read ecr_repository_url')
        repository_url = result.stdout.strip()

        result = get_account_id(ctx)
        if not result.ok or not result.stdout.strip():
            return command_failure(self.name, result, start, 'cannot determine AWS account id')
        registry = ctx.registry_host(result.stdout.strip())

        logger.info(f"[{self.name}] Logging in to {registry}...")
        result = aws(ctx, 'ecr', 'get-login-password', log_output=False)
        if not result.ok:
            return command_failure(self.name, result, start, 'aws ecr get-login-password failed')
        password = result.stdout.strip()

        result = run_command(
            ['docker', 'login', '--username', 'AWS', '--password-stdin', registry],
            timeout=120,
            input=password,
            log_output=False,
        )
        if not result.ok:
            return command_failure(self.name, result, start, 'docker login failed')

        pushed = []
        for tag in ctx.image_tags:
            target = f'{repository_url}:{tag}'
            result = run_command(['docker', 'tag', local_image, target], timeout=60)
            if not result.ok:
                return command_failure(self.name, result, start, f'docker tag {target} failed')

            logger.info(f"[{self.name}] Pushing {target}...")
            result = run_command(['docker', 'push', target], timeout=self.timeout)
            if not result.ok:
                return command_failure(self.name, result, start, f'docker push {target} failed')
            pushed.append(target)

        return ActionResult(
            success=True,
            message=f"Pushed {', '.join(pushed)}",
            duration=time.time() - start,
            context_updates={'ecr_repository_url': repository_url, 'pushed_images': pushed},
        )
