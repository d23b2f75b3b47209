"""Terraform actions.

The terraform directory is opaque to the orchestrator: dependency ordering
between resources is terraform's job. Re-running apply against existing
infrastructure plans no changes, so the provision stage is safe to repeat.
"""

import logging
import shutil
import time
from dataclasses import dataclass
from typing import Optional

from common import ActionResult, CommandResult, command_failure, run_command
from config import RunContext

logger = logging.getLogger(__name__)

PLAN_FILE = 'tfplan'


def terraform_output(ctx: RunContext, output: str, timeout: int = 60) -> CommandResult:
    """Read one output value fresh from terraform state."""
    return run_command(
        ['terraform', 'output', '-raw', output],
        cwd=ctx.terraform_path,
        timeout=timeout,
        env=ctx.env(),
    )


def _missing_dir(ctx: RunContext, start: float) -> Optional[ActionResult]:
    if ctx.terraform_path.is_dir():
        return None
    return ActionResult(
        success=False,
        message=f"Terraform directory not found: {ctx.terraform_path}",
        duration=time.time() - start,
    )


def _init(name: str, ctx: RunContext, timeout: int) -> CommandResult:
    logger.info(f"[{name}] Running terraform init...")
    return run_command(
        ['terraform', 'init', '-input=false'],
        cwd=ctx.terraform_path,
        timeout=timeout,
        env=ctx.env(),
    )


@dataclass
class TerraformApplyAction:
    """Run terraform init, plan and apply, then read the outputs later stages need."""
    name: str
    outputs: tuple[str, ...] = ('cluster_endpoint', 'ecr_repository_url')
    timeout_init: int = 300
    timeout_plan: int = 900
    timeout_apply: Optional[int] = None  # defaults to ctx.apply_timeout

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """Execute init + plan + apply."""
        start = time.time()
        if missing := _missing_dir(ctx, start):
            return missing

        inspect = f"terraform -chdir={ctx.terraform_path} plan"

        result = _init(self.name, ctx, self.timeout_init)
        if not result.ok:
            return command_failure(self.name, result, start, 'terraform init failed')

        plan_path = ctx.terraform_path / PLAN_FILE
        try:
            logger.info(f"[{self.name}] Running terraform plan...")
            result = run_command(
                ['terraform', 'plan', '-input=false', f'-out={PLAN_FILE}'],
                cwd=ctx.terraform_path,
                timeout=self.timeout_plan,
                env=ctx.env(),
            )
            if not result.ok:
                return command_failure(self.name, result, start, 'terraform plan failed', [inspect])

            timeout = self.timeout_apply or ctx.apply_timeout
            logger.info(f"[{self.name}] Running terraform apply (timeout {timeout}s)...")
            result = run_command(
                ['terraform', 'apply', '-input=false', PLAN_FILE],
                cwd=ctx.terraform_path,
                timeout=timeout,
                env=ctx.env(),
            )
            if not result.ok:
                return command_failure(self.name, result, start, 'terraform apply failed', [inspect])
        finally:
            if plan_path.exists():
                plan_path.unlink()
                logger.debug(f"[{self.name}] Removed plan file: {plan_path}")

        context_updates = {}
        for output in self.outputs:
            result = terraform_output(ctx, output)
            if not result.ok or not result.stdout.strip():
                return command_failure(
                    self.name, result, start, f"terraform output {output} unavailable",
                    [f"terraform -chdir={ctx.terraform_path} output"],
                )
            context_updates[output] = result.stdout.strip()
            logger.info(f"[{self.name}] {output}: {context_updates[output]}")

        return ActionResult(
            success=True,
            message=f"Infrastructure applied for {ctx.cluster_name}",
            duration=time.time() - start,
            context_updates=context_updates,
        )


@dataclass
class TerraformDestroyAction:
    """Run terraform destroy and remove local plan/state leftovers."""
    name: str
    timeout_init: int = 300
    timeout: Optional[int] = None  # defaults to ctx.apply_timeout
    clean_local_state: bool = True

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """Execute init + destroy."""
        start = time.time()
        if missing := _missing_dir(ctx, start):
            return missing

        # init again in case .terraform/ was removed or providers changed
        result = _init(self.name, ctx, self.timeout_init)
        if not result.ok:
            return command_failure(self.name, result, start, 'terraform init failed')

        timeout = self.timeout or ctx.apply_timeout
        logger.info(f"[{self.name}] Running terraform destroy (timeout {timeout}s)...")
        result = run_command(
            ['terraform', 'destroy', '-auto-approve', '-input=false'],
            cwd=ctx.terraform_path,
            timeout=timeout,
            env=ctx.env(),
        )
        if not result.ok:
            return command_failure(
                self.name, result, start, 'terraform destroy failed',
                [f"terraform -chdir={ctx.terraform_path} state list"],
            )

        removed = self._clean(ctx) if self.clean_local_state else []
        return ActionResult(
            success=True,
            message=f"Infrastructure destroyed for {ctx.cluster_name}"
                    + (f" (removed {', '.join(removed)})" if removed else ''),
            duration=time.time() - start,
        )

    def _clean(self, ctx: RunContext) -> list[str]:
        """Remove local state, plan files and provider cache after a successful destroy."""
        removed = []
        tf_dir = ctx.terraform_path
        for pattern in ('terraform.tfstate*', f'{PLAN_FILE}*'):
            for path in sorted(tf_dir.glob(pattern)):
                path.unlink()
                removed.append(path.name)
        cache = tf_dir / '.terraform'
        if cache.is_dir():
            shutil.rmtree(cache)
            removed.append('.terraform/')
        for name in removed:
            logger.debug(f"[{self.name}] Removed {name}")
        return removed
