#!/usr/bin/env python3
"""CLI entry point for eks-driver.

Commands:
- provision: terraform apply, image build/push, deploy, wait for endpoints
- teardown: delete workload and controller leftovers, terraform destroy

Examples:
    eks-driver provision --region eu-west-1 --profile default
    eks-driver provision --skip build-image --skip push-image
    eks-driver teardown --yes
"""

import argparse
import logging
import signal
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from config import ConfigError, load_run_context
from pipelines import Pipeline, get_pipeline, list_pipelines
from reporting import PARTIAL, render_report
from validation import format_preflight_results, run_preflight_checks


def get_version():
    try:
        return version('eks-driver')
    except PackageNotFoundError:
        return 'dev'


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def _raise_interrupt(signum, frame):
    """Turn SIGTERM into the same cancellation path as Ctrl-C."""
    logger.warning(f"Received signal {signum}, cancelling run")
    raise KeyboardInterrupt


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '--region',
        help='AWS region (default: eu-west-1, or $AWS_REGION)'
    )
    common.add_argument(
        '--profile',
        help='AWS CLI profile (default: default, or $AWS_PROFILE)'
    )
    common.add_argument(
        '--cluster',
        dest='cluster_name',
        help='EKS cluster name (default: demoapp-eks-cluster, or $EKS_CLUSTER_NAME)'
    )
    common.add_argument(
        '--namespace',
        help='Application namespace (default: demoapp, or $APP_NAMESPACE)'
    )
    common.add_argument(
        '--config', '-c',
        type=Path,
        help='YAML settings file (default: $EKS_DRIVER_CONFIG)'
    )
    common.add_argument(
        '--project-dir',
        type=Path,
        help='Directory holding terraform/, k8s/ and docker/ (default: current directory)'
    )
    common.add_argument(
        '--skip', '-s',
        action='append',
        default=[],
        metavar='STAGE',
        help='Stages to skip (can be repeated)'
    )
    common.add_argument(
        '--list-stages',
        action='store_true',
        help='List stages and exit'
    )
    common.add_argument(
        '--dry-run',
        action='store_true',
        help='Preview stages without executing'
    )
    common.add_argument(
        '--skip-preflight',
        action='store_true',
        help='Skip tool, path and credential checks'
    )
    common.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging (includes command output)'
    )

    parser = argparse.ArgumentParser(
        prog='eks-driver',
        description='Provision and tear down the EKS environment'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'eks-driver {get_version()}'
    )
    commands = parser.add_subparsers(dest='command', metavar='COMMAND', required=True)
    for name in list_pipelines():
        definition = get_pipeline(name)
        sub = commands.add_parser(name, parents=[common], help=definition.description)
        if getattr(definition, 'requires_confirmation', False):
            sub.add_argument(
                '--yes', '-y',
                action='store_true',
                help='Skip the confirmation prompt'
            )
    return parser


def _confirm(pipeline_name: str, ctx) -> bool:
    print(f"\nWARNING: '{pipeline_name}' deletes every resource of the environment.")
    print(f"Cluster: {ctx.cluster_name} ({ctx.region}, profile {ctx.profile})")
    print("\nThis action cannot be undone.")
    try:
        response = input("Type 'yes' to continue: ").strip().lower()
    except EOFError:
        return False
    return response == 'yes'


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        ctx = load_run_context(
            config_file=args.config,
            overrides={
                'region': args.region,
                'profile': args.profile,
                'cluster_name': args.cluster_name,
                'namespace': args.namespace,
                'project_dir': args.project_dir,
            },
        )
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    definition = get_pipeline(args.command)
    stages = definition.get_stages(ctx)

    if args.list_stages:
        print(f"Stages for '{definition.name}':")
        for stage in stages:
            print(f"  {stage.id:<26} {stage.policy:<5} {stage.description}")
        return 0

    try:
        pipeline = Pipeline(definition.name, stages, ctx, skip_stages=args.skip, dry_run=args.dry_run)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    if not args.skip_preflight and not args.dry_run:
        logger.info(f"Running preflight checks for '{definition.name}'")
        passed, checks = run_preflight_checks(ctx, definition.required_tools, definition.required_paths(ctx))
        if not passed:
            print(format_preflight_results(definition.name, checks))
            print("\nUse --skip-preflight to bypass these checks")
            print()
            return 1
        logger.info("Preflight checks passed")

    if getattr(definition, 'requires_confirmation', False) and not args.dry_run and not args.yes:
        if not _confirm(definition.name, ctx):
            print("Aborted.")
            return 1

    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        run = pipeline.run()
    finally:
        signal.signal(signal.SIGTERM, previous)

    if args.dry_run:
        return 0

    next_steps = definition.next_steps(ctx) if hasattr(definition, 'next_steps') else []
    print(render_report(run, pipeline.pending_stages(), next_steps))
    if run.status == PARTIAL:
        logger.warning(f"'{definition.name}' completed with {len(run.warnings)} soft failure(s)")
    return 0 if run.succeeded else 1


if __name__ == '__main__':
    sys.exit(main())
