"""Main module for the ecr-copy CLI."""

import sys
import argparse
from typing import Optional

from . import __version__
from .core import (
    AssumeRoleAuth,
    ConfigurationError,
    EnvironmentAuth,
    EnvironmentCheckError,
    ProfileAuth,
    get_logger,
    set_log_level,
)
from .core.factories import CopyPipelineFactory
from .core.models import AuthSpec
from .core.reporting import EXIT_CONFIG_ERROR, EXIT_GENERAL_FAILURE, render_json, render_text
from .core.services import create_run_spec


def _add_auth_arguments(parser: argparse.ArgumentParser, side: str) -> None:
    group = parser.add_argument_group(f"{side} credentials")
    exclusive = group.add_mutually_exclusive_group()
    exclusive.add_argument(f"--{side}-profile", help=f"AWS profile for the {side} registry")
    exclusive.add_argument(f"--{side}-role-arn", help=f"IAM role to assume for the {side} registry")
    exclusive.add_argument(
        f"--{side}-env",
        action="store_true",
        help=f"Read {side} credentials from AWS_* environment variables (default)",
    )
    group.add_argument(
        f"--{side}-session-name", default="ecr-copy", help="Session name when assuming a role"
    )
    group.add_argument(
        f"--{side}-session-duration",
        type=int,
        default=3600,
        help="Assumed role session duration in seconds",
    )
    group.add_argument(f"--{side}-region", required=True, help=f"AWS region of the {side} registry")
    group.add_argument(
        f"--{side}-registry", default=None, help=f"Explicit {side} registry host (skips account lookup)"
    )


def auth_spec_from_args(args: argparse.Namespace, side: str) -> AuthSpec:
    """Build the AuthSpec for `side` ("source" or "target") from parsed flags."""
    profile: Optional[str] = getattr(args, f"{side}_profile")
    role_arn: Optional[str] = getattr(args, f"{side}_role_arn")
    if profile:
        return ProfileAuth(name=profile)
    if role_arn:
        return AssumeRoleAuth(
            arn=role_arn,
            session_name=getattr(args, f"{side}_session_name"),
            duration_seconds=getattr(args, f"{side}_session_duration"),
        )
    return EnvironmentAuth()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ecr-copy",
        description="Copy container images between ECR registries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Copy two images between accounts using named profiles
  ecr-copy copy svc-a:v1 svc-b:v1 --source-profile prod --source-region us-east-1 \\
                --target-profile dr --target-region us-west-2

  # Assume a role for the target, copy four images at a time with retries
  ecr-copy copy svc-a:v1 --source-profile prod --source-region us-east-1 \\
                --target-role-arn arn:aws:iam::123456789012:role/ecr-push \\
                --target-region eu-west-1 --concurrency 4 --retry-limit 2

  # Show version
  ecr-copy version
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    copy_parser = subparsers.add_parser("copy", help="Copy images from the source to the target registry")
    copy_parser.add_argument("images", nargs="+", metavar="IMAGE", help="Image reference as repository:tag")
    _add_auth_arguments(copy_parser, "source")
    _add_auth_arguments(copy_parser, "target")
    copy_parser.add_argument("--concurrency", type=int, default=1, help="Images copied in parallel (default: 1)")
    copy_parser.add_argument("--retry-limit", type=int, default=0, help="Retries per image (default: 0)")
    copy_parser.add_argument(
        "--retry-delay", type=int, default=0, help="Base retry delay in seconds, multiplied by the attempt"
    )
    copy_parser.add_argument(
        "--timeout", type=int, default=900, help="Per-attempt timeout in seconds, 0 disables (default: 900)"
    )
    copy_parser.add_argument("--no-verify", action="store_true", help="Skip digest verification")
    copy_parser.add_argument("--fail-fast", action="store_true", help="Stop the batch at the first failed image")
    copy_parser.add_argument(
        "--force-pull-tag-push", action="store_true", help="Use docker pull/tag/push even if skopeo is available"
    )
    copy_parser.add_argument(
        "--no-create-repository",
        action="store_true",
        help="Fail instead of creating missing target repositories",
    )
    copy_parser.add_argument("--output", choices=["text", "json"], default="text", help="Result format")
    copy_parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers.add_parser("version", help="Show version information")
    return parser


def run_copy(args: argparse.Namespace) -> int:
    """Run the copy command and return the process exit code."""
    logger = get_logger("cli")
    if args.debug:
        set_log_level("DEBUG")

    try:
        spec = create_run_spec(
            images=args.images,
            source_auth=auth_spec_from_args(args, "source"),
            target_auth=auth_spec_from_args(args, "target"),
            source_region=args.source_region,
            target_region=args.target_region,
            source_registry_url=args.source_registry,
            target_registry_url=args.target_registry,
            options={
                "concurrency": args.concurrency,
                "retry_limit": args.retry_limit,
                "retry_delay_seconds": args.retry_delay,
                "per_job_timeout_seconds": args.timeout,
                "verify": not args.no_verify,
                "fail_fast": args.fail_fast,
                "force_pull_tag_push": args.force_pull_tag_push,
                "create_target_repository": not args.no_create_repository,
            },
        )
    except ConfigurationError as exc:
        logger.error(f"Configuration error: {exc}")
        return EXIT_CONFIG_ERROR

    try:
        result = CopyPipelineFactory.create_pipeline().run(spec)
    except EnvironmentCheckError as exc:
        logger.error(f"Environment check failed: {exc}")
        return exc.exit_code
    except KeyboardInterrupt:
        logger.warning("Copy interrupted by user.")
        return EXIT_GENERAL_FAILURE

    print(render_json(result) if args.output == "json" else render_text(result))
    return result.exit_code


def main() -> None:
    """Entry point for the ecr-copy command-line interface."""
    parser = build_parser()
    args: argparse.Namespace = parser.parse_args()

    if args.command == "copy":
        sys.exit(run_copy(args))
    elif args.command == "version":
        print("ecr-copy")
        print(f"Version {__version__}")
        sys.exit(0)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
