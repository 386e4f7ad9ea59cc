"""
CLI entrypoint for deployments.

Usage:
  niobium --s3-bucket=<bucket> --cloudfront-distribution-id=<distribution-id>
  niobium --s3-bucket=site --cloudfront-distribution-id=E123 --app mysite.main:app --dry-run
"""

from __future__ import annotations

import argparse
import sys

from niobium.exceptions import NiobiumError, exception_to_exit_code
from niobium.logging_config import LogContextManager, configure_logging, log_error
from niobium.models import DeployResult


def _non_empty(value: str) -> str:
    value = value.strip()
    if not value:
        raise argparse.ArgumentTypeError("must not be empty")
    return value


def _get_version() -> str:
    from niobium import __version__

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="niobium",
        description="Snapshot a local FastAPI app to S3 and invalidate changed paths on CloudFront.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {_get_version()}")
    parser.add_argument(
        "--s3-bucket",
        required=True,
        type=_non_empty,
        metavar="BUCKET",
        help="Name of the S3 bucket in which to put the files.",
    )
    parser.add_argument(
        "--cloudfront-distribution-id",
        required=True,
        type=_non_empty,
        metavar="DISTRIBUTION_ID",
        help="ID of the CloudFront distribution where the files are served.",
    )
    parser.add_argument(
        "--app",
        default=None,
        help="Script calling uvicorn.run(app), or module:attribute (default: $NIOBIUM_APP or app.py).",
    )
    parser.add_argument("--region", default=None, help="AWS region for the S3 client.")
    parser.add_argument("--dry-run", action="store_true", help="Report changed files without publishing.")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bars.")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument("--log-format", default=None, choices=["json", "console"])
    return parser


def _print_summary(result: DeployResult) -> None:
    print(f"Fetched {len(result.files)} routes, {len(result.changed)} changed")
    if result.dry_run:
        for route in result.changed_routes:
            print(f"  would publish {route}")
        return
    if result.publish.invalidation_id:
        print(f"Uploaded {len(result.publish.uploaded_keys)} files")
        print(f"Invalidation {result.publish.invalidation_id} covers {len(result.publish.invalidated_paths)} paths")


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = _build_parser()
    # Usage errors exit with status 2 here, before any network activity
    args = parser.parse_args(argv)

    from niobium.config import get_settings
    from niobium.pipeline import deploy
    from niobium.remote import CloudFrontCDN, S3ObjectStore, create_clients

    with LogContextManager() as context:
        try:
            # Settings are first read here, so environment errors get an exit code
            configure_logging(level=args.log_level, log_format=args.log_format)
            settings = get_settings()
            s3, cloudfront = create_clients(args.region or settings.aws_region)
            result = deploy(
                bucket=args.s3_bucket,
                distribution_id=args.cloudfront_distribution_id,
                store=S3ObjectStore(s3),
                cdn=CloudFrontCDN(cloudfront),
                app_target=args.app,
                settings=settings,
                dry_run=args.dry_run,
                show_progress=False if args.no_progress else None,
            )
        except NiobiumError as exc:
            exc.run_id = context.run_id
            log_error("deploy_failed", exc, error_code=exc.error_code)
            print(f"niobium: error: {exc}", file=sys.stderr)
            return exception_to_exit_code(exc)
        except Exception as exc:
            log_error("deploy_failed", exc, error_type=type(exc).__name__)
            print(f"niobium: error: {type(exc).__name__}: {exc}", file=sys.stderr)
            return 1

    _print_summary(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
