#!/usr/bin/env python3
"""Rebuild the single-page app, mirror it to S3, and invalidate CloudFront."""

import argparse
import logging
import sys
from pathlib import Path

from botocore.exceptions import BotoCoreError

from deployer.config import DEFAULT_CONFIG_FILE, DeployerConfig
from deployer.errors import BuildFailed, ConfigError, InvalidationFailed, SyncFailed
from deployer.pipeline import (
  STAGE_BUILD,
  STAGE_INVALIDATE,
  STAGE_PRECONDITION,
  STAGE_SYNC,
  Pipeline,
  PipelineResult,
)

EXIT_CODES = {
  STAGE_PRECONDITION: 2,
  STAGE_BUILD: 3,
  STAGE_SYNC: 4,
  STAGE_INVALIDATE: 5,
}
EXIT_CONFIG_ERROR = 1


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
  parser = argparse.ArgumentParser(
    description="Update a deployed single-page app: build, sync to S3, invalidate CDN"
  )
  parser.add_argument(
    "--config",
    help=f"YAML config file (default: {DEFAULT_CONFIG_FILE} if present)",
  )
  parser.add_argument(
    "--env",
    help="Environment section of the config file to apply",
  )
  parser.add_argument(
    "--record",
    help="Deployment record file (default: deployment-info.json)",
  )
  parser.add_argument(
    "--working-dir",
    help="Project directory the build runs in (default: current directory)",
  )
  parser.add_argument(
    "--build-dir",
    help="Build output directory, relative to the working directory (default: build)",
  )
  parser.add_argument("--region", help="AWS region (default: us-east-1)")
  parser.add_argument("--profile", help="AWS named profile")
  parser.add_argument(
    "--dry-run",
    action="store_true",
    help="Build and show the sync plan without changing the bucket or the CDN",
  )
  parser.add_argument(
    "--no-lock",
    action="store_true",
    help="Do not take the lock file that prevents concurrent updates",
  )
  parser.add_argument(
    "--skip-credential-check",
    action="store_true",
    help="Do not verify AWS credentials with STS before building",
  )
  parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
  return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> DeployerConfig:
  """Load the config file (if any) and apply command-line overrides."""
  if args.config:
    config = DeployerConfig.from_yaml(args.config, env=args.env)
  elif Path(DEFAULT_CONFIG_FILE).is_file():
    config = DeployerConfig.from_yaml(DEFAULT_CONFIG_FILE, env=args.env)
  elif args.env:
    raise ConfigError(f"--env requires a config file ({DEFAULT_CONFIG_FILE} not found)")
  else:
    config = DeployerConfig()

  if args.record:
    config.record_path = Path(args.record)
  if args.working_dir:
    config.working_dir = Path(args.working_dir)
  if args.build_dir:
    config.build_dir = Path(args.build_dir)
  if args.region:
    config.region = args.region
  if args.profile:
    config.profile = args.profile
  if args.dry_run:
    config.dry_run = True
  if args.no_lock:
    config.lock_path = None
  if args.skip_credential_check:
    config.verify_credentials = False
  return config


def configure_logging(verbose: bool = False) -> None:
  logging.basicConfig(
    level=logging.DEBUG if verbose else logging.INFO,
    format="[%(levelname)s] %(message)s",
  )
  for name in ("boto3", "botocore", "urllib3", "s3transfer"):
    logging.getLogger(name).setLevel(logging.WARNING)


def report(result: PipelineResult) -> int:
  """Print the outcome for the operator and return the process exit status."""
  if result.ok:
    if result.dry_run:
      summary = result.sync_report.summary() if result.sync_report else "no changes"
      print(f"✓ Dry run complete: {summary}")
      print("  Nothing was uploaded, deleted, or invalidated.")
      return 0
    print("✓ Site updated successfully!")
    print(f"  URL: {result.url}")
    if result.sync_report:
      print(f"  Sync: {result.sync_report.summary()}")
    if result.invalidation:
      print(f"  Invalidation: {result.invalidation.invalidation_id}")
    print(result.advisory)
    return 0

  error = result.error
  print(f"✗ Update failed at stage '{result.failed_stage}'", file=sys.stderr)
  print(f"  {type(error).__name__}: {error}", file=sys.stderr)
  if isinstance(error, BuildFailed) and error.output:
    print("  Build output (last lines):", file=sys.stderr)
    for line in error.output.splitlines():
      print(f"    {line}", file=sys.stderr)
  elif isinstance(error, SyncFailed):
    print(
      "  The bucket may be partially updated. Re-run the update once the cause "
      "is fixed; sync converges on the build output.",
      file=sys.stderr,
    )
  elif isinstance(error, InvalidationFailed):
    print(
      f"  New content is live at the origin; {result.url} may serve cached "
      "files until they expire. Re-run or invalidate '/*' manually.",
      file=sys.stderr,
    )
  return EXIT_CODES.get(result.failed_stage or "", 1)


def main(argv: list[str] | None = None) -> int:
  """Main entry point."""
  args = parse_args(argv)
  configure_logging(args.verbose)

  try:
    config = load_config(args)
  except ConfigError as e:
    print(f"Error: {e}", file=sys.stderr)
    return EXIT_CONFIG_ERROR

  try:
    pipeline = Pipeline.from_config(config)
  except BotoCoreError as e:
    print(f"Error: cannot create AWS session: {e}", file=sys.stderr)
    return EXIT_CONFIG_ERROR
  return report(pipeline.run())


if __name__ == "__main__":
  sys.exit(main())
