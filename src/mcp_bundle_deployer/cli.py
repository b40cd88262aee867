#!/usr/bin/env python3
"""Bundle deployment CLI.

Usage:
    bundlecraft-deploy BUNDLE --env NAME [--config PATH] [--dry-run] [-v]

Environment variables:
    BUNDLECRAFT_CONFIG    Path of environments.yaml
    JUJU_PASSWORD         Controller password (default password_env)
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import yaml

from .config.inventory import EnvironmentInventory
from .deployer import BundleDeployer, DeployOptions
from .utils.audit_log import setup_audit_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bundlecraft-deploy",
        description="Deploy a Juju bundle to a controller environment",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Preview the changes of a bundle
    bundlecraft-deploy wordpress.yaml --env staging --dry-run

    # Deploy using a specific inventory
    bundlecraft-deploy wordpress.yaml --env prod --config ./configs/environments.yaml
""",
    )
    parser.add_argument(
        "bundle",
        type=Path,
        help="Bundle YAML file",
    )
    parser.add_argument(
        "--env",
        dest="environment",
        required=True,
        help="Environment name from the inventory",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Inventory file (default: search ./configs, ~/.config/bundlecraft, /etc/bundlecraft)",
    )
    parser.add_argument(
        "--name",
        type=str,
        default=None,
        help="Bundle to deploy when the file holds several",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the changes without applying them",
    )
    parser.add_argument(
        "--audit-dir",
        type=str,
        default=None,
        help="Audit log directory (default: ~/.bundlecraft)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the deployment CLI."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(levelname)-5s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if not args.bundle.exists():
        logger.error(f"Bundle file not found: {args.bundle}")
        return 1

    try:
        bundle = yaml.safe_load(args.bundle.read_text())
    except yaml.YAMLError as e:
        logger.error(f"Cannot read bundle {args.bundle}: {e}")
        return 1

    if args.dry_run:
        inventory = None
    else:
        try:
            inventory = EnvironmentInventory(args.config)
        except (FileNotFoundError, ValueError) as e:
            logger.error(str(e))
            return 1
        setup_audit_logging(args.audit_dir)

    deployer = BundleDeployer(inventory)
    options = DeployOptions(dry_run=args.dry_run, audit_context=f"cli: {args.bundle.name}")

    try:
        result = asyncio.run(deployer.deploy(bundle, args.environment, options, name=args.name))
    except KeyboardInterrupt:
        logger.warning("Deployment interrupted by user")
        return 130
    finally:
        if inventory:
            asyncio.run(inventory.close_all())

    for warning in result.warnings:
        logger.warning(warning)
    for change in result.changes_applied:
        logger.info(f"  {change}")

    if result.success:
        logger.info("Deployment of bundle completed" if not result.dry_run else "Dry run completed")
        return 0

    logger.error(result.error)
    if result.failed_change:
        logger.error(f"Failed change: {result.failed_change} ({result.failed_kind})")
    return 1


if __name__ == "__main__":
    sys.exit(main())
