#!/usr/bin/env python3
"""
resource-creator CLI
====================

Command-line interface for the resource creator controller.

Usage:
    resource-creator run --manifests DIR        # Run controller until signalled
    resource-creator reconcile MANIFEST         # Reconcile once, print records
    resource-creator types                      # List watched child types
    resource-creator config                     # Show effective configuration
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from resource_creator.config import ConfigError, OperatorConfig
from resource_creator.daemon import ControllerDaemon
from resource_creator.errors import NotFoundError
from resource_creator.manifests import apply_manifests, dump_resources, load_manifests
from resource_creator.materializer import extract_descriptors
from resource_creator.models.creator import ResourceCreator
from resource_creator.models.resource import Resource
from resource_creator.reconciler import Reconciler
from resource_creator.store import InMemoryStore, ResourceStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    """Configure root logging for CLI entry points."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def load_config(args: argparse.Namespace) -> OperatorConfig:
    config = OperatorConfig.load(args.config)
    if args.log_level:
        config.log_level = args.log_level
    setup_logging(config.log_level)
    return config


def cmd_run(args: argparse.Namespace) -> int:
    """Run the controller in the foreground."""
    config = load_config(args)
    store = InMemoryStore()

    daemon = ControllerDaemon(store, config)
    if args.manifests:
        count = apply_manifests(store, load_manifests(args.manifests))
        logger.info(f"Seeded store with {count} records")

    try:
        daemon.run()
    except KeyboardInterrupt:
        daemon.stop()
    return 0


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Reconcile every parent in a manifest once and print the result."""
    config = load_config(args)
    store = InMemoryStore()
    apply_manifests(store, load_manifests(args.manifest))

    reconciler = Reconciler(store, parent_coordinate=config.parent)
    parents = store.list(config.parent)
    if not parents:
        print(f"No {config.parent.kind} records found", file=sys.stderr)
        return 1

    failed = 0
    for parent in parents:
        result = reconciler.reconcile(parent.key)
        if not result.success:
            failed += 1
            print(f"{parent.key}: {result.error}", file=sys.stderr)

    records = []
    for parent in store.list(config.parent):
        records.append(parent)
        records.extend(managed_children(store, parent))

    print(dump_resources(records, args.output), end="")
    return 1 if failed else 0


def managed_children(store: ResourceStore, parent: Resource) -> List[Resource]:
    """Children currently in the store for the parent's descriptors."""
    try:
        descriptors = extract_descriptors(ResourceCreator.from_resource(parent))
    except ValidationError:
        return []

    children = []
    for descriptor in descriptors:
        try:
            children.append(store.get(descriptor.coordinate, parent.namespace, descriptor.name))
        except NotFoundError:
            continue
    return children


def cmd_types(args: argparse.Namespace) -> int:
    """List the watched child types."""
    config = load_config(args)
    if args.json:
        print(json.dumps([c.to_dict() for c in config.watched_types], indent=2))
        return 0
    for coordinate in config.watched_types:
        print(f"{coordinate.api_version:<12} {coordinate.kind}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Show the effective configuration."""
    config = load_config(args)
    print(yaml.safe_dump(config.to_dict(), sort_keys=False), end="")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Resource creator controller",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="Operator configuration (TOML)")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        default=None, help="Log level")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run
    p = subparsers.add_parser("run", help="Run the controller")
    p.add_argument("--manifests", "-m", type=Path, default=None,
                   help="Manifest file or directory to seed the store with")
    p.set_defaults(func=cmd_run)

    # reconcile
    p = subparsers.add_parser("reconcile", help="Reconcile a manifest once")
    p.add_argument("manifest", type=Path, help="Manifest file or directory")
    p.add_argument("--output", "-o", choices=["yaml", "json"], default="yaml",
                   help="Output format")
    p.set_defaults(func=cmd_reconcile)

    # types
    p = subparsers.add_parser("types", help="List watched child types")
    p.add_argument("--json", action="store_true", help="Output as JSON")
    p.set_defaults(func=cmd_types)

    # config
    p = subparsers.add_parser("config", help="Show effective configuration")
    p.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except (ConfigError, ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
