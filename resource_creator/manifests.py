"""
Manifests
=========

Reading and writing records as multi-document YAML.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List

import yaml

from resource_creator.errors import AlreadyExistsError
from resource_creator.models.resource import Resource
from resource_creator.store import ResourceStore

logger = logging.getLogger(__name__)

MANIFEST_SUFFIXES = (".yaml", ".yml")


def parse_manifests(text: str, source: str = "<string>") -> List[Resource]:
    """Parse every non-empty YAML document in ``text``."""
    resources = []
    for index, doc in enumerate(yaml.safe_load_all(text)):
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise ValueError(f"{source}: document {index} is not a mapping")
        try:
            resources.append(Resource.from_dict(doc))
        except (KeyError, ValueError) as e:
            raise ValueError(f"{source}: document {index}: {e}") from e
    return resources


def load_manifests(path: Path) -> List[Resource]:
    """Load a manifest file, or every manifest file directly in a directory."""
    if path.is_dir():
        files = sorted(p for p in path.iterdir() if p.suffix in MANIFEST_SUFFIXES)
    else:
        files = [path]

    resources: List[Resource] = []
    for file in files:
        resources.extend(parse_manifests(file.read_text(encoding="utf-8"), str(file)))
    logger.debug(f"Loaded {len(resources)} records from {path}")
    return resources


def apply_manifests(store: ResourceStore, resources: Iterable[Resource]) -> int:
    """Create or overwrite each record in the store; returns the count."""
    count = 0
    for resource in resources:
        try:
            store.create(resource)
        except AlreadyExistsError:
            existing = store.get(resource.coordinate, resource.namespace, resource.name)
            resource = resource.copy()
            resource.metadata.resource_version = existing.metadata.resource_version
            store.update(resource)
        count += 1
    return count


def dump_resources(resources: Iterable[Resource], output: str = "yaml") -> str:
    """Render records as YAML documents or a JSON list."""
    data = [r.to_dict() for r in resources]
    if output == "json":
        # YAML payloads may carry dates and timestamps.
        return json.dumps(data, indent=2, default=str)
    return yaml.safe_dump_all(data, sort_keys=False, default_flow_style=False)
