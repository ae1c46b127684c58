"""
Operator Configuration
======================

Which parent type to reconcile, which child types to watch, and how the
controller pool behaves. Loaded from TOML:

    log_level = "INFO"

    [parent]
    group = "creator.m3.io"
    version = "v1"
    kind = "ResourceCreator"

    [controller]
    workers = 4
    reconcile_timeout_sec = 30.0
    backoff_base_sec = 0.005
    backoff_max_sec = 300.0

    [[watch]]
    group = "apps"
    version = "v1"
    kind = "Deployment"

When any ``[[watch]]`` entry is present the list replaces the default set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

from resource_creator.models.creator import COORDINATE
from resource_creator.models.resource import TypeCoordinate

logger = logging.getLogger(__name__)


DEFAULT_WATCHED_TYPES: List[TypeCoordinate] = [
    TypeCoordinate(group="", version="v1", kind="Pod"),
    TypeCoordinate(group="", version="v1", kind="Service"),
    TypeCoordinate(group="apps", version="v1", kind="Deployment"),
    TypeCoordinate(group="apps", version="v1", kind="StatefulSet"),
    TypeCoordinate(group="apps", version="v1", kind="DaemonSet"),
    TypeCoordinate(group="batch", version="v1", kind="Job"),
]


class ConfigError(ValueError):
    """The configuration file is malformed."""


@dataclass
class ControllerSettings:
    """Worker pool and retry settings."""
    workers: int = 4
    reconcile_timeout_sec: float = 30.0
    backoff_base_sec: float = 0.005
    backoff_max_sec: float = 300.0
    poll_interval_sec: float = 0.5


@dataclass
class OperatorConfig:
    """Complete operator configuration."""
    parent: TypeCoordinate = COORDINATE
    watched_types: List[TypeCoordinate] = field(
        default_factory=lambda: list(DEFAULT_WATCHED_TYPES)
    )
    controller: ControllerSettings = field(default_factory=ControllerSettings)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> OperatorConfig:
        config = cls()

        try:
            if "parent" in data:
                p = data["parent"]
                config.parent = TypeCoordinate(
                    group=p.get("group", COORDINATE.group),
                    version=p.get("version", COORDINATE.version),
                    kind=p.get("kind", COORDINATE.kind),
                )

            if data.get("watch"):
                config.watched_types = [TypeCoordinate.from_dict(w) for w in data["watch"]]

            if "controller" in data:
                c = data["controller"]
                config.controller = ControllerSettings(
                    workers=int(c.get("workers", 4)),
                    reconcile_timeout_sec=float(c.get("reconcile_timeout_sec", 30.0)),
                    backoff_base_sec=float(c.get("backoff_base_sec", 0.005)),
                    backoff_max_sec=float(c.get("backoff_max_sec", 300.0)),
                    poll_interval_sec=float(c.get("poll_interval_sec", 0.5)),
                )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"invalid configuration: {e}") from e

        config.log_level = str(data.get("log_level", "INFO")).upper()

        if config.controller.workers < 1:
            raise ConfigError("controller.workers must be at least 1")
        return config

    @classmethod
    def from_toml(cls, path: Path) -> OperatorConfig:
        """Load configuration from a TOML file."""
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> OperatorConfig:
        """Load ``path`` if it exists, otherwise fall back to defaults."""
        if path is not None and path.exists():
            config = cls.from_toml(path)
            logger.info(f"Loaded configuration from {path}")
            return config
        if path is not None:
            logger.info(f"No configuration at {path}, using defaults")
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "log_level": self.log_level,
            "parent": self.parent.to_dict(),
            "watch": [c.to_dict() for c in self.watched_types],
            "controller": {
                "workers": self.controller.workers,
                "reconcile_timeout_sec": self.controller.reconcile_timeout_sec,
                "backoff_base_sec": self.controller.backoff_base_sec,
                "backoff_max_sec": self.controller.backoff_max_sec,
                "poll_interval_sec": self.controller.poll_interval_sec,
            },
        }
