"""Core package for the dotlink project."""

from .cli import app, run
from .config import ComponentMetadata, Config, ConfigError, Settings, load_config
from .detection import DetectionEngine
from .errors import AmbiguousMatchError, DetectionError, DotlinkError, MissingInstallPathError
from .inventory import InstalledSoftwareIndex, StaticInventoryProvider
from .manager import DotlinkManager
from .models import (
    Availability,
    Component,
    ExecutionMode,
    InstalledProgram,
    InstallState,
    IssueKind,
    ReconcileIssue,
    ReconcileOptions,
)
from .reconciler import TreeReconciler, aggregate

__all__ = [
    "Config",
    "ConfigError",
    "Settings",
    "ComponentMetadata",
    "load_config",
    "DetectionEngine",
    "DotlinkManager",
    "DotlinkError",
    "DetectionError",
    "AmbiguousMatchError",
    "MissingInstallPathError",
    "InstalledSoftwareIndex",
    "StaticInventoryProvider",
    "Availability",
    "Component",
    "ExecutionMode",
    "InstalledProgram",
    "InstallState",
    "IssueKind",
    "ReconcileIssue",
    "ReconcileOptions",
    "TreeReconciler",
    "aggregate",
    "app",
    "run",
]
