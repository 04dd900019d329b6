"""Shared models and enums for dotlink."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import DotlinkError, MissingInstallPathError

_FROZEN_COMPONENT_FIELDS = frozenset({"name", "source_path"})


class EntryType(str, Enum):
    """Kinds of filesystem entries the reconciler distinguishes."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


class Availability(str, Enum):
    """Whether a component's application is present on this machine."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    IGNORED = "ignored"
    ALWAYS_INSTALL = "always_install"
    NEVER_INSTALL = "never_install"
    DETECTION_FAILURE = "detection_failure"
    NO_LOGIC = "no_logic"

    @property
    def installable(self) -> bool:
        return self in (Availability.AVAILABLE, Availability.ALWAYS_INSTALL)


class InstallState(str, Enum):
    """Observed linking status of a component against its install path."""

    INSTALLED = "installed"
    NOT_INSTALLED = "not_installed"
    PARTIAL_INSTALL = "partial_install"
    UNKNOWN = "unknown"
    NOT_EVALUATED = "not_evaluated"


class ExecutionMode(Enum):
    """Whether reconciliation mutates the filesystem or only simulates it.

    ``SIMULATE`` reports what ``APPLY`` would achieve. ``PROBE`` reports
    the tree as it stands, so a link that does not exist yet is a miss.
    """

    APPLY = "apply"
    SIMULATE = "simulate"
    PROBE = "probe"


@dataclass(frozen=True, slots=True)
class ReconcileOptions:
    """Options threaded through a single reconciliation pass."""

    mode: ExecutionMode = ExecutionMode.APPLY
    silent: bool = False

    @property
    def dry_run(self) -> bool:
        return self.mode is not ExecutionMode.APPLY


@dataclass(frozen=True, slots=True)
class InstalledProgram:
    """One record of the installed-software inventory."""

    display_name: str
    uninstall_key: str
    publisher: str | None = None
    version: str | None = None


class IssueKind(str, Enum):
    """Problems reported while reconciling a component."""

    CONFLICTING_SYMLINK = "conflicting_symlink"
    TYPE_CONFLICT = "type_conflict"
    EXISTING_FILE = "existing_file"
    IO_FAILURE = "io_failure"
    ATTRIBUTE_FAILURE = "attribute_failure"
    ALREADY_ABSENT = "already_absent"
    NOT_A_SYMLINK = "not_a_symlink"
    MISSING_INSTALL_PATH = "missing_install_path"

    @property
    def is_error(self) -> bool:
        return self not in (IssueKind.ALREADY_ABSENT, IssueKind.NOT_A_SYMLINK)


@dataclass(frozen=True, slots=True)
class ReconcileIssue:
    """A single conflict or failure found at a tree leaf."""

    component: str
    kind: IssueKind
    source: Path
    target: Path | None
    message: str


@dataclass(slots=True)
class Component:
    """One managed application rooted at a dotfiles subdirectory.

    ``name`` and ``source_path`` are fixed at construction; every other
    field is status filled in by detection and reconciliation.
    """

    name: str
    source_path: Path
    friendly_name: str | None = None
    availability: Availability = Availability.DETECTION_FAILURE
    install_path: Path | None = None
    ignore_paths: frozenset[str] = field(default_factory=frozenset)
    hide_symlinks: bool = False
    uninstall_key: str | None = None
    state: InstallState = InstallState.NOT_EVALUATED

    def __setattr__(self, key: str, value: object) -> None:
        if key in _FROZEN_COMPONENT_FIELDS and hasattr(self, key):
            raise AttributeError(f"Component field '{key}' cannot be reassigned")
        object.__setattr__(self, key, value)

    @classmethod
    def from_source(cls, name: str, dotfiles_root: Path) -> "Component":
        source = (dotfiles_root / name).resolve(strict=False)
        if not source.is_dir():
            raise DotlinkError(f"Source directory '{source}' for component '{name}' does not exist")
        return cls(name=name, source_path=source)

    @property
    def display_name(self) -> str:
        return self.friendly_name or self.name

    def relative_path(self, entry: Path) -> str:
        """Return ``entry`` relative to the source root as a posix string."""

        relative = entry.relative_to(self.source_path).as_posix()
        return "" if relative == "." else relative

    def is_ignored(self, entry: Path) -> bool:
        relative = self.relative_path(entry)
        return bool(relative) and relative in self.ignore_paths

    def target_for(self, entry: Path) -> Path:
        """Return the install location matching source ``entry``."""

        if self.install_path is None:
            raise MissingInstallPathError(f"Component '{self.name}' has no install path")
        relative = self.relative_path(entry)
        return self.install_path / relative if relative else self.install_path
