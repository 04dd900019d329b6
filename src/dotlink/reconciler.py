"""Reconcile a component's source tree against its install path with symlinks.

A pass walks the source tree depth first and yields one boolean per leaf:
``True`` when the leaf is linked (or, for removal, unlinked) as expected,
``False`` for a conflict or failure. Existing directories that are not
links are merge points: the walk descends into them and only their leaves
are linked individually. Nothing that is not a link is ever replaced or
deleted.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Sequence

from .errors import AttributeUpdateError, MissingInstallPathError
from .filesystem import (
    create_symlink,
    detect_entry_type,
    path_exists,
    read_link_target,
    remove_symlink,
    set_hidden_attributes,
    symlink_points_to,
)
from .models import Component, ExecutionMode, InstallState, IssueKind, ReconcileIssue, ReconcileOptions

logger = logging.getLogger(__name__)

_ISSUE_LEVELS = {
    IssueKind.ALREADY_ABSENT: logging.INFO,
    IssueKind.NOT_A_SYMLINK: logging.WARNING,
}


def aggregate(outcomes: Sequence[bool], is_removal: bool = False) -> InstallState:
    """Fold a pass's leaf outcomes into a single install state."""

    if not outcomes:
        return InstallState.UNKNOWN
    if all(outcomes):
        return InstallState.NOT_INSTALLED if is_removal else InstallState.INSTALLED
    if not any(outcomes):
        return InstallState.INSTALLED if is_removal else InstallState.NOT_INSTALLED
    return InstallState.PARTIAL_INSTALL


def _split_children(directory: Path) -> tuple[list[Path], list[Path]]:
    files: list[Path] = []
    directories: list[Path] = []
    for child in sorted(directory.iterdir()):
        if child.is_dir():
            directories.append(child)
        else:
            files.append(child)
    return files, directories


class TreeReconciler:
    """Creates and removes a component's symlinks."""

    def __init__(self) -> None:
        self._issues: list[ReconcileIssue] = []

    def pull_issues(self) -> list[ReconcileIssue]:
        issues = list(self._issues)
        self._issues.clear()
        return issues

    # ------------------------------------------------------------------
    # Public entry points

    def install(
        self,
        component: Component,
        directories: Iterable[Path] | None = None,
        options: ReconcileOptions | None = None,
    ) -> list[bool]:
        """Link ``directories`` (default: the source root) into the install path."""

        options = options or ReconcileOptions()
        self._require_install_path(component)
        outcomes: list[bool] = []
        for directory in directories if directories is not None else [component.source_path]:
            outcomes.extend(self._install_directory(component, directory, options))
        return outcomes

    def remove(
        self,
        component: Component,
        directories: Iterable[Path] | None = None,
        options: ReconcileOptions | None = None,
    ) -> list[bool]:
        """Remove the links ``install`` would create for ``directories``."""

        options = options or ReconcileOptions()
        self._require_install_path(component)
        outcomes: list[bool] = []
        for directory in directories if directories is not None else [component.source_path]:
            outcomes.extend(self._remove_directory(component, directory, options))
        return outcomes

    # ------------------------------------------------------------------
    # Installation

    def _install_directory(self, component: Component, directory: Path, options: ReconcileOptions) -> list[bool]:
        if component.is_ignored(directory):
            logger.debug("[%s] Ignoring directory '%s'", component.name, directory)
            return []

        target = component.target_for(directory)

        if not path_exists(target):
            return [self._create_link(component, directory, target, options)]

        if target.is_symlink():
            return [self._check_link(component, directory, target, options)]

        if target.is_dir():
            outcomes: list[bool] = []
            files, subdirectories = _split_children(directory)
            for source_file in files:
                outcomes.extend(self._install_file(component, source_file, options))
            for subdirectory in subdirectories:
                outcomes.extend(self._install_directory(component, subdirectory, options))
            return outcomes

        self._report(
            component,
            IssueKind.TYPE_CONFLICT,
            directory,
            target,
            f"Expected a directory but found a file: {target}",
            options,
        )
        return [False]

    def _install_file(self, component: Component, source: Path, options: ReconcileOptions) -> list[bool]:
        if component.is_ignored(source):
            logger.debug("[%s] Ignoring file '%s'", component.name, source)
            return []

        target = component.target_for(source)

        if not path_exists(target):
            return [self._create_link(component, source, target, options)]

        if target.is_symlink():
            return [self._check_link(component, source, target, options)]

        if target.is_dir():
            self._report(
                component,
                IssueKind.TYPE_CONFLICT,
                source,
                target,
                f"Expected a file but found a directory: {target}",
                options,
            )
        else:
            self._report(
                component,
                IssueKind.EXISTING_FILE,
                source,
                target,
                f"A file already exists where the link belongs: {target}",
                options,
            )
        return [False]

    def _create_link(self, component: Component, source: Path, target: Path, options: ReconcileOptions) -> bool:
        if options.mode is ExecutionMode.PROBE:
            logger.debug("[%s] Not linked: '%s'", component.name, target)
            return False

        if options.dry_run:
            self._say(options, "[%s] Would link '%s' -> '%s'", component.name, target, source)
            return True

        try:
            create_symlink(target, source)
        except OSError as exc:
            self._report(
                component,
                IssueKind.IO_FAILURE,
                source,
                target,
                f"Unable to create symlink '{target}' -> '{source}': {exc}",
                options,
            )
            return False

        self._say(options, "[%s] Linked '%s' -> '%s'", component.name, target, source)

        if component.hide_symlinks:
            try:
                set_hidden_attributes(target)
            except AttributeUpdateError as exc:
                self._report(
                    component,
                    IssueKind.ATTRIBUTE_FAILURE,
                    source,
                    target,
                    f"Unable to hide symlink '{target}': {exc}",
                    options,
                )
        return True

    def _check_link(self, component: Component, source: Path, target: Path, options: ReconcileOptions) -> bool:
        if symlink_points_to(target, source):
            logger.debug("[%s] Already linked: '%s'", component.name, target)
            return True

        self._report(
            component,
            IssueKind.CONFLICTING_SYMLINK,
            source,
            target,
            f"Symlink '{target}' points to '{read_link_target(target)}' instead of '{source}'",
            options,
        )
        return False

    # ------------------------------------------------------------------
    # Removal

    def _remove_directory(self, component: Component, directory: Path, options: ReconcileOptions) -> list[bool]:
        if component.is_ignored(directory):
            logger.debug("[%s] Ignoring directory '%s'", component.name, directory)
            return []

        target = component.target_for(directory)

        if not path_exists(target):
            self._report(
                component,
                IssueKind.ALREADY_ABSENT,
                directory,
                target,
                f"Nothing to remove at '{target}'",
                options,
            )
            return []

        if target.is_symlink():
            return [self._unlink(component, directory, target, options)]

        if target.is_dir():
            outcomes: list[bool] = []
            files, subdirectories = _split_children(directory)
            for source_file in files:
                outcomes.extend(self._remove_file(component, source_file, options))
            for subdirectory in subdirectories:
                outcomes.extend(self._remove_directory(component, subdirectory, options))
            return outcomes

        self._report(
            component,
            IssueKind.NOT_A_SYMLINK,
            directory,
            target,
            f"Expected a directory symlink but found a file; leaving it untouched: {target}",
            options,
        )
        return [False]

    def _remove_file(self, component: Component, source: Path, options: ReconcileOptions) -> list[bool]:
        if component.is_ignored(source):
            logger.debug("[%s] Ignoring file '%s'", component.name, source)
            return []

        target = component.target_for(source)

        if not path_exists(target):
            self._report(
                component,
                IssueKind.ALREADY_ABSENT,
                source,
                target,
                f"Nothing to remove at '{target}'",
                options,
            )
            return []

        if target.is_symlink():
            return [self._unlink(component, source, target, options)]

        kind = detect_entry_type(target).value
        self._report(
            component,
            IssueKind.NOT_A_SYMLINK,
            source,
            target,
            f"Expected a symlink but found a {kind}; leaving it untouched: {target}",
            options,
        )
        return [False]

    def _unlink(self, component: Component, source: Path, target: Path, options: ReconcileOptions) -> bool:
        if not symlink_points_to(target, source):
            self._report(
                component,
                IssueKind.CONFLICTING_SYMLINK,
                source,
                target,
                f"Symlink '{target}' points to '{read_link_target(target)}' instead of '{source}'; leaving it",
                options,
            )
            return False

        if options.dry_run:
            self._say(options, "[%s] Would remove link '%s'", component.name, target)
            return True

        try:
            remove_symlink(target)
        except OSError as exc:
            self._report(
                component,
                IssueKind.IO_FAILURE,
                source,
                target,
                f"Unable to remove symlink '{target}': {exc}",
                options,
            )
            return False

        self._say(options, "[%s] Removed link '%s'", component.name, target)
        return True

    # ------------------------------------------------------------------
    # Helpers

    @staticmethod
    def _require_install_path(component: Component) -> None:
        if component.install_path is None:
            raise MissingInstallPathError(
                f"Component '{component.name}' is {component.availability.value} but has no install path"
            )

    @staticmethod
    def _say(options: ReconcileOptions, message: str, *args: object) -> None:
        logger.log(logging.DEBUG if options.silent else logging.INFO, message, *args)

    def _report(
        self,
        component: Component,
        kind: IssueKind,
        source: Path,
        target: Path | None,
        message: str,
        options: ReconcileOptions,
    ) -> None:
        self._issues.append(
            ReconcileIssue(component=component.name, kind=kind, source=source, target=target, message=message)
        )
        level = logging.DEBUG if options.silent else _ISSUE_LEVELS.get(kind, logging.ERROR)
        logger.log(level, "[%s] %s", component.name, message)
