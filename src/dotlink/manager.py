"""High level orchestration for dotlink operations."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Sequence

from .config import Config
from .detection import DetectionEngine
from .errors import DotlinkError, MissingInstallPathError
from .inventory import InstalledSoftwareIndex
from .models import Component, ExecutionMode, IssueKind, ReconcileIssue, ReconcileOptions
from .reconciler import TreeReconciler, aggregate

logger = logging.getLogger(__name__)


class DotlinkManager:
    """Coordinates discovery, installation and removal of components."""

    def __init__(self, config: Config, index: InstalledSoftwareIndex | None = None) -> None:
        self.config = config
        self.index = index or InstalledSoftwareIndex()
        self.engine = DetectionEngine(
            self.index,
            autodetect=config.settings.autodetect,
            global_metadata_path=config.settings.global_metadata_path,
        )
        self.reconciler = TreeReconciler()
        self._issues: list[ReconcileIssue] = []

    @property
    def dotfiles_path(self) -> Path:
        return self.config.settings.dotfiles_path

    def component_names(self) -> list[str]:
        """Return every component name found under the dotfiles root."""

        return sorted(
            child.name for child in self.dotfiles_path.iterdir() if child.is_dir() and not child.name.startswith(".")
        )

    def discover(self, names: Iterable[str] | None = None) -> list[Component]:
        """Resolve components and probe the install state of installable ones."""

        components = self._resolve(names)
        pending = self.pull_issues()
        probe = ReconcileOptions(mode=ExecutionMode.PROBE, silent=True)
        for component in components:
            if component.availability.installable:
                self._reconcile(component, probe, removal=False)
        # Probe findings only feed the state; a later pass reports its own.
        self.pull_issues()
        self._issues = pending
        return components

    def install(self, names: Iterable[str] | None = None, *, simulate: bool = False) -> list[Component]:
        return self._apply(names, removal=False, simulate=simulate)

    def remove(self, names: Iterable[str] | None = None, *, simulate: bool = False) -> list[Component]:
        return self._apply(names, removal=True, simulate=simulate)

    def pull_issues(self) -> list[ReconcileIssue]:
        issues = self._issues + self.reconciler.pull_issues()
        self._issues = []
        return issues

    # ------------------------------------------------------------------
    # Internal helpers

    def _select(self, names: Iterable[str] | None) -> Sequence[str]:
        available = self.component_names()
        if names is None:
            return available

        selected: list[str] = []
        for name in names:
            if name not in available:
                raise DotlinkError(f"Unknown component '{name}'")
            if name not in selected:
                selected.append(name)
        return selected

    def _resolve(self, names: Iterable[str] | None) -> list[Component]:
        return [self.engine.resolve(name, self.dotfiles_path) for name in self._select(names)]

    def _apply(self, names: Iterable[str] | None, *, removal: bool, simulate: bool) -> list[Component]:
        components = self._resolve(names)
        options = ReconcileOptions(mode=ExecutionMode.SIMULATE if simulate else ExecutionMode.APPLY)
        for component in components:
            if not component.availability.installable:
                logger.debug("[%s] Skipping; availability is %s", component.name, component.availability.value)
                continue
            self._reconcile(component, options, removal=removal)
        return components

    def _reconcile(self, component: Component, options: ReconcileOptions, *, removal: bool) -> None:
        action = self.reconciler.remove if removal else self.reconciler.install
        try:
            outcomes = action(component, options=options)
        except MissingInstallPathError as exc:
            logger.error("[%s] %s", component.name, exc)
            self._issues.append(
                ReconcileIssue(
                    component=component.name,
                    kind=IssueKind.MISSING_INSTALL_PATH,
                    source=component.source_path,
                    target=None,
                    message=str(exc),
                )
            )
            return
        component.state = aggregate(outcomes, is_removal=removal)
