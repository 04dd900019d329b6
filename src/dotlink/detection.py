"""Decide whether each component's application is present on this machine."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Callable, Mapping

from .config import (
    METADATA_FILENAME,
    ComponentMetadata,
    ConfigError,
    FuzzyMatch,
    InstallDestination,
    PathExists,
    PathSearch,
    StaticAvailability,
    expand_user_path,
    load_component_metadata,
)
from .errors import AmbiguousMatchError, DetectionError
from .filesystem import is_valid_path
from .inventory import InstalledSoftwareIndex
from .models import Availability, Component

logger = logging.getLogger(__name__)


def _windows_folder(variable: str, env: Mapping[str, str]) -> Path | None:
    if sys.platform != "win32":
        return None
    value = env.get(variable)
    return Path(value) if value else None


def _xdg_folder(variable: str, fallback: str, env: Mapping[str, str]) -> Path:
    value = env.get(variable)
    if value and Path(value).is_absolute():
        return Path(value)
    return Path.home() / fallback


def _user_profile(env: Mapping[str, str]) -> Path:
    return Path.home()


def _application_data(env: Mapping[str, str]) -> Path:
    return _windows_folder("APPDATA", env) or _xdg_folder("XDG_CONFIG_HOME", ".config", env)


def _local_application_data(env: Mapping[str, str]) -> Path:
    return _windows_folder("LOCALAPPDATA", env) or _xdg_folder("XDG_DATA_HOME", ".local/share", env)


def _common_application_data(env: Mapping[str, str]) -> Path:
    return _windows_folder("PROGRAMDATA", env) or Path("/etc/xdg")


def _documents(env: Mapping[str, str]) -> Path:
    return Path.home() / "Documents"


def _desktop(env: Mapping[str, str]) -> Path:
    return Path.home() / "Desktop"


SPECIAL_FOLDERS: dict[str, Callable[[Mapping[str, str]], Path]] = {
    "userprofile": _user_profile,
    "applicationdata": _application_data,
    "localapplicationdata": _local_application_data,
    "commonapplicationdata": _common_application_data,
    "mydocuments": _documents,
    "desktop": _desktop,
}


def special_folder_path(token: str, env: Mapping[str, str] | None = None) -> Path:
    """Return the directory a special-folder token stands for."""

    resolver = SPECIAL_FOLDERS.get(token.strip().lower())
    if resolver is None:
        known = ", ".join(sorted(SPECIAL_FOLDERS))
        raise ConfigError(f"Unknown special folder '{token}' (expected one of: {known})")
    return resolver(os.environ if env is None else env)


def resolve_install_path(install: InstallDestination, env: Mapping[str, str] | None = None) -> Path:
    """Turn a configured destination into an absolute install path.

    Raises:
        ConfigError: If the destination is relative without a special folder,
            contradicts its special folder, or is not a well-formed path.
    """

    folder = install.special_folder
    destination = install.destination

    if folder is None and destination is None:
        return Path.home()

    if folder is None:
        path = expand_user_path(destination)
        if not path.is_absolute():
            raise ConfigError(
                f"Install destination '{destination}' is relative; set a special folder or use an absolute path"
            )
        if not is_valid_path(path):
            raise ConfigError(f"Install destination '{destination}' is not a valid path")
        return path

    base = special_folder_path(folder, env)
    if destination is None:
        return base

    if Path(destination).is_absolute():
        raise ConfigError(f"Install destination '{destination}' must be relative to special folder '{folder}'")
    combined = base / destination
    if not is_valid_path(combined):
        raise ConfigError(f"Install path '{combined}' built from '{folder}' and '{destination}' is not a valid path")
    return combined


class DetectionEngine:
    """Resolves components and decides their availability.

    The engine is built once per run and holds the cached software index
    that fuzzy matching queries.
    """

    def __init__(
        self,
        index: InstalledSoftwareIndex,
        *,
        autodetect: bool = False,
        global_metadata_path: Path | None = None,
    ) -> None:
        self.index = index
        self.autodetect = autodetect
        self.global_metadata_path = global_metadata_path

    def resolve(self, name: str, source_root: Path) -> Component:
        """Build the component for ``name`` and run detection on it.

        Raises:
            DotlinkError: If ``source_root`` has no directory called ``name``.
        """

        component = Component.from_source(name, source_root)
        try:
            metadata = load_component_metadata(
                name,
                component.source_path,
                global_metadata_path=self.global_metadata_path,
            )
        except ConfigError as exc:
            logger.error("[%s] %s", name, exc)
            return component

        return self.detect(component, metadata)

    def detect(self, component: Component, metadata: ComponentMetadata | None) -> Component:
        """Populate availability and install settings of ``component``."""

        component.ignore_paths = component.ignore_paths | {METADATA_FILENAME}

        if metadata is None:
            if not self.autodetect:
                logger.debug("[%s] No metadata and autodetect is off", component.name)
                component.availability = Availability.NO_LOGIC
                return component
            logger.debug("[%s] No metadata; autodetecting", component.name)
            metadata = ComponentMetadata()
        else:
            if metadata.friendly_name:
                component.friendly_name = metadata.friendly_name
            component.hide_symlinks = metadata.hide_symlinks
            component.ignore_paths = component.ignore_paths | set(metadata.ignore_paths)

        try:
            component.availability = self._run_strategy(component, metadata.detection)
        except (DetectionError, ConfigError) as exc:
            logger.error("[%s] Detection failed: %s", component.name, exc)
            return component

        logger.debug("[%s] Availability: %s", component.name, component.availability.value)

        if component.availability.installable:
            try:
                component.install_path = resolve_install_path(metadata.install_path)
            except ConfigError as exc:
                logger.error("[%s] %s", component.name, exc)

        return component

    def _run_strategy(
        self,
        component: Component,
        strategy: FuzzyMatch | PathSearch | PathExists | StaticAvailability,
    ) -> Availability:
        if isinstance(strategy, FuzzyMatch):
            return self._detect_fuzzy(component, strategy)
        if isinstance(strategy, PathSearch):
            return self._detect_path_search(component, strategy)
        if isinstance(strategy, PathExists):
            return self._detect_path_exists(component, strategy)
        if isinstance(strategy, StaticAvailability):
            return strategy.availability
        raise ConfigError(f"Unsupported detection method {strategy!r}")

    def _detect_fuzzy(self, component: Component, strategy: FuzzyMatch) -> Availability:
        pattern = strategy.pattern or f"*{component.name}*"
        try:
            matches = self.index.query(pattern, case_sensitive=strategy.case_sensitive, regex=strategy.regex)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        except RuntimeError as exc:
            raise DetectionError(f"Installed software could not be listed: {exc}") from exc

        if not matches:
            return Availability.UNAVAILABLE
        if len(matches) > 1:
            raise AmbiguousMatchError(component.name, pattern, [match.display_name for match in matches])

        match = matches[0]
        component.uninstall_key = match.uninstall_key
        if not component.friendly_name:
            component.friendly_name = match.display_name
        return Availability.AVAILABLE

    def _detect_path_search(self, component: Component, strategy: PathSearch) -> Availability:
        binary = strategy.binary or component.name
        found = shutil.which(binary)
        logger.debug("[%s] PATH search for '%s': %s", component.name, binary, found or "not found")
        return Availability.AVAILABLE if found else Availability.UNAVAILABLE

    def _detect_path_exists(self, component: Component, strategy: PathExists) -> Availability:
        path = expand_user_path(strategy.path)
        if not path.is_absolute():
            raise ConfigError(f"Detection path '{strategy.path}' must be absolute")
        return Availability.AVAILABLE if path.exists() else Availability.UNAVAILABLE
