"""Installed-software inventory used by fuzzy-match detection.

Providers enumerate the programs installed on the host; the
``InstalledSoftwareIndex`` caches one snapshot per run and answers
display-name queries against it.
"""

from __future__ import annotations

import fnmatch
import logging
import re
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

from .models import InstalledProgram

logger = logging.getLogger(__name__)

UNINSTALL_SUBKEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"

# ReleaseType values used by updates and hotfixes registered under a parent product.
_SUB_ENTRY_RELEASE_TYPES = frozenset({"hotfix", "security update", "update", "update rollup", "service pack"})


def is_user_visible(values: Mapping[str, Any]) -> bool:
    """Return ``True`` if an uninstall entry describes a user-visible program.

    ``values`` holds the registry values of one uninstall key.
    """

    display_name = values.get("DisplayName")
    if not isinstance(display_name, str) or not display_name.strip():
        return False
    if values.get("SystemComponent") == 1:
        return False
    if values.get("ParentKeyName"):
        return False
    release_type = values.get("ReleaseType")
    if isinstance(release_type, str) and release_type.strip().lower() in _SUB_ENTRY_RELEASE_TYPES:
        return False
    if not values.get("UninstallString") and values.get("NoRemove") != 1:
        return False
    return True


class InventoryProvider(ABC):
    """Abstract source of installed-program records.

    Example:
        >>> provider = default_provider()
        >>> if provider.is_available():
        ...     for program in provider.programs():
        ...         print(program.display_name)
    """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider can enumerate programs on this system."""

    @abstractmethod
    def programs(self) -> Iterator[InstalledProgram]:
        """Yield every user-visible installed program.

        Raises:
            RuntimeError: If the underlying package registry cannot be read.
        """


class StaticInventoryProvider(InventoryProvider):
    """Serves a fixed list of programs."""

    def __init__(self, programs: Iterable[InstalledProgram] = ()) -> None:
        self._programs = tuple(programs)

    def is_available(self) -> bool:
        return True

    def programs(self) -> Iterator[InstalledProgram]:
        yield from self._programs


class RegistryInventoryProvider(InventoryProvider):
    """Reads the Windows ``Uninstall`` registry keys."""

    def is_available(self) -> bool:
        return sys.platform == "win32"

    def programs(self) -> Iterator[InstalledProgram]:
        if not self.is_available():
            msg = "The Windows registry is not available on this system"
            raise RuntimeError(msg)

        import winreg

        views = (
            ("HKLM", winreg.HKEY_LOCAL_MACHINE, winreg.KEY_WOW64_64KEY),
            ("HKLM", winreg.HKEY_LOCAL_MACHINE, winreg.KEY_WOW64_32KEY),
            ("HKCU", winreg.HKEY_CURRENT_USER, 0),
        )
        seen: set[str] = set()
        for hive_name, hive, view in views:
            for key_name, values in self._iter_uninstall_keys(winreg, hive, view):
                if not is_user_visible(values):
                    continue
                uninstall_key = f"{hive_name}\\{UNINSTALL_SUBKEY}\\{key_name}"
                if uninstall_key in seen:
                    continue
                seen.add(uninstall_key)
                yield InstalledProgram(
                    display_name=values["DisplayName"].strip(),
                    uninstall_key=uninstall_key,
                    publisher=values.get("Publisher"),
                    version=values.get("DisplayVersion"),
                )

    @staticmethod
    def _iter_uninstall_keys(winreg: Any, hive: int, view: int) -> Iterator[tuple[str, dict[str, Any]]]:
        try:
            root = winreg.OpenKey(hive, UNINSTALL_SUBKEY, 0, winreg.KEY_READ | view)
        except FileNotFoundError:
            logger.debug("Uninstall key not present in hive %s (view %s)", hive, view)
            return

        with root:
            index = 0
            while True:
                try:
                    key_name = winreg.EnumKey(root, index)
                except OSError:
                    break
                index += 1
                try:
                    with winreg.OpenKey(root, key_name) as subkey:
                        yield key_name, _read_key_values(winreg, subkey)
                except OSError as exc:
                    logger.warning("Cannot read uninstall entry '%s': %s", key_name, exc)


def _read_key_values(winreg: Any, key: Any) -> dict[str, Any]:
    values: dict[str, Any] = {}
    index = 0
    while True:
        try:
            name, data, _kind = winreg.EnumValue(key, index)
        except OSError:
            break
        values[name] = data
        index += 1
    return values


class DpkgInventoryProvider(InventoryProvider):
    """Lists packages installed through dpkg."""

    _DPKG_FORMAT = "${Package}\\t${Version}\\t${Maintainer}\\t${db:Status-Abbrev}\\n"

    def is_available(self) -> bool:
        return shutil.which("dpkg-query") is not None

    def programs(self) -> Iterator[InstalledProgram]:
        if not self.is_available():
            msg = "dpkg-query is not available on this system"
            raise RuntimeError(msg)

        try:
            result = subprocess.run(
                ["dpkg-query", "-W", "-f", self._DPKG_FORMAT],
                capture_output=True,
                text=True,
                check=False,
                timeout=60.0,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            msg = f"dpkg-query could not be run: {exc}"
            raise RuntimeError(msg) from exc
        if result.returncode != 0:
            msg = f"dpkg-query failed: {result.stderr.strip() or 'unknown error'}"
            raise RuntimeError(msg)

        for line in result.stdout.splitlines():
            program = self._parse_line(line)
            if program is not None:
                yield program

    @staticmethod
    def _parse_line(line: str) -> InstalledProgram | None:
        parts = line.split("\t")
        if len(parts) < 2 or not parts[0].strip():
            if line.strip():
                logger.debug("Skipping malformed dpkg line: %r", line[:100])
            return None

        status = parts[3].strip() if len(parts) >= 4 else "ii"
        if not status.startswith("ii"):
            return None

        name = parts[0].strip()
        maintainer = parts[2].strip() if len(parts) >= 3 else ""
        return InstalledProgram(
            display_name=name,
            uninstall_key=f"dpkg:{name}",
            publisher=maintainer or None,
            version=parts[1].strip() or None,
        )


def default_provider() -> InventoryProvider:
    """Pick the inventory provider that fits the running system."""

    for provider in (RegistryInventoryProvider(), DpkgInventoryProvider()):
        if provider.is_available():
            return provider
    logger.warning("No installed-software inventory is available; fuzzy detection will find nothing")
    return StaticInventoryProvider()


class InstalledSoftwareIndex:
    """Cached snapshot of installed programs for one run."""

    def __init__(self, provider: InventoryProvider | None = None) -> None:
        self.provider = provider or default_provider()
        self._programs: tuple[InstalledProgram, ...] | None = None
        self._failure: RuntimeError | None = None

    def programs(self) -> Sequence[InstalledProgram]:
        """Return the snapshot, listing the provider on first use.

        A failed listing is remembered and raised again until ``refresh``.
        """

        if self._failure is not None:
            raise RuntimeError(str(self._failure)) from self._failure
        if self._programs is None:
            try:
                self._programs = tuple(self.provider.programs())
            except RuntimeError as exc:
                logger.warning("Installed software could not be listed: %s", exc)
                self._failure = exc
                raise
            logger.debug("Indexed %d installed programs", len(self._programs))
        return self._programs

    def refresh(self) -> None:
        self._programs = None
        self._failure = None

    def query(self, pattern: str, *, case_sensitive: bool = False, regex: bool = False) -> list[InstalledProgram]:
        """Return every program whose display name matches ``pattern``.

        Glob patterns must match the whole name; regular expressions may
        match anywhere in it.
        """

        if regex:
            flags = 0 if case_sensitive else re.IGNORECASE
            try:
                compiled = re.compile(pattern, flags)
            except re.error as exc:
                raise ValueError(f"Invalid regular expression '{pattern}': {exc}") from exc
            return [program for program in self.programs() if compiled.search(program.display_name)]

        if case_sensitive:
            return [program for program in self.programs() if fnmatch.fnmatchcase(program.display_name, pattern)]

        folded = pattern.casefold()
        return [
            program for program in self.programs() if fnmatch.fnmatchcase(program.display_name.casefold(), folded)
        ]
