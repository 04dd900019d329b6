"""TOML configuration loading for dotlink.

Two kinds of documents are read here: the run settings (``dotlink.toml``)
and the per-component metadata documents that drive detection.
"""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path, PurePosixPath
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .models import Availability

DEFAULT_CONFIG_FILENAME = "dotlink.toml"
METADATA_FILENAME = "metadata.toml"
METADATA_SUFFIX = ".toml"


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


def expand_user_path(raw: str) -> Path:
    """Expand env vars and ``~`` in ``raw`` without anchoring it anywhere."""

    return Path(os.path.expandvars(raw)).expanduser()


class Settings(BaseModel):
    """Global configuration options."""

    model_config = ConfigDict(frozen=True)

    dotfiles_path: Path
    autodetect: bool = False
    global_metadata_path: Path | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        dotfiles_raw = raw.get("dotfiles_path")
        if dotfiles_raw is None:
            raise ConfigError("Configuration must define 'dotfiles_path' under [settings]")
        dotfiles = _expand_path(dotfiles_raw, base_dir=base_dir)
        if not dotfiles.is_dir():
            raise ConfigError(f"Dotfiles path '{dotfiles}' does not exist or is not a directory")

        metadata_raw = raw.get("global_metadata_path")
        metadata = _expand_path(metadata_raw, base_dir=base_dir) if metadata_raw is not None else None

        autodetect = raw.get("autodetect", False)
        if not isinstance(autodetect, bool):
            raise ConfigError("'autodetect' must be true or false")

        return cls(dotfiles_path=dotfiles, autodetect=autodetect, global_metadata_path=metadata)


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path
    settings: Settings


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file. Defaults to ``dotlink.toml`` in the
            current working directory.
    """

    config_path = _resolve_config_path(path)

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    settings = Settings.from_raw(data.get("settings") or {}, base_dir=config_path.parent)
    return Config(config_path=config_path, settings=settings)


def _resolve_config_path(path: Path | None) -> Path:
    if path is None:
        path = Path.cwd() / DEFAULT_CONFIG_FILENAME
    else:
        path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)


# ----------------------------------------------------------------------
# Component metadata


class FuzzyMatch(BaseModel):
    """Look the component up in the installed-software inventory."""

    model_config = ConfigDict(frozen=True)

    method: Literal["fuzzy"] = "fuzzy"
    pattern: str | None = None
    case_sensitive: bool = False
    regex: bool = False


class PathSearch(BaseModel):
    """Search ``PATH`` for an executable."""

    model_config = ConfigDict(frozen=True)

    method: Literal["path-search"]
    binary: str | None = None


class PathExists(BaseModel):
    """Check an absolute path on disk."""

    model_config = ConfigDict(frozen=True)

    method: Literal["path-exists"]
    path: str


class StaticAvailability(BaseModel):
    """Take the availability verbatim from the metadata."""

    model_config = ConfigDict(frozen=True)

    method: Literal["static"]
    availability: Availability

    @field_validator("availability", mode="before")
    @classmethod
    def _normalise_availability(cls, value: Any) -> Any:
        # Accept ``AlwaysInstall`` as well as ``always_install``.
        if isinstance(value, str):
            return re.sub(r"(?<=[a-z])(?=[A-Z])", "_", value).lower()
        return value


DetectionStrategy = Annotated[
    Union[FuzzyMatch, PathSearch, PathExists, StaticAvailability],
    Field(discriminator="method"),
]


class InstallDestination(BaseModel):
    """Where a component's files are linked to."""

    model_config = ConfigDict(frozen=True)

    special_folder: str | None = None
    destination: str | None = None


class ComponentMetadata(BaseModel):
    """Merged detection and install settings for one component."""

    model_config = ConfigDict(frozen=True)

    friendly_name: str | None = None
    hide_symlinks: bool = False
    ignore_paths: tuple[str, ...] = ()
    detection: DetectionStrategy = Field(default_factory=FuzzyMatch)
    install_path: InstallDestination = Field(default_factory=InstallDestination)

    @field_validator("ignore_paths", mode="before")
    @classmethod
    def _normalise_ignore_paths(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return tuple(normalise_relative_path(str(item)) for item in value)
        return value

    @classmethod
    def from_raw(cls, name: str, raw: Mapping[str, Any]) -> "ComponentMetadata":
        payload = dict(raw)
        detection = payload.get("detection")
        if isinstance(detection, Mapping) and "method" not in detection:
            payload["detection"] = {**detection, "method": "fuzzy"}
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise ConfigError(f"Invalid metadata for component '{name}': {exc}") from exc


def normalise_relative_path(raw: str) -> str:
    """Return ``raw`` as a posix path relative to a component's source root."""

    return PurePosixPath(raw.replace("\\", "/")).as_posix().lstrip("/")


def read_metadata_document(path: Path) -> dict[str, Any] | None:
    """Return the ``[component]`` table of ``path`` or ``None`` if absent."""

    if not path.is_file():
        return None

    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Metadata file '{path}' is not valid TOML: {exc}") from exc

    component = data.get("component")
    if not isinstance(component, dict):
        raise ConfigError(f"Metadata file '{path}' has no [component] table")
    return component


def merge_metadata(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Overlay ``override`` onto ``base`` field by field."""

    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_metadata(current, value)
        else:
            merged[key] = value
    return merged


def load_component_metadata(
    name: str,
    source_path: Path,
    *,
    global_metadata_path: Path | None = None,
) -> ComponentMetadata | None:
    """Load the global and custom metadata for ``name``.

    Returns ``None`` when neither document exists.
    """

    global_raw = None
    if global_metadata_path is not None:
        global_raw = read_metadata_document(global_metadata_path / f"{name}{METADATA_SUFFIX}")
    custom_raw = read_metadata_document(source_path / METADATA_FILENAME)

    if global_raw is None and custom_raw is None:
        return None

    merged = merge_metadata(global_raw or {}, custom_raw or {})
    return ComponentMetadata.from_raw(name, merged)
