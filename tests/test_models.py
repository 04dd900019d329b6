from __future__ import annotations

from pathlib import Path

import pytest

from dotlink.errors import DotlinkError, MissingInstallPathError
from dotlink.models import Availability, Component, ExecutionMode, InstallState, ReconcileOptions


def test_component_from_source_requires_directory(dotfiles: Path) -> None:
    with pytest.raises(DotlinkError, match="does not exist"):
        Component.from_source("ghost", dotfiles)

    (dotfiles / "file").write_text("not a directory\n")
    with pytest.raises(DotlinkError):
        Component.from_source("file", dotfiles)


def test_component_defaults(dotfiles: Path) -> None:
    (dotfiles / "vim").mkdir()

    component = Component.from_source("vim", dotfiles)

    assert component.source_path == (dotfiles / "vim").resolve()
    assert component.availability is Availability.DETECTION_FAILURE
    assert component.state is InstallState.NOT_EVALUATED
    assert component.install_path is None
    assert component.ignore_paths == frozenset()
    assert component.display_name == "vim"


def test_component_identity_is_immutable(dotfiles: Path) -> None:
    (dotfiles / "vim").mkdir()
    component = Component.from_source("vim", dotfiles)

    with pytest.raises(AttributeError):
        component.name = "emacs"
    with pytest.raises(AttributeError):
        component.source_path = dotfiles

    component.state = InstallState.INSTALLED
    assert component.state is InstallState.INSTALLED


def test_component_maps_sources_to_targets(dotfiles: Path, tmp_path: Path) -> None:
    (dotfiles / "vim" / ".vim").mkdir(parents=True)
    component = Component.from_source("vim", dotfiles)
    component.install_path = tmp_path / "home"
    component.ignore_paths = frozenset({".vim"})

    assert component.relative_path(component.source_path) == ""
    assert component.target_for(component.source_path) == tmp_path / "home"
    assert component.target_for(component.source_path / ".vim" / "vimrc") == tmp_path / "home" / ".vim" / "vimrc"
    assert component.is_ignored(component.source_path / ".vim")
    assert not component.is_ignored(component.source_path / ".vim" / "vimrc")
    assert not component.is_ignored(component.source_path)


def test_component_target_requires_install_path(dotfiles: Path) -> None:
    (dotfiles / "vim").mkdir()
    component = Component.from_source("vim", dotfiles)

    with pytest.raises(MissingInstallPathError):
        component.target_for(component.source_path)


def test_installable_availabilities() -> None:
    assert {value for value in Availability if value.installable} == {
        Availability.AVAILABLE,
        Availability.ALWAYS_INSTALL,
    }


def test_reconcile_options_dry_run() -> None:
    assert ReconcileOptions().dry_run is False
    assert ReconcileOptions(mode=ExecutionMode.SIMULATE).dry_run is True
    assert ReconcileOptions(mode=ExecutionMode.PROBE).dry_run is True
