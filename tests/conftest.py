from __future__ import annotations

from pathlib import Path

import pytest

from dotlink.models import Availability, Component


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.delenv("XDG_DATA_HOME", raising=False)
    return home


def write_tree(root: Path, files: dict[str, str]) -> Path:
    """Create ``files`` (relative path -> contents) under ``root``."""

    root.mkdir(parents=True, exist_ok=True)
    for relative, contents in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(contents)
    return root


@pytest.fixture
def tree():
    return write_tree


@pytest.fixture
def dotfiles(tmp_path: Path) -> Path:
    root = tmp_path / "dotfiles"
    root.mkdir()
    return root


@pytest.fixture
def make_component(dotfiles: Path, fake_home: Path):
    def factory(name: str = "app", files: dict[str, str] | None = None, **fields: object) -> Component:
        write_tree(dotfiles / name, files or {})
        component = Component.from_source(name, dotfiles)
        component.availability = Availability.AVAILABLE
        component.install_path = fake_home
        for key, value in fields.items():
            setattr(component, key, value)
        return component

    return factory
