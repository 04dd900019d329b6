from __future__ import annotations

import os
from pathlib import Path

import pytest
from rich.console import Console
from typer.testing import CliRunner

from dotlink.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("dotlink.cli.console", Console(width=200))


def test_full_cycle(tmp_path: Path, tree, fake_home: Path) -> None:
    project = tmp_path / "project"
    config_path = project / "dotlink.toml"
    dotfiles = project / "dotfiles"
    tree(
        dotfiles,
        {
            "nvim/metadata.toml": (
                "[component]\n"
                'friendly_name = "Neovim"\n'
                "[component.detection]\n"
                'method = "static"\n'
                'availability = "always_install"\n'
                "[component.install_path]\n"
                'special_folder = "ApplicationData"\n'
                'destination = "nvim"\n'
            ),
            "nvim/init.lua": "vim.o.number = true\n",
            "nvim/lua/plugins.lua": "return {}\n",
            "zsh/metadata.toml": (
                "[component]\n"
                'ignore_paths = ["notes"]\n'
                "[component.detection]\n"
                'method = "static"\n'
                'availability = "available"\n'
            ),
            "zsh/.zshrc": "export EDITOR=nvim\n",
            "zsh/.config/zsh/aliases.zsh": "alias g=git\n",
            "zsh/notes/README": "not for install\n",
        },
    )
    (fake_home / ".config" / "nvim").mkdir(parents=True)
    (fake_home / ".config" / "nvim" / "local.lua").write_text("-- machine specific\n")

    init_result = runner.invoke(
        app,
        ["init", "--config", str(config_path), "--dotfiles-path", str(dotfiles)],
    )
    assert init_result.exit_code == 0

    simulate_result = runner.invoke(app, ["install", "--config", str(config_path), "--simulate"])
    assert simulate_result.exit_code == 0
    assert not (fake_home / ".zshrc").exists()

    install_result = runner.invoke(app, ["install", "--config", str(config_path), "--yes"])
    assert install_result.exit_code == 0

    zshrc = fake_home / ".zshrc"
    assert zshrc.is_symlink()
    assert zshrc.resolve() == (dotfiles / "zsh" / ".zshrc").resolve()
    assert not os.path.isabs(os.readlink(zshrc))
    # The .config directory already exists, so only its missing children are linked.
    assert (fake_home / ".config").is_dir() and not (fake_home / ".config").is_symlink()
    assert (fake_home / ".config" / "zsh").is_symlink()
    assert not (fake_home / "notes").exists()
    assert not (fake_home / "metadata.toml").exists()

    nvim_target = fake_home / ".config" / "nvim"
    assert not nvim_target.is_symlink()
    assert (nvim_target / "init.lua").is_symlink()
    assert (nvim_target / "lua").is_symlink()
    assert (nvim_target / "local.lua").read_text() == "-- machine specific\n"

    discover_result = runner.invoke(app, ["discover", "--config", str(config_path)])
    assert discover_result.exit_code == 0
    assert "Neovim" in discover_result.stdout
    assert "not_installed" not in discover_result.stdout

    remove_result = runner.invoke(app, ["remove", "--config", str(config_path), "--yes"])
    assert remove_result.exit_code == 0
    assert not zshrc.exists()
    assert not (nvim_target / "init.lua").exists()
    assert (nvim_target / "local.lua").exists()
    assert (dotfiles / "nvim" / "lua" / "plugins.lua").exists()
