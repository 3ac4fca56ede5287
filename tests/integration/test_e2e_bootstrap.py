"""
End-to-end integration tests against the real filesystem.

Stow and git scenarios run the real tools and are skipped when they are
not installed.
"""

import json
import os
import shutil
import subprocess
import sys
from unittest.mock import patch

import pytest

from devsetup import cli
from devsetup.backends import DirectoryBackend, RepositoryBackend, StowBackend, discover_packages, is_stowed
from devsetup.items import ABSENT, PRESENT, REFRESH, directories, dotfile_packages, repositories
from devsetup.reconcile import APPLIED, SKIPPED, PreconditionError, reconcile

skip_on_windows = pytest.mark.skipif(
    sys.platform == "win32",
    reason="Symlink farms and shell tools are POSIX only"
)
requires_stow = pytest.mark.skipif(shutil.which("stow") is None, reason="GNU stow not installed")
requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


class TestDirectoriesViaCli:
    """devsetup install packages with only directories configured."""

    def test_install_is_idempotent(self, tmp_path, capsys):
        config_path = tmp_path / "devsetup.yml"
        config_path.write_text(
            "version: 1\n"
            "directories:\n"
            f"  - {tmp_path / 'Repos'}\n"
            f"  - {tmp_path / '.config' / 'nvim'}\n"
        )
        argv = ["--config", str(config_path), "--platform", "linux", "--json", "install", "packages"]

        with patch("devsetup.config.CONFIG_LOCATIONS", []):
            assert cli.main(argv) == 0
            first = json.loads(capsys.readouterr().out)
            assert cli.main(argv) == 0
            second = json.loads(capsys.readouterr().out)

        assert [o["status"] for o in first["reports"][0]["outcomes"]] == ["applied", "applied"]
        assert [o["status"] for o in second["reports"][0]["outcomes"]] == ["skipped", "skipped"]
        assert (tmp_path / ".config" / "nvim").is_dir()

    def test_remove_missing_directory_is_fatal(self, tmp_path):
        backend = DirectoryBackend()
        with pytest.raises(PreconditionError) as excinfo:
            reconcile(directories([str(tmp_path / "dotfiles")]), ABSENT, backend)
        assert "Directory not found" in excinfo.value.message


@skip_on_windows
@requires_stow
class TestStowRoundTrip:
    """Stow, detect and unstow a real symlink farm."""

    @pytest.fixture
    def farm(self, tmp_path):
        root = tmp_path / "dotfiles"
        home = tmp_path / "home"
        (root / "zsh").mkdir(parents=True)
        (root / "zsh" / ".zshrc").write_text("autoload -U promptinit; promptinit\nprompt pure\n")
        (root / "nvim" / ".config" / "nvim").mkdir(parents=True)
        (root / "nvim" / ".config" / "nvim" / "init.lua").write_text("vim.o.number = true\n")
        home.mkdir()
        return root, home

    def test_stow_then_unstow(self, farm):
        root, home = farm
        backend = StowBackend(str(root), str(home))
        items = dotfile_packages(discover_packages(str(root)))

        report = reconcile(items, PRESENT, backend)
        assert [o.status for o in report.outcomes] == [APPLIED, APPLIED]
        assert os.path.islink(home / ".zshrc")
        assert is_stowed(str(root / "nvim"), str(home))

        again = reconcile(items, PRESENT, backend)
        assert [o.status for o in again.outcomes] == [SKIPPED, SKIPPED]

        removed = reconcile(items, ABSENT, backend)
        assert [o.status for o in removed.outcomes] == [APPLIED, APPLIED]
        assert not os.path.lexists(home / ".zshrc")

    def test_restow_skips_unstowed(self, farm):
        root, home = farm
        backend = StowBackend(str(root), str(home))
        report = reconcile(dotfile_packages(["zsh"]), REFRESH, backend)
        assert report.outcomes[0].status == SKIPPED


@requires_git
class TestGitCheckout:
    """Clone and pull a local repository."""

    @pytest.fixture
    def upstream(self, tmp_path):
        source = tmp_path / "upstream" / "pure.git"
        source.mkdir(parents=True)
        git = ["git", "-c", "user.name=devsetup", "-c", "user.email=devsetup@example.com"]
        subprocess.run(git + ["init", "-q", str(source)], check=True)
        (source / "pure.zsh").write_text("prompt_pure_setup() { }\n")
        subprocess.run(git + ["-C", str(source), "add", "pure.zsh"], check=True)
        subprocess.run(git + ["-C", str(source), "commit", "-q", "-m", "init"], check=True)
        return str(source)

    def test_clone_pull_delete(self, upstream, tmp_path):
        parent = tmp_path / "zsh"
        backend = RepositoryBackend(str(parent))
        items = repositories([upstream])

        cloned = reconcile(items, PRESENT, backend)
        assert cloned.outcomes[0].status == APPLIED
        assert (parent / "pure" / "pure.zsh").exists()

        assert reconcile(items, PRESENT, backend).outcomes[0].status == SKIPPED

        pulled = reconcile(items, REFRESH, backend)
        assert pulled.outcomes[0].status == APPLIED

        deleted = reconcile(items, ABSENT, backend)
        assert deleted.outcomes[0].status == APPLIED
        assert not (parent / "pure").exists()

    def test_clone_failure_is_reported(self, tmp_path):
        backend = RepositoryBackend(str(tmp_path / "zsh"))
        report = reconcile(repositories([str(tmp_path / "missing.git")]), PRESENT, backend)
        assert report.outcomes[0].status == "failed"
        assert "exit code" in report.outcomes[0].reason
