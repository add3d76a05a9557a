"""SSH 认证准备单元测试"""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from scm_checkout.core.exceptions import ConfigError
from scm_checkout.services.credentials import ssh


@pytest.fixture()
def dirs(tmp_path: Path) -> tuple[str, str]:
    home = tmp_path / "home"
    temp = tmp_path / "temp"
    home.mkdir()
    return str(home), str(temp)


@pytest.fixture(autouse=True)
def _ssh_on_path(monkeypatch) -> None:
    monkeypatch.setattr("scm_checkout.services.credentials.ssh.shutil.which",
                        lambda name: "/usr/bin/ssh" if name == "ssh" else None)


class TestWriteKey:
    def test_mode_and_newline(self, tmp_path) -> None:
        p = ssh.write_ssh_key(str(tmp_path), "abc", "PRIVATE")
        assert p == tmp_path / "abc_key"
        assert p.read_text(encoding="utf-8") == "PRIVATE\n"
        assert stat.S_IMODE(os.stat(p).st_mode) == 0o600


class TestKnownHosts:
    def test_render_includes_builtin_and_extra(self, tmp_path) -> None:
        text = ssh.render_known_hosts(tmp_path / "kh", "user.example ssh-rsa AAA\n", "extra ssh-rsa BBB")
        assert "# Begin from " in text
        assert "user.example ssh-rsa AAA" in text
        assert "# Begin implicitly added github.com" in text
        assert "gitlab.com ssh-ed25519" in text
        assert "extra ssh-rsa BBB" in text
        assert text.index("user.example") < text.index("github.com") < text.index("extra")

    def test_render_without_user_file(self, tmp_path) -> None:
        text = ssh.render_known_hosts(tmp_path / "kh", "", "")
        assert "# Begin from" not in text
        assert "input known hosts" not in text

    def test_write_reads_user_file(self, dirs) -> None:
        home, temp = dirs
        (Path(home) / ".ssh").mkdir()
        (Path(home) / ".ssh" / "known_hosts").write_text("mine ssh-rsa X\n", encoding="utf-8")
        p = ssh.write_known_hosts(home, temp, "id", "")
        assert p.name == "id_known_hosts"
        assert "mine ssh-rsa X" in p.read_text(encoding="utf-8")


class TestSshCommand:
    def test_strict(self, tmp_path) -> None:
        cmd = ssh.build_ssh_command(tmp_path / "k", True, tmp_path / "id_known_hosts")
        assert cmd.startswith("/usr/bin/ssh -i ")
        assert "-o StrictHostKeyChecking=yes -o CheckHostIP=no" in cmd
        assert cmd.endswith("-o UserKnownHostsFile=$RUNNER_TEMP/id_known_hosts")

    def test_not_strict(self, tmp_path) -> None:
        cmd = ssh.build_ssh_command(tmp_path / "k", False, tmp_path / "kh")
        assert "StrictHostKeyChecking" not in cmd

    def test_missing_ssh(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr("scm_checkout.services.credentials.ssh.shutil.which", lambda name: None)
        with pytest.raises(ConfigError, match="ssh"):
            ssh.build_ssh_command(tmp_path / "k", True, tmp_path / "kh")


class TestSetupSsh:
    def test_teardown_removes_files(self, fake_git, dirs) -> None:
        home, temp = dirs
        teardown = ssh.setup_ssh(fake_git, key="K", known_hosts="", strict=True,
                                 home=home, temp_dir=temp, prefix="run", persist=False)
        assert "GIT_SSH_COMMAND" in fake_git.env
        assert (Path(temp) / "run_key").exists()
        teardown()
        assert not (Path(temp) / "run_key").exists()
        assert not (Path(temp) / "run_known_hosts").exists()
        assert "core.sshCommand" not in fake_git.local_config

    def test_persist_writes_core_ssh_command(self, fake_git, dirs) -> None:
        home, temp = dirs
        teardown = ssh.setup_ssh(fake_git, key="K", known_hosts="", strict=True,
                                 home=home, temp_dir=temp, prefix="run", persist=True)
        teardown()
        assert fake_git.local_config["core.sshCommand"] == [fake_git.env["GIT_SSH_COMMAND"]]
        assert (Path(temp) / "run_key").exists()

    def test_partial_failure_cleans_key(self, fake_git, dirs, monkeypatch) -> None:
        home, temp = dirs
        monkeypatch.setattr("scm_checkout.services.credentials.ssh.shutil.which", lambda name: None)
        with pytest.raises(ConfigError):
            ssh.setup_ssh(fake_git, key="K", known_hosts="", strict=True,
                          home=home, temp_dir=temp, prefix="run", persist=False)
        assert not (Path(temp) / "run_key").exists()
        assert not (Path(temp) / "run_known_hosts").exists()
        assert "GIT_SSH_COMMAND" not in fake_git.env
