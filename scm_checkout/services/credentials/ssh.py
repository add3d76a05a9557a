"""SSH 认证准备

- 私钥写入 <temp>/<id>_key（0600，Windows 下用 icacls 去掉继承权限）
- known_hosts = 用户文件 + 内置 github/gitlab/bitbucket 公钥 + 输入的额外主机
- 通过 GIT_SSH_COMMAND 让 git 使用上述文件
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import sys
from pathlib import Path

from scm_checkout.core.exceptions import ConfigError
from scm_checkout.core.protocols import RepositoryCommands
from scm_checkout.services.credentials.teardown import TeardownAction
from scm_checkout.utils.shell import CommandExecutor, run_cmd

logger = logging.getLogger(__name__)

BUILTIN_KNOWN_HOSTS = {
    "github.com": [
        "github.com ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIOMqqnkVzrm0SdG6UOoqKLsabgH5C9okWi0dh2l9GKJl",
        "github.com ecdsa-sha2-nistp256 AAAAE2VjZHNhLXNoYTItbmlzdHAyNTYAAAAIbmlzdHAyNTYAAABBBEmKSENjQEezOmxkZMy7opKgwFB9nkt5YRrYMjNuG5N87uRgg6CLrbo5wAdT/y6v0mKV0U2w0WZ2YB/++Tpockg=",
    ],
    "gitlab.com": [
        "gitlab.com ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIAfuCHKVTjquxvt6CM6tdG4SLp1Btn/nOeHHE5UOzRdf",
    ],
    "bitbucket.org": [
        "bitbucket.org ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIIazEu89wgQZ4bqs3d63QSMzYVa0MuJ2e2gKTKqu+UUO",
    ],
}


def _restrict_windows_acl(key_path: Path, executor: CommandExecutor | None) -> None:
    icacls = shutil.which("icacls.exe") or shutil.which("icacls")
    if not icacls:
        raise ConfigError("找不到 icacls.exe，无法收紧私钥文件权限")
    user = f"{os.environ.get('USERDOMAIN', '')}\\{os.environ.get('USERNAME', '')}"
    run_cmd([icacls, str(key_path), "/grant:r", f"{user}:F"],
            cwd=str(key_path.parent), label="icacls", executor=executor)
    run_cmd([icacls, str(key_path), "/inheritance:r"],
            cwd=str(key_path.parent), label="icacls", executor=executor)


def write_ssh_key(
    temp_dir: str, prefix: str, key: str, *, executor: CommandExecutor | None = None,
) -> Path:
    """写出私钥文件，返回路径"""
    d = Path(temp_dir)
    d.mkdir(parents=True, exist_ok=True)
    key_path = d / f"{prefix}_key"
    if not key.endswith("\n"):
        key += "\n"
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(key)
    os.chmod(key_path, 0o600)
    if sys.platform == "win32":
        _restrict_windows_acl(key_path, executor)
    return key_path


def render_known_hosts(user_path: Path, user_known_hosts: str, extra: str) -> str:
    lines: list[str] = []
    if user_known_hosts:
        lines += [f"# Begin from {user_path}", user_known_hosts.rstrip("\n"),
                  f"# End from {user_path}"]
    for host, keys in BUILTIN_KNOWN_HOSTS.items():
        lines += [f"# Begin implicitly added {host}", *keys, f"# End implicitly added {host}"]
    if extra.strip():
        lines += ["# Begin from input known hosts", extra.rstrip("\n"),
                  "# End from input known hosts"]
    return "\n".join(lines) + "\n"


def write_known_hosts(home: str, temp_dir: str, prefix: str, extra: str) -> Path:
    """生成 known_hosts 文件，返回路径；用户文件不可读时按空文件处理"""
    user_path = Path(home) / ".ssh" / "known_hosts"
    user_known_hosts = ""
    if user_path.is_file():
        try:
            user_known_hosts = user_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("读取 %s 失败，按空文件处理: %s", user_path, e)

    d = Path(temp_dir)
    d.mkdir(parents=True, exist_ok=True)
    path = d / f"{prefix}_known_hosts"
    path.write_text(render_known_hosts(user_path, user_known_hosts, extra), encoding="utf-8")
    return path


def build_ssh_command(key_path: Path, strict: bool, known_hosts_path: Path, ssh: str = "") -> str:
    """组装 GIT_SSH_COMMAND，known_hosts 以 $RUNNER_TEMP 相对路径引用"""
    ssh = ssh or shutil.which("ssh") or ""
    if not ssh:
        raise ConfigError("在 PATH 中找不到 ssh")
    cmd = f"{shlex.quote(ssh)} -i {shlex.quote(str(key_path))}"
    if strict:
        cmd += " -o StrictHostKeyChecking=yes -o CheckHostIP=no"
    cmd += f" -o UserKnownHostsFile=$RUNNER_TEMP/{known_hosts_path.name}"
    return cmd


def setup_ssh(
    git: RepositoryCommands,
    *,
    key: str,
    known_hosts: str,
    strict: bool,
    home: str,
    temp_dir: str,
    prefix: str,
    persist: bool,
    executor: CommandExecutor | None = None,
) -> TeardownAction:
    """准备 SSH 认证，返回对应的清理动作

    persist 为 True 时清理阶段把 core.sshCommand 写入本地配置并保留文件，
    否则删除私钥与 known_hosts。
    """
    key_path = write_ssh_key(temp_dir, prefix, key, executor=executor)
    try:
        known_hosts_path = write_known_hosts(home, temp_dir, prefix, known_hosts)
        ssh_command = build_ssh_command(key_path, strict, known_hosts_path)
    except Exception:
        key_path.unlink(missing_ok=True)
        (Path(temp_dir) / f"{prefix}_known_hosts").unlink(missing_ok=True)
        raise
    git.set_env("GIT_SSH_COMMAND", ssh_command)
    logger.info("已配置 SSH 私钥: %s", key_path)

    def teardown() -> None:
        if persist:
            git.set_config_str(False, "core.sshCommand", ssh_command)
            return
        errors: list[OSError] = []
        for p in (key_path, known_hosts_path):
            try:
                p.unlink(missing_ok=True)
            except OSError as e:
                errors.append(e)
        if errors:
            raise OSError("; ".join(str(e) for e in errors))
        logger.info("已删除 SSH 私钥与 known_hosts")

    return teardown
