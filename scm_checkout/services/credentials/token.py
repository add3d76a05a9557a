"""令牌认证

优先交给 PATH 上的外部凭据管理器 git-credential-cloudbees；
找不到它、或用户直接给出了 SCM 令牌时，安装本程序自带的凭据助手。
"""

from __future__ import annotations

import base64
import logging
import os
import re
import shlex
import shutil
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from scm_checkout.core.exceptions import ConfigError
from scm_checkout.core.models import HelperConfigSection
from scm_checkout.core.protocols import RepositoryCommands
from scm_checkout.services.checkout import urls
from scm_checkout.services.credentials.helper_install import install_helper_for
from scm_checkout.services.credentials.teardown import TeardownAction, noop
from scm_checkout.utils.shell import CommandExecutor, run_cmd

logger = logging.getLogger(__name__)

CREDENTIAL_MANAGER = "git-credential-cloudbees"
CREDENTIAL_MANAGER_CONFIG = ".git-credential-cloudbees-config"
CREDENTIAL_MANAGER_TOKEN_ENV = "CLOUDBEES_API_TOKEN"

TOKEN_PLACEHOLDER = "Authorization: Basic ***"
_TOKEN_HEADER = "Authorization: Basic {}"
_EXTRAHEADER_KEY = "http.{}/.extraheader"
_SHOW_ORIGIN_RE = re.compile(r"^file:([^\t]+)\tremote\.origin\.url$")


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


@dataclass
class TokenAuth:
    """令牌类认证材料"""

    provider: str = ""
    scm_token: str = ""
    token_auth_type: str = ""
    api_url: str = ""
    api_token: str = ""

    def provider_username(self) -> str:
        if self.provider in (urls.GITHUB, urls.GITLAB, urls.CUSTOM):
            return "x-access-token"
        if self.provider == urls.BITBUCKET:
            return "x-token-auth"
        return "git"

    def section(self) -> HelperConfigSection:
        """转换为助手配置子段（秘密字段 base64 编码）"""
        s = HelperConfigSection(name="", username=self.provider_username())
        if self.scm_token:
            if self.token_auth_type.lower() == "bearer":
                s.credential = _b64(self.scm_token)
            else:
                s.password = _b64(self.scm_token)
        elif self.api_token and self.api_url:
            s.api_url = self.api_url
            s.api_token = _b64(self.api_token)
        return s

    @property
    def present(self) -> bool:
        return bool(self.scm_token or (self.api_token and self.api_url))


def find_credential_manager() -> str:
    return shutil.which(CREDENTIAL_MANAGER) or ""


def credential_helper_with_user_provided_creds(
    git: RepositoryCommands, global_: bool, server_url: str, token: TokenAuth, home: str,
) -> tuple[TeardownAction, str]:
    """安装自带助手并写入 credential.helper / credential.useHttpPath

    清理时恢复两个键的原值（原来为空则删除），再删除助手配置。
    """
    helper_command, remove_config = install_helper_for(server_url, token.section(), home)

    old_helper = git.get_config(global_, "credential.helper")
    old_use_http_path = git.get_config(global_, "credential.useHttpPath")

    def teardown() -> None:
        errors: list[Exception] = []
        try:
            if old_helper:
                git.set_config_str(global_, "credential.helper", old_helper)
            else:
                git.unset_config(global_, "credential.helper")
        except Exception as e:
            errors.append(e)
        try:
            if old_use_http_path:
                git.set_config_bool(global_, "credential.useHttpPath",
                                    old_use_http_path.strip().lower() in ("true", "yes", "on", "1"))
            else:
                git.unset_config(global_, "credential.useHttpPath")
        except Exception as e:
            errors.append(e)
        try:
            remove_config()
        except Exception as e:
            errors.append(e)
        if errors:
            raise ConfigError("恢复凭据助手配置失败: " + "; ".join(str(e) for e in errors))

    try:
        git.set_config_str(global_, "credential.helper", helper_command)
        git.set_config_bool(global_, "credential.useHttpPath", True)
    except Exception as e:
        try:
            teardown()
        except ConfigError as te:
            e.add_note(str(te))
        raise
    return teardown, helper_command


def configure_token(
    git: RepositoryCommands,
    *,
    global_: bool,
    server_url: str,
    token: TokenAuth,
    home: str,
    executor: CommandExecutor | None = None,
) -> tuple[TeardownAction, str]:
    """配置令牌认证，返回 (清理动作, 凭据助手命令)"""
    manager = find_credential_manager()
    if not manager or token.scm_token:
        if not manager:
            logger.debug("PATH 中没有 %s，使用自带凭据助手", CREDENTIAL_MANAGER)
        else:
            logger.debug("使用用户提供的令牌，改用自带凭据助手")
        return credential_helper_with_user_provided_creds(git, global_, server_url, token, home)

    logger.debug("使用外部凭据管理器: %s", manager)
    if global_:
        config_path = git.global_config_path()
    else:
        config_path = str(Path(git.cwd) / ".git" / "config")
    manager_config = str(Path(home) / CREDENTIAL_MANAGER_CONFIG)
    env = {**os.environ, CREDENTIAL_MANAGER_TOKEN_ENV: token.api_token}
    run_cmd([
        manager, "init",
        "--config", manager_config,
        "--cloudbees-api-token-env-var", CREDENTIAL_MANAGER_TOKEN_ENV,
        "--cloudbees-api-url", token.api_url,
        "--git-config-file-path", config_path,
    ], cwd=git.cwd, env=env, label=CREDENTIAL_MANAGER, executor=executor)
    return noop, f"{shlex.quote(manager)} helper --config {shlex.quote(manager_config)}"


def replace_token_placeholder(config_path: str | Path, encoded_auth: str) -> None:
    """把配置文件中的占位 Authorization 头替换为真实值，保留文件权限"""
    p = Path(config_path)
    if not p.is_file():
        raise ConfigError(f"找不到文件 '{p}'")
    mode = p.stat().st_mode & 0o777
    content = p.read_text(encoding="utf-8")
    p.write_text(content.replace(TOKEN_PLACEHOLDER, _TOKEN_HEADER.format(encoded_auth)),
                 encoding="utf-8")
    os.chmod(p, mode)


def configure_submodule_token_auth(
    git: RepositoryCommands, recursive: bool, server_url: str, scm_token: str,
) -> list[str]:
    """在每个子模块的本地配置中写入 extraheader，返回被修改的配置文件

    先用 foreach 写入占位值并打印配置文件来源，再逐个文件替换为真实凭据，
    令牌本身不会出现在命令行上。
    """
    if find_credential_manager():
        logger.debug("存在外部凭据管理器，子模块无需写入 extraheader")
        return []

    parsed = urlparse(server_url)
    key = _EXTRAHEADER_KEY.format(f"{parsed.scheme}://{parsed.netloc}")
    exe = shlex.quote(git.executable)
    script = (
        f"{exe} config --local {shlex.quote(key)} {shlex.quote(TOKEN_PLACEHOLDER)}"
        f" && {exe} config --local --show-origin --name-only --get-regexp remote.origin.url"
    )
    output = git.submodule_foreach(recursive, "sh", "-c", script)

    auth = _b64(f"x-access-token:{scm_token}")
    changed: list[str] = []
    for line in output.splitlines():
        m = _SHOW_ORIGIN_RE.match(line)
        if m is None or not m.group(1):
            continue
        path = Path(m.group(1))
        if not path.is_absolute():
            path = Path(git.cwd) / path
        replace_token_placeholder(path, auth)
        changed.append(str(path))
    return changed
