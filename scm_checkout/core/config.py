"""检出配置

两层：
- CheckoutEnvironment: 进程环境变量，入口处读取一次
- CheckoutConfig: 检出输入（YAML 默认值 + 命令行覆盖），validate() 后补全派生字段
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from scm_checkout.core.exceptions import ConfigError
from scm_checkout.core.models import EventContext
from scm_checkout.services.checkout import urls
from scm_checkout.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_GITHUB_SERVER_URL = "https://github.com"
DEFAULT_BITBUCKET_SERVER_URL = "https://bitbucket.org"
DEFAULT_GITLAB_SERVER_URL = "https://gitlab.com"

SUBMODULE_MODES = ("true", "false", "recursive")
TOKEN_AUTH_TYPES = ("", "basic", "bearer")

_SHA_RE = re.compile(r"^[0-9a-fA-F]{40}$")


@dataclass
class CheckoutEnvironment:
    """检出所需的环境变量快照"""

    workspace: str = ""
    event_path: str = ""
    temp_dir: str = ""
    home: str = ""
    outputs_dir: str = ""
    github_server_url: str = ""
    bitbucket_server_url: str = ""
    gitlab_server_url: str = ""

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> CheckoutEnvironment:
        env = os.environ if environ is None else environ
        home = env.get("HOME", "")
        return cls(
            workspace=env.get("CLOUDBEES_WORKSPACE", ""),
            event_path=env.get("CLOUDBEES_EVENT_PATH", ""),
            temp_dir=env.get("RUNNER_TEMP", "") or tempfile.gettempdir(),
            home=home,
            outputs_dir=env.get("CLOUDBEES_OUTPUTS", ""),
            github_server_url=env.get("GITHUB_SERVER_URL", ""),
            bitbucket_server_url=env.get("BITBUCKET_SERVER_URL", ""),
            gitlab_server_url=env.get("GITLAB_SERVER_URL", ""),
        )


def load_event_context(path: str) -> EventContext:
    """读取触发事件 JSON

    Raises:
        ConfigError: 文件不存在或内容不是 JSON 对象
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"读取事件上下文失败: {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"事件上下文不是 JSON 对象: {path}")
    return data


def _event_str(ctx: EventContext, key: str) -> str:
    value = ctx.get(key)
    return value if isinstance(value, str) else ""


@dataclass
class CheckoutConfig:
    """一次检出的全部输入"""

    provider: str = ""
    repository: str = ""
    ref: str = ""
    commit: str = ""

    # 认证
    token: str = field(default="", repr=False)
    token_auth_type: str = ""
    cloudbees_api_token: str = field(default="", repr=False)
    cloudbees_api_url: str = ""
    ssh_key: str = field(default="", repr=False)
    ssh_known_hosts: str = ""
    ssh_strict: bool = True
    persist_credentials: bool = True

    # 工作区
    path: str = ""
    clean: bool = True
    sparse_checkout: str = ""
    sparse_checkout_cone_mode: bool = False
    fetch_depth: int = 1
    lfs: bool = False
    submodules: str = "false"
    set_safe_directory: bool = True

    # 服务端地址覆盖
    github_server_url: str = ""
    bitbucket_server_url: str = ""
    gitlab_server_url: str = ""

    # validate() 之后才有值
    clone_url: str = field(default="", init=False)
    event_context: EventContext = field(default_factory=dict, init=False, repr=False)
    local_merge: bool = field(default=False, init=False)

    @classmethod
    def from_file(cls, path: str) -> CheckoutConfig:
        """从 YAML 读取输入默认值，键名可用 - 或 _ 分隔"""
        try:
            data = load_yaml(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"读取输入文件失败: {path}: {e}") from e
        if not data:
            return cls()
        known = {f.name for f in fields(cls) if f.init}
        matched: dict[str, Any] = {}
        for k, v in data.items():
            name = str(k).replace("-", "_")
            if name in known:
                matched[name] = v
            else:
                logger.warning("忽略未知配置项: %s (%s)", k, path)
        return cls(**matched)

    def with_overrides(self, overrides: Mapping[str, Any]) -> CheckoutConfig:
        """命令行显式给出的值（非 None）覆盖文件中的默认值"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    # ---- 派生信息 ----

    @property
    def use_ssh(self) -> bool:
        return bool(self.ssh_key)

    @property
    def submodules_enabled(self) -> bool:
        return self.submodules in ("true", "recursive")

    @property
    def submodules_recursive(self) -> bool:
        return self.submodules == "recursive"

    @property
    def sparse_patterns(self) -> list[str]:
        return [p for p in self.sparse_checkout.split("\n") if p.strip()]

    def server_url(self) -> str:
        if self.provider == urls.GITHUB:
            return self.github_server_url
        if self.provider in (urls.BITBUCKET, urls.BITBUCKET_DATACENTER):
            return self.bitbucket_server_url
        if self.provider == urls.GITLAB:
            return self.gitlab_server_url
        return ""

    def credential_server_url(self) -> str:
        """凭据助手的作用域：provider 服务端地址，custom 时取克隆地址的 scheme://host"""
        server = self.server_url()
        if server:
            return server
        if self.clone_url and not urls.is_ssh_url(self.clone_url):
            scheme, _, rest = self.clone_url.partition("://")
            return f"{scheme}://{rest.split('/', 1)[0]}"
        return ""

    # ---- 校验 ----

    def validate(self, env: CheckoutEnvironment) -> None:
        """校验输入并补全派生字段

        Raises:
            ConfigError: 输入缺失或组合不合法
        """
        if not env.event_path:
            raise ConfigError("缺少事件上下文: 未设置 CLOUDBEES_EVENT_PATH")
        self.event_context = load_event_context(env.event_path)

        if not env.workspace:
            raise ConfigError("未设置环境变量 CLOUDBEES_WORKSPACE")
        if not Path(env.workspace).is_dir():
            raise ConfigError(f"工作区目录不存在: {env.workspace}")
        logger.debug("CLOUDBEES_WORKSPACE = %s", env.workspace)

        self._resolve_provider(env)
        logger.debug("provider = %s, repository = %s", self.provider, self.repository)
        self.clone_url = urls.normalize_repository_url(
            self.repository, self.provider, self.server_url(), self.use_ssh,
        )

        if not self.path:
            self.path = "."
        workspace = os.path.normpath(env.workspace)
        target = os.path.normpath(os.path.join(workspace, self.path))
        if target != workspace and not target.startswith(workspace + os.sep):
            raise ConfigError(f"仓库路径 '{target}' 不在工作区 '{workspace}' 之下")

        self._resolve_ref()
        logger.debug("ref = %s, commit = %s", self.ref, self.commit)

        self.submodules = str(self.submodules).strip().lower()
        if self.submodules not in SUBMODULE_MODES:
            raise ConfigError(
                f"不支持的 submodules 取值: '{self.submodules}'，应为 true/false/recursive"
            )

        self.token_auth_type = self.token_auth_type.strip().lower()
        if self.token_auth_type not in TOKEN_AUTH_TYPES:
            raise ConfigError(f"不支持的 token-auth-type: '{self.token_auth_type}'，应为 basic/bearer")

        try:
            self.fetch_depth = int(self.fetch_depth)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"fetch-depth 必须为整数: {self.fetch_depth}") from e

        has_api = bool(self.cloudbees_api_token and self.cloudbees_api_url)
        if not (self.token or has_api or self.ssh_key):
            raise ConfigError(
                "未指定任何认证方式: 需要 token、cloudbees-api-token + cloudbees-api-url 或 ssh-key"
            )

    def _resolve_provider(self, env: CheckoutEnvironment) -> None:
        self.provider = (self.provider or _event_str(self.event_context, "provider")
                         or urls.GITHUB).strip().lower()
        if self.provider not in urls.PROVIDERS:
            raise ConfigError(f"不支持的 provider: {self.provider}")

        self.github_server_url = (self.github_server_url or env.github_server_url
                                  or DEFAULT_GITHUB_SERVER_URL)
        self.bitbucket_server_url = (self.bitbucket_server_url or env.bitbucket_server_url
                                     or DEFAULT_BITBUCKET_SERVER_URL)
        self.gitlab_server_url = (self.gitlab_server_url or env.gitlab_server_url
                                  or DEFAULT_GITLAB_SERVER_URL)
        if self.provider == urls.BITBUCKET_DATACENTER:
            self.bitbucket_server_url = urls.ensure_scm_path(self.bitbucket_server_url)

    def _resolve_ref(self) -> None:
        if self.ref:
            if _SHA_RE.match(self.ref):
                # 40 位十六进制视为 commit，以分离 HEAD 检出
                self.commit = self.ref
                self.ref = ""
            return

        if not self.is_workflow_repository():
            return
        self.ref = _event_str(self.event_context, "ref")
        self.commit = _event_str(self.event_context, "sha")
        # 部分事件（如 PR 合并）给出的是未限定的分支名
        if self.commit and self.ref and not self.ref.startswith("refs/"):
            self.ref = "refs/heads/" + self.ref

    def is_workflow_repository(self) -> bool:
        """当前检出的是否为触发工作流的仓库"""
        return urls.is_same_repository(
            self.repository, self.clone_url, _event_str(self.event_context, "repositoryUrl"),
        )
