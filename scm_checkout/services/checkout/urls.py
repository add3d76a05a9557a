"""仓库 URL 规范化

- SSH URL 判定与规范化（ls-remote 需要 ssh://host/path 形式）
- 按 provider 模板拼接克隆地址
- Bitbucket Datacenter 的 /scm 路径补全
"""

from __future__ import annotations

import re
from urllib.parse import urlparse, urlunparse

from scm_checkout.core.exceptions import ConfigError

GITHUB = "github"
GITLAB = "gitlab"
BITBUCKET = "bitbucket"
BITBUCKET_DATACENTER = "bitbucket_datacenter"
CUSTOM = "custom"

PROVIDERS = (GITHUB, GITLAB, BITBUCKET, BITBUCKET_DATACENTER, CUSTOM)

DOT_GIT = ".git"

_USER_AND_HOST = r"([a-zA-Z][-a-zA-Z0-9_]*@)?[a-z0-9][-a-z0-9_\.]*"

# ssh://user@host[:port]/path
_SSH_SCHEME_RE = re.compile(rf"^ssh://{_USER_AND_HOST}(:|/)(/?[\w\-\.~]+)*$", re.ASCII)
# user@host:path
_SSH_SCP_RE = re.compile(rf"^{_USER_AND_HOST}:/?[\w\-\.~]+(/?[\w\-\.~]+)*$", re.ASCII)
# ssh://user@host:path（冒号后不是端口）
_SSH_WITH_PATH_COLON_RE = re.compile(rf"^ssh://{_USER_AND_HOST}:[^0-9]+", re.ASCII)

_SHORT_FORM_RE = re.compile(r"^[\w\-\.]+/[\w\-\.]+$")


def is_ssh_url(url: str) -> bool:
    return bool(_SSH_SCHEME_RE.match(url) or _SSH_SCP_RE.match(url))


def normalize_ssh_url(url: str) -> str:
    """把 scp 形式的 SSH 地址改写为 ssh://host/path，非 SSH 地址原样返回

    >>> normalize_ssh_url("git@github.com:org/repo.git")
    'ssh://git@github.com/org/repo.git'
    """
    if not is_ssh_url(url):
        return url
    if not url.startswith("ssh://"):
        url = f"ssh://{url}"
    if _SSH_WITH_PATH_COLON_RE.match(url):
        head, _, tail = url.rpartition(":")
        url = f"{head}/{tail.lstrip('/')}"
    return url


def is_short_form(repository: str) -> bool:
    """owner/repo 形式"""
    return bool(_SHORT_FORM_RE.match(repository))


def strip_dot_git(url: str) -> str:
    return url[:-len(DOT_GIT)] if url.endswith(DOT_GIT) else url


def ensure_dot_git(url: str) -> str:
    return url if url.endswith(DOT_GIT) else url + DOT_GIT


def ensure_scm_path(server_url: str) -> str:
    """Bitbucket Datacenter 的克隆地址位于 /scm 之下"""
    parsed = urlparse(server_url)
    if parsed.path.rstrip("/").endswith("/scm"):
        return server_url
    path = parsed.path.rstrip("/") + "/scm"
    return urlunparse(parsed._replace(path=path))


def fetch_url(provider: str, repository: str, server_url: str, use_ssh: bool) -> str:
    """按 provider 拼接克隆地址

    custom provider 直接返回 repository；其余 provider 在 server_url 之后
    追加 owner/repo.git，SSH 模式改写为 git@host:path。
    """
    if provider == CUSTOM:
        return repository
    if provider not in PROVIDERS:
        raise ConfigError(f"不支持的 provider: {provider}")
    if not server_url:
        raise ConfigError(f"provider '{provider}' 缺少服务端地址")

    parsed = urlparse(server_url)
    path = parsed.path.rstrip("/") + "/" + ensure_dot_git(repository.strip("/"))
    if use_ssh:
        return f"git@{parsed.hostname}:{path.lstrip('/')}"
    return urlunparse(parsed._replace(path=path))


def normalize_repository_url(
    repository: str, provider: str, server_url: str, has_ssh_key: bool,
) -> str:
    """把用户输入的 repository 转换为克隆地址

    Raises:
        ConfigError: 输入组合不合法
    """
    if not repository:
        raise ConfigError("repository 不能为空")

    if is_ssh_url(repository):
        if not has_ssh_key:
            raise ConfigError("使用 SSH 地址作为 repository 时必须同时提供 ssh-key")
        if provider != CUSTOM:
            raise ConfigError("使用 SSH 地址作为 repository 时 provider 必须为 'custom'")
        return repository

    if has_ssh_key:
        raise ConfigError("repository 为 HTTP 地址时不支持 ssh-key")

    if is_short_form(repository):
        if provider == CUSTOM:
            raise ConfigError(
                f"repository '{repository}' 为 owner/repo 简写，"
                "custom provider 需要完整的克隆地址"
            )
        return fetch_url(provider, repository, server_url, use_ssh=False)

    parsed = urlparse(repository)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"无效的 repository 地址 '{repository}'，需要完整的克隆地址")
    return ensure_dot_git(repository)


def is_same_repository(configured: str, clone_url: str, event_url: str) -> bool:
    """判断配置的仓库是否为触发工作流的仓库（忽略 .git 后缀）"""
    if not event_url:
        return False
    if configured == event_url:
        return True
    return strip_dot_git(clone_url) == strip_dot_git(event_url)
