"""核心数据模型

检出流程中跨模块传递的实体集中定义在此处。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# fetch 映射列表，如 ["+refs/heads/*:refs/remotes/origin/*"]
RefSpec = list[str]

# 触发事件元数据（来自 CLOUDBEES_EVENT_PATH 指向的 JSON）
EventContext = dict[str, Any]


class RefKind(str, Enum):
    """ref 的分类"""

    BRANCH = "branch"  # refs/heads/*
    PULL = "pull"  # refs/pull/*
    TAG = "tag"  # refs/tags/*
    EXPLICIT = "explicit"  # 其它 refs/*
    BARE = "bare"  # 未限定的名字，需要探测分支或 tag
    NONE = "none"


@dataclass
class CheckoutInfo:
    """本地检出目标

    ref 为 -B 创建的本地分支名（不带 refs/ 前缀）或 tag/commit；
    start_point 仅在通过远程跟踪 ref 解析时设置。
    """

    ref: str
    start_point: str = ""


@dataclass
class FetchOptions:
    """git fetch 选项"""

    filter: str = ""
    fetch_depth: int = 0
    local_repository: str = ""  # 非空时从本地合并目录拉取而非 origin


@dataclass
class MergeResult:
    """外部 merge 助手的输出"""

    merge_commit: str = ""
    fetched_loc: str = ""


@dataclass
class CredentialRecord:
    """git credential 协议的一条请求/响应

    参见 https://git-scm.com/docs/git-credential#IOFMT
    """

    protocol: str = ""
    host: str = ""  # 含端口
    path: str = ""
    username: str = ""
    password: str = ""
    password_expiry: datetime | None = None
    oauth_refresh_token: str = ""
    authtype: str = ""
    credential: str = ""
    # 仅由 git 传给助手，永不回写
    wwwauth: list[str] = field(default_factory=list)


@dataclass
class HelperConfigSection:
    """助手配置中按服务端 URL 前缀划分的一个子段"""

    name: str
    username: str = ""
    password: str = ""  # base64
    credential: str = ""  # base64，Bearer 令牌
    api_url: str = ""
    api_token: str = ""  # base64，自动化令牌

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> HelperConfigSection:
        return cls(
            name=name,
            username=str(data.get("username", "")),
            password=str(data.get("password", "")),
            credential=str(data.get("credential", "")),
            api_url=str(data.get("api_url", "")),
            api_token=str(data.get("api_token", "")),
        )

    def to_dict(self) -> dict[str, str]:
        """只输出非空字段"""
        raw = {
            "username": self.username,
            "password": self.password,
            "credential": self.credential,
            "api_url": self.api_url,
            "api_token": self.api_token,
        }
        return {k: v for k, v in raw.items() if v}
