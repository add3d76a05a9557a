"""领域协议定义

检出引擎通过 RepositoryCommands 协议操作 git，每个方法对应一个语义化的 git 操作。
ref/refspec 决策逻辑和仓库状态调和只依赖该协议，测试时可注入假实现，
无需真实启动子进程。

使用 typing.Protocol 而非 ABC，GitCLI 无需继承即可满足协议。
"""

from __future__ import annotations

from typing import Protocol

from scm_checkout.core.models import FetchOptions


class RepositoryCommands(Protocol):
    """仓库命令能力接口"""

    @property
    def cwd(self) -> str:
        """当前仓库目录"""
        ...

    @property
    def executable(self) -> str:
        """git 可执行文件路径"""
        ...

    def set_env(self, key: str, value: str) -> None: ...

    # ---- 分支 / tag ----

    def branch_list(self, remote: bool) -> list[str]:
        """列出本地分支或 origin 远程跟踪分支（去掉 refs/heads/ 或 refs/remotes/ 前缀）"""
        ...

    def branch_delete(self, remote: bool, branch: str) -> None: ...

    def branch_exists(self, remote: bool, pattern: str) -> bool: ...

    def tag_exists(self, pattern: str) -> bool: ...

    def branch_get_default(self, repository_url: str) -> str:
        """通过 ls-remote --symref 获取远端默认分支"""
        ...

    # ---- 配置 ----

    def get_config(self, global_: bool, key: str) -> str:
        """读取配置，key 不存在时返回空串"""
        ...

    def set_config_str(self, global_: bool, key: str, value: str) -> None: ...

    def set_config_bool(self, global_: bool, key: str, value: bool) -> None: ...

    def set_config_int(self, global_: bool, key: str, value: int) -> None: ...

    def add_config_str(self, global_: bool, key: str, value: str) -> None: ...

    def unset_config(self, global_: bool, key: str) -> bool: ...

    def global_config_path(self) -> str: ...

    # ---- 工作区状态 ----

    def is_detached(self) -> bool: ...

    def checkout_detach(self) -> None: ...

    def submodule_status(self) -> None: ...

    def sha_exists(self, sha: str) -> bool: ...

    def rev_parse(self, ref: str) -> str: ...

    def clean(self) -> None: ...

    def reset(self) -> None: ...

    # ---- 初始化 / 拉取 / 检出 ----

    def init(self, path: str) -> None: ...

    def remote_add(self, name: str, url: str) -> None: ...

    def fetch(self, refspec: list[str], options: FetchOptions) -> None: ...

    def checkout(self, ref: str, start_point: str) -> None: ...

    def lfs_install(self) -> None: ...

    def lfs_fetch(self, ref: str) -> None: ...

    def sparse_checkout(self, patterns: list[str]) -> None: ...

    def sparse_checkout_non_cone(self, patterns: list[str]) -> None: ...

    def log1(self, *fmt: str) -> str: ...

    def get_last_commit_id(self) -> str: ...

    def get_current_branch(self) -> str: ...

    # ---- 子模块 ----

    def submodule_sync(self, recursive: bool) -> None: ...

    def submodule_update(self, fetch_depth: int, recursive: bool) -> None: ...

    def submodule_foreach(self, recursive: bool, *cmd: str) -> str: ...

    # ---- 外部 merge 助手 ----

    @property
    def has_merge_binary(self) -> bool: ...

    def merge(
        self, repository_url: str, base_sha: str, head_sha: str,
        committer_date: str, working_dir: str,
    ) -> str: ...
