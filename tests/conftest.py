"""测试套共享 fixture：内存版 git 仓库

FakeGit 满足 RepositoryCommands 协议，用字典和列表模拟仓库状态，
记录每一次调用，便于断言调用顺序；fail 集合中的操作会抛 ExecutionError。
"""

from __future__ import annotations

from pathlib import Path

import pytest

from scm_checkout.core.exceptions import ExecutionError
from scm_checkout.core.models import FetchOptions


class FakeGit:
    def __init__(self, cwd: str = "") -> None:
        self.cwd = cwd
        self.executable = "git"
        self.has_merge_binary = False
        self.env: dict[str, str] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.fail: set[str] = set()

        self.local_config: dict[str, list[str]] = {}
        self.global_config: dict[str, list[str]] = {}
        self.global_path = ""
        self.local_branches: list[str] = []
        self.remote_branches: list[str] = []
        self.tags: list[str] = []
        self.refs: dict[str, str] = {}
        self.shas: set[str] = set()
        self.detached = True
        self.default_branch = "refs/heads/main"
        self.head = "0" * 40
        self.current_branch = "main"
        self.subject = ""
        self.merge_output = ""
        self.foreach_output = ""

    def _record(self, name: str, *args: object) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            raise ExecutionError(f"git {name} 失败 (rc=1): boom", returncode=1, stderr="boom")

    def called(self, name: str) -> list[tuple]:
        return [args for n, args in self.calls if n == name]

    def names(self) -> list[str]:
        return [n for n, _ in self.calls]

    def _cfg(self, global_: bool) -> dict[str, list[str]]:
        return self.global_config if global_ else self.local_config

    def set_env(self, key: str, value: str) -> None:
        self.env[key] = value

    # ---- 分支 / tag ----

    def branch_list(self, remote: bool) -> list[str]:
        self._record("branch_list", remote)
        return list(self.remote_branches if remote else self.local_branches)

    def branch_delete(self, remote: bool, branch: str) -> None:
        self._record("branch_delete", remote, branch)
        (self.remote_branches if remote else self.local_branches).remove(branch)

    def branch_exists(self, remote: bool, pattern: str) -> bool:
        self._record("branch_exists", remote, pattern)
        return pattern in (self.remote_branches if remote else self.local_branches)

    def tag_exists(self, pattern: str) -> bool:
        self._record("tag_exists", pattern)
        return pattern in self.tags

    def branch_get_default(self, repository_url: str) -> str:
        self._record("branch_get_default", repository_url)
        return self.default_branch

    # ---- 配置 ----

    def get_config(self, global_: bool, key: str) -> str:
        self._record("get_config", global_, key)
        values = self._cfg(global_).get(key)
        return values[-1] if values else ""

    def set_config_str(self, global_: bool, key: str, value: str) -> None:
        self._record("set_config_str", global_, key, value)
        self._cfg(global_)[key] = [value]

    def set_config_bool(self, global_: bool, key: str, value: bool) -> None:
        self._record("set_config_bool", global_, key, value)
        self._cfg(global_)[key] = ["true" if value else "false"]

    def set_config_int(self, global_: bool, key: str, value: int) -> None:
        self._record("set_config_int", global_, key, value)
        self._cfg(global_)[key] = [str(value)]

    def add_config_str(self, global_: bool, key: str, value: str) -> None:
        self._record("add_config_str", global_, key, value)
        self._cfg(global_).setdefault(key, []).append(value)

    def unset_config(self, global_: bool, key: str) -> bool:
        self._record("unset_config", global_, key)
        return self._cfg(global_).pop(key, None) is not None

    def global_config_path(self) -> str:
        return self.global_path

    # ---- 工作区状态 ----

    def is_detached(self) -> bool:
        self._record("is_detached")
        return self.detached

    def checkout_detach(self) -> None:
        self._record("checkout_detach")
        self.detached = True

    def submodule_status(self) -> None:
        self._record("submodule_status")

    def sha_exists(self, sha: str) -> bool:
        self._record("sha_exists", sha)
        return sha in self.shas

    def rev_parse(self, ref: str) -> str:
        self._record("rev_parse", ref)
        return self.refs.get(ref, "")

    def clean(self) -> None:
        self._record("clean")

    def reset(self) -> None:
        self._record("reset")

    # ---- 初始化 / 拉取 / 检出 ----

    def init(self, path: str) -> None:
        self._record("init", path)
        (Path(path) / ".git").mkdir(parents=True, exist_ok=True)

    def remote_add(self, name: str, url: str) -> None:
        self._record("remote_add", name, url)
        self.local_config[f"remote.{name}.url"] = [url]

    def fetch(self, refspec: list[str], options: FetchOptions) -> None:
        self._record("fetch", list(refspec), options)

    def checkout(self, ref: str, start_point: str) -> None:
        self._record("checkout", ref, start_point)

    def lfs_install(self) -> None:
        self._record("lfs_install")

    def lfs_fetch(self, ref: str) -> None:
        self._record("lfs_fetch", ref)

    def sparse_checkout(self, patterns: list[str]) -> None:
        self._record("sparse_checkout", list(patterns))

    def sparse_checkout_non_cone(self, patterns: list[str]) -> None:
        self._record("sparse_checkout_non_cone", list(patterns))

    def log1(self, *fmt: str) -> str:
        self._record("log1", *fmt)
        return self.subject

    def get_last_commit_id(self) -> str:
        self._record("get_last_commit_id")
        return self.head

    def get_current_branch(self) -> str:
        self._record("get_current_branch")
        return self.current_branch

    # ---- 子模块 ----

    def submodule_sync(self, recursive: bool) -> None:
        self._record("submodule_sync", recursive)

    def submodule_update(self, fetch_depth: int, recursive: bool) -> None:
        self._record("submodule_update", fetch_depth, recursive)

    def submodule_foreach(self, recursive: bool, *cmd: str) -> str:
        self._record("submodule_foreach", recursive, *cmd)
        return self.foreach_output

    # ---- merge ----

    def merge(
        self, repository_url: str, base_sha: str, head_sha: str,
        committer_date: str, working_dir: str,
    ) -> str:
        self._record("merge", repository_url, base_sha, head_sha, committer_date, working_dir)
        return self.merge_output


@pytest.fixture()
def fake_git(tmp_path: Path) -> FakeGit:
    return FakeGit(str(tmp_path))
