"""git 命令行封装：RepositoryCommands 的默认实现

职责：
- 把每个语义化操作翻译为显式参数列表并经 CommandExecutor 执行
- 维护 git 子进程的工作目录与环境变量（GIT_SSH_COMMAND、RUNNER_TEMP 等）
- 非零退出统一转换为 ExecutionError，不做重试
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
from pathlib import Path

from scm_checkout.core.exceptions import ConfigError, ExecutionError
from scm_checkout.core.models import FetchOptions
from scm_checkout.utils.shell import CommandExecutor, CommandResult, get_executor

logger = logging.getLogger(__name__)

_ALL_TAGS_REFSPEC = "+refs/tags/*:refs/tags/*"


def _scope(global_: bool) -> str:
    return "--global" if global_ else "--local"


class GitCLI:
    """git 可执行文件的上下文（cwd + env）"""

    def __init__(
        self,
        cwd: str = "",
        *,
        env: dict[str, str] | None = None,
        executor: CommandExecutor | None = None,
        exe: str = "",
        merge_binary: str | None = None,
    ) -> None:
        resolved = exe or shutil.which("git")
        if not resolved:
            raise ConfigError("在 PATH 中找不到 git 可执行文件")
        self._exe = resolved
        self._merge_binary = (shutil.which("merge") or "") if merge_binary is None else merge_binary
        self._cwd = cwd or os.getcwd()
        self._env = dict(os.environ if env is None else env)
        self._executor = executor or get_executor()

    # ---- 上下文 ----

    @property
    def cwd(self) -> str:
        return self._cwd

    @property
    def executable(self) -> str:
        return self._exe

    @property
    def has_merge_binary(self) -> bool:
        return bool(self._merge_binary)

    def set_env(self, key: str, value: str) -> None:
        self._env[key] = value

    # ---- 执行 ----

    def _exec(self, exe: str, args: list[str], *, stream_stderr: bool = False) -> CommandResult:
        cmd = [exe, *args]
        logger.info("%s", shlex.join(cmd))
        if stream_stderr:
            r = self._executor.execute(cmd, cwd=self._cwd, env=self._env, stream_stderr=True)
        else:
            r = self._executor.execute(cmd, cwd=self._cwd, env=self._env)
        logger.debug("rc=%d", r.returncode)
        if r.stdout:
            logger.debug("%s", r.stdout.rstrip())
        return r

    def _probe(self, *args: str) -> CommandResult:
        """执行但不检查退出码"""
        return self._exec(self._exe, list(args))

    def _run(self, *args: str, stream_stderr: bool = False) -> str:
        """执行 git，非零退出码抛 ExecutionError

        stream_stderr 用于 fetch / checkout 等耗时命令，进度直接输出到 CI 日志。
        """
        r = self._exec(self._exe, list(args), stream_stderr=stream_stderr)
        if not r.success:
            sub = args[2] if args[0] == "-c" else args[0]
            detail = r.stderr.strip()[:500] or "详见上方 git 输出"
            raise ExecutionError(
                f"git {sub} 失败 (rc={r.returncode}): {detail}",
                returncode=r.returncode, stderr=r.stderr,
            )
        return r.stdout

    # ---- 分支 / tag ----

    def branch_list(self, remote: bool) -> list[str]:
        target = "--remotes=origin" if remote else "--branches"
        output = self._run("rev-parse", "--symbolic-full-name", target)
        result: list[str] = []
        for line in output.splitlines():
            branch = line.strip()
            if not branch:
                continue
            if branch.startswith("refs/heads/"):
                branch = branch[len("refs/heads/"):]
            elif branch.startswith("refs/remotes/"):
                branch = branch[len("refs/remotes/"):]
            result.append(branch)
        return result

    def branch_delete(self, remote: bool, branch: str) -> None:
        args = ["branch", "--delete", "--force"]
        if remote:
            args.append("--remote")
        self._run(*args, branch)

    def branch_exists(self, remote: bool, pattern: str) -> bool:
        args = ["branch", "--list"]
        if remote:
            args.append("--remote")
        return self._run(*args, pattern).strip() != ""

    def tag_exists(self, pattern: str) -> bool:
        return self._run("tag", "--list", pattern).strip() != ""

    def branch_get_default(self, repository_url: str) -> str:
        output = self._run(
            "ls-remote", "--quiet", "--exit-code", "--symref", repository_url, "HEAD",
        )
        for line in output.splitlines():
            line = line.strip()
            if line.startswith("ref:") and line.endswith("HEAD"):
                return line[len("ref:"):-len("HEAD")].strip()
        raise ExecutionError(f"获取默认分支时输出异常: {output[:200]}")

    # ---- 配置 ----

    def get_config(self, global_: bool, key: str) -> str:
        r = self._probe("config", _scope(global_), "--get", "--null", key)
        if r.returncode == 1:
            return ""
        if not r.success:
            raise ExecutionError(
                f"git config --get {key} 失败 (rc={r.returncode})",
                returncode=r.returncode, stderr=r.stderr,
            )
        return r.stdout.rstrip("\x00")

    def set_config_str(self, global_: bool, key: str, value: str) -> None:
        self._run("config", _scope(global_), key, value)

    def set_config_bool(self, global_: bool, key: str, value: bool) -> None:
        self._run("config", _scope(global_), "--type", "bool", key, str(value).lower())

    def set_config_int(self, global_: bool, key: str, value: int) -> None:
        self._run("config", _scope(global_), "--type", "int", key, str(value))

    def add_config_str(self, global_: bool, key: str, value: str) -> None:
        self._run("config", _scope(global_), "--add", key, value)

    def unset_config(self, global_: bool, key: str) -> bool:
        r = self._probe("config", _scope(global_), "--unset-all", key)
        if r.success:
            return True
        # 5: key 不存在
        if r.returncode == 5:
            return False
        raise ExecutionError(
            f"git config --unset-all {key} 失败 (rc={r.returncode})",
            returncode=r.returncode, stderr=r.stderr,
        )

    def global_config_path(self) -> str:
        """返回全局配置文件路径: $HOME/.gitconfig 优先，其次 $XDG_CONFIG_HOME/git/config"""
        home = self._env.get("HOME", "")
        if home:
            p = Path(home) / ".gitconfig"
            if p.is_file():
                return str(p)
        xdg = self._env.get("XDG_CONFIG_HOME", "")
        if xdg:
            p = Path(xdg) / "git" / "config"
            if p.is_file():
                return str(p)
        raise ConfigError("找不到全局 git 配置文件 $HOME/.gitconfig")

    # ---- 工作区状态 ----

    def is_detached(self) -> bool:
        output = self._run("rev-parse", "--symbolic-full-name", "--verify", "--quiet", "HEAD")
        return not output.strip().startswith("refs/heads/")

    def checkout_detach(self) -> None:
        self._run("checkout", "--detach")

    def submodule_status(self) -> None:
        self._run("submodule", "status")

    def sha_exists(self, sha: str) -> bool:
        return self._probe("rev-parse", "--verify", "--quiet", f"{sha}^{{object}}").success

    def rev_parse(self, ref: str) -> str:
        return self._run("rev-parse", ref).strip()

    def clean(self) -> None:
        self._run("clean", "-ffdx")

    def reset(self) -> None:
        self._run("reset", "--hard", "HEAD")

    # ---- 初始化 / 拉取 / 检出 ----

    def init(self, path: str) -> None:
        self._run("init", "--quiet", path)

    def remote_add(self, name: str, url: str) -> None:
        self._run("remote", "add", name, url)

    def fetch(self, refspec: list[str], options: FetchOptions) -> None:
        args = ["-c", "protocol.version=2", "fetch"]
        if _ALL_TAGS_REFSPEC not in refspec:
            args.append("--no-tags")
        args += ["--prune", "--progress", "--no-recurse-submodules"]
        if options.filter:
            args.append(f"--filter={options.filter}")
        if options.fetch_depth > 0:
            args.append(f"--depth={options.fetch_depth}")
        elif self._run("rev-parse", "--is-shallow-repository").strip() == "true":
            args.append("--unshallow")
        args.append(options.local_repository or "origin")
        args += refspec
        self._run(*args, stream_stderr=True)

    def checkout(self, ref: str, start_point: str) -> None:
        args = ["checkout", "--progress", "--force"]
        if start_point:
            args += ["-B", ref, start_point]
        else:
            args.append(ref)
        self._run(*args, stream_stderr=True)

    def lfs_install(self) -> None:
        self._run("lfs", "install", "--local")

    def lfs_fetch(self, ref: str) -> None:
        self._run("lfs", "fetch", "origin", ref, stream_stderr=True)

    def sparse_checkout(self, patterns: list[str]) -> None:
        self._run("sparse-checkout", "set", *patterns)

    def sparse_checkout_non_cone(self, patterns: list[str]) -> None:
        self.set_config_bool(False, "core.sparseCheckout", True)
        rel = self._run("rev-parse", "--git-path", "info/sparse-checkout").strip()
        path = Path(rel) if Path(rel).is_absolute() else Path(self._cwd) / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write("\n" + "\n".join(patterns) + "\n")

    def log1(self, *fmt: str) -> str:
        return self._run("log", "-1", *fmt)

    def get_last_commit_id(self) -> str:
        return self.log1("--format=%H").strip()

    def get_current_branch(self) -> str:
        return self._run("branch", "--show-current").strip()

    # ---- 子模块 ----

    def submodule_sync(self, recursive: bool) -> None:
        args = ["submodule", "sync"]
        if recursive:
            args.append("--recursive")
        self._run(*args)

    def submodule_update(self, fetch_depth: int, recursive: bool) -> None:
        args = ["-c", "protocol.version=2", "submodule", "update", "--init", "--force"]
        if fetch_depth > 0:
            args.append(f"--depth={fetch_depth}")
        if recursive:
            args.append("--recursive")
        self._run(*args, stream_stderr=True)

    def submodule_foreach(self, recursive: bool, *cmd: str) -> str:
        args = ["submodule", "foreach"]
        if recursive:
            args.append("--recursive")
        return self._run(*args, *cmd)

    # ---- 外部 merge 助手 ----

    def merge(
        self, repository_url: str, base_sha: str, head_sha: str,
        committer_date: str, working_dir: str,
    ) -> str:
        """调用外部 merge 助手，返回其 stdout（空串表示未做本地合并）"""
        if not self._merge_binary:
            raise ExecutionError("找不到 merge 助手")
        r = self._exec(self._merge_binary, [
            "merge", "--clone-url", repository_url,
            "--base-sha", base_sha,
            "--head-sha", head_sha,
            "--committer-date", committer_date,
            "--working-dir", working_dir,
        ])
        if not r.success:
            raise ExecutionError(
                f"merge 助手失败 (rc={r.returncode}): {r.stderr.strip()[:500]}",
                returncode=r.returncode, stderr=r.stderr,
            )
        return r.stdout
