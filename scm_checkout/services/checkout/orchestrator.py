"""检出编排器

按固定顺序执行：校验 → 准备目录 → 调和已有仓库 → 认证 → fetch → checkout →
输出 → 子模块 → 收尾检查。所有凭据的清理动作登记在 TeardownStack 上，
任何退出路径都会按 LIFO 回滚。
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import uuid
from collections.abc import Callable
from pathlib import Path

from scm_checkout.core.config import CheckoutConfig, CheckoutEnvironment
from scm_checkout.core.exceptions import ConfigError, ExecutionError
from scm_checkout.core.models import FetchOptions, MergeResult
from scm_checkout.core.protocols import RepositoryCommands
from scm_checkout.services.checkout import urls
from scm_checkout.services.checkout.reconciler import prepare_existing_directory
from scm_checkout.services.checkout.refs import (
    get_checkout_info,
    get_ref_spec,
    get_ref_spec_for_all_history,
    ref_matches_commit,
)
from scm_checkout.services.credentials.ssh import setup_ssh
from scm_checkout.services.credentials.teardown import TeardownStack
from scm_checkout.services.credentials.token import (
    TokenAuth,
    configure_submodule_token_auth,
    configure_token,
)
from scm_checkout.services.git.cli import GitCLI
from scm_checkout.utils.logger import log_group
from scm_checkout.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

GitFactory = Callable[[str], RepositoryCommands]

_PR_MERGE_REF_RE = re.compile(r"^refs/pull/\d+/merge$")


def parse_merge_output(output: str) -> MergeResult:
    """解析 merge 助手的 JSON 输出"""
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise ExecutionError(f"无法解析 merge 助手输出: {e}") from e
    if not isinstance(data, dict):
        raise ExecutionError("merge 助手输出不是 JSON 对象")
    return MergeResult(
        merge_commit=str(data.get("merge_commit") or ""),
        fetched_loc=str(data.get("fetched_loc") or ""),
    )


class CheckoutOrchestrator:
    """一次检出的完整流程"""

    def __init__(
        self,
        config: CheckoutConfig,
        env: CheckoutEnvironment,
        *,
        git_factory: GitFactory | None = None,
        executor: CommandExecutor | None = None,
        run_id: str = "",
    ) -> None:
        self._cfg = config
        self._env = env
        self._executor = executor
        self._git_factory = git_factory or (lambda cwd: GitCLI(cwd, executor=executor))
        self._run_id = run_id or str(uuid.uuid4())

    @property
    def config(self) -> CheckoutConfig:
        return self._cfg

    def run(self) -> None:
        cfg = self._cfg
        cfg.validate(self._env)
        if not self._env.home:
            raise ConfigError("未设置环境变量 HOME")

        logger.info("同步仓库: %s", cfg.clone_url)
        repo_path = self._prepare_directory()

        git = self._git_factory(str(repo_path))
        git.set_env("RUNNER_TEMP", self._env.temp_dir)
        if cfg.set_safe_directory:
            logger.info("把仓库目录加入全局 git 配置的 safe.directory")
            git.add_config_str(True, "safe.directory", str(repo_path))

        with TeardownStack() as stack:
            self._sync(git, stack, repo_path)

    # ---- 目录 ----

    def _prepare_directory(self) -> Path:
        workspace = Path(self._env.workspace).resolve()
        repo_path = (workspace / self._cfg.path).resolve()
        if repo_path != workspace and workspace not in repo_path.parents:
            raise ConfigError(f"仓库路径 '{repo_path}' 不在工作区 '{workspace}' 之下")

        try:
            if repo_path.exists() and not repo_path.is_dir():
                logger.info("删除占用仓库路径的文件: %s", repo_path)
                repo_path.unlink()
            repo_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"无法创建仓库目录 '{repo_path}': {e}") from e
        logger.debug("仓库路径 = %s", repo_path)
        return repo_path

    # ---- 主流程 ----

    def _sync(self, git: RepositoryCommands, stack: TeardownStack, repo_path: Path) -> None:
        cfg = self._cfg

        prepare_existing_directory(git, str(repo_path), cfg.clone_url, cfg.clean, cfg.ref)

        if not (repo_path / ".git").exists():
            with log_group("初始化仓库", logger):
                git.init(str(repo_path))
                git.remote_add("origin", cfg.clone_url)

        with log_group("关闭自动垃圾回收", logger):
            try:
                git.set_config_int(False, "gc.auto", 0)
            except ExecutionError as e:
                logger.warning("无法关闭 git 自动垃圾回收，fetch 可能因 gc 变慢: %s", e)

        with log_group("配置认证", logger):
            self._setup_auth(git, stack)

        if not cfg.ref and not cfg.commit:
            with log_group("确定默认分支", logger):
                cfg.ref = git.branch_get_default(urls.normalize_ssh_url(cfg.clone_url))
                logger.info("默认分支: %s", cfg.ref)

        if cfg.lfs:
            git.lfs_install()

        options = FetchOptions(filter="blob:none" if cfg.sparse_patterns else "")
        options.local_repository = self._local_merge(git, stack)

        with log_group("拉取仓库", logger):
            self._fetch(git, options)

        with log_group("确定检出目标", logger):
            info = get_checkout_info(git, cfg.ref, cfg.commit)

        # 稀疏检出时 LFS 对象由 checkout 按需拉取
        if cfg.lfs and not cfg.sparse_patterns:
            with log_group("拉取 LFS 对象", logger):
                git.lfs_fetch(info.start_point or info.ref)

        if cfg.sparse_patterns:
            with log_group("配置稀疏检出", logger):
                if cfg.sparse_checkout_cone_mode:
                    git.sparse_checkout(cfg.sparse_patterns)
                else:
                    git.sparse_checkout_non_cone(cfg.sparse_patterns)

        with log_group("检出", logger):
            git.checkout(info.ref, info.start_point)

        self._write_outputs(git)

        if cfg.submodules_enabled:
            self._update_submodules(git)

        logger.info("HEAD: %s", git.get_last_commit_id())
        self._check_pr_merge_message(git)

    # ---- 认证 ----

    def _token_auth(self) -> TokenAuth:
        cfg = self._cfg
        return TokenAuth(
            provider=cfg.provider,
            scm_token=cfg.token,
            token_auth_type=cfg.token_auth_type,
            api_url=cfg.cloudbees_api_url,
            api_token=cfg.cloudbees_api_token,
        )

    def _setup_auth(self, git: RepositoryCommands, stack: TeardownStack) -> None:
        cfg = self._cfg
        if cfg.use_ssh:
            stack.push("SSH 私钥", setup_ssh(
                git,
                key=cfg.ssh_key,
                known_hosts=cfg.ssh_known_hosts,
                strict=cfg.ssh_strict,
                home=self._env.home,
                temp_dir=self._env.temp_dir,
                prefix=self._run_id,
                persist=cfg.persist_credentials,
                executor=self._executor,
            ))

        token = self._token_auth()
        server_url = cfg.credential_server_url()
        if not token.present or not server_url:
            logger.debug("没有令牌类认证材料，跳过凭据助手配置")
            return
        teardown, _ = configure_token(
            git, global_=False, server_url=server_url, token=token,
            home=self._env.home, executor=self._executor,
        )
        if not cfg.persist_credentials:
            stack.push("凭据助手", teardown)

    # ---- 本地合并 ----

    def _local_merge(self, git: RepositoryCommands, stack: TeardownStack) -> str:
        """有 PR 信息且存在 merge 助手时在本地合并，返回 fetch 来源目录"""
        cfg = self._cfg
        pr = cfg.event_context.get("pullRequest")
        if not isinstance(pr, dict) or not git.has_merge_binary:
            return ""
        base_sha = str(pr.get("baseSha") or "")
        head_sha = str(pr.get("headSha") or "")
        if not base_sha or not head_sha:
            return ""

        working_dir = Path(self._env.temp_dir) / f"{self._run_id}_merge"
        stack.push("merge 工作目录", lambda: shutil.rmtree(working_dir) if working_dir.exists() else None)
        with log_group("本地合并 PR", logger):
            output = git.merge(
                cfg.clone_url, base_sha, head_sha,
                str(pr.get("committerDate") or ""), str(working_dir),
            ).strip()
        if not output:
            return ""

        result = parse_merge_output(output)
        if not result.merge_commit:
            return ""
        if not result.fetched_loc:
            raise ExecutionError("merge 助手输出缺少 fetched_loc")
        cfg.commit = result.merge_commit
        cfg.ref = ""
        cfg.local_merge = True
        logger.info("PR 已在本地合并为 commit: %s", result.merge_commit)
        return result.fetched_loc

    # ---- fetch ----

    def _fetch(self, git: RepositoryCommands, options: FetchOptions) -> None:
        cfg = self._cfg
        if cfg.fetch_depth <= 0:
            git.fetch(get_ref_spec_for_all_history(cfg.ref, cfg.commit), options)
            # 全量 fetch 后 ref 可能已被 push 移动，改用钉住 commit 的 refspec 再拉一次
            if not ref_matches_commit(git, cfg.ref, cfg.commit):
                logger.info("'%s' 已不指向 %s，按 commit 重新拉取", cfg.ref, cfg.commit)
                git.fetch(get_ref_spec(cfg.ref, cfg.commit), options)
            return
        options.fetch_depth = cfg.fetch_depth
        git.fetch(get_ref_spec(cfg.ref, cfg.commit), options)

    # ---- 输出 ----

    def _write_outputs(self, git: RepositoryCommands) -> None:
        """写出 repository-url / commit / ref，失败只告警"""
        cfg = self._cfg
        if not self._env.outputs_dir:
            logger.debug("未设置 CLOUDBEES_OUTPUTS，跳过输出")
            return
        try:
            out = Path(self._env.outputs_dir)
            out.mkdir(parents=True, exist_ok=True)
            commit = "" if cfg.local_merge else (cfg.commit or git.get_last_commit_id())
            ref = cfg.ref or git.get_current_branch()
            for name, value in (("repository-url", cfg.clone_url), ("commit", commit), ("ref", ref)):
                p = out / name
                p.write_text(value, encoding="utf-8")
                os.chmod(p, 0o640)
        except (OSError, ExecutionError) as e:
            logger.warning("写出检出结果失败: %s", e)

    # ---- 子模块 ----

    def _update_submodules(self, git: RepositoryCommands) -> None:
        cfg = self._cfg
        recursive = cfg.submodules_recursive
        token = self._token_auth()
        server_url = cfg.credential_server_url()

        with TeardownStack() as scope:
            if token.present and server_url:
                with log_group("配置子模块认证", logger):
                    teardown, _ = configure_token(
                        git, global_=True, server_url=server_url, token=token,
                        home=self._env.home, executor=self._executor,
                    )
                    if not cfg.persist_credentials:
                        scope.push("子模块凭据助手", teardown)

            with log_group("拉取子模块", logger):
                git.submodule_sync(recursive)
                git.submodule_update(cfg.fetch_depth, recursive)
                git.submodule_foreach(recursive, git.executable, "config", "--local", "gc.auto", "0")

        if cfg.persist_credentials and cfg.token and server_url:
            with log_group("写入子模块凭据", logger):
                changed = configure_submodule_token_auth(git, recursive, server_url, cfg.token)
                logger.debug("已更新 %d 个子模块配置", len(changed))

    # ---- 收尾检查 ----

    def _check_pr_merge_message(self, git: RepositoryCommands) -> None:
        """GitHub PR merge ref 的提交信息应为 'Merge <head> into <base>'，不一致只记录"""
        cfg = self._cfg
        if cfg.provider != urls.GITHUB or cfg.local_merge:
            return
        if not _PR_MERGE_REF_RE.match(cfg.ref):
            return
        pr = cfg.event_context.get("pullRequest")
        if not isinstance(pr, dict):
            return
        head_sha = str(pr.get("headSha") or "")
        base_sha = str(pr.get("baseSha") or "")
        if not head_sha or not base_sha:
            return
        try:
            subject = git.log1("--format=%s").strip()
        except ExecutionError as e:
            logger.warning("无法读取合并提交信息: %s", e)
            return
        expected = f"Merge {head_sha} into {base_sha}"
        if subject != expected:
            logger.warning("PR 合并提交信息与预期不一致: '%s'，预期 '%s'", subject, expected)
