"""已有工作区的复用 / 重建判定

按顺序检查，任何一步失败都会置位不可撤销的 "需要重建" 标志，
之后的检查全部跳过；重建时只清空目录内容，目录本身保留（可能是当前工作目录）。
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from scm_checkout.core.exceptions import ExecutionError
from scm_checkout.core.protocols import RepositoryCommands

logger = logging.getLogger(__name__)

LOCK_FILES = ("index.lock", "shallow.lock")

_RECREATE_MSG = "无法整理已有仓库，将重新创建"


class _Recreate(Exception):
    """内部信号：需要重建"""


def _check_git_dir(path: Path) -> None:
    if not (path / ".git").is_dir():
        raise _Recreate(".git 目录不存在")


def _check_origin(git: RepositoryCommands, url: str) -> None:
    try:
        origin = git.get_config(False, "remote.origin.url").strip()
    except ExecutionError as e:
        raise _Recreate(f"读取 remote.origin.url 失败: {e}") from e
    if origin != url:
        raise _Recreate(f"origin 地址不一致: '{origin}' != '{url}'")


def _remove_stale_locks(path: Path) -> None:
    for name in LOCK_FILES:
        lock = path / ".git" / name
        if not lock.exists():
            continue
        try:
            lock.unlink()
            logger.info("已删除残留锁文件: %s", lock)
        except OSError as e:
            raise _Recreate(f"无法删除 '{lock}': {e}") from e


def _detach(git: RepositoryCommands) -> None:
    try:
        if not git.is_detached():
            git.checkout_detach()
    except ExecutionError as e:
        raise _Recreate(_RECREATE_MSG) from e


def _delete_local_branches(git: RepositoryCommands) -> None:
    try:
        for branch in git.branch_list(False):
            git.branch_delete(False, branch)
    except ExecutionError as e:
        raise _Recreate(_RECREATE_MSG) from e


def _delete_conflicting_remote_branches(git: RepositoryCommands, ref: str) -> None:
    """删除与目标分支互为路径前缀的远程跟踪分支

    例: 目标为 refs/heads/foo 时删除 origin/foo/bar，
    目标为 refs/heads/foo/bar 时删除 origin/foo。
    """
    if not ref.startswith("refs/"):
        ref = "refs/heads/" + ref
    if not ref.startswith("refs/heads/"):
        return
    name1 = ref[len("refs/heads/"):].lower()
    try:
        for branch in git.branch_list(True):
            name2 = branch.removeprefix("origin/").lower()
            if name1.startswith(name2 + "/") or name2.startswith(name1 + "/"):
                git.branch_delete(True, branch)
    except ExecutionError as e:
        raise _Recreate(_RECREATE_MSG) from e


def _check_submodules(git: RepositoryCommands) -> None:
    try:
        git.submodule_status()
    except ExecutionError as e:
        raise _Recreate("子模块状态异常，删除已有文件") from e


def _clean(git: RepositoryCommands, path: Path) -> None:
    try:
        git.clean()
    except ExecutionError as e:
        logger.warning(
            "clean 失败，可能原因: 路径过长、权限问题或文件被占用。"
            "可在 '%s' 下手动执行 'git clean -ffdx' 排查", path,
        )
        raise _Recreate(_RECREATE_MSG) from e
    try:
        git.reset()
    except ExecutionError as e:
        raise _Recreate(_RECREATE_MSG) from e


def clear_directory(path: Path) -> None:
    """删除目录下的全部内容，保留目录本身"""
    entries = list(path.iterdir())
    if not entries:
        return
    logger.info("删除 '%s' 下的全部内容", path)
    for entry in entries:
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def prepare_existing_directory(
    git: RepositoryCommands, repository_path: str, repository_url: str,
    clean: bool, ref: str,
) -> bool:
    """整理已有工作区

    返回 True 表示仓库可复用，False 表示目录内容已被清空、需要重新初始化。
    """
    path = Path(repository_path)
    try:
        _check_git_dir(path)
        _check_origin(git, repository_url)
        _remove_stale_locks(path)
        logger.info("删除之前创建的 ref，避免冲突")
        _detach(git)
        _delete_local_branches(git)
        _delete_conflicting_remote_branches(git, ref)
        _check_submodules(git)
        if clean:
            _clean(git, path)
    except _Recreate as e:
        logger.info("需要重建仓库: %s", e)
        clear_directory(path)
        return False
    return True
