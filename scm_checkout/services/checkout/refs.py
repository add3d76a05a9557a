"""ref / commit 解析

把用户给出的 {ref, commit} 转换为 fetch refspec 与本地检出目标。
前缀比较不区分大小写，截取名字时保留原始大小写。
"""

from __future__ import annotations

import logging

from scm_checkout.core.exceptions import RefNotFoundError, ResolutionError
from scm_checkout.core.models import CheckoutInfo, RefKind, RefSpec
from scm_checkout.core.protocols import RepositoryCommands

logger = logging.getLogger(__name__)

HEADS = "refs/heads/"
PULL = "refs/pull/"
TAGS = "refs/tags/"
REMOTE_ORIGIN = "refs/remotes/origin/"
REMOTE_PULL = "refs/remotes/pull/"

ALL_BRANCHES_REFSPEC = "+refs/heads/*:refs/remotes/origin/*"
ALL_TAGS_REFSPEC = "+refs/tags/*:refs/tags/*"


def classify_ref(ref: str) -> RefKind:
    if not ref:
        return RefKind.NONE
    lower = ref.lower()
    if lower.startswith(HEADS):
        return RefKind.BRANCH
    if lower.startswith(PULL):
        return RefKind.PULL
    if lower.startswith(TAGS):
        return RefKind.TAG
    if lower.startswith("refs/"):
        return RefKind.EXPLICIT
    return RefKind.BARE


def _require(ref: str, commit: str) -> None:
    if not ref and not commit:
        raise ResolutionError("ref 和 commit 不能同时为空")


def get_ref_spec(ref: str, commit: str) -> RefSpec:
    """窄 fetch 使用的 refspec"""
    kind = classify_ref(ref)

    if commit:
        if kind is RefKind.BRANCH:
            return [f"+{commit}:{REMOTE_ORIGIN}{ref[len(HEADS):]}"]
        if kind is RefKind.PULL:
            return [f"+{commit}:{REMOTE_PULL}{ref[len(PULL):]}"]
        if kind is RefKind.TAG:
            return [f"+{commit}:{ref}"]
        return [commit]

    if kind is RefKind.BARE:
        return [
            f"+{HEADS}{ref}*:{REMOTE_ORIGIN}{ref}*",
            f"+{TAGS}{ref}*:{TAGS}{ref}*",
        ]
    if kind is RefKind.BRANCH:
        return [f"+{ref}:{REMOTE_ORIGIN}{ref[len(HEADS):]}"]
    if kind is RefKind.PULL:
        return [f"+{ref}:{REMOTE_PULL}{ref[len(PULL):]}"]
    return [f"+{ref}:{ref}"]


def get_ref_spec_for_all_history(ref: str, commit: str) -> RefSpec:
    """全量 fetch：所有分支与 tag，PR 额外钉住一条"""
    specs = [ALL_BRANCHES_REFSPEC, ALL_TAGS_REFSPEC]
    if classify_ref(ref) is RefKind.PULL:
        name = ref[len(PULL):]
        source = commit or ref
        specs.append(f"+{source}:{REMOTE_PULL}{name}")
    return specs


def ref_matches_commit(git: RepositoryCommands, ref: str, commit: str) -> bool:
    """全量 fetch 之后确认 ref 仍指向期望的 commit

    返回 False 表示 ref 在两次操作之间被移动（push / force push），
    调用方需要用钉住 commit 的 refspec 再 fetch 一次。
    """
    _require(ref, commit)
    if not commit:
        return True
    if not ref:
        return git.sha_exists(commit)

    kind = classify_ref(ref)
    if kind is RefKind.BRANCH:
        branch = ref[len(HEADS):]
        if not git.branch_exists(True, f"origin/{branch}"):
            return False
        return git.rev_parse(f"{REMOTE_ORIGIN}{branch}") == commit
    if kind is RefKind.PULL:
        # 已按 commit 拉取，视为一致
        return True
    if kind is RefKind.TAG:
        if not git.tag_exists(ref[len(TAGS):]):
            return False
        return git.rev_parse(ref) == commit
    raise ResolutionError(f"校验 ref 时遇到无法识别的格式 '{ref}'")


def get_checkout_info(git: RepositoryCommands, ref: str, commit: str) -> CheckoutInfo:
    """决定 checkout 的本地 ref 与起点

    Raises:
        ResolutionError: ref 与 commit 同时为空
        RefNotFoundError: 未限定的名字既不是远程分支也不是 tag
    """
    _require(ref, commit)
    kind = classify_ref(ref)

    if kind is RefKind.NONE:
        return CheckoutInfo(ref=commit)
    if kind is RefKind.BRANCH:
        name = ref[len(HEADS):]
        return CheckoutInfo(ref=name, start_point=f"{REMOTE_ORIGIN}{name}")
    if kind is RefKind.PULL:
        name = ref[len(PULL):]
        return CheckoutInfo(ref=name, start_point=f"{REMOTE_PULL}{name}")
    if kind in (RefKind.TAG, RefKind.EXPLICIT):
        return CheckoutInfo(ref=ref)

    # 同名时分支优先
    if git.branch_exists(True, f"origin/{ref}"):
        logger.debug("'%s' 解析为远程分支", ref)
        return CheckoutInfo(ref=ref, start_point=f"{REMOTE_ORIGIN}{ref}")
    if git.tag_exists(ref):
        logger.debug("'%s' 解析为 tag", ref)
        return CheckoutInfo(ref=f"{TAGS}{ref}")
    raise RefNotFoundError(ref)
