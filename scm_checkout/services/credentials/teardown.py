"""清理栈

每个凭据准备步骤在获取资源时登记对应的清理动作，
退出时按 LIFO 顺序执行，单个动作失败不影响其余动作。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from types import TracebackType

from scm_checkout.core.exceptions import TeardownError

logger = logging.getLogger(__name__)

TeardownAction = Callable[[], None]


def noop() -> None:
    """无需清理"""


class TeardownStack:
    """LIFO 清理栈，可作为上下文管理器使用

    - 正常退出: 任一动作失败则抛出 TeardownError
    - 异常退出: 清理失败只记录日志并附加到原异常的 notes，原异常照常上抛
    """

    def __init__(self) -> None:
        self._actions: list[tuple[str, TeardownAction]] = []

    def __len__(self) -> int:
        return len(self._actions)

    def push(self, label: str, action: TeardownAction) -> None:
        self._actions.append((label, action))

    def unwind(self) -> list[BaseException]:
        """执行全部清理动作，返回失败列表"""
        errors: list[BaseException] = []
        while self._actions:
            label, action = self._actions.pop()
            logger.debug("清理: %s", label)
            try:
                action()
            except Exception as e:
                logger.error("清理动作 '%s' 失败: %s", label, e)
                errors.append(e)
        return errors

    def __enter__(self) -> TeardownStack:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        errors = self.unwind()
        if not errors:
            return
        if exc is None:
            raise TeardownError(errors)
        for e in errors:
            exc.add_note(f"清理失败: {e}")
