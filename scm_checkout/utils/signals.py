"""协作式取消

第一次 SIGINT/SIGTERM: 在主线程抛出 CheckoutCancelled，正在等待的子进程被 kill，
清理栈照常回滚。
第二次信号: 立即退出，不再做任何清理。
"""

from __future__ import annotations

import logging
import os
import signal
from types import FrameType

from scm_checkout.core.exceptions import CheckoutCancelled

logger = logging.getLogger(__name__)


class CancelState:
    """记录是否已收到过取消信号"""

    def __init__(self) -> None:
        self.cancelled = False

    def handle(self, signum: int, frame: FrameType | None) -> None:
        if self.cancelled:
            logger.error("再次收到信号 %d，立即退出", signum)
            os._exit(1)
        self.cancelled = True
        logger.warning("收到信号 %d，取消检出（再次发送将立即退出）", signum)
        raise CheckoutCancelled(f"检出被信号 {signum} 取消")


def install_cancel_handlers() -> CancelState:
    """为 SIGINT / SIGTERM 安装取消处理器，只能在主线程调用"""
    state = CancelState()
    signal.signal(signal.SIGINT, state.handle)
    signal.signal(signal.SIGTERM, state.handle)
    return state
