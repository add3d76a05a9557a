"""凭据生命周期

- teardown.py: LIFO 清理栈
- ssh.py: 私钥与 known_hosts
- token.py: 令牌认证与子模块 extraheader
- helper_install.py: 安装自带凭据助手
"""

from scm_checkout.services.credentials.teardown import TeardownStack, noop

__all__ = ["TeardownStack", "noop"]
