"""git 凭据助手协议

- credential.py: key=value 线路格式读写
- handler.py: 子段匹配与 get 处理
- exchange.py: 自动化令牌换取 SCM 访问令牌
"""

from scm_checkout.services.helper.credential import read_credential, write_credential
from scm_checkout.services.helper.handler import handle_get

__all__ = ["handle_get", "read_credential", "write_credential"]
