"""统一异常体系

所有业务异常继承 CheckoutError，CLI 层据此输出单行错误提示并返回非零退出码。

分类:
  - ConfigError: 输入/环境缺失或无效（变更工作目录之前即失败）
  - ResolutionError / RefNotFoundError: ref 或 commit 无法解析
  - ExecutionError: 外部进程非零退出，原样上抛，不做重试
  - CredentialFormatError: Git 凭据协议格式违规
  - HelperError: 凭据助手配置或令牌交换失败
  - TeardownError: 清理动作失败（聚合，不丢弃任何一个）
  - CheckoutCancelled: 收到中断/终止信号
"""

from __future__ import annotations


class CheckoutError(Exception):
    """检出基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(CheckoutError):
    """配置缺失或内容无效"""

    code = "CONFIG_ERROR"


class ResolutionError(CheckoutError):
    """ref / commit 解析失败"""

    code = "RESOLUTION_ERROR"


class RefNotFoundError(ResolutionError):
    """分支或 tag 不存在"""

    code = "REF_NOT_FOUND"

    def __init__(self, ref: str) -> None:
        super().__init__(f"找不到名为 '{ref}' 的分支或 tag")
        self.ref = ref


class ExecutionError(CheckoutError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"

    def __init__(self, message: str, returncode: int = -1, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class CredentialFormatError(CheckoutError):
    """凭据字段不符合 git credential 协议"""

    code = "CREDENTIAL_FORMAT_ERROR"


class HelperError(CheckoutError):
    """凭据助手失败（配置读取 / 令牌交换）"""

    code = "HELPER_ERROR"


class TeardownError(CheckoutError):
    """一个或多个清理动作失败"""

    code = "TEARDOWN_ERROR"

    def __init__(self, errors: list[BaseException]) -> None:
        detail = "; ".join(str(e) for e in errors)
        super().__init__(f"{len(errors)} 个清理动作失败: {detail}")
        self.errors = errors


class CheckoutCancelled(CheckoutError):
    """收到中断信号，检出被取消"""

    code = "CANCELLED"
