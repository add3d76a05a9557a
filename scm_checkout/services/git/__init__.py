"""git 命令行封装"""

from scm_checkout.services.git.cli import GitCLI

__all__ = ["GitCLI"]
