"""scm-checkout 命令行接口

CLI 按功能拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os

import click

from scm_checkout import __version__
from scm_checkout.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """scm-checkout - 在 CI 工作区中检出代码仓"""
    setup_logging(
        level=os.getenv("SCM_CHECKOUT_LOG_LEVEL", "INFO"),
        json_output=os.getenv("SCM_CHECKOUT_LOG_JSON", "") == "1",
    )


# 注册各子命令
from scm_checkout.cli.cmd_checkout import register as _reg_checkout  # noqa: E402
from scm_checkout.cli.cmd_helper import register as _reg_helper  # noqa: E402

_reg_checkout(main)
_reg_helper(main)
