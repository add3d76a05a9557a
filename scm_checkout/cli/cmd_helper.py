"""CLI：git 凭据助手

git 以 ``<helper> get|store|erase`` 调用，请求从 stdin 读入，应答写到 stdout。
stdout 只承载协议数据，日志一律走 stderr。
"""

from __future__ import annotations

import click

from scm_checkout.core.exceptions import CheckoutError
from scm_checkout.services.helper.credential import read_credential, write_credential
from scm_checkout.services.helper.handler import handle_get


def register(group: click.Group) -> None:
    group.add_command(helper_group)


@click.command(
    name="ignored", hidden=True,
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
)
def _ignored() -> None:
    """不支持的动词: 什么都不做"""


class _VerbGroup(click.Group):
    """未知动词按协议约定静默忽略"""

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        cmd = super().get_command(ctx, cmd_name)
        return cmd if cmd is not None else _ignored


@click.group(name="credential-helper", cls=_VerbGroup)
@click.option("--config-file", "-c", required=True, help="助手配置文件 (YAML)")
@click.pass_context
def helper_group(ctx: click.Context, config_file: str) -> None:
    """git 凭据助手入口"""
    ctx.obj = config_file


@helper_group.command(name="get")
@click.pass_obj
def helper_get(config_file: str) -> None:
    """按请求的地址返回凭据，没有匹配时不输出"""
    try:
        request = read_credential(click.get_text_stream("stdin"))
        response = handle_get(request, config_file)
        if response is not None:
            write_credential(click.get_text_stream("stdout"), response)
    except CheckoutError as e:
        raise click.ClickException(str(e)) from e


@helper_group.command(name="store")
def helper_store() -> None:
    """凭据由检出流程管理，忽略"""


@helper_group.command(name="erase")
def helper_erase() -> None:
    """凭据由检出流程管理，忽略"""
