"""CLI：检出命令"""

from __future__ import annotations

from typing import Any

import click

from scm_checkout.core.config import CheckoutConfig, CheckoutEnvironment
from scm_checkout.core.exceptions import CheckoutError
from scm_checkout.services.checkout.orchestrator import CheckoutOrchestrator
from scm_checkout.utils.signals import install_cancel_handlers


def register(group: click.Group) -> None:
    group.add_command(checkout)


@click.command()
@click.option("--config-file", "-c", default=None, type=click.Path(exists=True, dir_okay=False),
              help="YAML 输入文件，命令行参数优先")
@click.option("--provider", default=None,
              type=click.Choice(["github", "gitlab", "bitbucket", "bitbucket_datacenter", "custom"]),
              help="SCM 提供方，默认取事件上下文")
@click.option("--repository", default=None, help="owner/repo 或完整克隆地址")
@click.option("--ref", default=None, help="分支、tag 或完整 ref")
@click.option("--commit", default=None, help="要检出的 commit")
@click.option("--token", default=None, envvar="SCM_CHECKOUT_TOKEN", help="SCM 访问令牌")
@click.option("--token-auth-type", default=None, type=click.Choice(["basic", "bearer"]),
              help="令牌认证方式")
@click.option("--cloudbees-api-token", default=None, envvar="CLOUDBEES_API_TOKEN",
              help="自动化令牌")
@click.option("--cloudbees-api-url", default=None, envvar="CLOUDBEES_API_URL", help="API 地址")
@click.option("--ssh-key", default=None, help="SSH 私钥内容")
@click.option("--ssh-known-hosts", default=None, help="额外的 known_hosts 条目")
@click.option("--ssh-strict/--no-ssh-strict", default=None, help="严格校验主机公钥")
@click.option("--persist-credentials/--no-persist-credentials", default=None,
              help="检出后保留凭据配置")
@click.option("--path", default=None, help="工作区内的相对路径")
@click.option("--clean/--no-clean", default=None, help="复用前执行 git clean + reset")
@click.option("--sparse-checkout", default=None, help="稀疏检出模式，每行一个")
@click.option("--sparse-checkout-cone-mode/--no-sparse-checkout-cone-mode", default=None,
              help="稀疏检出使用 cone 模式")
@click.option("--fetch-depth", default=None, type=int, help="拉取深度，0 表示完整历史")
@click.option("--lfs/--no-lfs", default=None, help="拉取 Git LFS 对象")
@click.option("--submodules", default=None, type=click.Choice(["true", "false", "recursive"]),
              help="子模块处理方式")
@click.option("--set-safe-directory/--no-set-safe-directory", default=None,
              help="把仓库路径加入 safe.directory")
@click.option("--github-server-url", default=None, help="GitHub 服务端地址")
@click.option("--bitbucket-server-url", default=None, help="Bitbucket 服务端地址")
@click.option("--gitlab-server-url", default=None, help="GitLab 服务端地址")
def checkout(config_file: str | None, **kwargs: Any) -> None:
    """检出代码仓到工作区"""
    env = CheckoutEnvironment.from_environ()
    install_cancel_handlers()
    try:
        cfg = CheckoutConfig.from_file(config_file) if config_file else CheckoutConfig()
        cfg = cfg.with_overrides(kwargs)
        CheckoutOrchestrator(cfg, env).run()
    except CheckoutError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"检出完成: {cfg.clone_url}", err=True)
