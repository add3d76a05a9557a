"""把本程序安装为 git 凭据助手

助手配置写到 ~/.scm-checkout/<sha256(server)[:16]>/helper.yml（0600），
credential.helper 指向 ``scm-checkout credential-helper --config-file <cfg>``。
"""

from __future__ import annotations

import hashlib
import logging
import shlex
import shutil
import sys
from pathlib import Path
from urllib.parse import urlparse

from scm_checkout.core.exceptions import ConfigError
from scm_checkout.core.models import HelperConfigSection
from scm_checkout.services.credentials.teardown import TeardownAction
from scm_checkout.utils.yaml_io import save_yaml

logger = logging.getLogger(__name__)

HELPER_DIR_NAME = ".scm-checkout"
HELPER_CONFIG_NAME = "helper.yml"


def unique_id(server_url: str) -> str:
    return hashlib.sha256(server_url.encode("utf-8")).hexdigest()[:16]


def helper_config_path(home: str, server_url: str) -> Path:
    return Path(home) / HELPER_DIR_NAME / unique_id(server_url) / HELPER_CONFIG_NAME


def subsection_for(server_url: str) -> tuple[str, str]:
    """返回 (协议段, 子段名)，如 https://github.com -> ("https", "//github.com")"""
    parsed = urlparse(server_url)
    if not parsed.scheme or not parsed.netloc:
        raise ConfigError(f"无效的服务端地址: {server_url}")
    return parsed.scheme, f"//{parsed.netloc}{parsed.path.rstrip('/')}"


def self_command() -> str:
    """调用本程序的命令行前缀"""
    exe = shutil.which("scm-checkout")
    if exe:
        return shlex.quote(exe)
    return f"{shlex.quote(sys.executable)} -m scm_checkout"


def install_helper_for(
    server_url: str, section: HelperConfigSection, home: str,
) -> tuple[str, TeardownAction]:
    """写出助手配置，返回 (credential.helper 取值, 清理动作)"""
    if not home:
        raise ConfigError("未设置 HOME，无法安装凭据助手")
    protocol, name = subsection_for(server_url)
    section.name = name
    path = helper_config_path(home, server_url)

    logger.info("安装凭据助手配置: %s", path)
    save_yaml(path, {protocol: {name: section.to_dict()}}, mode=0o600)

    def teardown() -> None:
        logger.info("移除凭据助手配置 ...")
        path.unlink(missing_ok=True)
        try:
            path.parent.rmdir()
        except OSError:
            logger.debug("目录非空或已删除，保留: %s", path.parent)
        logger.info("凭据助手配置已移除")

    command = f"{self_command()} credential-helper --config-file {shlex.quote(str(path))}"
    return command, teardown
