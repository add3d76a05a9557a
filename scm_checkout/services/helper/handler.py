"""凭据助手 get 动作

助手配置 (YAML) 结构::

    https:                     # 协议
      //github.com:            # 目标前缀（子段名）
        username: x-access-token
        password: <base64>

按 //host/path 查找最长前缀子段，找不到则什么都不输出。
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

import yaml

from scm_checkout.core.exceptions import HelperError
from scm_checkout.core.models import CredentialRecord, HelperConfigSection
from scm_checkout.services.helper.exchange import exchange_token
from scm_checkout.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


def target_endpoint(host: str, path: str) -> str:
    """请求对应的匹配目标 //host/path"""
    if path and not path.startswith("/"):
        path = "/" + path
    return f"//{host}{path}"


def closest_subsection(names: Iterable[str], target: str) -> str | None:
    """返回作为 target 前缀的最长子段名；等长时取先出现者"""
    closest: str | None = None
    for name in names:
        if target.startswith(name) and (closest is None or len(name) > len(closest)):
            closest = name
    return closest


def load_sections(config_path: str | Path, protocol: str) -> list[HelperConfigSection]:
    """读取某协议下的所有子段

    Raises:
        HelperError: 配置文件不存在或无法解析
    """
    p = Path(config_path)
    if not p.is_file():
        raise HelperError(f"无法读取助手配置: {p}")
    try:
        data = load_yaml(p)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise HelperError(f"无法解析助手配置 {p}: {e}") from e
    section = data.get(protocol) or {}
    if not isinstance(section, Mapping):
        raise HelperError(f"助手配置 {p} 中的 {protocol} 段格式错误")
    return [
        HelperConfigSection.from_dict(str(name), body if isinstance(body, Mapping) else {})
        for name, body in section.items()
    ]


def _b64decode(value: str, field: str) -> str:
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise HelperError(f"助手配置中的 {field} 不是合法的 base64") from e


def handle_get(
    request: CredentialRecord, config_path: str | Path,
    *, environ: dict[str, str] | None = None,
) -> CredentialRecord | None:
    """处理 get 请求，返回 None 表示没有可提供的凭据"""
    sections = load_sections(config_path, request.protocol)
    target = target_endpoint(request.host, request.path)
    name = closest_subsection((s.name for s in sections), target)
    if name is None:
        logger.debug("没有匹配 %s 的子段", target)
        return None
    section = next(s for s in sections if s.name == name)
    logger.debug("匹配子段 %s", name)

    response = CredentialRecord(username=section.username)
    if section.password:
        response.password = _b64decode(section.password, "password")
    if section.credential:
        response.authtype = "Bearer"
        response.credential = _b64decode(section.credential, "credential")

    if section.api_token and section.api_url:
        token = _b64decode(section.api_token, "api_token")
        exchanged = exchange_token(section.api_url, token, request, environ=environ)
        response.password = exchanged.password
        response.authtype = exchanged.authtype
        response.credential = exchanged.credential
        response.password_expiry = exchanged.password_expiry
    return response
