"""自动化令牌交换

把存储的 CloudBees 自动化令牌换成短期 SCM 访问令牌：
1. 从令牌 claims 中取出 resource id（只解析，不验签）
2. POST {api}/reserved/v1/resources/{id}/scm-access-token
3. 把响应映射为 Bearer credential 或 Basic password
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import re
import urllib.error
import urllib.request
from datetime import datetime, timezone
from typing import Any

from scm_checkout.core.exceptions import HelperError
from scm_checkout.core.models import CredentialRecord
from scm_checkout.utils.net import join_url, validate_url_scheme

logger = logging.getLogger(__name__)

AUTOMATION_CLAIM = "https://www.cloudbees.com/automation"
RESOURCE_ID_OVERRIDE_ENV = "RESOURCE_ID_OVERRIDE"
TOKEN_TYPE_BEARER = "TOKEN_TYPE_BEARER"

_EXPIRES_AT_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2}).*")


def _decode_segment(segment: str) -> dict[str, Any]:
    padded = segment + "=" * (-len(segment) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded))
    except (binascii.Error, ValueError) as e:
        raise HelperError(f"无法解析自动化令牌: {e}") from e
    if not isinstance(data, dict):
        raise HelperError("无法解析自动化令牌: claims 不是 JSON 对象")
    return data


def resource_id_from_automation_token(token: str) -> str:
    """从 JWT claims 中提取 resource id

    令牌的真实性已由写入方确认，这里只解析 payload，不做签名校验。
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise HelperError("无法解析自动化令牌: 不是 JWT 格式")
    claims = _decode_segment(parts[1])

    automation = claims.get(AUTOMATION_CLAIM)
    if automation is None:
        raise HelperError("不是自动化令牌: 缺少判别 claim")
    if not isinstance(automation, dict):
        raise HelperError("不是自动化令牌: 判别 claim 不是对象")
    identity = automation.get("identity")
    if identity is None:
        raise HelperError("不是自动化令牌: 缺少 identity 子 claim")
    if not isinstance(identity, dict):
        raise HelperError("不是自动化令牌: identity 子 claim 不是对象")
    resource_id = identity.get("resource_id")
    if resource_id is None:
        raise HelperError("不是自动化令牌: 缺少 resource_id claim")
    if not isinstance(resource_id, str):
        raise HelperError("不是自动化令牌: resource_id claim 不是字符串")
    return resource_id


def parse_expiry(value: str) -> datetime | None:
    """按固定格式解析 expiresAt，时区一律视为 UTC；不匹配时返回 None"""
    m = _EXPIRES_AT_RE.match(value)
    if m is None:
        return None
    year, month, day, hour, minute, sec = (int(g) for g in m.groups())
    return datetime(year, month, day, hour, minute, sec, tzinfo=timezone.utc)


def _repo_url(request: CredentialRecord) -> str:
    path = request.path
    if path and not path.startswith("/"):
        path = "/" + path
    return f"{request.protocol}://{request.host}{path}"


def exchange_token(
    api_url: str, token: str, request: CredentialRecord,
    *, environ: dict[str, str] | None = None,
) -> CredentialRecord:
    """调用 API 换取 SCM 访问令牌

    Raises:
        HelperError: 令牌无法解析、网络失败或响应非 200
    """
    env = os.environ if environ is None else environ
    resource_id = env.get(RESOURCE_ID_OVERRIDE_ENV) or resource_id_from_automation_token(token)

    validate_url_scheme(api_url, context="cloudbees api")
    url = join_url(api_url, "reserved/v1/resources", resource_id, "scm-access-token")
    body = json.dumps({"scmRepoUrl": _repo_url(request)}).encode("utf-8")
    req = urllib.request.Request(
        url, data=body, method="POST",
        headers={
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {token}",
        },
    )

    logger.debug("POST %s", url)
    try:
        with urllib.request.urlopen(req) as resp:  # nosec B310
            status = resp.status
            raw = resp.read().decode("utf-8")
    except urllib.error.HTTPError as e:
        detail = e.read().decode("utf-8", errors="replace")
        raise HelperError(f"获取 SCM 令牌失败: POST {url} HTTP {e.code} {e.reason}\n{detail}") from e
    except urllib.error.URLError as e:
        raise HelperError(f"获取 SCM 令牌失败: POST {url}: {e.reason}") from e

    if status != 200:
        raise HelperError(f"获取 SCM 令牌失败: POST {url} HTTP {status}\n{raw}")

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise HelperError(f"SCM 令牌响应不是合法 JSON: {e}") from e
    if not isinstance(data, dict):
        raise HelperError("SCM 令牌响应不是 JSON 对象")

    result = CredentialRecord()
    access_token = str(data.get("accessToken", ""))
    if data.get("tokenType") == TOKEN_TYPE_BEARER:
        result.authtype = "Bearer"
        result.credential = access_token
    else:
        result.password = access_token
    expires = data.get("expiresAt")
    if isinstance(expires, str) and expires:
        result.password_expiry = parse_expiry(expires)
    return result
