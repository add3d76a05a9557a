"""git credential 协议的读写

格式参见 https://git-scm.com/docs/git-credential#IOFMT ：
每行 ``key=value\\n``，以空行或 EOF 结束。
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import TextIO
from urllib.parse import urlsplit

from scm_checkout.core.exceptions import CredentialFormatError
from scm_checkout.core.models import CredentialRecord

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_EXPIRY_RE = re.compile(r"[+-]?[0-9]+")
_MAX_EXPIRY = datetime.max.replace(tzinfo=timezone.utc)
_MIN_EXPIRY = datetime.min.replace(tzinfo=timezone.utc)

# 输出顺序；url 与 wwwauth[] 永不回写
_OUTPUT_FIELDS = (
    ("protocol", "protocol"),
    ("host", "host"),
    ("path", "path"),
    ("username", "username"),
    ("password", "password"),
    ("password_expiry_utc", "password_expiry"),
    ("oauth_refresh_token", "oauth_refresh_token"),
    ("authtype", "authtype"),
    ("credential", "credential"),
)


def _iter_lines(stream: TextIO) -> Iterable[str]:
    while True:
        line = stream.readline()
        if not line:
            return
        yield line


def _apply_url(record: CredentialRecord, value: str) -> None:
    parts = urlsplit(value)
    try:
        port = parts.port
    except ValueError as e:
        raise CredentialFormatError(f"url 端口无效: {value}") from e
    if not parts.scheme or not parts.hostname:
        raise CredentialFormatError(f"无法解析 url: {value}")
    record.protocol = parts.scheme
    record.host = parts.hostname if port is None else f"{parts.hostname}:{port}"
    record.path = parts.path.lstrip("/") or "/"


def _parse_expiry(value: str) -> datetime:
    """Unix 秒转 UTC 时间，超出 datetime 可表示范围时截断到边界"""
    if not _EXPIRY_RE.fullmatch(value):
        raise CredentialFormatError(f"password_expiry_utc 不是整数: {value!r}")
    seconds = int(value)
    if not _INT64_MIN <= seconds <= _INT64_MAX:
        raise CredentialFormatError(f"password_expiry_utc 超出 64 位整数范围: {value!r}")
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return _MAX_EXPIRY if seconds > 0 else _MIN_EXPIRY


def read_credential(stream: TextIO) -> CredentialRecord:
    """从 stream 读取一条凭据请求

    Raises:
        CredentialFormatError: 行内缺少 '=' 或最后一行没有换行；password_expiry_utc 不是 64 位整数
    """
    record = CredentialRecord()
    url = ""
    for line in _iter_lines(stream):
        if line == "\n":
            break
        terminated = line.endswith("\n")
        key, sep, value = (line[:-1] if terminated else line).partition("=")
        if not sep:
            raise CredentialFormatError(f"键未以 '=' 结束: {key!r}")
        if not terminated:
            raise CredentialFormatError(f"{key} 的值未以换行结束")

        if key in ("protocol", "host", "path", "username", "password",
                   "oauth_refresh_token", "authtype", "credential"):
            setattr(record, key, value)
        elif key == "password_expiry_utc":
            record.password_expiry = _parse_expiry(value)
        elif key == "url":
            url = value
        elif key == "wwwauth[]":
            # 空值表示清空之前累积的列表
            if value:
                record.wwwauth.append(value)
            else:
                record.wwwauth.clear()
        # 其它键按协议约定忽略
    if url:
        # url 覆盖 protocol / host / path，与出现顺序无关
        _apply_url(record, url)
    return record


def format_credential(record: CredentialRecord) -> str:
    """序列化为协议文本

    Raises:
        CredentialFormatError: 任一字段包含 NUL 或换行
    """
    lines: list[str] = []
    for key, attr in _OUTPUT_FIELDS:
        value = getattr(record, attr)
        if attr == "password_expiry":
            if value is None:
                continue
            value = str(int(value.timestamp()))
        if "\x00" in value or "\n" in value:
            raise CredentialFormatError(f"{key} 不能包含 NUL 字符或换行")
        if value:
            lines.append(f"{key}={value}\n")
    return "".join(lines)


def write_credential(stream: TextIO, record: CredentialRecord) -> int:
    """写出凭据，返回写入的字符数；校验失败时不写入任何内容"""
    text = format_credential(record)
    stream.write(text)
    return len(text)
