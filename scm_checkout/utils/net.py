"""网络工具：URL 校验与拼接"""

from __future__ import annotations

from urllib.parse import quote, urlparse

from scm_checkout.core.exceptions import HelperError

_ALLOWED_SCHEMES = frozenset(("http", "https"))


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https，防止 file:// 等非预期协议访问

    Raises:
        HelperError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise HelperError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 http/https: {url}"
        )


def join_url(base: str, *segments: str) -> str:
    """把路径段拼接到 base URL 后，每段单独转义

    >>> join_url("https://api.example.com/", "reserved/v1/resources", "r 1")
    'https://api.example.com/reserved/v1/resources/r%201'
    """
    parts = [base.rstrip("/")]
    for seg in segments:
        parts.append("/".join(quote(p, safe="") for p in seg.strip("/").split("/")))
    return "/".join(parts)
