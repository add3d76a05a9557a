"""网络工具单元测试"""

from __future__ import annotations

import pytest

from scm_checkout.core.exceptions import HelperError
from scm_checkout.utils.net import join_url, validate_url_scheme


class TestValidateUrlScheme:
    @pytest.mark.parametrize("url", ["http://a.com", "https://a.com/x"])
    def test_allowed(self, url) -> None:
        validate_url_scheme(url)

    @pytest.mark.parametrize("url", ["file:///etc/passwd", "ftp://a.com", "a.com/x"])
    def test_rejected(self, url) -> None:
        with pytest.raises(HelperError, match="不允许的 URL 协议"):
            validate_url_scheme(url)

    def test_context_in_message(self) -> None:
        with pytest.raises(HelperError, match=r"\(令牌交换\)"):
            validate_url_scheme("file:///x", context="令牌交换")


class TestJoinUrl:
    def test_trailing_slash(self) -> None:
        assert join_url("https://api.example.com/", "a/b") == "https://api.example.com/a/b"

    def test_segments_escaped(self) -> None:
        assert join_url("https://h", "r 1", "x?y") == "https://h/r%201/x%3Fy"

    def test_no_segments(self) -> None:
        assert join_url("https://h/") == "https://h"
