"""git credential 协议读写单元测试"""

from __future__ import annotations

import io
from datetime import datetime, timezone

import pytest

from scm_checkout.core.exceptions import CredentialFormatError
from scm_checkout.core.models import CredentialRecord
from scm_checkout.services.helper.credential import (
    format_credential,
    read_credential,
    write_credential,
)


def _read(text: str) -> CredentialRecord:
    return read_credential(io.StringIO(text))


class TestReadCredential:
    def test_basic_fields(self) -> None:
        r = _read("protocol=https\nhost=github.com\npath=org/repo.git\nusername=u\n\n")
        assert (r.protocol, r.host, r.path, r.username) == ("https", "github.com", "org/repo.git", "u")

    def test_stops_at_blank_line(self) -> None:
        r = _read("protocol=https\n\nhost=ignored\n")
        assert r.host == ""

    def test_eof_terminates(self) -> None:
        r = _read("protocol=https\nhost=x\n")
        assert r.host == "x"

    def test_expiry(self) -> None:
        r = _read("password_expiry_utc=1700000000\n")
        assert r.password_expiry == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_bad_expiry(self) -> None:
        with pytest.raises(CredentialFormatError, match="password_expiry_utc"):
            _read("password_expiry_utc=soon\n")

    def test_expiry_beyond_int64_rejected(self) -> None:
        with pytest.raises(CredentialFormatError, match="64 位整数"):
            _read("password_expiry_utc=100000000000000000000\n")

    @pytest.mark.parametrize("value", ["1000000000000", "9223372036854775807"])
    def test_expiry_after_year_9999_clamped(self, value) -> None:
        r = _read(f"password_expiry_utc={value}\n")
        assert r.password_expiry == datetime.max.replace(tzinfo=timezone.utc)
        assert "password_expiry_utc=253402300799\n" in format_credential(r)

    def test_negative_expiry(self) -> None:
        r = _read("password_expiry_utc=-1\n")
        assert r.password_expiry == datetime(1969, 12, 31, 23, 59, 59, tzinfo=timezone.utc)

    def test_wwwauth_accumulates_and_resets(self) -> None:
        r = _read("wwwauth[]=a\nwwwauth[]=\nwwwauth[]=b\n")
        assert r.wwwauth == ["b"]
        r = _read("wwwauth[]=a\nwwwauth[]=b\n")
        assert r.wwwauth == ["a", "b"]

    def test_url_overrides(self) -> None:
        r = _read("url=https://example.com:8443/org/repo.git\nprotocol=http\nhost=other\n")
        assert (r.protocol, r.host, r.path) == ("https", "example.com:8443", "org/repo.git")

    def test_url_without_path(self) -> None:
        r = _read("url=https://example.com\n")
        assert r.path == "/"

    def test_missing_equals(self) -> None:
        with pytest.raises(CredentialFormatError, match="="):
            _read("protocol\n")

    def test_missing_newline(self) -> None:
        with pytest.raises(CredentialFormatError, match="换行"):
            _read("protocol=https")

    def test_unknown_keys_ignored(self) -> None:
        r = _read("capability[]=authtype\nhost=x\n")
        assert r.host == "x"


class TestWriteCredential:
    def test_order_and_non_empty_only(self) -> None:
        record = CredentialRecord(
            protocol="https", host="h", username="u", password="p",
            password_expiry=datetime(2024, 1, 1, tzinfo=timezone.utc),
            authtype="Bearer", credential="c", wwwauth=["Basic"],
        )
        assert format_credential(record) == (
            "protocol=https\nhost=h\nusername=u\npassword=p\n"
            "password_expiry_utc=1704067200\nauthtype=Bearer\ncredential=c\n"
        )

    @pytest.mark.parametrize("field", ["username", "password", "host", "credential"])
    @pytest.mark.parametrize("bad", ["a\nb", "a\x00b"])
    def test_invalid_writes_nothing(self, field, bad) -> None:
        record = CredentialRecord(protocol="https", **{field: bad})
        out = io.StringIO()
        with pytest.raises(CredentialFormatError):
            write_credential(out, record)
        assert out.getvalue() == ""

    def test_serialize_then_parse(self) -> None:
        record = CredentialRecord(
            protocol="https", host="example.com:8443", path="org/repo.git",
            username="x-access-token", password="s3cr=t", oauth_refresh_token="r",
            password_expiry=datetime(2030, 5, 6, 7, 8, 9, tzinfo=timezone.utc),
        )
        out = io.StringIO()
        n = write_credential(out, record)
        assert n == len(out.getvalue())
        assert _read(out.getvalue()) == record
