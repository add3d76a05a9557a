"""yaml_io 单元测试"""

from __future__ import annotations

import os
import stat

import pytest
import yaml

from scm_checkout.utils.yaml_io import MAX_YAML_SIZE, atomic_write, load_yaml, save_yaml


class TestYamlIO:
    def test_missing_file(self, tmp_path) -> None:
        assert load_yaml(tmp_path / "absent.yml") == {}

    def test_round_trip_keeps_order(self, tmp_path) -> None:
        p = tmp_path / "sub" / "a.yml"
        save_yaml(p, {"https": {"//h.com": {"username": "u"}}, "中文": "值"})
        assert load_yaml(p) == {"https": {"//h.com": {"username": "u"}}, "中文": "值"}

    def test_mode(self, tmp_path) -> None:
        p = tmp_path / "secret.yml"
        save_yaml(p, {"a": 1}, mode=0o600)
        assert stat.S_IMODE(os.stat(p).st_mode) == 0o600

    def test_non_dict(self, tmp_path) -> None:
        p = tmp_path / "list.yml"
        p.write_text("- 1\n- 2\n", encoding="utf-8")
        assert load_yaml(p) == {}

    def test_invalid(self, tmp_path) -> None:
        p = tmp_path / "bad.yml"
        p.write_text("a: [", encoding="utf-8")
        with pytest.raises(yaml.YAMLError):
            load_yaml(p)

    def test_too_large(self, tmp_path) -> None:
        p = tmp_path / "big.yml"
        p.write_text("a: " + "x" * (MAX_YAML_SIZE + 1), encoding="utf-8")
        with pytest.raises(ValueError, match="过大"):
            load_yaml(p)

    def test_atomic_write_leaves_no_temp(self, tmp_path) -> None:
        atomic_write(tmp_path / "f.txt", "content")
        assert [p.name for p in tmp_path.iterdir()] == ["f.txt"]
