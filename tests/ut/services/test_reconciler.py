"""已有工作区调和单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from scm_checkout.services.checkout.reconciler import clear_directory, prepare_existing_directory

URL = "https://github.com/org/repo.git"


@pytest.fixture()
def repo(tmp_path: Path, fake_git) -> Path:
    """带 .git 目录、origin 一致的已有工作区"""
    (tmp_path / ".git").mkdir()
    (tmp_path / "README.md").write_text("hello", encoding="utf-8")
    fake_git.local_config["remote.origin.url"] = [URL]
    return tmp_path


class TestPrepareExistingDirectory:
    def test_reuse_without_clean(self, repo, fake_git) -> None:
        fake_git.local_branches = ["main", "dev"]
        assert prepare_existing_directory(fake_git, str(repo), URL, False, "refs/heads/main")
        assert (repo / "README.md").exists()
        assert fake_git.local_branches == []
        assert "clean" not in fake_git.names()

    def test_origin_mismatch_recreates(self, repo, fake_git) -> None:
        fake_git.local_branches = ["main"]
        assert not prepare_existing_directory(
            fake_git, str(repo), "https://github.com/org/other.git", False, "main",
        )
        assert list(repo.iterdir()) == []
        assert "branch_delete" not in fake_git.names()
        assert repo.is_dir()

    def test_missing_git_dir(self, tmp_path, fake_git) -> None:
        (tmp_path / "stale.txt").write_text("x", encoding="utf-8")
        assert not prepare_existing_directory(fake_git, str(tmp_path), URL, True, "main")
        assert list(tmp_path.iterdir()) == []
        assert fake_git.calls == []

    def test_stale_locks_removed(self, repo, fake_git) -> None:
        (repo / ".git" / "index.lock").write_text("", encoding="utf-8")
        (repo / ".git" / "shallow.lock").write_text("", encoding="utf-8")
        assert prepare_existing_directory(fake_git, str(repo), URL, False, "main")
        assert not (repo / ".git" / "index.lock").exists()
        assert not (repo / ".git" / "shallow.lock").exists()

    def test_attached_head_detached(self, repo, fake_git) -> None:
        fake_git.detached = False
        prepare_existing_directory(fake_git, str(repo), URL, False, "main")
        assert "checkout_detach" in fake_git.names()

    def test_detach_failure_recreates(self, repo, fake_git) -> None:
        fake_git.detached = False
        fake_git.fail.add("checkout_detach")
        assert not prepare_existing_directory(fake_git, str(repo), URL, False, "main")
        assert list(repo.iterdir()) == []

    def test_conflicting_remote_branches(self, repo, fake_git) -> None:
        fake_git.remote_branches = ["origin/foo/bar", "origin/Foo", "origin/foobar", "origin/main"]
        prepare_existing_directory(fake_git, str(repo), URL, False, "refs/heads/foo")
        assert fake_git.remote_branches == ["origin/Foo", "origin/foobar", "origin/main"]

    def test_conflicting_remote_parent(self, repo, fake_git) -> None:
        fake_git.remote_branches = ["origin/foo", "origin/main"]
        prepare_existing_directory(fake_git, str(repo), URL, False, "foo/bar")
        assert fake_git.remote_branches == ["origin/main"]

    def test_tag_ref_keeps_remote_branches(self, repo, fake_git) -> None:
        fake_git.remote_branches = ["origin/v1/x"]
        prepare_existing_directory(fake_git, str(repo), URL, False, "refs/tags/v1")
        assert fake_git.remote_branches == ["origin/v1/x"]

    def test_submodule_failure_recreates(self, repo, fake_git) -> None:
        fake_git.fail.add("submodule_status")
        assert not prepare_existing_directory(fake_git, str(repo), URL, False, "main")
        assert list(repo.iterdir()) == []

    def test_clean_runs_clean_then_reset(self, repo, fake_git) -> None:
        assert prepare_existing_directory(fake_git, str(repo), URL, True, "main")
        names = fake_git.names()
        assert names.index("clean") < names.index("reset")

    def test_clean_failure_recreates(self, repo, fake_git) -> None:
        fake_git.fail.add("clean")
        assert not prepare_existing_directory(fake_git, str(repo), URL, True, "main")
        assert "reset" not in fake_git.names()
        assert list(repo.iterdir()) == []

    def test_later_steps_skipped_after_recreate(self, repo, fake_git) -> None:
        fake_git.fail.add("branch_list")
        prepare_existing_directory(fake_git, str(repo), URL, True, "main")
        assert "submodule_status" not in fake_git.names()
        assert "clean" not in fake_git.names()


class TestClearDirectory:
    def test_keeps_directory(self, tmp_path) -> None:
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "b.txt").write_text("x", encoding="utf-8")
        (tmp_path / "c.txt").write_text("y", encoding="utf-8")
        clear_directory(tmp_path)
        assert tmp_path.is_dir()
        assert list(tmp_path.iterdir()) == []

    def test_symlink_not_followed(self, tmp_path) -> None:
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "keep.txt").write_text("k", encoding="utf-8")
        target = tmp_path / "ws"
        target.mkdir()
        (target / "link").symlink_to(outside, target_is_directory=True)
        clear_directory(target)
        assert (outside / "keep.txt").exists()
        assert list(target.iterdir()) == []
