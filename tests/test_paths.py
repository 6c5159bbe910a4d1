"""Tests for PathCanonicalizer."""

import os

import pytest

from codeatlas.paths import PathCanonicalizer


@pytest.fixture
def canon(repo_root):
    return PathCanonicalizer(
        repo_root,
        mounts={
            "sonar": {"/opt/analysis/workspace": ""},
            "*": {"/builds/project": "src"},
        },
    )


class TestCanonicalize:
    def test_relative_path(self, canon):
        assert canon.canonicalize("src/a.c") == "src/a.c"

    def test_dot_prefix_and_backslashes(self, canon):
        assert canon.canonicalize("./src/a.c") == "src/a.c"
        assert canon.canonicalize("src\\a.c") == "src/a.c"

    def test_absolute_inside_root(self, canon, repo_root):
        assert canon.canonicalize(str(repo_root / "src" / "a.c")) == "src/a.c"

    def test_file_uri(self, canon, repo_root):
        assert canon.canonicalize((repo_root / "src" / "a.c").as_uri()) == "src/a.c"

    def test_dotdot_is_normalized(self, canon):
        assert canon.canonicalize("src/../src/a.c") == "src/a.c"

    def test_escape_rejected(self, canon):
        assert canon.canonicalize("../../etc/passwd") is None
        assert canon.canonicalize("/etc/passwd") is None

    def test_root_itself_and_empty_rejected(self, canon, repo_root):
        assert canon.canonicalize(str(repo_root)) is None
        assert canon.canonicalize("") is None
        assert canon.canonicalize(".") is None
        assert canon.canonicalize(None) is None


class TestMounts:
    def test_adapter_mount(self, canon):
        assert canon.canonicalize("/opt/analysis/workspace/src/a.c", "sonar") == "src/a.c"

    def test_mount_only_for_its_adapter(self, canon):
        assert canon.canonicalize("/opt/analysis/workspace/src/a.c", "semgrep") is None

    def test_wildcard_mount_applies_to_all(self, canon):
        assert canon.canonicalize("/builds/project/a.c", "semgrep") == "src/a.c"

    def test_longest_prefix_wins(self, repo_root):
        canon = PathCanonicalizer(
            repo_root, mounts={"x": {"/w": "", "/w/contracts": "contracts"}}
        )
        assert canon.canonicalize("/w/contracts/Vault.sol", "x") == "contracts/Vault.sol"


class TestSymlinks:
    @pytest.mark.skipif(os.name != "posix", reason="symlinks need POSIX")
    def test_symlink_resolved(self, repo_root):
        (repo_root / "link").symlink_to(repo_root / "src")
        canon = PathCanonicalizer(repo_root)
        assert canon.canonicalize("link/a.c") == "src/a.c"

    @pytest.mark.skipif(os.name != "posix", reason="symlinks need POSIX")
    def test_symlink_out_of_repo_rejected(self, repo_root, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "secret.txt").write_text("x")
        (repo_root / "escape").symlink_to(outside)
        canon = PathCanonicalizer(repo_root)
        assert canon.canonicalize("escape/secret.txt") is None


class TestMemo:
    def test_repeated_lookups_hit(self, canon):
        canon.canonicalize("src/a.c")
        canon.canonicalize("src/a.c")
        assert canon.hits == 1
        assert canon.misses == 1

    def test_clear_resets(self, canon):
        canon.canonicalize("src/a.c")
        canon.clear()
        assert canon.hits == 0 and canon.misses == 0
