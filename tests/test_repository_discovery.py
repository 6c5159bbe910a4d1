"""Tests for repository discovery and file classification."""

import shutil
import subprocess

import pytest

from codeatlas.exceptions import InvalidPathError
from codeatlas.model import FileCategory
from codeatlas.repository import categorize, detect_language, discover_repository

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(root, *args):
    subprocess.run(
        ["git", "-C", str(root), "-c", "user.email=dev@example.com", "-c", "user.name=Dev", *args],
        check=True,
        capture_output=True,
    )


class TestCategorize:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("src/app.py", FileCategory.SOURCE),
            ("tests/test_app.py", FileCategory.TEST),
            ("src/app.test.ts", FileCategory.TEST),
            ("node_modules/x/index.js", FileCategory.DEPENDENCY),
            ("README.md", FileCategory.DOCS),
            ("static/logo.png", FileCategory.ASSET),
            ("tsconfig.json", FileCategory.CONFIG),
            ("build/out.js", FileCategory.BUILD),
        ],
    )
    def test_categories(self, path, expected):
        assert categorize(path) == expected

    def test_language(self):
        assert detect_language("contracts/Vault.sol") == "solidity"
        assert detect_language("src/app.py") == "python"
        assert detect_language("blob.xyz") == "unknown"


class TestDiscoverWithoutVcs:
    def test_walks_directory(self, repo_root):
        repo = discover_repository(repo_root)
        assert repo.vcs is None
        assert repo.commit is None
        assert "src/a.c" in repo.files
        assert repo.files["src/app.py"].language == "python"
        assert repo.root == str(repo_root)

    def test_skips_noise_directories(self, repo_root):
        (repo_root / "node_modules" / "x").mkdir(parents=True)
        (repo_root / "node_modules" / "x" / "index.js").write_text("x")
        (repo_root / "__pycache__").mkdir()
        (repo_root / "__pycache__" / "a.pyc").write_text("x")
        repo = discover_repository(repo_root)
        assert not any(p.startswith(("node_modules/", "__pycache__/")) for p in repo.files)

    def test_missing_root(self, tmp_path):
        with pytest.raises(InvalidPathError):
            discover_repository(tmp_path / "nope")

    def test_file_root(self, repo_root):
        with pytest.raises(InvalidPathError):
            discover_repository(repo_root / "README.md")


@needs_git
class TestDiscoverWithGit:
    def test_reads_commit_and_tracked_files(self, repo_root):
        git(repo_root, "init", "-q", "-b", "main")
        git(repo_root, "add", ".")
        git(repo_root, "commit", "-q", "-m", "init")
        (repo_root / "untracked.py").write_text("x = 1\n")

        repo = discover_repository(repo_root)
        assert repo.vcs == "git"
        assert len(repo.commit) == 40
        assert repo.branch == "main"
        assert repo.vcs_dir.endswith(".git")
        assert "src/a.c" in repo.files
        assert "untracked.py" not in repo.files
