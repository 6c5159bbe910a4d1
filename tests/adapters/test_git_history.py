"""Tests for the git-history adapter."""

import shutil
import subprocess

import pytest

from codeatlas.adapters.git_history import DESCRIPTION, GitHistoryAdapter, churn_payload, parse_log
from codeatlas.model import ErrorKind
from codeatlas.repository import discover_repository

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

H1 = "a" * 40
H2 = "b" * 40
H3 = "c" * 40


def git(root, *args):
    result = subprocess.run(
        ["git", "-C", str(root), "-c", "user.email=dev@example.com", "-c", "user.name=Dev", *args],
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


def commit(root, message, files):
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    git(root, "add", ".")
    git(root, "commit", "-q", "-m", message)
    return git(root, "rev-parse", "HEAD")


class TestParseLog:
    def test_headers_and_files(self):
        raw = (
            f"{H1}|1700000000|alice@example.com|Add app\n"
            "src/app.py\n"
            "src/util.py\n"
            "\n"
            f"{H2}|1700000100|bob@example.com|Merge branch | with pipe\n"
            f"{H3}|1700000200|alice@example.com|Touch app\n"
            "src/app.py\n"
        )
        commits = parse_log(raw)
        assert [c.hash for c in commits] == [H1, H3]
        assert commits[0].files == ["src/app.py", "src/util.py"]
        assert commits[0].author == "alice@example.com"
        assert commits[1].timestamp == 1700000200

    def test_empty(self):
        assert parse_log("") == []


class TestChurnPayload:
    def test_metrics_and_hotspots(self):
        commits = parse_log(
            f"{H1}|1|a@x|one\nsrc/app.py\n{H2}|2|b@x|two\nsrc/app.py\nsrc/util.py\n"
        )
        payload = churn_payload(commits, hotspot_commits=2, since=None)
        metrics = {(m["key"], m.get("file")): m["value"] for m in payload["metrics"]}
        assert metrics[("history.commits", None)] == 2
        assert metrics[("history.authors", None)] == 2
        assert metrics[("churn.commits", "src/app.py")] == 2
        assert metrics[("churn.authors", "src/util.py")] == 1
        assert [f["file"] for f in payload["findings"]] == ["src/app.py"]
        assert payload["findings"][0]["kind"] == "churn_hotspot"

    def test_hotspots_disabled(self):
        commits = parse_log(f"{H1}|1|a@x|one\nsrc/app.py\n")
        assert churn_payload(commits, hotspot_commits=0, since=None)["findings"] == []


class TestGitHistoryAdapter:
    def options(self, **overrides):
        options = DESCRIPTION.resolve_options("git-history", {})
        options.update(overrides)
        return options

    def test_description(self):
        assert DESCRIPTION.normalizer == "generic"
        assert DESCRIPTION.cache_operation == "git-analysis"
        adapter = GitHistoryAdapter(self.options())
        assert "churn.commits" in adapter.capabilities()["metrics"]

    def test_requires_git_repository(self, repo_root, make_context):
        repository = discover_repository(repo_root)
        if repository.vcs is not None:
            pytest.skip("tmp_path is inside a git checkout")
        adapter = GitHistoryAdapter(self.options())
        result = adapter.analyze(make_context(repository), self.options())
        assert result.error_kind == ErrorKind.CONFIG_MISSING

    @needs_git
    def test_full_and_incremental_history(self, tmp_path, make_context):
        root = tmp_path / "hist"
        root.mkdir()
        git(root, "init", "-q")
        first = commit(root, "one", {"src/app.py": "a = 1\n"})
        commit(root, "two", {"src/app.py": "a = 2\n", "src/util.py": "b = 1\n"})
        commit(root, "three", {"src/app.py": "a = 3\n"})
        repository = discover_repository(root)

        adapter = GitHistoryAdapter(self.options(), str(root))
        assert adapter.probe().available

        full = adapter.analyze(make_context(repository, "git-history"), self.options(hotspot_commits=3))
        assert full.ok
        assert full.targets_analyzed == 3
        assert [f["file"] for f in full.payload["findings"]] == ["src/app.py"]

        since = adapter.analyze(
            make_context(repository, "git-history", last_analyzed_commit=first), self.options()
        )
        assert since.payload["since"] == first
        assert since.targets_analyzed == 2

        rewritten = adapter.analyze(
            make_context(repository, "git-history", last_analyzed_commit="f" * 40), self.options()
        )
        assert rewritten.payload["since"] is None
        assert rewritten.targets_analyzed == 3
