"""Repository discovery for codeatlas.

Discovers the facts about the target working tree that every stage of a
run shares: VCS metadata, the file list at the run commit, and a language
and category tag for each file. Discovery uses the git index when
available and falls back to a directory walk.

Example:
    >>> repo = discover_repository("/path/to/code")
    >>> repo.vcs
    'git'
    >>> repo.files["src/app.py"].category
    <FileCategory.SOURCE: 'source'>
"""

from __future__ import annotations

import os
import re
import subprocess
from pathlib import Path
from typing import Optional

from .exceptions import InvalidPathError
from .logging_config import get_logger
from .model import FileCategory, Repository, SourceFile

logger = get_logger(__name__)

SKIP_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        "node_modules",
        "__pycache__",
        ".venv",
        "venv",
        ".tox",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        ".codeatlas",
    }
)

LANGUAGE_BY_EXTENSION = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".kt": "kotlin",
    ".scala": "scala",
    ".go": "go",
    ".rs": "rust",
    ".rb": "ruby",
    ".php": "php",
    ".cs": "csharp",
    ".c": "c",
    ".h": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".swift": "swift",
    ".sol": "solidity",
    ".vy": "vyper",
    ".sh": "shell",
    ".sql": "sql",
    ".html": "html",
    ".css": "css",
    ".scss": "css",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".md": "markdown",
}

_TEST_RE = re.compile(r"(^|/)(tests?|spec|__tests__)(/|$)|(^|[/._-])(test|spec)[._-]|_test\.|\.test\.|\.spec\.")
_DEPENDENCY_RE = re.compile(r"(^|/)(node_modules|vendor|lib|deps|third_party)/")
_BUILD_RE = re.compile(r"(^|/)(build|dist|target|bin|scripts|tools)/")
_CONFIG_DIR_RE = re.compile(r"(^|/)(config|conf|settings)(/|\.)")
_CONFIG_NAMES = (".env", "config.", "webpack.", "babel.", ".eslintrc", "eslint.", ".prettierrc", "prettier.", "tsconfig")
_DOC_NAMES = ("readme", "changelog", "license", "contributing")
_ASSET_EXTENSIONS = frozenset(
    {".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp", ".css", ".scss", ".woff", ".woff2", ".ttf", ".eot"}
)


def detect_language(path: str) -> str:
    """Language tag for a path, "unknown" when the extension is not mapped."""
    return LANGUAGE_BY_EXTENSION.get(Path(path).suffix.lower(), "unknown")


def categorize(path: str) -> FileCategory:
    """Classify a canonical path into a FileCategory.

    Rules are checked in order: dependency, test, docs, asset, config,
    build; everything else is source.
    """
    lowered = path.lower()
    name = lowered.rsplit("/", 1)[-1]
    suffix = Path(name).suffix

    if _DEPENDENCY_RE.search(lowered):
        return FileCategory.DEPENDENCY
    if _TEST_RE.search(lowered):
        return FileCategory.TEST
    if suffix in (".md", ".rst") or name.startswith(_DOC_NAMES):
        return FileCategory.DOCS
    if suffix in _ASSET_EXTENSIONS:
        return FileCategory.ASSET
    if name.startswith(_CONFIG_NAMES) or _CONFIG_DIR_RE.search(lowered):
        return FileCategory.CONFIG
    if _BUILD_RE.search(lowered):
        return FileCategory.BUILD
    return FileCategory.SOURCE


def discover_repository(root: Path | str, include_hidden: bool = True) -> Repository:
    """Discover the repository rooted at ``root``.

    Args:
        root: Working tree root to analyze
        include_hidden: Include dotfiles (always excludes SKIP_DIRS)

    Returns:
        Immutable Repository

    Raises:
        InvalidPathError: If root does not exist or is not a directory
    """
    root_path = Path(root).resolve()
    if not root_path.exists():
        raise InvalidPathError(root_path, "does not exist")
    if not root_path.is_dir():
        raise InvalidPathError(root_path, "not a directory")

    vcs_dir = _git(root_path, "rev-parse", "--absolute-git-dir")
    if vcs_dir is not None:
        commit = _git(root_path, "rev-parse", "--verify", "HEAD")
        branch = _git(root_path, "rev-parse", "--abbrev-ref", "HEAD")
        if branch == "HEAD":
            branch = None
        paths = _git_files(root_path)
        if paths is None:
            logger.warning("git ls-files failed, falling back to directory walk")
            paths = _walk_directory(root_path)
        vcs = "git"
    else:
        commit = branch = None
        paths = _walk_directory(root_path)
        vcs = None

    files: dict[str, SourceFile] = {}
    for rel in sorted(paths):
        if not include_hidden and any(part.startswith(".") for part in rel.split("/")):
            continue
        full = root_path / rel
        try:
            size = full.stat().st_size
        except OSError:
            continue
        files[rel] = SourceFile(
            path=rel, language=detect_language(rel), category=categorize(rel), size=size
        )

    logger.debug(
        f"Repository discovered: {len(files)} files, vcs={vcs}, commit={commit}, branch={branch}"
    )

    return Repository(
        root=str(root_path),
        commit=commit,
        branch=branch,
        vcs=vcs,
        vcs_dir=vcs_dir,
        files=files,
    )


def _git(root: Path, *args: str, timeout: int = 10) -> Optional[str]:
    """Run a git query, returning stripped stdout or None on any failure."""
    try:
        result = subprocess.run(
            ["git", "-C", str(root), *args],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def _git_files(root: Path) -> Optional[list[str]]:
    """Tracked files under root that still exist on disk."""
    try:
        result = subprocess.run(
            ["git", "-C", str(root), "ls-files", "-z"],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return None
    if result.returncode != 0:
        return None

    files = []
    for entry in result.stdout.split("\0"):
        if not entry:
            continue
        if any(part in SKIP_DIRS for part in entry.split("/")):
            continue
        if (root / entry).is_file():
            files.append(entry)
    return files


def _walk_directory(root: Path) -> list[str]:
    """Walk the tree, pruning SKIP_DIRS. Symlinked directories are not followed."""
    files: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        for filename in filenames:
            full = Path(dirpath) / filename
            if full.is_symlink() and not full.exists():
                continue
            files.append(full.relative_to(root).as_posix())
    return files
