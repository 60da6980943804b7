"""
Shared pytest fixtures for the git grep API tests.

Builds a small repository root on disk with real git repositories so the
HTTP endpoints and the search pipeline can be exercised end to end.
"""

import shutil
import subprocess
from pathlib import Path

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

APP_GO = 'package main\nimport "fmt"\nfunc main() {\n\tfmt.Println("x:y")\n}\n'


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


@pytest.fixture
def repo_root(tmp_path, monkeypatch) -> Path:
    """Repository root with:

    - ``alpha``: working repo, branches ``main`` and ``feature-x``
    - ``beta.git``: bare clone of alpha
    - ``broken``: a plain directory that is not a repository
    - ``notes.txt``: a file, which is not a repository either
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    # keep git from discovering a repository above tmp_path or reading user config
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", "/dev/null")

    root = tmp_path / "repos"
    root.mkdir()

    alpha = root / "alpha"
    alpha.mkdir()
    git(alpha, "init", "-q")
    git(alpha, "symbolic-ref", "HEAD", "refs/heads/main")
    (alpha / "src").mkdir()
    (alpha / "src" / "app.go").write_text(APP_GO)
    (alpha / "README.md").write_text("hello world\n")
    git(alpha, "add", ".")
    git(alpha, "commit", "-q", "-m", "initial")

    git(alpha, "checkout", "-q", "-b", "feature-x")
    (alpha / "README.md").write_text("hello world\nhello feature\n")
    git(alpha, "commit", "-q", "-am", "feature")
    git(alpha, "checkout", "-q", "main")

    git(root, "clone", "-q", "--bare", str(alpha), "beta.git")

    (root / "broken").mkdir()
    (root / "notes.txt").write_text("not a repository\n")
    return root
