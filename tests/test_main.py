"""End-to-end tests for the HTTP endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from gitgrep_api.main import create_app
from gitgrep_api.settings import Settings

from .conftest import requires_git


@pytest.fixture
def client(repo_root):
    return TestClient(create_app(Settings(REPO_DIR=str(repo_root), PREFIX="/api")))


def test_list_repositories_returns_directories_only(client):
    response = client.get("/api/")

    assert response.status_code == 200
    assert response.json() == ["alpha", "beta.git", "broken"]


def test_list_repositories_with_missing_root(tmp_path):
    client = TestClient(create_app(Settings(REPO_DIR=str(tmp_path / "missing"))))

    response = client.get("/")

    assert response.status_code == 400
    assert "error" in response.json()


def test_exact_repository_name(client):
    assert client.get("/api/repo/alpha").json() == ["alpha"]


def test_bare_repository_suffix_is_appended(client):
    assert client.get("/api/repo/beta").json() == ["beta.git"]


def test_pattern_repository_name(client):
    assert client.get("/api/repo/^b").json() == ["beta.git", "broken"]


def test_unknown_repository_is_an_error(client):
    response = client.get("/api/repo/nope")

    assert response.status_code == 400
    assert response.json() == {"error": "repository not found: nope"}


def test_invalid_repository_pattern_is_an_error(client):
    response = client.get("/api/repo/^(/grep/main")

    assert response.status_code == 400
    assert "invalid repository pattern" in response.json()["error"]


def test_invalid_pattern_type_is_an_error(client):
    response = client.get("/api/repo/alpha/grep/main", params={"pattern_type": "fuzzy"})

    assert response.status_code == 400
    assert "pattern_type" in response.json()["error"]


@requires_git
def test_grep_streams_matches(client):
    response = client.get("/api/repo/alpha/grep/main", params={"q": "Println"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/json"
    assert response.json() == [
        {"branch": "main", "file": "src/app.go", "line_no": 4, "line": '\tfmt.Println("x:y")', "repo": "alpha"},
    ]


@requires_git
def test_grep_across_repositories_skips_broken_ones(client):
    response = client.get("/api/repo/^/grep/main", params={"q": "hello"})

    assert response.status_code == 200
    assert [(m["repo"], m["line"]) for m in response.json()] == [
        ("alpha", "hello world"),
        ("beta.git", "hello world"),
    ]


@requires_git
def test_grep_branch_pattern_and_line_filter(client):
    response = client.get(
        "/api/repo/alpha/grep/^",
        params={"q": "HELLO", "ignore_case": "true", "target_line_no": 2},
    )

    assert response.json() == [
        {"branch": "feature-x", "file": "README.md", "line_no": 2, "line": "hello feature", "repo": "alpha"},
    ]


@requires_git
def test_grep_path_filter(client):
    response = client.get("/api/repo/alpha/grep/main", params={"q": "main", "path": "*.md"})

    assert response.json() == []


@requires_git
def test_grep_extended_pattern_type(client):
    response = client.get(
        "/api/repo/alpha/grep/main",
        params={"q": "hel+o (world|feature)", "pattern_type": "extended"},
    )

    assert [m["line"] for m in response.json()] == ["hello world"]


@requires_git
def test_grep_with_delimiter(client):
    response = client.get("/api/repo/alpha/grep/^feature", params={"q": "hello", "delimiter": "\n"})

    assert response.status_code == 200
    records = [json.loads(part) for part in response.text.split("\n")]
    assert [r["line_no"] for r in records] == [1, 2]


@requires_git
def test_grep_without_matches_is_empty_array(client):
    response = client.get("/api/repo/alpha/grep/main", params={"q": "zzz-not-present"})

    assert response.status_code == 200
    assert response.text == "[]"


def test_cors_middleware_is_optional(repo_root):
    plain = TestClient(create_app(Settings(REPO_DIR=str(repo_root))))
    with_cors = TestClient(create_app(Settings(REPO_DIR=str(repo_root), INSTALL_MIDDLEWARE=True)))
    headers = {"Origin": "http://example.com"}

    assert "access-control-allow-origin" not in plain.get("/", headers=headers).headers
    assert with_cors.get("/", headers=headers).headers["access-control-allow-origin"] in ("*", headers["Origin"])


def test_option_like_branch_is_rejected(client):
    response = client.get("/api/repo/alpha/grep/--open-files-in-pager=id", params={"q": "hello"})

    assert response.status_code == 400
    assert response.json() == {"error": "refusing revision '--open-files-in-pager=id'"}


@requires_git
@pytest.mark.parametrize("query_string", ["ignore_case", "ignore_case=", "ignore_case=yes", "ignore_case=1"])
def test_ignore_case_accepts_bare_flag(client, query_string):
    response = client.get(f"/api/repo/alpha/grep/main?q=HELLO&{query_string}")

    assert response.status_code == 200
    assert [m["line"] for m in response.json()] == ["hello world"]


@requires_git
def test_ignore_case_false_value(client):
    response = client.get("/api/repo/alpha/grep/main?q=HELLO&ignore_case=false")

    assert response.json() == []


def test_ignore_case_rejects_unknown_value(client):
    response = client.get("/api/repo/alpha/grep/main?ignore_case=maybe")

    assert response.status_code == 400
    assert "ignore_case" in response.json()["error"]
