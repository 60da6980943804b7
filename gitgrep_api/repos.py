# gitgrep_api/repos.py
import os, re
from typing import List

PATTERN_MARKER = "^"
BARE_SUFFIX = ".git"


class RepositoryNotFound(LookupError): ...


def list_repos(repo_dir: str) -> List[str]:
    """Directory names under ``repo_dir``, sorted."""
    return sorted(
        entry.name for entry in os.scandir(repo_dir) if entry.is_dir()
    )


def resolve_repos(repo_dir: str, spec: str) -> List[str]:
    """Turn a repository spec from the URL into repository names.

    ``^expr`` selects every repository whose name matches the expression
    (possibly none). A plain name must exist, either as given or with a
    ``.git`` suffix for bare repositories.
    """
    if spec.startswith(PATTERN_MARKER):
        pattern = re.compile(spec)
        return [name for name in list_repos(repo_dir) if pattern.search(name)]

    if spec in ("", ".", "..") or os.sep in spec or (os.altsep and os.altsep in spec):
        raise RepositoryNotFound(f"invalid repository name: {spec}")
    for name in (spec, spec + BARE_SUFFIX):
        if os.path.isdir(os.path.join(repo_dir, name)):
            return [name]
    raise RepositoryNotFound(f"repository not found: {spec}")
