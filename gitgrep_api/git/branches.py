# gitgrep_api/git/branches.py
import re
from contextlib import aclosing
from typing import List, Optional

from pydantic import BaseModel

from .runner import CommandRunner

PATTERN_MARKER = "^"
CURRENT_MARKER = "*"


class BranchInfo(BaseModel):
    name: str
    is_current: bool = False


def parse_branch_line(line: str) -> Optional[BranchInfo]:
    """Parse one line of ``git branch --list``; blank lines give None."""
    if not line.strip():
        return None
    return BranchInfo(name=line[2:], is_current=line.startswith(CURRENT_MARKER))


async def list_branches(runner: CommandRunner, work_dir: str) -> List[BranchInfo]:
    branches = []
    async with aclosing(runner.run(work_dir, ["branch", "--list"]).lines()) as lines:
        async for line in lines:
            branch = parse_branch_line(line)
            if branch is not None:
                branches.append(branch)
    return branches


async def resolve_branches(runner: CommandRunner, work_dir: str, spec: str) -> List[str]:
    """Expand a branch spec into concrete branch names.

    ``^expr`` lists the repository's branches and keeps those the whole spec,
    marker included, matches (``re.search``), in listing order. Anything
    else is returned as-is without checking that the branch exists.
    """
    if not spec.startswith(PATTERN_MARKER):
        return [spec]
    pattern = re.compile(spec)
    return [b.name for b in await list_branches(runner, work_dir) if pattern.search(b.name)]
