# gitgrep_api/git/grep.py
import logging, os
from contextlib import aclosing
from typing import AsyncIterator, Literal, Sequence

from pydantic import BaseModel

from .branches import resolve_branches
from .runner import CommandRunner

logger = logging.getLogger(__name__)

PatternType = Literal["basic", "extended", "fixed", "perl"]

# git grep exits 1 when nothing matched
GREP_OK_RETURNCODES = (0, 1)


class GrepParseError(ValueError): ...


class UnsafeRevision(ValueError): ...


class GrepMatch(BaseModel):
    branch: str
    file: str
    line_no: int
    line: str
    repo: str


def check_revision(name: str) -> str:
    """Refuse revisions git would read as an option."""
    if not name or name.startswith("-"):
        raise UnsafeRevision(f"refusing revision {name!r}")
    return name


def parse_grep_line(line: str, repo: str, branch: str | None = None) -> GrepMatch:
    """Parse one line of ``git grep -n`` output.

    ``--null`` output (``branch:file\\0line_no\\0text``) is split on NUL, so
    file names may contain colons; with ``branch`` given its prefix is
    stripped as a known string. Plain ``branch:file:line_no:text`` splits on
    the first three colons. Colons inside text are kept either way.
    """
    if "\0" in line:
        fields = line.split("\0", 2)
        if len(fields) != 3:
            raise GrepParseError(f"expected name, line and text fields, got {line!r}")
        name, line_no, text = fields
        if branch is not None:
            if not name.startswith(branch + ":"):
                raise GrepParseError(f"expected branch {branch!r} in {line!r}")
            file = name[len(branch) + 1:]
        else:
            branch, _, file = name.partition(":")
    else:
        if branch is not None and line.startswith(branch + ":"):
            fields = [branch, *line[len(branch) + 1:].split(":", 2)]
        else:
            fields = line.split(":", 3)
        if len(fields) != 4:
            raise GrepParseError(f"expected branch:file:line:text, got {line!r}")
        branch, file, line_no, text = fields
    try:
        number = int(line_no)
    except ValueError:
        raise GrepParseError(f"invalid line number {line_no!r} in {line!r}") from None
    return GrepMatch(branch=branch, file=file, line_no=number, line=text, repo=repo)


async def isolate_failures(unit: AsyncIterator, label: str) -> AsyncIterator:
    """Re-yield ``unit``; if it fails, log the error and end quietly.

    Only errors raised while producing items are absorbed. Cancellation and
    closing from the consumer side pass through untouched.
    """
    async with aclosing(unit):
        while True:
            try:
                item = await unit.__anext__()
            except StopAsyncIteration:
                return
            except Exception:
                logger.exception(f"Search failed for {label}; skipping")
                return
            yield item


class MatchPipeline:
    def __init__(self, repo_dir: str, runner: CommandRunner):
        self.repo_dir = repo_dir
        self.runner = runner

    async def search(
        self,
        repos: Sequence[str],
        branch_spec: str,
        query: str,
        file_pattern: str = "*",
        ignore_case: bool = False,
        pattern_type: PatternType = "basic",
        target_line_no: int = 0,
    ) -> AsyncIterator[GrepMatch]:
        """Yield matches for every repository and branch, in that order.

        Repositories are handled one after another and each resolved branch
        runs its own ``git grep``; a failing repository or branch contributes
        nothing instead of ending the stream.
        """
        for repo in repos:
            unit = self._search_repository(
                repo, branch_spec, query, file_pattern, ignore_case, pattern_type, target_line_no
            )
            async with aclosing(isolate_failures(unit, repo)) as matches:
                async for match in matches:
                    yield match

    async def _search_repository(self, repo, branch_spec, query, file_pattern, ignore_case, pattern_type, target_line_no):
        work_dir = os.path.join(self.repo_dir, repo)
        branches = await resolve_branches(self.runner, work_dir, branch_spec)
        for branch in branches:
            unit = self._search_branch(
                repo, work_dir, branch, query, file_pattern, ignore_case, pattern_type, target_line_no
            )
            async with aclosing(isolate_failures(unit, f"{repo}@{branch}")) as matches:
                async for match in matches:
                    yield match

    async def _search_branch(self, repo, work_dir, branch, query, file_pattern, ignore_case, pattern_type, target_line_no):
        check_revision(branch)
        args = ["-c", f"grep.patternType={pattern_type}", "grep", "--null", "-In"]
        if ignore_case:
            args.append("-i")
        args += ["-e", query, branch, "--", file_pattern]

        stream = self.runner.run(work_dir, args, ok_returncodes=GREP_OK_RETURNCODES)
        async with aclosing(stream.lines()) as lines:
            async for line in lines:
                match = parse_grep_line(line, repo, branch)
                if target_line_no and match.line_no != target_line_no:
                    continue
                yield match
