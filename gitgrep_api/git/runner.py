# gitgrep_api/git/runner.py
import logging
from typing import Sequence

from ..executor import KILL_TIMEOUT, READ_CHUNK_SIZE, LineStream, ProcessInvocation

logger = logging.getLogger(__name__)

# keep output machine-parseable regardless of user/system git config
GIT_BASE_ARGS = ("-c", "color.ui=false", "-c", "core.quotepath=false", "-c", "core.pager=cat")


class CommandRunner:
    def __init__(
        self,
        executable: str = "git",
        base_args: Sequence[str] = GIT_BASE_ARGS,
        chunk_size: int = READ_CHUNK_SIZE,
        kill_timeout: float = KILL_TIMEOUT,
    ):
        self.executable = executable
        self.base_args = tuple(base_args)
        self.chunk_size = chunk_size
        self.kill_timeout = kill_timeout

    def run(self, work_dir: str, args: Sequence[str], ok_returncodes: Sequence[int] = (0,)) -> LineStream:
        """Build a LineStream for ``executable <base args> <args>`` in ``work_dir``.

        Nothing is spawned until the stream is iterated.
        """
        invocation = ProcessInvocation(self.executable, (*self.base_args, *args), cwd=work_dir)
        return LineStream(
            invocation,
            ok_returncodes=ok_returncodes,
            chunk_size=self.chunk_size,
            kill_timeout=self.kill_timeout,
        )
