# gitgrep_api/executor.py
import asyncio, codecs, logging
from dataclasses import dataclass
from typing import AsyncIterator, Sequence

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024
KILL_TIMEOUT = 3.0


class ExecError(Exception): ...


class ProcessSpawnError(ExecError):
    """The executable could not be started (missing, not permitted, bad cwd)."""


class ProcessExitError(ExecError):
    def __init__(self, invocation: "ProcessInvocation", returncode: int, stderr: str = ""):
        self.invocation = invocation
        self.returncode = returncode
        self.stderr = stderr
        message = f"{invocation} exited with status {returncode}"
        if stderr.strip():
            message += f": {stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True)
class ProcessInvocation:
    executable: str
    args: tuple[str, ...] = ()
    cwd: str | None = None

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]

    def __str__(self) -> str:
        return " ".join(self.argv)


class LineSplitter:
    """Reassemble text chunks into complete lines.

    Whatever follows the last terminator of a chunk is carried over and
    prefixed to the next chunk, so a line (or a multi-character terminator)
    split across reads comes out whole.
    """

    def __init__(self, terminator: str = "\n"):
        self.terminator = terminator
        self._carry = ""

    def feed(self, chunk: str) -> list[str]:
        segments = (self._carry + chunk).split(self.terminator)
        self._carry = segments.pop()
        return segments

    def flush(self) -> list[str]:
        carry, self._carry = self._carry, ""
        return [carry] if carry else []


class LineStream:
    """Lazily spawn a process and yield its stdout one line at a time.

    The process is started when iteration begins and is owned by the
    generator: closing or cancelling the iteration terminates it. stderr is
    drained separately and never mixed into the lines.

    After iteration ``returncode`` and ``stderr`` hold the exit status. An
    exit code outside ``ok_returncodes`` raises ProcessExitError only when no
    line was produced; otherwise the output already yielded stands and the
    status is logged.
    """

    def __init__(
        self,
        invocation: ProcessInvocation,
        ok_returncodes: Sequence[int] = (0,),
        chunk_size: int = READ_CHUNK_SIZE,
        kill_timeout: float = KILL_TIMEOUT,
        encoding: str = "utf-8",
    ):
        self.invocation = invocation
        self.ok_returncodes = tuple(ok_returncodes)
        self.chunk_size = chunk_size
        self.kill_timeout = kill_timeout
        self.encoding = encoding
        self.returncode: int | None = None
        self.stderr = ""
        self._started = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self.lines()

    async def lines(self) -> AsyncIterator[str]:
        if self._started:
            raise ExecError(f"{self.invocation} has already been started")
        self._started = True

        proc = await self._spawn()
        stderr_task = asyncio.ensure_future(proc.stderr.read())
        splitter = LineSplitter()
        decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")
        produced = 0
        try:
            while True:
                chunk = await proc.stdout.read(self.chunk_size)
                if not chunk:
                    break
                for line in splitter.feed(decoder.decode(chunk)):
                    produced += 1
                    yield line
            for line in splitter.feed(decoder.decode(b"", final=True)) + splitter.flush():
                produced += 1
                yield line
            await proc.wait()
            self.stderr = (await stderr_task).decode(self.encoding, errors="replace")
        finally:
            if proc.returncode is None:
                await self._terminate(proc)
            stderr_task.cancel()
            self.returncode = proc.returncode

        if self.returncode not in self.ok_returncodes:
            if not produced:
                raise ProcessExitError(self.invocation, self.returncode, self.stderr)
            logger.warning(f"{self.invocation} exited with status {self.returncode} after {produced} lines")

    async def _spawn(self) -> asyncio.subprocess.Process:
        logger.debug(f"Spawning: {self.invocation} (cwd={self.invocation.cwd})")
        try:
            return await asyncio.create_subprocess_exec(
                *self.invocation.argv,
                cwd=self.invocation.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessSpawnError(f"failed to start {self.invocation.executable}: {e}") from e

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        try:
            proc.terminate()
        except ProcessLookupError:
            pass
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.kill_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
        logger.debug(f"Terminated: {self.invocation} (status {proc.returncode})")
