"""Subprocess runner with bounded, line-aware output capture."""

import asyncio
import codecs
import logging
from typing import List, Optional, Sequence

from .models import ExecutionResult

logger = logging.getLogger(__name__)

SPAWN_FAILURE_CODE = -1
READ_CHUNK_SIZE = 64 * 1024


def encode_payload(text: str) -> bytes:
    """Encode stdin text as UTF-8, replacing lone surrogates with U+FFFD."""
    # A UTF-16 round trip pairs valid surrogates and replaces the rest.
    utf16 = text.encode("utf-16-le", "surrogatepass")
    return utf16.decode("utf-16-le", "replace").encode("utf-8")


class OutputAccumulator:
    """Collects a process's stdout under a global cap and a per-line drop limit.

    Text arrives in arbitrary chunks. Complete lines are kept verbatim if their
    length (without the newline and one trailing carriage return) is within
    ``drop_line_limit``; longer lines are dropped whole. The accepted text never
    exceeds ``character_limit``: the line that crosses it is cut to fit, and
    everything after it is ignored.
    """

    def __init__(self, character_limit: int, drop_line_limit: int):
        self.character_limit = character_limit
        self.drop_line_limit = drop_line_limit
        self._parts: List[str] = []
        self._length = 0
        self._carry = ""
        self.dropped_lines = 0

    @property
    def full(self) -> bool:
        return self._length >= self.character_limit

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed(self, chunk: str) -> None:
        """Process one decoded chunk of stdout."""
        if self.full:
            return

        self._carry += chunk
        start = 0
        while True:
            end = self._carry.find("\n", start)
            if end == -1:
                break
            self._accept_line(self._carry[start : end + 1], self._carry[start:end])
            start = end + 1
            if self.full:
                break
        self._carry = self._carry[start:]

    def flush(self) -> None:
        """Process the final unterminated line at end of stream."""
        carry, self._carry = self._carry, ""
        if carry and not self.full:
            self._accept_line(carry, carry)

    def _accept_line(self, raw: str, content: str) -> None:
        if content.endswith("\r"):
            content = content[:-1]
        if len(content) > self.drop_line_limit:
            self.dropped_lines += 1
            return
        self._push(raw)

    def _push(self, text: str) -> None:
        remaining = self.character_limit - self._length
        if remaining <= 0:
            return
        if len(text) > remaining:
            text = text[:remaining]
        self._parts.append(text)
        self._length += len(text)


class ProcessRunner:
    """Runs tool commands as child processes and shapes their results."""

    def __init__(self, character_limit: int, drop_line_limit: int):
        """Initialize runner.

        Args:
            character_limit: Maximum characters kept from stdout
            drop_line_limit: Lines longer than this are dropped from stdout
        """
        self.character_limit = character_limit
        self.drop_line_limit = drop_line_limit

    async def run(
        self,
        command: str,
        args: Sequence[str],
        working_directory: str,
        stdin_payload: Optional[str] = None,
    ) -> ExecutionResult:
        """Run ``command`` with ``args`` in ``working_directory``.

        No shell is involved; each argument reaches the process as-is. A
        non-empty ``stdin_payload`` is written to stdin, which is then closed.

        Never raises for process failures: a command that cannot be started
        yields code -1 with the reason in ``err``, and a failing command yields
        its own exit code and stderr.

        Args:
            command: Executable name or path
            args: Arguments following the executable
            working_directory: Directory the process runs in
            stdin_payload: Optional text for the process's stdin

        Returns:
            Execution result with exit code, bounded stdout and full stderr
        """
        accumulator = OutputAccumulator(self.character_limit, self.drop_line_limit)
        argv = [command, *args]
        stdin_bytes = encode_payload(stdin_payload) if stdin_payload else b""

        logger.debug(f"Spawning {argv!r} in {working_directory}")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=working_directory,
                stdin=asyncio.subprocess.PIPE if stdin_bytes else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to start {command!r}: {e}")
            return ExecutionResult(code=SPAWN_FAILURE_CODE, out=accumulator.text, err=str(e))

        try:
            _, _, stderr_bytes = await asyncio.gather(
                self._write_stdin(process, stdin_bytes),
                self._read_stdout(process.stdout, accumulator),
                process.stderr.read(),
            )
        except BaseException:
            # The child is always reaped, even when the run is abandoned.
            logger.error(f"Abandoning {command!r}; killing process {process.pid}")
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
            await process.wait()
            raise
        return_code = await process.wait()
        accumulator.flush()

        if accumulator.dropped_lines:
            logger.debug(f"Dropped {accumulator.dropped_lines} long lines from {command!r}")
        if accumulator.full:
            logger.debug(f"Output of {command!r} truncated at {self.character_limit} characters")
        logger.info(f"{command!r} exited with code {return_code}")

        return ExecutionResult(
            code=return_code,
            out=accumulator.text,
            err=stderr_bytes.decode("utf-8", errors="replace"),
        )

    @staticmethod
    async def _write_stdin(process: asyncio.subprocess.Process, stdin_bytes: bytes) -> None:
        if not stdin_bytes or process.stdin is None:
            return
        try:
            process.stdin.write(stdin_bytes)
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Process exited before reading all of its input")
        finally:
            process.stdin.close()

    @staticmethod
    async def _read_stdout(stream: asyncio.StreamReader, accumulator: OutputAccumulator) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            # Keep draining once full so the child never blocks on a full pipe.
            if accumulator.full:
                continue
            accumulator.feed(decoder.decode(chunk))
        if not accumulator.full:
            accumulator.feed(decoder.decode(b"", final=True))
