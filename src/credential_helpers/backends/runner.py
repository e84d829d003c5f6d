"""Subprocess plumbing for backends that wrap an external CLI."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass

from credential_helpers.errors import BackendExecutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a single tool invocation."""

    returncode: int
    stdout: str
    stderr: str


class CommandRunner:
    """Runs one external tool, feeding secrets through stdin only.

    Parameters
    ----------
    binary:
        Executable name or path of the tool.
    timeout:
        Seconds to wait for the tool before killing it. ``None`` (or 0)
        waits forever.
    """

    def __init__(self, binary: str, timeout: float | None = None) -> None:
        self.binary = binary
        self.timeout = timeout or None

    async def execute(self, *args: str, stdin: str = "") -> CommandResult:
        """Run the tool and return its exit status and decoded output."""
        logger.debug("Running %s %s", self.binary, args[0] if args else "")
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise BackendExecutionError(f"unable to run {self.binary}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(stdin.encode("utf-8")), timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            # The child may have exited on its own meanwhile.
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise BackendExecutionError(
                f"{self.binary} did not finish within {self.timeout}s"
            ) from None

        return CommandResult(
            returncode=proc.returncode or 0,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    async def run(self, *args: str, stdin: str = "") -> str:
        """Run the tool, raising on a non-zero exit.

        Returns stdout with trailing newlines removed; ``show``-style
        commands terminate their output with one.
        """
        result = await self.execute(*args, stdin=stdin)
        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise BackendExecutionError(
                f"exit status {result.returncode}: {stderr}",
                returncode=result.returncode,
                stderr=stderr,
            )
        return result.stdout.rstrip("\r\n")
