"""Library for issuing commands using asyncio and returning the result."""

import asyncio
import logging
import shlex
import subprocess
from dataclasses import dataclass

from .exceptions import CommandException

_LOGGER = logging.getLogger(__name__)

_CONCURRENCY = 10
_SEM = asyncio.Semaphore(_CONCURRENCY)
DEFAULT_TIMEOUT = 300.0


# No public API
__all__: list[str] = []


@dataclass
class Command:
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    timeout: float = DEFAULT_TIMEOUT
    """Seconds to wait for the command to finish."""

    redact: frozenset[str] = frozenset()
    """Argument values that must not appear in logs or error messages."""

    def __str__(self) -> str:
        """Render as a debug string with secrets masked."""
        return " ".join(
            "***" if arg in self.redact else shlex.quote(arg) for arg in self.cmd
        )

    async def run(self, stdin: bytes | None = None) -> bytes:
        """Run the command, returning stdout.

        The process is killed if the caller is cancelled before it exits.
        """
        _LOGGER.debug("Running command: %s", self)
        proc = await asyncio.create_subprocess_exec(
            *self.cmd,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        try:
            out, err = await proc.communicate(stdin)
        except asyncio.CancelledError:
            if proc.returncode is None:
                _LOGGER.debug("Killing command: %s", self)
                proc.kill()
                await proc.wait()
            raise
        if proc.returncode:
            errors = [f"Command '{self}' failed with return code {proc.returncode}"]
            if out:
                errors.append(out.decode("utf-8"))
            if err:
                errors.append(err.decode("utf-8"))
            _LOGGER.debug("\n".join(errors))
            raise self.exc("\n".join(errors))
        return out


async def run(cmd: Command) -> str:
    """Run the specified command and return stdout."""
    async with _SEM:
        try:
            out = await asyncio.wait_for(cmd.run(), cmd.timeout)
        except asyncio.TimeoutError as err:
            raise cmd.exc(f"Command '{cmd}' timed out") from err
    return out.decode("utf-8") if out else ""
