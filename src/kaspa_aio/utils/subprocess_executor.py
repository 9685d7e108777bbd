"""Async subprocess execution with automatic debug logging."""

import asyncio
import subprocess
from collections import deque

from kaspa_aio.logger import get_logger

logger = get_logger(__name__)


def tail_lines(text: str, limit: int) -> list[str]:
    """Return the last ``limit`` non-empty lines of ``text``."""
    lines: deque[str] = deque(maxlen=max(limit, 0))
    for line in text.splitlines():
        if line.strip():
            lines.append(line.rstrip())
    return list(lines)


class SubprocessExecutor:
    """Executes subprocess commands with automatic debug logging."""

    @staticmethod
    async def run(
        *args: str,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[bytes]:
        """
        Execute a subprocess command.

        Args:
            *args: Command arguments
            timeout: Timeout in seconds

        Returns:
            CompletedProcess with returncode, stdout, stderr

        Raises:
            asyncio.TimeoutError: If timeout is exceeded
        """
        cmd_str = " ".join(args)
        logger.debug(f"Executing subprocess: {cmd_str}")

        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            if timeout:
                stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
            else:
                stdout, stderr = await process.communicate()
        except asyncio.TimeoutError:
            logger.error(f"Subprocess timeout after {timeout}s: {cmd_str}")
            process.kill()
            await process.wait()
            raise

        if stdout:
            logger.debug(f"Subprocess stdout: {stdout.decode('utf-8', errors='replace')}")
        if stderr:
            logger.debug(f"Subprocess stderr: {stderr.decode('utf-8', errors='replace')}")

        assert process.returncode is not None
        return subprocess.CompletedProcess(list(args), process.returncode, stdout, stderr)
