"""Gemini CLI subprocess wrapper"""

import asyncio
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from ..errors import JobTimeoutError, UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Result of one Gemini CLI run"""

    exit_code: int
    stdout: str
    stderr: str
    duration: float

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def preview(self, max_length: int = 500) -> str:
        text = self.stdout.strip()
        if len(text) > max_length:
            return text[:max_length] + "..."
        return text


class GeminiCLIRunner:
    """Runs the Gemini CLI once, non-interactively, inside a working tree"""

    def __init__(self, gemini_bin: str = "gemini", extra_args: list[str] | None = None):
        self.gemini_bin = gemini_bin
        self.extra_args = list(extra_args) if extra_args is not None else ["--yolo"]

    def check_available(self) -> bool:
        return shutil.which(self.gemini_bin) is not None

    def build_command(self, prompt: str) -> list[str]:
        return [self.gemini_bin, "-p", prompt, *self.extra_args]

    async def run(self, prompt: str, cwd: Path, timeout: float) -> GenerationResult:
        """
        Execute the CLI and wait at most `timeout` seconds.

        Raises:
            JobTimeoutError: the process outlived `timeout` and was killed
            UpstreamError: the binary is missing or exited non-zero
        """
        if not self.check_available():
            raise UpstreamError(f"Gemini CLI binary not found: {self.gemini_bin}", service="gemini-cli")

        cmd = self.build_command(prompt)
        logger.info(f"Executing Gemini CLI in {cwd}")
        logger.debug(f"Full command: {cmd[:2]} <prompt> {cmd[3:]}")

        start_time = time.monotonic()
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"Gemini CLI timed out after {timeout}s in {cwd}")
            raise JobTimeoutError(f"Gemini CLI timed out after {timeout:g}s", timeout=timeout)

        result = GenerationResult(
            exit_code=process.returncode,
            stdout=stdout.decode("utf-8", errors="ignore"),
            stderr=stderr.decode("utf-8", errors="ignore"),
            duration=time.monotonic() - start_time,
        )

        logger.info(
            f"Gemini CLI finished: exit_code={result.exit_code}, "
            f"duration={result.duration:.1f}s, success={result.success}"
        )

        if not result.success:
            detail = (result.stderr or result.stdout).strip()[-1000:]
            raise UpstreamError(
                f"Gemini CLI exited with code {result.exit_code}: {detail}",
                service="gemini-cli",
            )

        return result
